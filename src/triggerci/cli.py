# cli.py
from __future__ import annotations

import functools
import sys
from pathlib import Path

import click

from .api.client import APIClient
from .config import load_settings
from .errors import ConfigError, TriggerError
from .events import EventLog, TargetFailed, fan_out
from .orchestrator import trigger as run_trigger
from .selection import Cancelled, ProjectChoice, load_projects, parse_target, select_targets, write_projects
from .ui.console import Console, JsonLinesReporter, get_console, set_console

EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def _fail_config(err: ConfigError) -> None:
    console = get_console()
    console.print_error(
        "Configuration error",
        err.message,
        details=[f"{k}={v}" for k, v in err.details.items()] or None,
        hint=(
            "Set GITLAB_HOST and GITLAB_PRIVATE_TOKEN in the environment or a .env file."
            if err.message.startswith("Missing required")
            else None
        ),
    )
    sys.exit(EXIT_CONFIG)


def _fail(err: BaseException, reported: bool = False) -> None:
    console = get_console()
    if isinstance(err, TriggerError) and reported:
        # already rendered through a target_failed event
        if console.debug:
            console.print_exception(err)
    elif isinstance(err, TriggerError):
        details = [f"{k}={v}" for k, v in err.details.items()]
        if err.status is not None:
            details.insert(0, f"HTTP status: {err.status}")
        console.print_error(f"{err.kind} error", err.message, details=details or None)
        if console.debug:
            console.print_exception(err)
    else:
        console.print_exception(err)
    sys.exit(EXIT_FAILED)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and every job listed)",
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    default=False,
    help="Emit one JSON event per line on stdout instead of human output",
)
@click.option("--env-file", default=".env", show_default=True, help="dotenv file to read before the environment")
@click.pass_context
def cli(ctx, debug, json_output, env_file):
    """triggerci: trigger GitLab pipelines and start their manual jobs."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["json"] = json_output
    ctx.obj["env_file"] = env_file


@cli.command()
@click.option("--target", "-t", "target_specs", multiple=True, help="PROJECT@REF to trigger (repeatable)")
@click.option("--ref", default=None, help="Ref for --target values given without @REF, and the prompt default")
@click.option("--projects-file", default=None, type=click.Path(dir_okay=False), help="Project catalogue for interactive selection")
@click.option("--auto-run/--no-auto-run", default=None, help="Start manual jobs once they appear (overrides AUTO_RUN_MANUAL_JOBS)")
@click.option("--fail-fast/--no-fail-fast", default=True, show_default=True, help="Stop at the first failing target")
@click.pass_context
def trigger(ctx, target_specs, ref, projects_file, auto_run, fail_fast):
    """Trigger pipelines for the selected projects."""
    console = get_console()

    try:
        settings = load_settings(env_file=ctx.obj["env_file"])
        if target_specs:
            targets = [parse_target(spec, default_ref=ref) for spec in target_specs]
        else:
            catalogue = load_projects(projects_file or settings.projects_file)
            if ctx.obj["json"]:
                # stdout carries only JSON events; the dialogue goes to stderr
                selection = select_targets(
                    catalogue,
                    prompt=functools.partial(click.prompt, err=True),
                    echo=functools.partial(click.echo, err=True),
                    default_ref=ref or "main",
                )
            else:
                selection = select_targets(catalogue, default_ref=ref or "main")
            if isinstance(selection, Cancelled):
                if ctx.obj["json"]:
                    click.echo(selection.reason, err=True)
                else:
                    console.print_info(selection.reason)
                sys.exit(0)
            targets = selection.targets
    except ConfigError as e:
        _fail_config(e)

    for variable in settings.variables:
        console.print_debug(f"pipeline variable {variable.key}={variable.value}")

    log = EventLog()
    sink = JsonLinesReporter() if ctx.obj["json"] else console
    emit = fan_out(log, sink)

    try:
        results = run_trigger(settings, targets, emit, cascade_enabled=auto_run, fail_fast=fail_fast)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except ConfigError as e:
        _fail_config(e)
    except Exception as e:
        _fail(e, reported=bool(log.of_type(TargetFailed)))

    if any(not r.ok for r in results):
        sys.exit(EXIT_FAILED)


@cli.command("fetch-projects")
@click.option("--filter", "web_url_filter", default=None, help="Keep projects whose web_url contains this text")
@click.option("--search", default=None, help="Server-side search term")
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False), help="Write the result as a projects file")
@click.pass_context
def fetch_projects(ctx, web_url_filter, search, output):
    """List every project visible to the token."""
    console = get_console()

    try:
        settings = load_settings(env_file=ctx.obj["env_file"])
    except ConfigError as e:
        _fail_config(e)

    client = APIClient(settings.host, settings.token, timeout=settings.http_timeout)
    console.print_info(f"Fetching projects from {settings.host}...")

    try:
        projects = client.list_projects(search=search)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        _fail(e)

    if web_url_filter:
        projects = [p for p in projects if web_url_filter in p.web_url]

    choices = [ProjectChoice(id=str(p.id), name=p.name) for p in projects]
    console.print_header(f"PROJECTS ({len(choices)})")
    for choice in choices:
        console.print_info(f"  {choice.id}  {choice.name}")

    if output:
        write_projects(Path(output), choices)
        console.print_info(f"\nWrote {len(choices)} project(s) to {output}")


if __name__ == "__main__":
    cli()
