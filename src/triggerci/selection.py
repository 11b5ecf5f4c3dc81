# selection.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Sequence, Union

import click

from .errors import ConfigError
from .model import Target


@dataclass(frozen=True)
class ProjectChoice:
    """An entry of projects.json."""
    id: str
    name: str


@dataclass(frozen=True)
class Selected:
    targets: List[Target] = field(default_factory=list)


@dataclass(frozen=True)
class Cancelled:
    reason: str


Selection = Union[Selected, Cancelled]


# ---------------------------------------------------------------------
# projects.json
# ---------------------------------------------------------------------

def load_projects(path: str | Path) -> List[ProjectChoice]:
    """
    Load the project catalogue.

    The file is a JSON array of {"id": ..., "name": ...} objects, the format
    written by `triggerci fetch-projects --output`.
    """
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"Projects file not found: {p}") from None
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read projects file {p}: {e}") from e

    if not isinstance(raw, list):
        raise ConfigError(f"Projects file {p} must contain a JSON array")

    projects: List[ProjectChoice] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict) or "id" not in item:
            raise ConfigError(f"Projects file {p}: entry {i} has no id")
        pid = str(item["id"]).strip()
        if not pid:
            raise ConfigError(f"Projects file {p}: entry {i} has an empty id")
        projects.append(ProjectChoice(id=pid, name=str(item.get("name") or pid)))
    return projects


def write_projects(path: str | Path, projects: Iterable[ProjectChoice]) -> None:
    data = [{"id": p.id, "name": p.name} for p in projects]
    Path(path).write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


# ---------------------------------------------------------------------
# Non-interactive
# ---------------------------------------------------------------------

def parse_target(spec: str, default_ref: str | None = None) -> Target:
    """
    Parse "PROJECT@REF" (or just "PROJECT" when a default ref is given).

    The last "@" splits project from ref, so "group/app@release/1.2" works.
    """
    project, sep, ref = spec.rpartition("@")
    if not sep:
        project, ref = spec, default_ref or ""
    project, ref = project.strip(), ref.strip()
    if not project:
        raise ConfigError(f"Invalid target {spec!r}: missing project")
    if not ref:
        raise ConfigError(f"Invalid target {spec!r}: expected PROJECT@REF")
    return Target(project_id=project, ref=ref)


def parse_indices(answer: str, count: int) -> List[int]:
    """
    Parse "1,3-4" or "all" into zero-based indices, keeping first-seen order.

    Raises:
        ValueError: on anything out of range, malformed, backwards or empty
    """
    answer = answer.strip().lower()
    if answer in ("all", "*"):
        return list(range(count))

    picked: List[int] = []
    for part in filter(None, (s.strip() for s in answer.replace(" ", ",").split(","))):
        if "-" in part:
            lo, _, hi = part.partition("-")
            if int(lo) > int(hi):
                raise ValueError(f"range {part} runs backwards")
            numbers = range(int(lo), int(hi) + 1)
        else:
            numbers = range(int(part), int(part) + 1)
        for n in numbers:
            if not 1 <= n <= count:
                raise ValueError(f"{n} is not between 1 and {count}")
            if n - 1 not in picked:
                picked.append(n - 1)
    if not picked:
        raise ValueError("nothing selected")
    return picked


# ---------------------------------------------------------------------
# Interactive
# ---------------------------------------------------------------------

Prompt = Callable[..., str]
Echo = Callable[[str], None]


def select_projects(
    projects: Sequence[ProjectChoice],
    prompt: Prompt = click.prompt,
    echo: Echo = click.echo,
) -> Union[List[ProjectChoice], Cancelled]:
    if not projects:
        return Cancelled("No projects available")

    echo(f"\nFound {len(projects)} projects:")
    for i, p in enumerate(projects, start=1):
        echo(f"  {i:>3}. {p.name} ({p.id})")

    while True:
        try:
            answer = prompt("Select projects (e.g. 1,3-4 or all)", default="", show_default=False)
        except click.Abort:
            return Cancelled("Project selection cancelled")
        if not answer.strip():
            return Cancelled("No projects selected")
        try:
            indices = parse_indices(answer, len(projects))
        except ValueError as e:
            echo(f"Invalid selection: {e}")
            continue
        return [projects[i] for i in indices]


def select_ref(
    project: ProjectChoice,
    prompt: Prompt = click.prompt,
    echo: Echo = click.echo,
    default_ref: str = "main",
) -> Union[str, Cancelled]:
    while True:
        try:
            ref = prompt(f"Branch for {project.name}", default=default_ref)
        except click.Abort:
            return Cancelled("Branch selection cancelled")
        ref = ref.strip()
        if ref:
            return ref
        echo("Branch name cannot be empty")


def select_targets(
    projects: Sequence[ProjectChoice],
    prompt: Prompt = click.prompt,
    echo: Echo = click.echo,
    default_ref: str = "main",
) -> Selection:
    """Ask for projects, then a ref per project."""
    chosen = select_projects(projects, prompt=prompt, echo=echo)
    if isinstance(chosen, Cancelled):
        return chosen

    targets: List[Target] = []
    for project in chosen:
        ref = select_ref(project, prompt=prompt, echo=echo, default_ref=default_ref)
        if isinstance(ref, Cancelled):
            return ref
        targets.append(Target(project_id=project.id, ref=ref, name=project.name))
    return Selected(targets=targets)
