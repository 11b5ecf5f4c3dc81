"""Console output formatting for triggerci."""

from __future__ import annotations

import json
import sys
import traceback
from contextvars import ContextVar
from typing import IO, Optional

from .. import events as ev


class Console:
    """Centralized console output formatting. Also an event sink."""

    def __init__(self, debug: bool = False, stream: Optional[IO] = None, err_stream: Optional[IO] = None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            stream: Progress output, defaults to sys.stdout at print time
            err_stream: Error output, defaults to sys.stderr at print time
        """
        self.debug = debug
        self._stream = stream
        self._err_stream = err_stream

    @property
    def out(self) -> IO:
        return self._stream or sys.stdout

    @property
    def err(self) -> IO:
        return self._err_stream or sys.stderr

    def print_header(self, title: str) -> None:
        print(f"\n== {title} ==", file=self.out)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message, file=self.out)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=self.err)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Write a failure block to the error stream:

            [error] <title>: <message>
                - <detail>
            hint: <hint>
        """
        lines = [f"[error] {title}: {message}"]
        lines.extend(f"    - {d}" for d in details or ())
        if hint:
            lines.append(f"hint: {hint}")
        print("\n".join(lines), file=self.err)

    def print_exception(self, exc: BaseException) -> None:
        """One line per exception; the whole traceback in debug mode."""
        if not self.debug:
            print(f"[error] {exc}", file=self.err)
            return
        self.err.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))

    # ------------------------------------------------------------------
    # Event rendering
    # ------------------------------------------------------------------

    def __call__(self, event: ev.Event) -> None:
        self.handle(event)

    def handle(self, event: ev.Event) -> None:
        """Render one core event."""
        renderer = getattr(self, f"_on_{event.name}", None)
        if renderer is not None:
            renderer(event)

    def _on_run_started(self, e: ev.RunStarted) -> None:
        self.print_header("RUN STARTED")
        self.print_info(f"Targets: {e.target_count}")
        self.print_info(f"Auto-run manual jobs: {'enabled' if e.cascade_enabled else 'disabled'}")

    def _on_pipeline_triggered(self, e: ev.PipelineTriggered) -> None:
        print(f"\nPIPELINE TRIGGERED: {e.project_id} @ {e.ref}", file=self.out)
        print(f"Pipeline ID: {e.pipeline_id}", file=self.out)
        print(f"URL: {e.web_url}", file=self.out)
        print(f"Status: {e.status}", file=self.out)
        print(f"SHA: {e.sha}", file=self.out)
        if e.variables:
            print(f"Variables: {', '.join(e.variables)}", file=self.out)

    def _on_cascade_skipped(self, e: ev.CascadeSkipped) -> None:
        self.print_debug(f"auto-run disabled, not looking for manual jobs on {e.pipeline_id}")

    def _on_cascade_waiting(self, e: ev.CascadeWaiting) -> None:
        if e.reason == "initial":
            print(f"Waiting {e.seconds:g}s for jobs to be created...", file=self.out)
        else:
            print(f"No manual jobs yet, retrying in {e.seconds:g}s...", file=self.out)

    def _on_poll_attempt(self, e: ev.PollAttempt) -> None:
        print(f"Fetching jobs for pipeline {e.pipeline_id} (attempt {e.attempt}/{e.max_attempts})", file=self.out)

    def _on_jobs_listed(self, e: ev.JobsListed) -> None:
        self.print_debug(f"{len(e.jobs)} job(s) on pipeline {e.pipeline_id}")
        for job in e.jobs:
            self.print_debug(f"  {job.name} ({job.stage}) status={job.status} id={job.id}")

    def _on_manual_jobs_found(self, e: ev.ManualJobsFound) -> None:
        print(f"MANUAL JOBS: {len(e.jobs)}", file=self.out)
        for job in e.jobs:
            print(f"  {job.name} ({job.stage}) id={job.id}", file=self.out)

    def _on_manual_jobs_none(self, e: ev.ManualJobsNone) -> None:
        print(f"MANUAL JOBS: none after {e.attempts} attempt(s)", file=self.out)

    def _on_job_played(self, e: ev.JobPlayed) -> None:
        print(f"JOB STARTED: {e.job_name} ({e.stage}) id={e.job_id}", file=self.out)

    def _on_cascade_done(self, e: ev.CascadeDone) -> None:
        print(f"STATUS: {e.played} manual job(s) started on pipeline {e.pipeline_id}", file=self.out)

    def _on_target_failed(self, e: ev.TargetFailed) -> None:
        self.print_error(f"{e.project_id} @ {e.ref} failed ({e.kind})", e.message)

    def _on_run_finished(self, e: ev.RunFinished) -> None:
        print("\n" + "=" * 40, file=self.out)
        print("RESULTS", file=self.out)
        print("=" * 40, file=self.out)
        print(f"  triggered: {e.succeeded}", file=self.out)
        print(f"  failed: {e.failed}", file=self.out)


class JsonLinesReporter:
    """Event sink writing one JSON object per line."""

    def __init__(self, stream: Optional[IO] = None):
        self._stream = stream

    def __call__(self, event: ev.Event) -> None:
        stream = self._stream or sys.stdout
        stream.write(json.dumps(event.to_dict(), sort_keys=True) + "\n")
        stream.flush()


_current: ContextVar[Console] = ContextVar("triggerci_console")


def get_console() -> Console:
    """Console chosen by the CLI group, or a plain one outside the CLI."""
    try:
        return _current.get()
    except LookupError:
        console = Console()
        _current.set(console)
        return console


def set_console(console: Console) -> None:
    _current.set(console)
