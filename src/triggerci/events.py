# events.py
"""
Typed events emitted by the trigger/cascade core.

The core never prints. Every observable step is an immutable event handed to
an EventSink (any callable taking one event); the console and JSON reporters
in `triggerci.ui` are just sinks.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Tuple


@dataclass(frozen=True)
class JobRef:
    """Slim, serializable view of a job for events."""
    id: int
    name: str
    stage: str
    status: str

    @classmethod
    def of(cls, job) -> JobRef:
        return cls(id=job.id, name=job.name, stage=job.stage, status=job.status)


@dataclass(frozen=True)
class Event:
    name: ClassVar[str] = "event"

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, **asdict(self)}


@dataclass(frozen=True)
class RunStarted(Event):
    name: ClassVar[str] = "run_started"
    target_count: int
    cascade_enabled: bool


@dataclass(frozen=True)
class PipelineTriggered(Event):
    name: ClassVar[str] = "pipeline_triggered"
    project_id: str
    ref: str
    pipeline_id: int
    web_url: str
    status: str
    sha: str
    variables: Tuple[str, ...] = ()  # keys only, values may be secrets


@dataclass(frozen=True)
class CascadeSkipped(Event):
    name: ClassVar[str] = "cascade_skipped"
    project_id: str
    pipeline_id: int


@dataclass(frozen=True)
class CascadeWaiting(Event):
    name: ClassVar[str] = "cascade_waiting"
    pipeline_id: int
    seconds: float
    reason: str  # "initial" | "retry"


@dataclass(frozen=True)
class PollAttempt(Event):
    name: ClassVar[str] = "poll_attempt"
    pipeline_id: int
    attempt: int
    max_attempts: int


@dataclass(frozen=True)
class JobsListed(Event):
    name: ClassVar[str] = "jobs_listed"
    pipeline_id: int
    jobs: Tuple[JobRef, ...] = ()


@dataclass(frozen=True)
class ManualJobsFound(Event):
    name: ClassVar[str] = "manual_jobs_found"
    pipeline_id: int
    jobs: Tuple[JobRef, ...] = ()


@dataclass(frozen=True)
class ManualJobsNone(Event):
    name: ClassVar[str] = "manual_jobs_none"
    pipeline_id: int
    attempts: int


@dataclass(frozen=True)
class JobPlayed(Event):
    name: ClassVar[str] = "job_played"
    project_id: str
    job_id: int
    job_name: str
    stage: str


@dataclass(frozen=True)
class CascadeDone(Event):
    name: ClassVar[str] = "cascade_done"
    pipeline_id: int
    played: int


@dataclass(frozen=True)
class TargetFailed(Event):
    name: ClassVar[str] = "target_failed"
    project_id: str
    ref: str
    kind: str
    message: str


@dataclass(frozen=True)
class RunFinished(Event):
    name: ClassVar[str] = "run_finished"
    succeeded: int
    failed: int


EventSink = Callable[[Event], None]


@dataclass
class EventLog:
    """Sink that records events in order. Handy in tests and for summaries."""
    events: List[Event] = field(default_factory=list)

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [e.name for e in self.events]

    def of_type(self, cls: type) -> List[Event]:
        return [e for e in self.events if isinstance(e, cls)]


def fan_out(*sinks: EventSink) -> EventSink:
    """Build a sink that forwards each event to every sink, in order."""
    def emit(event: Event) -> None:
        for sink in sinks:
            sink(event)
    return emit