# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from .api.models import JobRecord, PipelineRecord
    from .errors import TriggerError


@dataclass(frozen=True)
class Target:
    """A (project, ref) pair for which a pipeline should be triggered."""
    project_id: str
    ref: str
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.project_id


@dataclass(frozen=True)
class PipelineVariable:
    """A variable passed to the pipeline at creation time."""
    key: str
    value: str
    variable_type: str = "env_var"

    def to_dict(self) -> Dict[str, str]:
        return {
            "key": self.key,
            "value": self.value,
            "variable_type": self.variable_type,
        }


class CascadeState(str, Enum):
    INIT = "init"
    INITIAL_WAIT = "initial_wait"
    POLLING = "polling"
    FOUND = "found"
    RUNNING = "running"
    DONE = "done"
    EXHAUSTED = "exhausted"
    DONE_EMPTY = "done_empty"


@dataclass
class CascadeAttemptState:
    """Per-pipeline polling state. Lives only for one cascade pass."""
    pipeline_id: int
    attempt: int = 0
    manual_jobs: List[JobRecord] = field(default_factory=list)


@dataclass(frozen=True)
class CascadeResult:
    state: CascadeState
    attempts: int
    played: List[JobRecord] = field(default_factory=list)


@dataclass
class TargetResult:
    """What happened to one target during a run."""
    target: Target
    pipeline: Optional[PipelineRecord] = None
    cascade: Optional[CascadeResult] = None
    error: Optional[TriggerError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
