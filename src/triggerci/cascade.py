# cascade.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Protocol, Sequence

from .api.models import JobRecord, PipelineRecord
from .errors import ConfigError
from .events import (
    CascadeDone,
    CascadeWaiting,
    EventSink,
    JobPlayed,
    JobRef,
    JobsListed,
    ManualJobsFound,
    ManualJobsNone,
    PollAttempt,
)
from .model import CascadeAttemptState, CascadeResult, CascadeState, PipelineVariable

Sleep = Callable[[float], Awaitable[None]]


class PipelineAPI(Protocol):
    """The slice of APIClient the core depends on."""

    def create_pipeline(
        self, project_id: str, ref: str, variables: Sequence[PipelineVariable] = ()
    ) -> PipelineRecord: ...

    def list_jobs(self, project_id: str, pipeline_id: int) -> List[JobRecord]: ...

    def play_job(self, project_id: str, job_id: int) -> None: ...


@dataclass(frozen=True)
class CascadePolicy:
    """
    Timing knobs for the cascade.

    Args:
        initial_delay: Seconds to wait before the first poll; the platform
            creates job records asynchronously after pipeline creation
        retry_delay: Seconds between polls that found no manual job
        max_attempts: Total polls, including the first
        play_delay: Seconds between two successive plays
    """
    initial_delay: float = 5.0
    retry_delay: float = 3.0
    max_attempts: int = 3
    play_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be at least 1", details={"max_attempts": self.max_attempts})
        for name in ("initial_delay", "retry_delay", "play_delay"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigError(f"{name} must not be negative", details={name: value})


class CascadeEngine:
    """Discovers and plays the manual jobs of one freshly created pipeline."""

    def __init__(
        self,
        client: PipelineAPI,
        policy: CascadePolicy,
        emit: EventSink,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.policy = policy
        self.emit = emit
        self.sleep = sleep
        self.state = CascadeState.INIT

    async def run(self, project_id: str, pipeline_id: int) -> CascadeResult:
        """
        Run one cascade pass.

        Returns:
            CascadeResult in state DONE (jobs played) or DONE_EMPTY (no manual
            job showed up within the attempt budget)

        Raises:
            Any error from list_jobs or play_job, unchanged. Only an empty
            result is retried; network and auth faults are not.
        """
        self.state = CascadeState.INIT
        attempt_state = CascadeAttemptState(pipeline_id=pipeline_id)

        self.state = CascadeState.INITIAL_WAIT
        await self._wait(pipeline_id, self.policy.initial_delay, "initial")

        self.state = CascadeState.POLLING
        await self._poll(project_id, attempt_state)

        if not attempt_state.manual_jobs:
            self.state = CascadeState.EXHAUSTED
            self.emit(ManualJobsNone(pipeline_id=pipeline_id, attempts=attempt_state.attempt))
            self.state = CascadeState.DONE_EMPTY
            return CascadeResult(state=self.state, attempts=attempt_state.attempt)

        self.state = CascadeState.FOUND
        self.emit(ManualJobsFound(
            pipeline_id=pipeline_id,
            jobs=tuple(JobRef.of(j) for j in attempt_state.manual_jobs),
        ))

        self.state = CascadeState.RUNNING
        played = await self._play_all(project_id, attempt_state.manual_jobs)

        self.state = CascadeState.DONE
        self.emit(CascadeDone(pipeline_id=pipeline_id, played=len(played)))
        return CascadeResult(state=self.state, attempts=attempt_state.attempt, played=played)

    async def _poll(self, project_id: str, attempt_state: CascadeAttemptState) -> None:
        pipeline_id = attempt_state.pipeline_id
        while attempt_state.attempt < self.policy.max_attempts:
            if attempt_state.attempt > 0:
                await self._wait(pipeline_id, self.policy.retry_delay, "retry")
            attempt_state.attempt += 1

            self.emit(PollAttempt(
                pipeline_id=pipeline_id,
                attempt=attempt_state.attempt,
                max_attempts=self.policy.max_attempts,
            ))
            jobs = await asyncio.to_thread(self.client.list_jobs, project_id, pipeline_id)
            self.emit(JobsListed(pipeline_id=pipeline_id, jobs=tuple(JobRef.of(j) for j in jobs)))

            attempt_state.manual_jobs = [j for j in jobs if j.is_manual]
            if attempt_state.manual_jobs:
                return

    async def _play_all(self, project_id: str, jobs: List[JobRecord]) -> List[JobRecord]:
        # sequential: a later stage's manual job may need an earlier one started
        played: List[JobRecord] = []
        for i, job in enumerate(jobs):
            if i > 0:
                await self.sleep(self.policy.play_delay)
            await asyncio.to_thread(self.client.play_job, project_id, job.id)
            played.append(job)
            self.emit(JobPlayed(project_id=project_id, job_id=job.id, job_name=job.name, stage=job.stage))
        return played

    async def _wait(self, pipeline_id: int, seconds: float, reason: str) -> None:
        self.emit(CascadeWaiting(pipeline_id=pipeline_id, seconds=seconds, reason=reason))
        await self.sleep(seconds)
