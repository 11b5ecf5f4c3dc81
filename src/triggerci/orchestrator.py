# orchestrator.py
from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence

from .api.client import APIClient
from .cascade import CascadeEngine, CascadePolicy, PipelineAPI, Sleep
from .config import Settings
from .errors import ConfigError, TriggerError
from .events import (
    CascadeSkipped,
    EventSink,
    PipelineTriggered,
    RunFinished,
    RunStarted,
    TargetFailed,
)
from .model import PipelineVariable, Target, TargetResult


def validate_targets(targets: Sequence[Target]) -> None:
    if not targets:
        raise ConfigError("No targets to trigger")
    for t in targets:
        if not str(t.project_id).strip():
            raise ConfigError("Target has an empty project id", details={"ref": t.ref})
        if not t.ref.strip():
            raise ConfigError("Target has an empty ref", details={"project": t.label})


class TargetOrchestrator:
    """Triggers a pipeline per target, in order, and cascades into manual jobs."""

    def __init__(
        self,
        client: PipelineAPI,
        emit: EventSink,
        policy: Optional[CascadePolicy] = None,
        sleep: Optional[Sleep] = None,
        fail_fast: bool = True,
    ):
        """
        Args:
            client: Platform client (APIClient or a fake)
            emit: Event sink
            policy: Cascade timing, defaults to CascadePolicy()
            sleep: Awaitable timer, defaults to asyncio.sleep
            fail_fast: If True the first failing target aborts the run and the
                error propagates; if False the failure is recorded and the
                next target is processed
        """
        self.client = client
        self.emit = emit
        self.policy = policy or CascadePolicy()
        self.sleep = sleep or asyncio.sleep
        self.fail_fast = fail_fast

    async def run(
        self,
        targets: Sequence[Target],
        variables: Sequence[PipelineVariable] = (),
        cascade_enabled: bool = False,
    ) -> List[TargetResult]:
        validate_targets(targets)
        variables = tuple(variables)

        self.emit(RunStarted(target_count=len(targets), cascade_enabled=cascade_enabled))
        results: List[TargetResult] = []

        for target in targets:
            result = TargetResult(target=target)
            results.append(result)
            try:
                await self._run_target(target, variables, cascade_enabled, result)
            except TriggerError as e:
                result.error = e
                self.emit(TargetFailed(
                    project_id=target.project_id,
                    ref=target.ref,
                    kind=e.kind,
                    message=e.message,
                ))
                if self.fail_fast:
                    raise

        failed = sum(1 for r in results if not r.ok)
        self.emit(RunFinished(succeeded=len(results) - failed, failed=failed))
        return results

    async def _run_target(
        self,
        target: Target,
        variables: Sequence[PipelineVariable],
        cascade_enabled: bool,
        result: TargetResult,
    ) -> None:
        pipeline = await asyncio.to_thread(
            self.client.create_pipeline, target.project_id, target.ref, variables
        )
        result.pipeline = pipeline
        self.emit(PipelineTriggered(
            project_id=target.project_id,
            ref=pipeline.ref or target.ref,
            pipeline_id=pipeline.id,
            web_url=pipeline.web_url,
            status=pipeline.status,
            sha=pipeline.sha,
            variables=tuple(v.key for v in variables),
        ))

        if not cascade_enabled:
            self.emit(CascadeSkipped(project_id=target.project_id, pipeline_id=pipeline.id))
            return

        engine = CascadeEngine(self.client, self.policy, self.emit, sleep=self.sleep)
        result.cascade = await engine.run(target.project_id, pipeline.id)


def trigger(
    settings: Settings,
    targets: Sequence[Target],
    emit: EventSink,
    *,
    cascade_enabled: Optional[bool] = None,
    fail_fast: bool = True,
    client: Optional[PipelineAPI] = None,
    sleep: Optional[Sleep] = None,
) -> List[TargetResult]:
    """
    Synchronous entry point: build the client from settings and run every target.

    Args:
        settings: Resolved configuration
        targets: Ordered (project, ref) pairs
        emit: Event sink
        cascade_enabled: Overrides settings.auto_run_manual_jobs when not None
        fail_fast: See TargetOrchestrator
        client: Optional pre-built client (tests)
        sleep: Optional awaitable timer (tests)
    """
    if client is None:
        client = APIClient(settings.host, settings.token, timeout=settings.http_timeout)
    if cascade_enabled is None:
        cascade_enabled = settings.auto_run_manual_jobs

    orchestrator = TargetOrchestrator(
        client,
        emit,
        policy=settings.policy,
        sleep=sleep,
        fail_fast=fail_fast,
    )
    return asyncio.run(orchestrator.run(targets, settings.variables, cascade_enabled))
