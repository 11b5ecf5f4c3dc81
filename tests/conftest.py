from __future__ import annotations

import json
from typing import Dict, List, Optional, Sequence

import pytest

from triggerci.api.models import JobRecord, PipelineRecord
from triggerci.cascade import CascadePolicy
from triggerci.model import PipelineVariable


def make_job(job_id: int, name: str, status: str = "manual", stage: str = "deploy") -> JobRecord:
    return JobRecord(id=job_id, name=name, stage=stage, status=status, manual=status == "manual")


class FakePlatform:
    """
    In-memory stand-in for APIClient.

    `polls` is the list of job lists returned by successive list_jobs calls;
    the last one repeats once exhausted.
    """

    def __init__(
        self,
        polls: Optional[List[List[JobRecord]]] = None,
        create_errors: Optional[Dict[str, Exception]] = None,
        list_error: Optional[Exception] = None,
        play_errors: Optional[Dict[int, Exception]] = None,
    ):
        self.polls = polls if polls is not None else [[]]
        self.create_errors = create_errors or {}
        self.list_error = list_error
        self.play_errors = play_errors or {}
        self.calls: List[tuple] = []
        self._next_pipeline = 100

    def create_pipeline(self, project_id: str, ref: str, variables: Sequence[PipelineVariable] = ()) -> PipelineRecord:
        self.calls.append(("create", project_id, ref, tuple(variables)))
        if project_id in self.create_errors:
            raise self.create_errors[project_id]
        self._next_pipeline += 1
        return PipelineRecord(
            id=self._next_pipeline,
            ref=ref,
            sha="deadbeef",
            status="created",
            web_url=f"https://gitlab.example.com/p/{project_id}/-/pipelines/{self._next_pipeline}",
        )

    def list_jobs(self, project_id: str, pipeline_id: int) -> List[JobRecord]:
        poll_no = len(self.calls_of("list"))
        self.calls.append(("list", project_id, pipeline_id))
        if self.list_error is not None:
            raise self.list_error
        return list(self.polls[min(poll_no, len(self.polls) - 1)])

    def play_job(self, project_id: str, job_id: int) -> None:
        self.calls.append(("play", project_id, job_id))
        if job_id in self.play_errors:
            raise self.play_errors[job_id]

    def calls_of(self, kind: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == kind]


class FakeSleep:
    """Awaitable timer that records requested delays instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def policy() -> CascadePolicy:
    return CascadePolicy(initial_delay=5, retry_delay=3, max_attempts=3, play_delay=1)


class FakeResponse:
    """Context-manager response; `body` may be an exception raised by read()."""

    def __init__(self, body, headers=None):
        if isinstance(body, (bytes, BaseException)):
            self._body = body
        else:
            self._body = json.dumps(body).encode("utf-8")
        self.headers = headers or {}

    def read(self):
        if isinstance(self._body, BaseException):
            raise self._body
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeOpener:
    """Records requests and replays queued responses (or raises queued errors)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.timeouts = []

    def __call__(self, req, timeout=None):
        self.requests.append(req)
        self.timeouts.append(timeout)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def body(self, i=0):
        data = self.requests[i].data
        return json.loads(data) if data else None
