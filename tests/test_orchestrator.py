import asyncio

import pytest

from triggerci.api.client import APIClient
from triggerci.cascade import CascadePolicy
from triggerci.config import Settings
from triggerci.errors import AuthError, ConfigError, NotFoundError, TransientError
from triggerci.events import EventLog, PipelineTriggered, RunFinished, TargetFailed
from triggerci.model import CascadeState, PipelineVariable, Target
from triggerci.orchestrator import TargetOrchestrator, trigger

from conftest import FakeOpener, FakePlatform, FakeResponse, FakeSleep, make_job

TARGETS = [Target("1", "main"), Target("2", "develop"), Target("group/app", "release/1.2")]
VARIABLES = (PipelineVariable("ENV", "prod"), PipelineVariable("REGION", "eu"))


def _orchestrator(platform, policy, sleep, log=None, **kwargs):
    return TargetOrchestrator(platform, log if log is not None else EventLog(), policy=policy, sleep=sleep, **kwargs)


def test_cascade_disabled_creates_one_pipeline_per_target_in_order(policy, sleep):
    platform = FakePlatform(polls=[[make_job(1, "deploy")]])

    results = asyncio.run(_orchestrator(platform, policy, sleep).run(TARGETS, VARIABLES, cascade_enabled=False))

    assert platform.calls == [
        ("create", "1", "main", VARIABLES),
        ("create", "2", "develop", VARIABLES),
        ("create", "group/app", "release/1.2", VARIABLES),
    ]
    assert sleep.delays == []
    assert all(r.ok and r.cascade is None for r in results)


def test_cascade_enabled_runs_after_each_trigger(policy, sleep):
    platform = FakePlatform(polls=[[make_job(5, "deploy")]])
    targets = TARGETS[:2]

    results = asyncio.run(_orchestrator(platform, policy, sleep).run(targets, (), cascade_enabled=True))

    assert [c[0] for c in platform.calls] == ["create", "list", "play", "create", "list", "play"]
    assert [r.cascade.state for r in results] == [CascadeState.DONE, CascadeState.DONE]
    # pipeline ids flow from creation into the cascade
    assert platform.calls[1][2] == results[0].pipeline.id
    assert platform.calls[4][2] == results[1].pipeline.id


def test_auth_error_on_create_skips_cascade_and_propagates(policy, sleep):
    error = AuthError("401 Unauthorized", status=401)
    platform = FakePlatform(create_errors={"1": error}, polls=[[make_job(5, "deploy")]])
    log = EventLog()

    with pytest.raises(AuthError) as exc:
        asyncio.run(_orchestrator(platform, policy, sleep, log).run(TARGETS, (), cascade_enabled=True))

    assert exc.value is error
    assert exc.value.kind == "auth"
    assert platform.calls == [("create", "1", "main", ())]
    assert sleep.delays == []
    failed = log.of_type(TargetFailed)
    assert len(failed) == 1 and failed[0].kind == "auth"
    assert log.of_type(RunFinished) == []


def test_failure_aborts_remaining_targets_by_default(policy, sleep):
    platform = FakePlatform(create_errors={"2": NotFoundError("404 Project Not Found", status=404)})

    with pytest.raises(NotFoundError):
        asyncio.run(_orchestrator(platform, policy, sleep).run(TARGETS, (), cascade_enabled=False))

    assert [c[1] for c in platform.calls_of("create")] == ["1", "2"]


def test_continue_on_failure_records_error(policy, sleep):
    platform = FakePlatform(create_errors={"2": NotFoundError("404 Project Not Found", status=404)})
    log = EventLog()
    orchestrator = _orchestrator(platform, policy, sleep, log, fail_fast=False)

    results = asyncio.run(orchestrator.run(TARGETS, (), cascade_enabled=False))

    assert [c[1] for c in platform.calls_of("create")] == ["1", "2", "group/app"]
    assert [r.ok for r in results] == [True, False, True]
    assert results[1].error.kind == "not_found"
    finished = log.of_type(RunFinished)[0]
    assert (finished.succeeded, finished.failed) == (2, 1)


@pytest.mark.parametrize("targets", [
    [],
    [Target("", "main")],
    [Target("1", "  ")],
])
def test_invalid_targets_fail_before_any_network_call(policy, sleep, targets):
    platform = FakePlatform()

    with pytest.raises(ConfigError):
        asyncio.run(_orchestrator(platform, policy, sleep).run(targets))

    assert platform.calls == []


def test_pipeline_triggered_event_hides_variable_values(policy, sleep):
    platform = FakePlatform()
    log = EventLog()

    asyncio.run(_orchestrator(platform, policy, sleep, log).run(TARGETS[:1], VARIABLES))

    event = log.of_type(PipelineTriggered)[0]
    assert event.variables == ("ENV", "REGION")
    assert "prod" not in str(event.to_dict())


def test_trigger_uses_settings():
    platform = FakePlatform(polls=[[make_job(3, "deploy")]])
    sleep = FakeSleep()
    settings = Settings(
        host="https://gitlab.example.com",
        token="secret",
        auto_run_manual_jobs=True,
        variables=VARIABLES,
        policy=CascadePolicy(initial_delay=2, retry_delay=1, max_attempts=2, play_delay=0),
    )

    results = trigger(settings, [Target("1", "main")], EventLog(), client=platform, sleep=sleep)

    assert platform.calls_of("create") == [("create", "1", "main", VARIABLES)]
    assert platform.calls_of("play") == [("play", "1", 3)]
    assert sleep.delays == [2]
    assert results[0].ok


def test_trigger_cascade_override():
    platform = FakePlatform(polls=[[make_job(3, "deploy")]])
    settings = Settings(host="https://gitlab.example.com", token="secret", auto_run_manual_jobs=True)

    trigger(settings, [Target("1", "main")], EventLog(), cascade_enabled=False, client=platform, sleep=FakeSleep())

    assert platform.calls_of("list") == []


def test_unreadable_response_fails_one_target_and_continues(policy, sleep):
    pipeline = {"id": 9, "ref": "develop", "sha": "abc", "status": "created", "web_url": "https://gitlab.example.com/p/9"}
    opener = FakeOpener(FakeResponse(b"\xff\xfe{}"), FakeResponse(pipeline))
    client = APIClient("https://gitlab.example.com", "secret", opener=opener)
    log = EventLog()

    results = asyncio.run(
        _orchestrator(client, policy, sleep, log, fail_fast=False).run(TARGETS[:2], (), cascade_enabled=False)
    )

    assert len(opener.requests) == 2
    assert isinstance(results[0].error, TransientError)
    assert results[1].ok and results[1].pipeline.id == 9
    assert [(e.project_id, e.kind) for e in log.of_type(TargetFailed)] == [("1", "transient")]
    assert log.events[-1] == RunFinished(succeeded=1, failed=1)
