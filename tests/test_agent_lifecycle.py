"""Tests for the agent lifecycle skeleton."""
from __future__ import annotations

import asyncio

import pytest
from conftest import BrokenCleanupAgent, BrokenInitAgent, FakeClock, QuietAgent

from background_agents.core.events import EventBroadcaster
from background_agents.core.models import AgentDefinition, AgentStatus, EventKind


def make_agent(cls=QuietAgent, clock=None, **overrides):
    definition = AgentDefinition(name="probe", type="quiet", **overrides)
    return cls(definition, EventBroadcaster(), clock=clock or FakeClock())


@pytest.mark.anyio
async def test_start_runs_hooks_and_arms_health_check() -> None:
    clock = FakeClock(500)
    agent = make_agent(clock=clock, health_check_interval=10000)

    await agent.start()

    assert agent.status is AgentStatus.RUNNING
    assert agent.initialized == 1
    assert agent.instance.started_at == 500
    assert agent.instance.next_check_at == 510
    assert not agent.health_check_due(509)
    assert agent.health_check_due(510)


@pytest.mark.anyio
async def test_failed_initialize_moves_to_error() -> None:
    agent = make_agent(BrokenInitAgent)

    with pytest.raises(RuntimeError):
        await agent.start()

    assert agent.status is AgentStatus.ERROR
    assert agent.instance.next_check_at is None
    with pytest.raises(RuntimeError, match="while error"):
        await agent.start()


@pytest.mark.anyio
async def test_stop_cancels_background_work_before_cleanup() -> None:
    agent = make_agent()
    await agent.start()
    ticks = []

    async def work() -> None:
        ticks.append(1)

    task = agent.every(0.001, work, name="work", immediately=True)
    await asyncio.sleep(0.02)
    await agent.stop()

    assert task.cancelled()
    assert ticks
    assert agent.status is AgentStatus.STOPPED
    assert agent.cleaned_up == 1
    assert agent.instance.next_check_at is None


@pytest.mark.anyio
async def test_cleanup_failure_leaves_agent_stopping() -> None:
    agent = make_agent(BrokenCleanupAgent)
    await agent.start()

    with pytest.raises(RuntimeError):
        await agent.stop()

    assert agent.status is AgentStatus.STOPPING
    assert agent.instance.last_error == "watcher already closed"


@pytest.mark.anyio
async def test_restart_resets_start_time() -> None:
    clock = FakeClock(100)
    agent = make_agent(clock=clock)
    await agent.start()
    clock.advance(3)

    await agent.restart(grace_period=0)

    assert agent.status is AgentStatus.RUNNING
    assert agent.instance.started_at == 103
    assert agent.initialized == 2


@pytest.mark.anyio
async def test_default_health_reports_uptime() -> None:
    clock = FakeClock(0)
    agent = make_agent(clock=clock)
    await agent.start()
    clock.advance(1.5)

    health = await super(QuietAgent, agent).check_health()

    assert health.healthy
    assert health.uptime_ms == 1500


@pytest.mark.anyio
async def test_failing_periodic_work_is_logged_not_raised() -> None:
    agent = make_agent()
    await agent.start()
    calls = []

    async def flaky() -> None:
        calls.append(1)
        raise OSError("disk gone")

    task = agent.every(0.001, flaky, name="flaky", immediately=True)
    await asyncio.sleep(0.02)

    assert len(calls) > 1
    assert not task.done()
    await agent.stop()


@pytest.mark.anyio
async def test_retry_helper_retries_then_succeeds() -> None:
    agent = make_agent()
    attempts = []

    async def operation() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("remote hung up")
        return "ok"

    assert await agent.retry(operation, attempts=3, delay=0) == "ok"
    assert len(attempts) == 3


@pytest.mark.anyio
async def test_retry_helper_reraises_last_error() -> None:
    agent = make_agent()

    async def operation() -> None:
        raise ConnectionError("remote hung up")

    with pytest.raises(ConnectionError):
        await agent.retry(operation, attempts=2, delay=0)


def test_record_event_publishes_agent_event() -> None:
    broadcaster = EventBroadcaster()
    received = []
    broadcaster.subscribe(received.append)
    agent = QuietAgent(AgentDefinition(name="probe", type="quiet"), broadcaster, clock=FakeClock(7))

    agent.record_event("tests_completed", {"passed": 3})
    agent.record_metric("tests_run", 1, {"file": "a.py"})

    assert len(received) == 1
    assert received[0].kind is EventKind.AGENT_EVENT
    assert received[0].to_dict() == {
        "type": "agentEvent",
        "name": "probe",
        "timestamp": 7,
        "event": "tests_completed",
        "data": {"passed": 3},
    }


class _BrokenLogger:
    def __init__(self) -> None:
        self.warnings = []

    def info(self, *args, **kwargs) -> None:
        raise OSError("log sink unavailable")

    def warning(self, event, **kwargs) -> None:
        self.warnings.append(event)


def test_record_metric_failure_is_contained() -> None:
    agent = make_agent()
    agent.logger = _BrokenLogger()

    agent.record_metric("files_reviewed", 1)

    assert agent.logger.warnings == ["record_metric_failed"]


def test_record_event_survives_failing_subscriber() -> None:
    broadcaster = EventBroadcaster()
    received = []

    def broken(_) -> None:
        raise RuntimeError("socket closed")

    broadcaster.subscribe(broken)
    broadcaster.subscribe(received.append)
    agent = QuietAgent(AgentDefinition(name="probe", type="quiet"), broadcaster, clock=FakeClock())

    agent.record_event("sync_completed", {"ahead": 0})

    assert [e.payload["event"] for e in received] == ["sync_completed"]
