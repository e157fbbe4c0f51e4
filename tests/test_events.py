"""Tests for the lifecycle event broadcaster."""
from __future__ import annotations

import pytest

from background_agents.core.events import EventBroadcaster
from background_agents.core.models import EventKind, LifecycleEvent


def event(name: str = "a", kind: EventKind = EventKind.AGENT_STARTED) -> LifecycleEvent:
    return LifecycleEvent(kind=kind, agent_name=name, timestamp=1.0)


def test_handlers_run_in_registration_order() -> None:
    broadcaster = EventBroadcaster()
    calls = []
    broadcaster.subscribe(lambda e: calls.append(("first", e.agent_name)))
    broadcaster.subscribe(lambda e: calls.append(("second", e.agent_name)))

    broadcaster.emit(event("a"))
    broadcaster.emit(event("b"))

    assert calls == [("first", "a"), ("second", "a"), ("first", "b"), ("second", "b")]


def test_failing_handler_does_not_block_others() -> None:
    broadcaster = EventBroadcaster()
    received = []

    def broken(_: LifecycleEvent) -> None:
        raise RuntimeError("socket closed")

    broadcaster.subscribe(broken)
    broadcaster.subscribe(received.append)

    broadcaster.emit(event())

    assert len(received) == 1


def test_no_replay_and_unsubscribe() -> None:
    broadcaster = EventBroadcaster()
    broadcaster.emit(event("early"))
    received = []
    unsubscribe = broadcaster.subscribe(received.append)

    broadcaster.emit(event("late"))
    unsubscribe()
    broadcaster.emit(event("after"))
    unsubscribe()

    assert [e.agent_name for e in received] == ["late"]
    assert broadcaster.subscriber_count == 0


@pytest.mark.anyio
async def test_stream_queues_events_until_closed() -> None:
    broadcaster = EventBroadcaster()

    async with broadcaster.stream() as queue:
        broadcaster.emit(event("a", EventKind.HEALTH_CHECK))
        received = await queue.get()
        assert broadcaster.subscriber_count == 1

    assert received.kind is EventKind.HEALTH_CHECK
    assert broadcaster.subscriber_count == 0


@pytest.mark.anyio
async def test_full_stream_drops_events() -> None:
    broadcaster = EventBroadcaster()

    async with broadcaster.stream(maxsize=1) as queue:
        broadcaster.emit(event("a"))
        broadcaster.emit(event("b"))
        assert queue.qsize() == 1
        assert (await queue.get()).agent_name == "a"
