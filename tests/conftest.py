"""Shared fixtures: a controllable clock, fake agent kinds and a supervisor."""
from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Deque, Dict, List, Optional

import pytest

from background_agents.agents.base import Agent
from background_agents.config import ConfigStore
from background_agents.core.events import EventBroadcaster
from background_agents.core.models import HEALTHY, HealthCheckResult, LifecycleEvent
from background_agents.orchestration.supervisor import Supervisor


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class QuietAgent(Agent):
    """Agent whose health is scripted by the test through ``health_script``."""

    health_script: Deque[str]

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.health_script = deque()
        self.initialized = 0
        self.cleaned_up = 0

    async def initialize(self) -> None:
        self.initialized += 1

    async def cleanup(self) -> None:
        self.cleaned_up += 1

    async def check_health(self) -> HealthCheckResult:
        status = self.health_script.popleft() if self.health_script else HEALTHY
        return HealthCheckResult(status=status, uptime_ms=self.uptime_ms)


class BrokenInitAgent(QuietAgent):
    async def initialize(self) -> None:
        raise RuntimeError("cannot open watcher")


class BrokenCleanupAgent(QuietAgent):
    async def cleanup(self) -> None:
        raise RuntimeError("watcher already closed")


class ExplodingHealthAgent(QuietAgent):
    async def check_health(self) -> HealthCheckResult:
        raise ValueError("probe crashed")


class SlowHealthAgent(QuietAgent):
    async def check_health(self) -> HealthCheckResult:
        await asyncio.sleep(5)
        return await super().check_health()


class SlowStartAgent(QuietAgent):
    async def initialize(self) -> None:
        await asyncio.sleep(0.05)
        await super().initialize()


FAKE_CATALOG = {
    "quiet": QuietAgent,
    "broken-init": BrokenInitAgent,
    "broken-cleanup": BrokenCleanupAgent,
    "exploding-health": ExplodingHealthAgent,
    "slow-health": SlowHealthAgent,
    "slow-start": SlowStartAgent,
}


def make_document(agents: Dict[str, Dict[str, Any]], **global_overrides: Any) -> Dict[str, Any]:
    entries = {}
    for name, overrides in agents.items():
        entry = {"name": name, "type": "quiet", "enabled": True, "config": {}}
        entry.update(overrides)
        entries[name] = entry
    policy = {"maxConcurrentAgents": 10, "healthCheckInterval": 30000, "maxRestartAttempts": 3}
    policy.update(global_overrides)
    return {"agents": entries, "global": policy}


class EventRecorder:
    def __init__(self) -> None:
        self.events: List[LifecycleEvent] = []

    def __call__(self, event: LifecycleEvent) -> None:
        self.events.append(event)

    def kinds(self, agent: Optional[str] = None) -> List[str]:
        return [e.kind.value for e in self.events if agent is None or e.agent_name == agent]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def build_supervisor(clock: FakeClock, recorder: EventRecorder):
    def build(agents: Dict[str, Dict[str, Any]], **global_overrides: Any) -> Supervisor:
        store = ConfigStore.from_dict(make_document(agents, **global_overrides))
        broadcaster = EventBroadcaster()
        broadcaster.subscribe(recorder)
        return Supervisor(
            config_store=store,
            agent_catalog=FAKE_CATALOG,
            broadcaster=broadcaster,
            clock=clock,
            restart_grace_period=0,
        )

    return build

