"""Base agent definition used by the supervisor."""
from __future__ import annotations

import abc
import asyncio
import time
from typing import Any, Awaitable, Callable, ClassVar, Dict, Optional, Set, TypeVar

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from background_agents.core.events import EventBroadcaster
from background_agents.core.models import (
    HEALTHY,
    AgentDefinition,
    AgentInstance,
    AgentKind,
    AgentStatus,
    AgentStatusSnapshot,
    EventKind,
    HealthCheckResult,
    LifecycleEvent,
)
from background_agents.logging_config import get_agent_logger

T = TypeVar("T")

Clock = Callable[[], float]


class Agent(abc.ABC):
    """Abstract agent encapsulating the start/stop/health-check lifecycle.

    Concrete kinds override ``initialize``, ``run_main_loop``, ``cleanup`` and
    ``check_health``; the sequencing around them lives here.
    """

    kind: ClassVar[Optional[AgentKind]] = None

    def __init__(
        self,
        definition: AgentDefinition,
        events: EventBroadcaster,
        *,
        clock: Clock = time.time,
    ) -> None:
        self.instance = AgentInstance(definition=definition)
        self._events = events
        self._clock = clock
        self._tasks: Set[asyncio.Task[Any]] = set()
        self.logger = get_agent_logger(definition.name)

    @property
    def name(self) -> str:
        return self.instance.definition.name

    @property
    def definition(self) -> AgentDefinition:
        return self.instance.definition

    @property
    def config(self) -> Dict[str, Any]:
        return self.instance.definition.config

    @property
    def status(self) -> AgentStatus:
        return self.instance.status

    @property
    def health_check_interval(self) -> float:
        """Interval between health checks, in seconds."""
        return self.definition.health_check_interval / 1000

    def now(self) -> float:
        return self._clock()

    @property
    def uptime_ms(self) -> int:
        if self.instance.started_at is None:
            return 0
        return max(0, int((self._clock() - self.instance.started_at) * 1000))

    # -- lifecycle -----------------------------------------------------

    async def start(self) -> None:
        """Run ``initialize`` then ``run_main_loop`` and mark the agent running."""
        if self.instance.status is AgentStatus.RUNNING:
            return
        if self.instance.status is not AgentStatus.STOPPED:
            raise RuntimeError(f"Cannot start agent '{self.name}' while {self.instance.status.value}")

        self.logger.info("agent_starting")
        now = self._clock()
        self.instance.status = AgentStatus.STARTING
        self.instance.started_at = now
        self.instance.last_activity_at = now
        self.instance.retry_count = 0
        self.instance.last_error = None
        try:
            await self.initialize()
            await self.run_main_loop()
        except Exception as exc:
            self.instance.status = AgentStatus.ERROR
            self.instance.last_error = str(exc) or type(exc).__name__
            self.instance.next_check_at = None
            await self._cancel_tasks()
            self.logger.error("agent_start_failed", error=self.instance.last_error)
            raise
        self.instance.status = AgentStatus.RUNNING
        self.logger.info("agent_started")

    async def stop(self) -> None:
        """Cancel scheduled work, run ``cleanup`` and mark the agent stopped.

        A failing ``cleanup`` is logged and re-raised; the agent then stays
        in ``stopping``.
        """
        if self.instance.status is AgentStatus.STOPPED:
            return
        self.logger.info("agent_stopping")
        self.instance.status = AgentStatus.STOPPING
        self.instance.next_check_at = None
        await self._cancel_tasks()
        try:
            await self.cleanup()
        except Exception as exc:
            self.instance.last_error = str(exc) or type(exc).__name__
            self.logger.error("agent_cleanup_failed", error=self.instance.last_error)
            raise
        self.instance.status = AgentStatus.STOPPED
        self.logger.info("agent_stopped")

    async def restart(self, grace_period: float = 1.0) -> None:
        """Stop, wait ``grace_period`` seconds, start again. Not atomic."""
        self.logger.info("agent_restarting")
        await self.stop()
        await asyncio.sleep(grace_period)
        await self.start()

    # -- hooks ---------------------------------------------------------

    async def initialize(self) -> None:
        """Kind-specific setup executed before the main loop is armed."""
        return None

    async def run_main_loop(self) -> None:
        """Arm the periodic health check; kinds add their own background work."""
        self.arm_health_check()

    async def cleanup(self) -> None:
        """Kind-specific teardown executed after scheduled work is cancelled."""
        return None

    async def check_health(self) -> HealthCheckResult:
        return HealthCheckResult(
            status=HEALTHY,
            uptime_ms=self.uptime_ms,
            details={"lastActivity": self.instance.last_activity_at},
        )

    # -- scheduling ----------------------------------------------------

    def arm_health_check(self) -> None:
        self.instance.next_check_at = self._clock() + self.health_check_interval

    def health_check_due(self, now: float) -> bool:
        due = self.instance.next_check_at
        return self.instance.status is AgentStatus.RUNNING and due is not None and due <= now

    def touch(self) -> None:
        self.instance.last_activity_at = self._clock()

    def spawn(self, coro: Awaitable[Any], *, name: Optional[str] = None) -> asyncio.Task[Any]:
        """Run ``coro`` as background work owned by this agent."""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(f"{self.name}:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def every(
        self,
        interval: float,
        func: Callable[[], Awaitable[Any]],
        *,
        name: str,
        immediately: bool = False,
    ) -> asyncio.Task[Any]:
        """Call ``func`` every ``interval`` seconds until the agent stops."""

        async def loop() -> None:
            if not immediately:
                await asyncio.sleep(interval)
            while True:
                try:
                    await func()
                    self.touch()
                except Exception as exc:  # noqa: BLE001
                    self.logger.error("periodic_task_failed", task=name, error=str(exc))
                await asyncio.sleep(interval)

        return self.spawn(loop(), name=name)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("background_task_failed", task=task.get_name(), error=str(exc))

    async def _cancel_tasks(self) -> None:
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # -- helpers for subclasses ----------------------------------------

    async def retry(
        self,
        operation: Callable[[], Awaitable[T]],
        attempts: int = 3,
        delay: float = 1.0,
    ) -> T:
        """Retry ``operation`` with exponential backoff, re-raising the last error."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=delay, max=delay * 10),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self.logger.warning(
                        "operation_retry",
                        attempt=attempt.retry_state.attempt_number,
                        max_attempts=attempts,
                    )
                return await operation()
        raise AssertionError("unreachable")  # pragma: no cover

    async def with_timeout(self, awaitable: Awaitable[T], timeout: float = 30.0) -> T:
        return await asyncio.wait_for(awaitable, timeout=timeout)

    # -- instrumentation -----------------------------------------------

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, Any]] = None) -> None:
        """Log a metric sample; never affects control flow."""
        try:
            self.logger.info("metric", metric=name, value=value, tags=dict(tags or {}))
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("record_metric_failed", metric=name, error=str(exc))

    def record_event(self, name: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Publish a kind-specific event to subscribers; never affects control flow."""
        try:
            self._events.emit(
                LifecycleEvent(
                    kind=EventKind.AGENT_EVENT,
                    agent_name=self.name,
                    timestamp=self._clock(),
                    payload={"event": name, "data": dict(data or {})},
                )
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("record_event_failed", agent_event=name, error=str(exc))

    def snapshot(self) -> AgentStatusSnapshot:
        return AgentStatusSnapshot(
            name=self.name,
            status=self.instance.status,
            uptime_ms=self.uptime_ms,
            started_at=self.instance.started_at,
            last_activity_at=self.instance.last_activity_at,
            retry_count=self.instance.retry_count,
            last_error=self.instance.last_error,
        )
