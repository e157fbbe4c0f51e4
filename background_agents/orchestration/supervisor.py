"""Supervisor responsible for starting, health-checking and stopping agents."""
from __future__ import annotations

import asyncio
import contextlib
import time
import warnings
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set, Type

from background_agents.agents.base import Agent
from background_agents.config import ConfigStore
from background_agents.core.errors import (
    AgentDisabledWarning,
    AgentStartError,
    AlreadyRunningWarning,
    ConcurrencyLimitError,
    NotFoundError,
    UnknownAgentTypeError,
)
from background_agents.core.events import EventBroadcaster, EventHandler
from background_agents.core.models import (
    UNHEALTHY,
    AgentStatus,
    AgentStatusSnapshot,
    EventKind,
    HealthCheckResult,
    LifecycleEvent,
    StartOutcome,
)
from background_agents.logging_config import get_logger

logger = get_logger(__name__)


class Supervisor:
    """Own the active agents and apply the health-check retry policy.

    Lifecycle operations for a single agent name are serialized through a
    per-name lock. Failures inside agent hooks are logged and published as
    ``error`` events; they never propagate out of the background health
    loop.
    """

    def __init__(
        self,
        *,
        config_store: ConfigStore,
        agent_catalog: Dict[str, Type[Agent]],
        broadcaster: Optional[EventBroadcaster] = None,
        clock: Callable[[], float] = time.time,
        restart_grace_period: float = 1.0,
    ) -> None:
        self._config = config_store
        self._agent_catalog = dict(agent_catalog)
        self._events = broadcaster or EventBroadcaster()
        self._clock = clock
        self._restart_grace_period = restart_grace_period
        self._agents: Dict[str, Agent] = {}
        # Names whose start is in flight; they count against the concurrency limit.
        self._starting: Set[str] = set()
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._monitor: Optional[asyncio.Task[None]] = None

    @property
    def events(self) -> EventBroadcaster:
        return self._events

    @property
    def config_store(self) -> ConfigStore:
        return self._config

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        return self._events.subscribe(handler)

    # -- start ---------------------------------------------------------

    async def start_all(self) -> None:
        """Start every enabled agent; individual failures are only logged."""
        for definition in self._config.enabled_definitions():
            try:
                await self.start_agent(definition.name)
            except Exception as exc:  # noqa: BLE001
                logger.error("agent_start_skipped", agent=definition.name, error=str(exc))

    async def start_agent(self, name: str) -> StartOutcome:
        """Create and start the agent configured under ``name``."""
        async with self._locks[name]:
            return await self._start_locked(name)

    async def _start_locked(self, name: str) -> StartOutcome:
        definition = self._config.get_definition(name)
        if definition is None:
            raise NotFoundError(name)

        if not definition.enabled:
            logger.warning("agent_disabled", agent=name)
            warnings.warn(f"Agent '{name}' is disabled", AgentDisabledWarning, stacklevel=3)
            return StartOutcome.DISABLED

        if name in self._agents:
            logger.warning("agent_already_running", agent=name)
            warnings.warn(f"Agent '{name}' is already running", AlreadyRunningWarning, stacklevel=3)
            return StartOutcome.ALREADY_RUNNING

        limit = self._config.global_policy.max_concurrent_agents
        if len(self._agents) + len(self._starting) >= limit:
            raise ConcurrencyLimitError(limit)

        agent_cls = self._resolve_agent_class(definition.type)
        agent = agent_cls(definition, self._events, clock=self._clock)

        logger.info("agent_start_requested", agent=name, type=definition.type)
        self._starting.add(name)
        try:
            await agent.start()
        except Exception as exc:
            # Kept in the active set in ``error`` so operators can inspect it.
            self._agents[name] = agent
            logger.error("agent_start_failed", agent=name, error=str(exc), exc_info=True)
            self._emit(EventKind.ERROR, name, {"error": str(exc), "stage": "start"})
            raise AgentStartError(name, str(exc)) from exc
        finally:
            self._starting.discard(name)

        self._agents[name] = agent
        self._emit(
            EventKind.AGENT_STARTED,
            name,
            {"type": definition.type, "startedAt": agent.instance.started_at},
        )
        logger.info("agent_started", agent=name)
        return StartOutcome.STARTED

    # -- stop ----------------------------------------------------------

    async def stop_agent(self, name: str) -> bool:
        """Stop ``name``; returns ``False`` when it was not active."""
        async with self._locks[name]:
            return await self._stop_locked(name)

    async def _stop_locked(self, name: str, reason: str = "requested") -> bool:
        agent = self._agents.get(name)
        if agent is None:
            logger.warning("agent_not_running", agent=name)
            return False

        logger.info("agent_stop_requested", agent=name, reason=reason)
        try:
            await agent.stop()
        except Exception as exc:
            logger.error("agent_stop_failed", agent=name, error=str(exc), exc_info=True)
            self._emit(EventKind.ERROR, name, {"error": str(exc), "stage": "stop"})
            raise
        finally:
            # Never leave a zombie entry behind, even when cleanup failed.
            self._agents.pop(name, None)
            self._emit(EventKind.AGENT_STOPPED, name, {"reason": reason})
        logger.info("agent_stopped", agent=name)
        return True

    async def stop_all(self) -> None:
        """Stop every active agent, continuing past individual failures."""
        names = list(self._agents)
        results = await asyncio.gather(
            *(self.stop_agent(name) for name in names), return_exceptions=True
        )
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("agent_stop_all_failed", agent=name, error=str(result))

    async def restart_agent(self, name: str) -> StartOutcome:
        """Stop, wait the grace period, start again. Failures propagate."""
        async with self._locks[name]:
            logger.info("agent_restart_requested", agent=name)
            try:
                await self._stop_locked(name, reason="restart")
                await asyncio.sleep(self._restart_grace_period)
                outcome = await self._start_locked(name)
            except Exception as exc:
                logger.error("agent_restart_failed", agent=name, error=str(exc))
                raise
            return outcome

    # -- health checks -------------------------------------------------

    async def run_health_checks(self) -> Dict[str, HealthCheckResult]:
        """Run every health check that is due and apply the retry policy."""
        now = self._clock()
        due = [agent for agent in list(self._agents.values()) if agent.health_check_due(now)]
        if not due:
            return {}
        results = await asyncio.gather(*(self._check_agent(agent) for agent in due))
        return {agent.name: result for agent, result in zip(due, results) if result is not None}

    async def _check_agent(self, agent: Agent) -> Optional[HealthCheckResult]:
        name = agent.name
        # Disarm while in flight so an overlapping poll does not double-check.
        agent.instance.next_check_at = None
        agent.touch()
        timeout = self._config.global_policy.health_check_timeout / 1000

        try:
            result = await asyncio.wait_for(agent.check_health(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("health_check_timeout", agent=name, timeout=timeout)
            result = HealthCheckResult(
                status=UNHEALTHY,
                uptime_ms=agent.uptime_ms,
                details={"error": f"health check timed out after {timeout:g}s"},
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("health_check_error", agent=name, error=str(exc), exc_info=True)
            result = HealthCheckResult(
                status=UNHEALTHY, uptime_ms=agent.uptime_ms, details={"error": str(exc)}
            )

        if self._agents.get(name) is not agent or agent.status is not AgentStatus.RUNNING:
            return None

        exhausted = self._apply_retry_policy(agent, result)
        self._emit(
            EventKind.HEALTH_CHECK,
            name,
            {"health": result.to_dict(), "retryCount": agent.instance.retry_count},
        )
        if exhausted:
            await self._force_stop(agent)
        else:
            agent.arm_health_check()
        return result

    def _apply_retry_policy(self, agent: Agent, result: HealthCheckResult) -> bool:
        """Update the retry counter; ``True`` means the budget is exhausted."""
        instance = agent.instance
        if result.healthy:
            instance.retry_count = 0
            logger.debug("health_check_passed", agent=agent.name)
            return False

        logger.warning("health_check_failed", agent=agent.name, details=result.details)
        if instance.retry_count >= instance.definition.max_retries:
            return True
        instance.retry_count += 1
        logger.warning(
            "health_check_retry",
            agent=agent.name,
            attempt=instance.retry_count,
            max_retries=instance.definition.max_retries,
        )
        return False

    async def _force_stop(self, agent: Agent) -> None:
        name = agent.name
        async with self._locks[name]:
            if self._agents.get(name) is not agent:
                return
            logger.error("agent_retries_exhausted", agent=name, retries=agent.instance.retry_count)
            agent.instance.status = AgentStatus.ERROR
            agent.instance.last_error = "maximum health check retries exceeded"
            self._emit(
                EventKind.ERROR,
                name,
                {
                    "error": agent.instance.last_error,
                    "stage": "health_check",
                    "retryCount": agent.instance.retry_count,
                },
            )
            try:
                await self._stop_locked(name, reason="retries_exhausted")
            except Exception as exc:  # noqa: BLE001
                logger.warning("forced_stop_incomplete", agent=name, error=str(exc))

    def start_monitoring(self, poll_interval: float = 1.0) -> None:
        """Drive ``run_health_checks`` from a background task."""
        if self._monitor is not None and not self._monitor.done():
            return
        self._monitor = asyncio.create_task(self._monitor_loop(poll_interval))

    async def _monitor_loop(self, poll_interval: float) -> None:
        while True:
            try:
                await self.run_health_checks()
            except Exception:  # noqa: BLE001
                logger.exception("health_check_loop_failed")
            await asyncio.sleep(poll_interval)

    async def stop_monitoring(self) -> None:
        if self._monitor is None:
            return
        self._monitor.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._monitor
        self._monitor = None

    async def shutdown(self) -> None:
        await self.stop_monitoring()
        await self.stop_all()

    # -- queries -------------------------------------------------------

    def get_agent_status(self, name: str) -> AgentStatusSnapshot:
        agent = self._agents.get(name)
        if agent is None:
            return AgentStatusSnapshot.stopped(name)
        return agent.snapshot()

    def get_all_agent_statuses(self) -> Dict[str, AgentStatusSnapshot]:
        return {name: agent.snapshot() for name, agent in list(self._agents.items())}

    def active_agents(self) -> List[str]:
        return list(self._agents)

    @property
    def agent_count(self) -> int:
        return len(self._agents)

    def get_agent(self, name: str) -> Optional[Agent]:
        return self._agents.get(name)

    # -- internals -----------------------------------------------------

    def _emit(self, kind: EventKind, name: str, payload: Dict[str, Any]) -> None:
        self._events.emit(
            LifecycleEvent(kind=kind, agent_name=name, timestamp=self._clock(), payload=payload)
        )

    def _resolve_agent_class(self, agent_type: str) -> Type[Agent]:
        if agent_type not in self._agent_catalog:
            raise UnknownAgentTypeError(agent_type)
        return self._agent_catalog[agent_type]
