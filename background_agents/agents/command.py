"""Periodic scripted-work skeleton shared by the concrete agent kinds."""
from __future__ import annotations

import abc
from typing import Any, ClassVar, Dict, Optional

from background_agents.agents.base import Agent
from background_agents.core.models import UNHEALTHY, HealthCheckResult
from background_agents.services.shell import CommandResult, run_command


class ScriptedAgent(Agent):
    """Agent that runs ``run_once`` on a fixed interval until stopped.

    ``interval_key`` names the config entry (milliseconds) controlling the
    cycle; ``maxConsecutiveFailures`` failed cycles in a row turn the
    health check unhealthy.
    """

    interval_key: ClassVar[str] = "interval"
    default_interval: ClassVar[int] = 300000
    run_on_start: ClassVar[bool] = False

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.working_directory: Optional[str] = self.config.get("workingDirectory")
        self.command_timeout = float(self.config.get("timeout", 30000)) / 1000
        self.max_consecutive_failures = int(self.config.get("maxConsecutiveFailures", 3))
        self.cycles = 0
        self.failures = 0
        self.consecutive_failures = 0
        self.last_cycle_at: Optional[float] = None
        self.last_failure: Optional[str] = None

    @property
    def interval(self) -> float:
        return float(self.config.get(self.interval_key, self.default_interval)) / 1000

    async def run_main_loop(self) -> None:
        await super().run_main_loop()
        self.every(
            self.interval,
            self.run_cycle,
            name="cycle",
            immediately=bool(self.config.get("runOnStart", self.run_on_start)),
        )

    async def run_cycle(self) -> None:
        """Run one unit of work and keep failure bookkeeping."""
        try:
            await self.run_once()
        except Exception as exc:
            self.failures += 1
            self.consecutive_failures += 1
            self.last_failure = str(exc) or type(exc).__name__
            raise
        else:
            self.consecutive_failures = 0
        finally:
            self.cycles += 1
            self.last_cycle_at = self.now()

    @abc.abstractmethod
    async def run_once(self) -> None:
        """Kind-specific unit of work."""

    async def run(self, command: str, *, check: bool = False) -> CommandResult:
        return await run_command(
            command,
            cwd=self.working_directory,
            timeout=self.command_timeout,
            check=check,
        )

    def cycle_details(self) -> Dict[str, Any]:
        return {
            "cycles": self.cycles,
            "failures": self.failures,
            "consecutiveFailures": self.consecutive_failures,
            "lastCycleAt": self.last_cycle_at,
            "lastFailure": self.last_failure,
        }

    async def check_health(self) -> HealthCheckResult:
        health = await super().check_health()
        health.details.update(self.cycle_details())
        if self.consecutive_failures >= self.max_consecutive_failures:
            health.status = UNHEALTHY
        return health
