"""Agent that times a benchmark command and flags regressions."""
from __future__ import annotations

from collections import deque
from statistics import mean
from typing import Any, Deque, Dict, Optional

from background_agents.agents.command import ScriptedAgent
from background_agents.core.models import AgentKind, HealthCheckResult


class PerformanceAgent(ScriptedAgent):
    kind = AgentKind.PERFORMANCE
    interval_key = "benchmarkInterval"
    default_interval = 3600000

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.benchmark_command: str = self.config.get("benchmarkCommand", "")
        self.thresholds: Dict[str, float] = dict(self.config.get("thresholds", {}))
        self.durations: Deque[int] = deque(maxlen=int(self.config.get("historySize", 50)))
        self.last_run: Optional[Dict[str, Any]] = None

    async def initialize(self) -> None:
        if not self.benchmark_command:
            self.logger.info("no_benchmark_configured")

    async def run_once(self) -> None:
        if not self.benchmark_command:
            return
        result = await self.run(self.benchmark_command, check=True)
        duration_ms = int(result.duration * 1000)
        self.durations.append(duration_ms)
        limit = self.thresholds.get("durationMs")
        regression = limit is not None and duration_ms > limit
        self.last_run = {"durationMs": duration_ms, "regression": regression, "timestamp": self.now()}

        self.record_metric("benchmark.duration_ms", duration_ms)
        if regression:
            self.logger.warning("performance_regression", duration_ms=duration_ms, threshold=limit)
            self.record_event("performance_regression", {"durationMs": duration_ms, "threshold": limit})

    async def check_health(self) -> HealthCheckResult:
        health = await super().check_health()
        health.details.update(
            {
                "lastRun": self.last_run,
                "averageDurationMs": round(mean(self.durations)) if self.durations else None,
            }
        )
        return health
