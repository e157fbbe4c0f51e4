"""Agent that samples host resource usage and raises threshold alerts."""
from __future__ import annotations

import asyncio
import os
import shutil
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from background_agents.agents.command import ScriptedAgent
from background_agents.core.models import AgentKind, HealthCheckResult

MEMINFO = Path("/proc/meminfo")


def cpu_percent() -> Optional[float]:
    """One-minute load average relative to the CPU count."""
    try:
        load = os.getloadavg()[0]
    except (AttributeError, OSError):
        return None
    return round(load / (os.cpu_count() or 1) * 100, 1)


def memory_percent(meminfo: Path = MEMINFO) -> Optional[float]:
    try:
        text = meminfo.read_text()
    except OSError:
        return None
    values: Dict[str, int] = {}
    for line in text.splitlines():
        key, _, rest = line.partition(":")
        parts = rest.split()
        if parts and parts[0].isdigit():
            values[key] = int(parts[0])
    total = values.get("MemTotal")
    available = values.get("MemAvailable", values.get("MemFree"))
    if not total or available is None:
        return None
    return round((total - available) / total * 100, 1)


def disk_percent(path: str = ".") -> Optional[float]:
    try:
        usage = shutil.disk_usage(path)
    except OSError:
        return None
    return round(usage.used / usage.total * 100, 1) if usage.total else None


def collect_metrics(names: List[str], disk_path: str = ".") -> Dict[str, Optional[float]]:
    collectors = {
        "cpu": cpu_percent,
        "memory": memory_percent,
        "disk": lambda: disk_percent(disk_path),
    }
    return {name: collectors[name]() for name in names if name in collectors}


def evaluate_thresholds(
    metrics: Dict[str, Optional[float]], thresholds: Dict[str, float]
) -> List[Dict[str, Any]]:
    alerts = []
    for name, value in metrics.items():
        limit = thresholds.get(name)
        if value is not None and limit is not None and value >= limit:
            alerts.append({"metric": name, "value": value, "threshold": limit})
    return alerts


class MonitoringAgent(ScriptedAgent):
    """Samples cpu, memory and disk usage every ``monitoringInterval``."""

    kind = AgentKind.MONITORING
    interval_key = "monitoringInterval"
    default_interval = 30000

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.metric_names: List[str] = list(self.config.get("metrics", ["cpu", "memory", "disk"]))
        self.thresholds: Dict[str, float] = dict(
            self.config.get("alertThresholds", {"cpu": 80, "memory": 85, "disk": 90})
        )
        self.disk_path: str = self.config.get("diskPath", ".")
        size = int(self.config.get("historySize", 120))
        self.history: Deque[Dict[str, Any]] = deque(maxlen=size)
        self.alerts: Deque[Dict[str, Any]] = deque(maxlen=100)
        self.last_metrics: Optional[Dict[str, Optional[float]]] = None

    async def initialize(self) -> None:
        self.last_metrics = await asyncio.to_thread(collect_metrics, self.metric_names, self.disk_path)

    async def run_once(self) -> None:
        metrics = await asyncio.to_thread(collect_metrics, self.metric_names, self.disk_path)
        self.history.append({"timestamp": self.now(), "metrics": metrics})
        self.last_metrics = metrics
        for name, value in metrics.items():
            if value is not None:
                self.record_metric(f"system.{name}", value)
        for alert in evaluate_thresholds(metrics, self.thresholds):
            alert["timestamp"] = self.now()
            self.alerts.append(alert)
            self.logger.warning("threshold_exceeded", **alert)
            self.record_event("alert", alert)

    async def check_health(self) -> HealthCheckResult:
        health = await super().check_health()
        health.details.update(
            {"lastMetrics": self.last_metrics, "historySize": len(self.history), "alerts": len(self.alerts)}
        )
        return health
