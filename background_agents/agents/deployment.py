"""Agent that probes deployed environments and runs deploy commands."""
from __future__ import annotations

from collections import deque
from typing import Any, Deque, Dict, List

import httpx

from background_agents.agents.command import ScriptedAgent
from background_agents.core.models import UNHEALTHY, AgentKind, HealthCheckResult


class DeploymentError(Exception):
    """A deployment request was rejected or its command failed."""


class DeploymentAgent(ScriptedAgent):
    """Probes ``healthCheckUrls`` every ``probeInterval``; deploys on request."""

    kind = AgentKind.DEPLOYMENT
    interval_key = "probeInterval"
    default_interval = 60000

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.environments: List[str] = list(self.config.get("environments", ["staging", "production"]))
        self.health_check_urls: Dict[str, str] = dict(self.config.get("healthCheckUrls", {}))
        self.probes_enabled = bool(self.config.get("healthChecks", True))
        self.require_approval = bool(self.config.get("requireApproval", True))
        self.deploy_command: str = self.config.get("deployCommand", "")
        self.probe_timeout = float(self.config.get("probeTimeout", 10000)) / 1000
        self.probe_results: Dict[str, Dict[str, Any]] = {}
        self.history: Deque[Dict[str, Any]] = deque(maxlen=50)

    async def initialize(self) -> None:
        if not self.environments:
            raise ValueError("No deployment environments configured")
        unknown = set(self.health_check_urls) - set(self.environments)
        if unknown:
            raise ValueError(f"Health check URLs for unknown environments: {sorted(unknown)}")

    async def run_once(self) -> None:
        if not self.probes_enabled or not self.health_check_urls:
            return
        async with httpx.AsyncClient(timeout=self.probe_timeout) as client:
            for environment, url in self.health_check_urls.items():
                self.probe_results[environment] = await self._probe(client, url)

    async def _probe(self, client: httpx.AsyncClient, url: str) -> Dict[str, Any]:
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            self.logger.warning("deployment_probe_failed", url=url, error=str(exc))
            return {"ok": False, "error": str(exc), "checkedAt": self.now()}
        return {"ok": response.status_code < 400, "statusCode": response.status_code, "checkedAt": self.now()}

    async def deploy(self, environment: str, *, approved: bool = False) -> Dict[str, Any]:
        """Run the deploy command for ``environment``."""
        if environment not in self.environments:
            raise DeploymentError(f"Unknown environment: {environment}")
        if self.require_approval and not approved:
            raise DeploymentError(f"Deployment to {environment} requires approval")
        if not self.deploy_command:
            raise DeploymentError("No deployCommand configured")

        command = self.deploy_command.format(environment=environment)
        self.logger.info("deployment_started", environment=environment)
        result = await self.run(command)
        record = {
            "environment": environment,
            "success": result.ok,
            "exitCode": result.returncode,
            "durationMs": int(result.duration * 1000),
            "timestamp": self.now(),
        }
        self.history.append(record)
        self.record_event("deployment_completed", record)
        if not result.ok:
            raise DeploymentError(f"Deployment to {environment} failed with exit code {result.returncode}")
        return record

    async def check_health(self) -> HealthCheckResult:
        health = await super().check_health()
        health.details.update({"probes": self.probe_results, "deployments": len(self.history)})
        if any(not probe["ok"] for probe in self.probe_results.values()):
            health.status = UNHEALTHY
        return health
