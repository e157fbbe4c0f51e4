"""Agent that keeps the working copy's remote-tracking refs fresh."""
from __future__ import annotations

from collections import deque
from typing import Any, Deque, Dict, Optional

from background_agents.agents.command import ScriptedAgent
from background_agents.core.models import AgentKind, HealthCheckResult


class GitSyncAgent(ScriptedAgent):
    """Fetches from ``remote`` every ``syncInterval`` and tracks divergence."""

    kind = AgentKind.GIT_SYNC
    interval_key = "syncInterval"
    default_interval = 300000

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.remote: str = self.config.get("remote", "origin")
        self.auto_pull = bool(self.config.get("autoPull", False))
        self.fetch_attempts = int(self.config.get("fetchAttempts", 3))
        self.current_branch: Optional[str] = None
        self.ahead = 0
        self.behind = 0
        self.last_sync: Optional[float] = None
        self.sync_history: Deque[Dict[str, Any]] = deque(maxlen=50)

    async def initialize(self) -> None:
        result = await self.run("git rev-parse --git-dir")
        if not result.ok:
            raise RuntimeError("Not a git repository. Please initialize git first.")
        branch = await self.run("git branch --show-current")
        self.current_branch = branch.stdout.strip() or None
        self.logger.info("git_branch_detected", branch=self.current_branch)

    async def run_once(self) -> None:
        await self.retry(lambda: self.run(f"git fetch {self.remote} --prune", check=True), attempts=self.fetch_attempts)

        counts = await self.run("git rev-list --left-right --count HEAD...@{upstream}")
        if counts.ok and len(counts.stdout.split()) == 2:
            ahead, behind = counts.stdout.split()
            self.ahead, self.behind = int(ahead), int(behind)

        pulled = False
        if self.auto_pull and self.behind and not self.ahead:
            await self.run("git pull --ff-only", check=True)
            pulled = True
            self.behind = 0

        self.last_sync = self.now()
        entry = {"timestamp": self.last_sync, "ahead": self.ahead, "behind": self.behind, "pulled": pulled}
        self.sync_history.append(entry)
        self.record_event("sync_completed", entry)

    async def check_health(self) -> HealthCheckResult:
        health = await super().check_health()
        health.details.update(
            {
                "branch": self.current_branch,
                "ahead": self.ahead,
                "behind": self.behind,
                "lastSync": self.last_sync,
            }
        )
        return health
