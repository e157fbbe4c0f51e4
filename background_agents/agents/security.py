"""Agent that scans the tree for leaked secrets and runs a dependency audit."""
from __future__ import annotations

import asyncio
import re
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from background_agents.agents.command import ScriptedAgent
from background_agents.core.models import AgentKind, HealthCheckResult

SECRET_PATTERNS: List[Tuple[str, str, re.Pattern[str]]] = [
    ("aws-access-key", "critical", re.compile(r"\bAKIA[0-9A-Z]{16}\b")),
    ("private-key", "critical", re.compile(r"-----BEGIN (?:RSA |EC |OPENSSH |DSA )?PRIVATE KEY-----")),
    ("github-token", "critical", re.compile(r"\bgh[pousr]_[A-Za-z0-9]{36,}\b")),
    (
        "generic-secret",
        "high",
        re.compile(r"(?i)\b(?:api[_-]?key|secret|token|password)\b\s*[:=]\s*['\"][^'\"\s]{8,}['\"]"),
    ),
]

SKIP_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".ico", ".zip", ".gz", ".lock", ".pdf"}


def iter_files(paths: Iterable[Path], exclude: Iterable[str]) -> Iterable[Path]:
    excluded = set(exclude)
    for root in paths:
        if not root.exists():
            continue
        for path in [root] if root.is_file() else root.rglob("*"):
            if path.is_file() and path.suffix.lower() not in SKIP_SUFFIXES and not excluded.intersection(path.parts):
                yield path


def scan_for_secrets(paths: Iterable[Path], exclude: Iterable[str] = ()) -> List[Dict[str, Any]]:
    findings: List[Dict[str, Any]] = []
    for path in iter_files(paths, exclude):
        try:
            text = path.read_text(encoding="utf-8", errors="ignore")
        except OSError:
            continue
        for line_no, line in enumerate(text.splitlines(), start=1):
            for rule, severity, pattern in SECRET_PATTERNS:
                if pattern.search(line):
                    findings.append({"file": str(path), "line": line_no, "rule": rule, "severity": severity})
    return findings


class SecurityAgent(ScriptedAgent):
    """Runs a secrets scan and optional audit command every ``scanInterval``."""

    kind = AgentKind.SECURITY
    interval_key = "scanInterval"
    default_interval = 3600000
    run_on_start = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.scan_paths = [Path(p) for p in self.config.get("scanPaths", ["src/"])]
        self.exclude = [p.strip("/") for p in self.config.get("excludePaths", ["node_modules/", ".git/"])]
        self.secrets_scan = bool(self.config.get("secretsScan", True))
        self.audit_command: str = self.config.get("auditCommand", "")
        self.current_scan: Optional[Dict[str, Any]] = None
        self.history: Deque[Dict[str, Any]] = deque(maxlen=20)

    async def run_once(self) -> None:
        findings: List[Dict[str, Any]] = []
        if self.secrets_scan:
            findings = await asyncio.to_thread(scan_for_secrets, self.scan_paths, self.exclude)

        audit_passed: Optional[bool] = None
        if self.audit_command:
            audit = await self.run(self.audit_command)
            audit_passed = audit.ok

        scan = {
            "timestamp": self.now(),
            "findings": findings,
            "summary": {
                "totalIssues": len(findings) + (1 if audit_passed is False else 0),
                "criticalIssues": sum(1 for f in findings if f["severity"] == "critical"),
                "auditPassed": audit_passed,
            },
        }
        self.current_scan = scan
        self.history.append(scan)
        self.record_metric("security.issues", scan["summary"]["totalIssues"])
        self.record_event("security_scan_completed", scan["summary"])
        if scan["summary"]["criticalIssues"]:
            self.logger.warning("critical_security_issues", count=scan["summary"]["criticalIssues"])

    def history_tail(self, limit: int = 10) -> List[Dict[str, Any]]:
        return list(self.history)[-limit:]

    async def check_health(self) -> HealthCheckResult:
        health = await super().check_health()
        health.details.update(
            {
                "securityHistoryLength": len(self.history),
                "currentScan": None
                if self.current_scan is None
                else {"timestamp": self.current_scan["timestamp"], **self.current_scan["summary"]},
            }
        )
        return health
