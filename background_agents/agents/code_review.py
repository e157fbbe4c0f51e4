"""Agent that reviews changed source files against simple rules."""
from __future__ import annotations

import asyncio
import re
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, Iterable, List

from background_agents.agents.command import ScriptedAgent
from background_agents.core.models import AgentKind, HealthCheckResult

SOURCE_EXTENSIONS = {".py", ".js", ".jsx", ".ts", ".tsx", ".go", ".java", ".rb", ".php"}

_DEBUG_STATEMENT = re.compile(r"\b(console\.log|debugger|pdb\.set_trace|breakpoint)\b")
_MAINTENANCE_MARKER = re.compile(r"\b(TODO|FIXME|XXX|HACK)\b")
_DANGEROUS_CALL = re.compile(r"\b(eval|exec)\s*\(")
_HARDCODED_SECRET = re.compile(r"(?i)\b(password|passwd|secret)\s*[:=]\s*['\"][^'\"]+['\"]")
_NESTED_LOOP = re.compile(r"^\s{8,}(for|while)\b")


def review_file(path: Path, rules: Dict[str, bool], max_line_length: int = 120) -> List[Dict[str, Any]]:
    """Return rule findings for ``path``; unreadable files yield no findings."""
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return []

    findings: List[Dict[str, Any]] = []

    def add(line_no: int, rule: str, message: str) -> None:
        findings.append({"file": str(path), "line": line_no, "rule": rule, "message": message})

    for line_no, line in enumerate(lines, start=1):
        if rules.get("style", True):
            if len(line) > max_line_length:
                add(line_no, "style", f"Line exceeds {max_line_length} characters")
            if line != line.rstrip():
                add(line_no, "style", "Trailing whitespace")
            if _DEBUG_STATEMENT.search(line):
                add(line_no, "style", "Leftover debug statement")
        if rules.get("security", True):
            if _DANGEROUS_CALL.search(line):
                add(line_no, "security", "Dynamic code execution")
            if _HARDCODED_SECRET.search(line):
                add(line_no, "security", "Possible hardcoded credential")
        if rules.get("complexity", True) and len(line) - len(line.lstrip()) >= 24:
            add(line_no, "complexity", "Deeply nested block")
        if rules.get("performance", True) and _NESTED_LOOP.match(line):
            add(line_no, "performance", "Nested loop")
        if _MAINTENANCE_MARKER.search(line):
            add(line_no, "maintenance", "Unresolved maintenance marker")
    return findings


class CodeReviewAgent(ScriptedAgent):
    """Polls watch paths for modified source files and reviews them."""

    kind = AgentKind.CODE_REVIEW
    interval_key = "scanInterval"
    default_interval = 5000

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.watch_paths = [Path(p) for p in self.config.get("watchPaths", ["src/"])]
        self.exclude_parts = {p.strip("/") for p in self.config.get("excludePaths", ["node_modules/"])}
        self.max_file_size = int(self.config.get("maxFileSize", 1024 * 1024))
        self.max_line_length = int(self.config.get("maxLineLength", 120))
        self.rules: Dict[str, bool] = dict(self.config.get("rules", {}))
        self.queue: Deque[Path] = deque()
        self.files_reviewed = 0
        self.last_findings: List[Dict[str, Any]] = []
        self._mtimes: Dict[Path, float] = {}
        self._baselined = False

    async def initialize(self) -> None:
        # Baseline only; files are reviewed once they change after start.
        await asyncio.to_thread(self._scan)
        self.logger.info("code_review_watching", paths=[str(p) for p in self.watch_paths], files=len(self._mtimes))

    def _iter_sources(self) -> Iterable[Path]:
        for root in self.watch_paths:
            if not root.exists():
                continue
            candidates = [root] if root.is_file() else root.rglob("*")
            for path in candidates:
                if path.suffix.lower() not in SOURCE_EXTENSIONS or not path.is_file():
                    continue
                if self.exclude_parts.intersection(path.parts):
                    continue
                yield path

    def _scan(self) -> List[Path]:
        changed: List[Path] = []
        seen: Dict[Path, float] = {}
        for path in self._iter_sources():
            try:
                stat = path.stat()
            except OSError:
                continue
            if stat.st_size > self.max_file_size:
                continue
            seen[path] = stat.st_mtime
            previous = self._mtimes.get(path)
            if previous is not None and previous != stat.st_mtime:
                changed.append(path)
            elif previous is None and self._baselined:
                changed.append(path)
        self._mtimes = seen
        self._baselined = True
        return changed

    async def run_once(self) -> None:
        self.queue.extend(await asyncio.to_thread(self._scan))
        while self.queue:
            path = self.queue.popleft()
            findings = await asyncio.to_thread(review_file, path, self.rules, self.max_line_length)
            self.files_reviewed += 1
            self.last_findings = findings
            self.record_metric("files_reviewed", 1, {"file": str(path)})
            self.record_event("review_completed", {"file": str(path), "findings": findings[:50]})
            if findings:
                self.logger.info("code_review_findings", file=str(path), count=len(findings))

    async def check_health(self) -> HealthCheckResult:
        health = await super().check_health()
        health.details.update(
            {
                "queueLength": len(self.queue),
                "filesReviewed": self.files_reviewed,
                "watchedFiles": len(self._mtimes),
                "lastFindings": len(self.last_findings),
            }
        )
        return health
