"""Agent that keeps a markdown index of source modules up to date."""
from __future__ import annotations

import ast
import asyncio
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from background_agents.agents.command import ScriptedAgent
from background_agents.core.models import AgentKind, HealthCheckResult

INDEX_NAME = "INDEX.md"
_COMMENT_PREFIXES = ("#", "//", "/*", "*")


def summarize(path: Path) -> str:
    """First docstring or comment line of a source file."""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""
    if path.suffix == ".py":
        try:
            docstring = ast.get_docstring(ast.parse(text))
        except SyntaxError:
            docstring = None
        if docstring:
            return docstring.strip().splitlines()[0]
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith(_COMMENT_PREFIXES) and not stripped.startswith("#!"):
            summary = stripped.lstrip("#/* ").strip()
            if summary:
                return summary
        elif stripped:
            break
    return ""


def build_index(source_paths: Iterable[Path], extensions: Iterable[str]) -> str:
    wanted = set(extensions)
    rows: List[Tuple[str, str]] = []
    for root in source_paths:
        if not root.exists():
            continue
        for path in sorted(root.rglob("*")):
            if path.is_file() and path.suffix in wanted:
                rows.append((path.as_posix(), summarize(path)))
    lines = ["# Module index", ""]
    lines += [f"- `{name}`" + (f": {summary}" if summary else "") for name, summary in rows]
    return "\n".join(lines) + "\n"


class DocumentationAgent(ScriptedAgent):
    """Regenerates ``<outputDir>/INDEX.md`` every ``updateInterval``."""

    kind = AgentKind.DOCUMENTATION
    interval_key = "updateInterval"
    default_interval = 3600000
    run_on_start = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.source_paths = [Path(p) for p in self.config.get("sourcePaths", ["src/"])]
        self.output_dir = Path(self.config.get("outputDir", "docs"))
        self.extensions: List[str] = list(self.config.get("extensions", [".py", ".js", ".ts"]))
        self.generated = 0
        self.last_generated_at: Optional[float] = None

    @property
    def index_path(self) -> Path:
        return self.output_dir / INDEX_NAME

    async def initialize(self) -> None:
        await asyncio.to_thread(self.output_dir.mkdir, parents=True, exist_ok=True)

    async def run_once(self) -> None:
        content = await asyncio.to_thread(build_index, self.source_paths, self.extensions)
        previous = self.index_path.read_text(encoding="utf-8") if self.index_path.exists() else None
        if content == previous:
            return
        await asyncio.to_thread(self.index_path.write_text, content, encoding="utf-8")
        self.generated += 1
        self.last_generated_at = self.now()
        self.record_event("documentation_updated", {"path": str(self.index_path)})

    async def check_health(self) -> HealthCheckResult:
        health = await super().check_health()
        health.details.update({"generated": self.generated, "lastGeneratedAt": self.last_generated_at})
        return health
