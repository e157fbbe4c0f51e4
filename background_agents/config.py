"""Configuration management for the agent supervisor."""
from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from background_agents.core.errors import ConfigError, NotFoundError
from background_agents.core.models import AgentDefinition, AgentKind, GlobalPolicy
from background_agents.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/agents.json"


@dataclass(frozen=True)
class Settings:
    """Process settings loaded from environment variables."""

    config_path: str = DEFAULT_CONFIG_PATH
    log_level: Optional[str] = None
    environment: str = "development"
    poll_interval: float = 1.0

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        return cls(
            config_path=os.getenv("BACKGROUND_AGENTS_CONFIG", DEFAULT_CONFIG_PATH),
            log_level=os.getenv("BACKGROUND_AGENTS_LOG_LEVEL"),
            environment=os.getenv("ENVIRONMENT", "development"),
            poll_interval=float(os.getenv("BACKGROUND_AGENTS_POLL_INTERVAL", "1.0")),
        )


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AgentEntry(_Document):
    """One entry of the ``agents`` mapping."""

    name: str = ""
    type: str = ""
    description: str = ""
    enabled: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)
    max_retries: Optional[int] = Field(default=None, alias="maxRetries", ge=0)
    health_check_interval: Optional[int] = Field(default=None, alias="healthCheckInterval", gt=0)


class GlobalEntry(_Document):
    """The ``global`` policy section."""

    log_level: str = Field(default="info", alias="logLevel")
    max_concurrent_agents: int = Field(default=5, alias="maxConcurrentAgents", gt=0)
    health_check_interval: int = Field(default=30000, alias="healthCheckInterval", gt=0)
    restart_on_failure: bool = Field(default=True, alias="restartOnFailure")
    max_restart_attempts: int = Field(default=3, alias="maxRestartAttempts", ge=0)
    health_check_timeout: int = Field(default=30000, alias="healthCheckTimeout", gt=0)


class ConfigDocument(_Document):
    version: str = "1.0.0"
    agents: Dict[str, AgentEntry] = Field(default_factory=dict)
    global_: GlobalEntry = Field(default_factory=GlobalEntry, alias="global")


def default_document() -> Dict[str, Any]:
    """Built-in configuration written when no config file exists yet."""
    return {
        "version": "1.0.0",
        "agents": {
            "code-review": {
                "name": "code-review",
                "description": "Automatically reviews code changes and provides feedback",
                "enabled": True,
                "type": "code-review",
                "config": {
                    "watchPaths": ["src/", "lib/", "app/"],
                    "excludePaths": ["node_modules/", "dist/", "build/"],
                    "scanInterval": 5000,
                    "maxFileSize": 1048576,
                    "rules": {"complexity": True, "security": True, "performance": True, "style": True},
                },
            },
            "test-runner": {
                "name": "test-runner",
                "description": "Automatically runs tests and reports results",
                "enabled": True,
                "type": "test-runner",
                "config": {
                    "testCommand": "pytest -q",
                    "runOnStart": False,
                    "runInterval": 600000,
                    "timeout": 30000,
                },
            },
            "deployment": {
                "name": "deployment",
                "description": "Manages deployment processes and environments",
                "enabled": False,
                "type": "deployment",
                "config": {
                    "environments": ["staging", "production"],
                    "autoDeploy": False,
                    "requireApproval": True,
                    "healthChecks": True,
                },
            },
            "monitoring": {
                "name": "monitoring",
                "description": "Monitors application performance and health",
                "enabled": True,
                "type": "monitoring",
                "config": {
                    "metrics": ["cpu", "memory", "disk"],
                    "alertThresholds": {"cpu": 80, "memory": 85, "disk": 90},
                    "monitoringInterval": 30000,
                    "historySize": 120,
                },
            },
            "git-sync": {
                "name": "git-sync",
                "description": "Synchronizes with Git repositories and manages branches",
                "enabled": True,
                "type": "git-sync",
                "config": {"remote": "origin", "syncInterval": 300000},
            },
            "performance": {
                "name": "performance",
                "description": "Analyzes and optimizes application performance",
                "enabled": False,
                "type": "performance",
                "config": {"benchmarkCommand": "", "benchmarkInterval": 3600000, "thresholds": {"durationMs": 60000}},
            },
            "security": {
                "name": "security",
                "description": "Scans for security vulnerabilities and compliance issues",
                "enabled": False,
                "type": "security",
                "config": {
                    "scanPaths": ["src/"],
                    "secretsScan": True,
                    "auditCommand": "",
                    "scanInterval": 3600000,
                },
            },
            "documentation": {
                "name": "documentation",
                "description": "Automatically generates and maintains documentation",
                "enabled": False,
                "type": "documentation",
                "config": {"sourcePaths": ["src/"], "outputDir": "docs", "updateInterval": 3600000},
            },
        },
        "global": {
            "logLevel": "info",
            "maxConcurrentAgents": 5,
            "healthCheckInterval": 30000,
            "restartOnFailure": True,
            "maxRestartAttempts": 3,
        },
    }


class ConfigStore:
    """Holds agent definitions and global policy backed by a JSON document.

    Passing ``path=None`` keeps the store purely in memory, which is what
    tests and embedded callers use.
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = DEFAULT_CONFIG_PATH,
        document: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.path = Path(path) if path is not None else None
        self._document: Dict[str, Any] = {}
        if document is not None:
            self._apply(document)
        else:
            self.load()

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> ConfigStore:
        return cls(path=None, document=document)

    def load(self) -> None:
        """(Re)load the document, writing the defaults if the file is missing."""
        if self.path is None or not self.path.exists():
            self._apply(default_document())
            if self.path is not None:
                logger.info("config_created", path=str(self.path))
                self.save()
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Cannot read configuration {self.path}: {exc}") from exc
        self._apply(raw)
        logger.info("config_loaded", path=str(self.path), agents=len(self._document["agents"]))

    def save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.export(), encoding="utf-8")

    def _apply(self, raw: Any) -> None:
        try:
            parsed = ConfigDocument.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
        self._document = parsed.model_dump(by_alias=True, exclude_none=True)

    # -- reads ---------------------------------------------------------

    @property
    def global_policy(self) -> GlobalPolicy:
        section = GlobalEntry.model_validate(self._document.get("global", {}))
        return GlobalPolicy(
            log_level=section.log_level,
            max_concurrent_agents=section.max_concurrent_agents,
            health_check_interval=section.health_check_interval,
            restart_on_failure=section.restart_on_failure,
            max_restart_attempts=section.max_restart_attempts,
            health_check_timeout=section.health_check_timeout,
        )

    def get_definition(self, name: str) -> Optional[AgentDefinition]:
        entry = self._document["agents"].get(name)
        if entry is None:
            return None
        return self._to_definition(name, entry, self.global_policy)

    def all_definitions(self) -> List[AgentDefinition]:
        policy = self.global_policy
        return [self._to_definition(key, entry, policy) for key, entry in self._document["agents"].items()]

    def enabled_definitions(self) -> List[AgentDefinition]:
        return [definition for definition in self.all_definitions() if definition.enabled]

    @staticmethod
    def _to_definition(key: str, entry: Dict[str, Any], policy: GlobalPolicy) -> AgentDefinition:
        max_retries = entry.get("maxRetries")
        interval = entry.get("healthCheckInterval")
        # The mapping key is the agent's identity; a differing ``name`` is
        # reported by ``validate`` only.
        return AgentDefinition(
            name=key,
            type=entry.get("type", ""),
            enabled=entry.get("enabled", True),
            description=entry.get("description", ""),
            config=copy.deepcopy(entry.get("config", {})),
            max_retries=policy.max_restart_attempts if max_retries is None else max_retries,
            health_check_interval=policy.health_check_interval if interval is None else interval,
        )

    # -- updates -------------------------------------------------------

    def update_definition(self, name: str, **updates: Any) -> AgentDefinition:
        """Merge camelCase ``updates`` into an agent entry and persist."""
        if name not in self._document["agents"]:
            raise NotFoundError(name)
        document = copy.deepcopy(self._document)
        document["agents"][name].update(updates)
        self._apply(document)
        self.save()
        return self._to_definition(name, self._document["agents"][name], self.global_policy)

    def enable_agent(self, name: str) -> AgentDefinition:
        return self.update_definition(name, enabled=True)

    def disable_agent(self, name: str) -> AgentDefinition:
        return self.update_definition(name, enabled=False)

    def update_global(self, **updates: Any) -> GlobalPolicy:
        document = copy.deepcopy(self._document)
        document.setdefault("global", {}).update(updates)
        self._apply(document)
        self.save()
        return self.global_policy

    def validate(self) -> List[str]:
        """Return human-readable problems; an empty list means valid."""
        errors: List[str] = []
        known = {kind.value for kind in AgentKind}
        for key, entry in self._document["agents"].items():
            if not entry.get("name") or not entry.get("type"):
                errors.append(f"Agent '{key}' missing required fields")
                continue
            if entry["name"] != key:
                errors.append(f"Agent '{key}' has mismatched name '{entry['name']}'")
            if entry["type"] not in known:
                errors.append(f"Agent '{key}' has unknown type '{entry['type']}'")
        return errors

    def export(self) -> str:
        return json.dumps(self._document, indent=2)

    def import_document(self, data: Union[str, Dict[str, Any]]) -> bool:
        """Replace the whole document; returns ``False`` when it is rejected."""
        try:
            parsed = json.loads(data) if isinstance(data, str) else data
            self._apply(parsed)
        except (json.JSONDecodeError, ConfigError) as exc:
            logger.error("config_import_failed", error=str(exc))
            return False
        self.save()
        return True
