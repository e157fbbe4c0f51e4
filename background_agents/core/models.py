"""Core data models shared across supervisor components."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class AgentKind(str, Enum):
    """Closed set of agent kinds the runtime knows how to build."""

    CODE_REVIEW = "code-review"
    TEST_RUNNER = "test-runner"
    MONITORING = "monitoring"
    GIT_SYNC = "git-sync"
    DEPLOYMENT = "deployment"
    SECURITY = "security"
    PERFORMANCE = "performance"
    DOCUMENTATION = "documentation"


class AgentStatus(str, Enum):
    """Lifecycle states for an agent managed by the supervisor."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class EventKind(str, Enum):
    """Kinds of lifecycle events delivered to subscribers."""

    AGENT_STARTED = "agentStarted"
    AGENT_STOPPED = "agentStopped"
    HEALTH_CHECK = "healthCheck"
    ERROR = "error"
    AGENT_EVENT = "agentEvent"


class StartOutcome(str, Enum):
    """Result of a start request that did not raise."""

    STARTED = "started"
    ALREADY_RUNNING = "already_running"
    DISABLED = "disabled"


HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


@dataclass(frozen=True, slots=True)
class GlobalPolicy:
    """Supervisor-wide policy loaded from the ``global`` section."""

    log_level: str = "info"
    max_concurrent_agents: int = 5
    health_check_interval: int = 30000
    restart_on_failure: bool = True
    max_restart_attempts: int = 3
    health_check_timeout: int = 30000


@dataclass(frozen=True, slots=True)
class AgentDefinition:
    """Static agent definition; owned by the configuration store."""

    name: str
    type: str
    enabled: bool = True
    description: str = ""
    config: Dict[str, Any] = field(default_factory=dict)
    max_retries: int = 3
    health_check_interval: int = 30000  # milliseconds


@dataclass(slots=True)
class AgentInstance:
    """Runtime record kept for each started agent."""

    definition: AgentDefinition
    status: AgentStatus = AgentStatus.STOPPED
    started_at: Optional[float] = None
    last_activity_at: Optional[float] = None
    retry_count: int = 0
    last_error: Optional[str] = None
    next_check_at: Optional[float] = None

    @property
    def name(self) -> str:
        return self.definition.name


@dataclass(slots=True)
class HealthCheckResult:
    """Outcome of a single health check tick."""

    status: str
    uptime_ms: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return self.status == HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "uptime": self.uptime_ms, "details": dict(self.details)}


@dataclass(slots=True)
class LifecycleEvent:
    """Notification emitted by the supervisor for every lifecycle transition."""

    kind: EventKind
    agent_name: str
    timestamp: float
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.kind.value,
            "name": self.agent_name,
            "timestamp": self.timestamp,
        }
        data.update(self.payload)
        return data


@dataclass(slots=True)
class AgentStatusSnapshot:
    """Read-only view of an agent returned by status queries."""

    name: str
    status: AgentStatus = AgentStatus.STOPPED
    uptime_ms: int = 0
    started_at: Optional[float] = None
    last_activity_at: Optional[float] = None
    retry_count: int = 0
    last_error: Optional[str] = None

    @classmethod
    def stopped(cls, name: str) -> "AgentStatusSnapshot":
        return cls(name=name)
