"""Exceptions and warnings raised by the supervisor and configuration store."""
from __future__ import annotations


class SupervisorError(Exception):
    """Base class for errors visible to supervisor callers."""


class NotFoundError(SupervisorError, KeyError):
    """No agent definition exists for the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Agent '{name}' not found in configuration")
        self.name = name

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class UnknownAgentTypeError(SupervisorError):
    """The definition names a type missing from the agent catalog."""

    def __init__(self, agent_type: str) -> None:
        super().__init__(f"Unknown agent type: {agent_type}")
        self.agent_type = agent_type


class AgentStartError(SupervisorError):
    """An agent's start sequence failed inside one of its hooks."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Agent '{name}' failed to start: {reason}")
        self.name = name


class ConcurrencyLimitError(SupervisorError):
    """Starting another agent would exceed ``maxConcurrentAgents``."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Maximum of {limit} concurrent agents reached")
        self.limit = limit


class ConfigError(SupervisorError):
    """The configuration document could not be read or validated."""


class SupervisorWarning(UserWarning):
    """Base class for recoverable conditions reported as warnings."""


class AlreadyRunningWarning(SupervisorWarning):
    """A start was requested for an agent that is already active."""


class AgentDisabledWarning(SupervisorWarning):
    """A start was requested for an agent disabled in configuration."""
