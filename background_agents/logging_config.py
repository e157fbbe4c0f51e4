"""Structured logging configuration using structlog."""
from __future__ import annotations

import logging
import sys
from typing import Any, List

import structlog


def setup_logging(level: str = "info", environment: str = "development") -> None:
    """Configure structured logging for the supervisor process.

    Production emits one JSON object per line; every other environment
    gets the colored console renderer.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if environment == "production":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a named structured logger."""
    return structlog.get_logger(name)


def get_agent_logger(agent_name: str) -> structlog.stdlib.BoundLogger:
    """Return a logger that tags every line with the agent's name."""
    return structlog.get_logger("background_agents.agent").bind(agent=agent_name)
