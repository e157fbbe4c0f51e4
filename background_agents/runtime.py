"""Application runtime composition helpers."""
from __future__ import annotations

from functools import lru_cache
from typing import Dict, Type

from background_agents.agents.base import Agent
from background_agents.agents.code_review import CodeReviewAgent
from background_agents.agents.deployment import DeploymentAgent
from background_agents.agents.documentation import DocumentationAgent
from background_agents.agents.git_sync import GitSyncAgent
from background_agents.agents.monitoring import MonitoringAgent
from background_agents.agents.performance import PerformanceAgent
from background_agents.agents.security import SecurityAgent
from background_agents.agents.test_runner import TestRunnerAgent
from background_agents.config import ConfigStore, Settings
from background_agents.core.events import EventBroadcaster
from background_agents.orchestration.supervisor import Supervisor


def default_agent_catalog() -> Dict[str, Type[Agent]]:
    """Map every known ``type`` string to its agent class."""
    classes = (
        CodeReviewAgent,
        TestRunnerAgent,
        MonitoringAgent,
        GitSyncAgent,
        DeploymentAgent,
        SecurityAgent,
        PerformanceAgent,
        DocumentationAgent,
    )
    return {cls.kind.value: cls for cls in classes if cls.kind is not None}


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache
def get_config_store() -> ConfigStore:
    return ConfigStore(get_settings().config_path)


@lru_cache
def get_broadcaster() -> EventBroadcaster:
    return EventBroadcaster()


@lru_cache
def get_supervisor() -> Supervisor:
    return Supervisor(
        config_store=get_config_store(),
        agent_catalog=default_agent_catalog(),
        broadcaster=get_broadcaster(),
    )
