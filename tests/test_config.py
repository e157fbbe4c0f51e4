"""Tests for the configuration store."""
from __future__ import annotations

import json

import pytest
from conftest import make_document

from background_agents.config import ConfigStore, Settings
from background_agents.core.errors import ConfigError, NotFoundError
from background_agents.core.models import AgentKind


def test_missing_file_is_created_with_defaults(tmp_path) -> None:
    path = tmp_path / "config" / "agents.json"

    store = ConfigStore(path)

    assert path.exists()
    written = json.loads(path.read_text())
    assert set(written["agents"]) == {kind.value for kind in AgentKind}
    enabled = {definition.name for definition in store.enabled_definitions()}
    assert enabled == {"code-review", "test-runner", "monitoring", "git-sync"}
    assert store.validate() == []


def test_definitions_inherit_global_policy() -> None:
    store = ConfigStore.from_dict(
        make_document(
            {"a": {}, "b": {"maxRetries": 1, "healthCheckInterval": 5000}},
            maxRestartAttempts=7,
            healthCheckInterval=12000,
        )
    )

    a = store.get_definition("a")
    b = store.get_definition("b")

    assert (a.max_retries, a.health_check_interval) == (7, 12000)
    assert (b.max_retries, b.health_check_interval) == (1, 5000)
    assert store.get_definition("ghost") is None


def test_global_policy_defaults() -> None:
    policy = ConfigStore.from_dict({"agents": {}}).global_policy

    assert policy.max_concurrent_agents == 5
    assert policy.health_check_interval == 30000
    assert policy.max_restart_attempts == 3
    assert policy.health_check_timeout == 30000


def test_updates_are_persisted(tmp_path) -> None:
    path = tmp_path / "agents.json"
    path.write_text(json.dumps(make_document({"a": {"type": "monitoring"}})))
    store = ConfigStore(path)

    store.disable_agent("a")
    store.update_definition("a", config={"monitoringInterval": 1000})
    store.update_global(maxConcurrentAgents=2)

    reloaded = ConfigStore(path)
    definition = reloaded.get_definition("a")
    assert definition.enabled is False
    assert definition.config == {"monitoringInterval": 1000}
    assert reloaded.global_policy.max_concurrent_agents == 2

    reloaded.enable_agent("a")
    assert ConfigStore(path).get_definition("a").enabled is True


def test_update_unknown_agent_raises() -> None:
    store = ConfigStore.from_dict(make_document({}))

    with pytest.raises(NotFoundError):
        store.enable_agent("ghost")


def test_definition_config_is_a_copy() -> None:
    store = ConfigStore.from_dict(make_document({"a": {"config": {"paths": ["src/"]}}}))

    store.get_definition("a").config["paths"].append("lib/")

    assert store.get_definition("a").config == {"paths": ["src/"]}


def test_validate_reports_problems() -> None:
    store = ConfigStore.from_dict(
        {
            "agents": {
                "ok": {"name": "ok", "type": "monitoring"},
                "nameless": {"type": "monitoring"},
                "renamed": {"name": "other", "type": "monitoring"},
                "odd": {"name": "odd", "type": "telepathy"},
            }
        }
    )

    assert store.validate() == [
        "Agent 'nameless' missing required fields",
        "Agent 'renamed' has mismatched name 'other'",
        "Agent 'odd' has unknown type 'telepathy'",
    ]


def test_invalid_file_raises_config_error(tmp_path) -> None:
    path = tmp_path / "agents.json"
    path.write_text("{not json")

    with pytest.raises(ConfigError):
        ConfigStore(path)


def test_schema_violation_raises_config_error() -> None:
    with pytest.raises(ConfigError):
        ConfigStore.from_dict({"agents": {"a": {"name": "a", "type": "monitoring", "maxRetries": -1}}})


def test_export_and_import() -> None:
    source = ConfigStore.from_dict(make_document({"a": {"description": "first"}}))
    target = ConfigStore.from_dict(make_document({}))

    assert target.import_document(source.export()) is True
    assert target.get_definition("a").description == "first"

    assert target.import_document("{broken") is False
    assert target.import_document({"agents": {"a": {"enabled": "sometimes"}}}) is False
    assert target.get_definition("a").description == "first"


def test_settings_from_env(monkeypatch) -> None:
    monkeypatch.setenv("BACKGROUND_AGENTS_CONFIG", "/etc/agents.json")
    monkeypatch.setenv("BACKGROUND_AGENTS_POLL_INTERVAL", "0.5")
    monkeypatch.delenv("ENVIRONMENT", raising=False)

    settings = Settings.from_env()

    assert settings.config_path == "/etc/agents.json"
    assert settings.poll_interval == 0.5
    assert settings.environment == "development"


def test_definition_name_comes_from_config_key() -> None:
    store = ConfigStore.from_dict(make_document({"watcher": {"name": "code-watcher"}}))

    assert store.get_definition("watcher").name == "watcher"
    assert [d.name for d in store.enabled_definitions()] == ["watcher"]
    assert store.update_definition("watcher", enabled=False).name == "watcher"
    assert store.validate() == ["Agent 'watcher' has mismatched name 'code-watcher'"]
