"""Tests for the HTTP and WebSocket dashboard surface."""
from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from background_agents.api.events import router as events_router
from background_agents.api.routes import router as agents_router
from background_agents.runtime import get_supervisor


@pytest.fixture
def client(build_supervisor):
    supervisor = build_supervisor(
        {"a": {"description": "primary"}, "b": {"enabled": False}, "c": {"type": "broken-init"}}
    )
    app = FastAPI()
    app.include_router(agents_router)
    app.include_router(events_router)
    app.dependency_overrides[get_supervisor] = lambda: supervisor
    with TestClient(app) as test_client:
        yield test_client


def test_list_agents_includes_configured_definitions(client) -> None:
    response = client.get("/agents")

    assert response.status_code == 200
    agents = {entry["name"]: entry for entry in response.json()}
    assert set(agents) == {"a", "b", "c"}
    assert agents["a"]["description"] == "primary"
    assert agents["a"]["status"] == "stopped"
    assert agents["b"]["enabled"] is False


def test_start_stop_roundtrip(client) -> None:
    assert client.post("/agents/a/start").json() == {"success": True, "message": "Agent a started"}
    assert client.get("/agents/a").json()["status"] == "running"

    assert client.post("/agents/a/stop").json()["message"] == "Agent a stopped"
    assert client.get("/agents/a").json()["status"] == "stopped"
    assert client.post("/agents/a/stop").json()["message"] == "Agent a was not running"


def test_disabled_agent_start_is_reported(client) -> None:
    response = client.post("/agents/b/start")

    assert response.status_code == 200
    assert response.json()["message"] == "Agent b disabled"


def test_unknown_agent_is_404(client) -> None:
    assert client.get("/agents/ghost").status_code == 404
    assert client.post("/agents/ghost/start").status_code == 404
    assert client.post("/agents/ghost/stop").status_code == 404


def test_failed_start_is_500(client) -> None:
    response = client.post("/agents/c/start")

    assert response.status_code == 500
    assert "cannot open watcher" in response.json()["detail"]
    assert client.get("/agents/c").json()["status"] == "error"


def test_events_stream_sends_welcome_then_events(client) -> None:
    client.post("/agents/a/start")

    with client.websocket_connect("/events") as websocket:
        welcome = websocket.receive_json()
        assert welcome["type"] == "welcome"
        assert welcome["statuses"]["a"]["status"] == "running"

        client.post("/agents/a/stop")
        event = websocket.receive_json()

    assert event["type"] == "agentStopped"
    assert event["name"] == "a"
    assert event["reason"] == "requested"
