"""FastAPI entry-point exposing the supervisor to dashboard clients."""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from background_agents.api.events import router as events_router
from background_agents.api.routes import router as agents_router
from background_agents.logging_config import setup_logging
from background_agents.runtime import get_config_store, get_settings, get_supervisor


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start enabled agents on startup and stop them all on shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level or get_config_store().global_policy.log_level, settings.environment)
    supervisor = get_supervisor()
    await supervisor.start_all()
    supervisor.start_monitoring(settings.poll_interval)
    yield
    await supervisor.shutdown()


app = FastAPI(title="Background Agents", lifespan=lifespan)
app.include_router(agents_router)
app.include_router(events_router)


@app.get("/health")
async def health() -> dict:
    supervisor = get_supervisor()
    return {"status": "ok", "agents": supervisor.agent_count}
