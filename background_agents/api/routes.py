"""HTTP API exposing supervisor controls and agent status."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from background_agents.core.errors import (
    AgentStartError,
    ConcurrencyLimitError,
    NotFoundError,
    UnknownAgentTypeError,
)
from background_agents.core.models import AgentStatusSnapshot
from background_agents.orchestration.supervisor import Supervisor
from background_agents.runtime import get_supervisor

router = APIRouter(prefix="/agents", tags=["agents"])


class AgentStatusResponse(BaseModel):
    name: str
    status: str
    uptime: int
    started_at: Optional[float] = None
    last_activity: Optional[float] = None
    retry_count: int = 0
    last_error: Optional[str] = None

    @classmethod
    def from_snapshot(cls, snapshot: AgentStatusSnapshot) -> "AgentStatusResponse":
        return cls(
            name=snapshot.name,
            status=snapshot.status.value,
            uptime=snapshot.uptime_ms,
            started_at=snapshot.started_at,
            last_activity=snapshot.last_activity_at,
            retry_count=snapshot.retry_count,
            last_error=snapshot.last_error,
        )


class AgentSummary(AgentStatusResponse):
    type: str
    description: str
    enabled: bool


class ActionResponse(BaseModel):
    success: bool
    message: str


def _ensure_known(supervisor: Supervisor, name: str) -> None:
    if supervisor.config_store.get_definition(name) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Agent '{name}' not found")


@router.get("", response_model=List[AgentSummary])
async def list_agents(supervisor: Supervisor = Depends(get_supervisor)) -> List[AgentSummary]:
    summaries = []
    for definition in supervisor.config_store.all_definitions():
        snapshot = AgentStatusResponse.from_snapshot(supervisor.get_agent_status(definition.name))
        summaries.append(
            AgentSummary(
                **snapshot.model_dump(),
                type=definition.type,
                description=definition.description,
                enabled=definition.enabled,
            )
        )
    return summaries


@router.get("/{name}", response_model=AgentStatusResponse)
async def get_agent(name: str, supervisor: Supervisor = Depends(get_supervisor)) -> AgentStatusResponse:
    _ensure_known(supervisor, name)
    return AgentStatusResponse.from_snapshot(supervisor.get_agent_status(name))


@router.post("/{name}/start", response_model=ActionResponse)
async def start_agent(name: str, supervisor: Supervisor = Depends(get_supervisor)) -> ActionResponse:
    try:
        outcome = await supervisor.start_agent(name)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (UnknownAgentTypeError, ConcurrencyLimitError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except AgentStartError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return ActionResponse(success=True, message=f"Agent {name} {outcome.value.replace('_', ' ')}")


@router.post("/{name}/stop", response_model=ActionResponse)
async def stop_agent(name: str, supervisor: Supervisor = Depends(get_supervisor)) -> ActionResponse:
    _ensure_known(supervisor, name)
    try:
        stopped = await supervisor.stop_agent(name)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return ActionResponse(success=True, message=f"Agent {name} {'stopped' if stopped else 'was not running'}")


@router.post("/{name}/restart", response_model=ActionResponse)
async def restart_agent(name: str, supervisor: Supervisor = Depends(get_supervisor)) -> ActionResponse:
    try:
        await supervisor.restart_agent(name)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (UnknownAgentTypeError, ConcurrencyLimitError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return ActionResponse(success=True, message=f"Agent {name} restarted")
