"""WebSocket endpoint streaming lifecycle events to dashboard clients."""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from background_agents.api.routes import AgentStatusResponse
from background_agents.logging_config import get_logger
from background_agents.orchestration.supervisor import Supervisor
from background_agents.runtime import get_supervisor

router = APIRouter(tags=["events"])
logger = get_logger(__name__)


@router.websocket("/events")
async def stream_events(
    websocket: WebSocket,
    supervisor: Supervisor = Depends(get_supervisor),
) -> None:
    """Send the current statuses, then forward every lifecycle event."""
    await websocket.accept()
    async with supervisor.events.stream(maxsize=1000) as queue:
        statuses = {
            name: AgentStatusResponse.from_snapshot(snapshot).model_dump()
            for name, snapshot in supervisor.get_all_agent_statuses().items()
        }
        await websocket.send_json({"type": "welcome", "statuses": statuses})

        async def forward() -> None:
            while True:
                event = await queue.get()
                await websocket.send_json(event.to_dict())

        sender = asyncio.create_task(forward())
        try:
            # Client messages are ignored; reading detects the disconnect.
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("event_stream_closed")
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
