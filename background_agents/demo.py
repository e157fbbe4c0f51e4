"""Console runner: start enabled agents, log their events, stop on Ctrl+C."""
from __future__ import annotations

import asyncio
from typing import NoReturn

from background_agents.core.models import LifecycleEvent
from background_agents.logging_config import get_logger, setup_logging
from background_agents.runtime import get_config_store, get_settings, get_supervisor

logger = get_logger(__name__)


def _log_event(event: LifecycleEvent) -> None:
    logger.info("lifecycle_event", kind=event.kind.value, agent=event.agent_name, payload=event.payload)


async def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level or get_config_store().global_policy.log_level, settings.environment)

    supervisor = get_supervisor()
    supervisor.subscribe(_log_event)
    await supervisor.start_all()
    for name, snapshot in supervisor.get_all_agent_statuses().items():
        logger.info("agent_status", agent=name, status=snapshot.status.value)

    supervisor.start_monitoring(settings.poll_interval)
    try:
        await asyncio.Event().wait()
    finally:
        await supervisor.shutdown()


def run() -> NoReturn:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    raise SystemExit(0)


if __name__ == "__main__":
    run()
