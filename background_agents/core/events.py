"""In-process broadcaster delivering lifecycle events to subscribers."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List

from background_agents.logging_config import get_logger

from .models import LifecycleEvent

logger = get_logger(__name__)

EventHandler = Callable[[LifecycleEvent], None]


class EventBroadcaster:
    """Synchronous, ordered, best-effort fan-out of lifecycle events.

    Handlers run in registration order for every event emitted after they
    subscribed. A handler that raises is logged and skipped; the remaining
    handlers and the emitter are unaffected.
    """

    def __init__(self) -> None:
        self._handlers: List[EventHandler] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Register ``handler`` and return a callable that removes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(handler)

        return unsubscribe

    def unsubscribe(self, handler: EventHandler) -> None:
        try:
            self._handlers.remove(handler)
        except ValueError:
            pass

    def emit(self, event: LifecycleEvent) -> None:
        """Deliver ``event`` to every current subscriber."""
        # Snapshot so handlers may (un)subscribe during delivery.
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "event_handler_failed",
                    event_kind=event.kind.value,
                    agent=event.agent_name,
                )

    @asynccontextmanager
    async def stream(self, maxsize: int = 0) -> AsyncIterator[asyncio.Queue[LifecycleEvent]]:
        """Context manager yielding a queue fed with every emitted event."""
        queue: asyncio.Queue[LifecycleEvent] = asyncio.Queue(maxsize=maxsize)

        def enqueue(event: LifecycleEvent) -> None:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("event_stream_full", event_kind=event.kind.value, agent=event.agent_name)

        unsubscribe = self.subscribe(enqueue)
        try:
            yield queue
        finally:
            unsubscribe()
