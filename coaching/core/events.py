"""
In-process domain event bus.

Record mutations commit first, then publish. Handlers run on the bus worker with
their own database sessions, so a failing side effect never reaches the request
that caused it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import Request

from coaching.core.clock import utcnow

logger = logging.getLogger(__name__)

# Event names
ATTENDANCE_MARKED = "attendance.marked"
ATTENDANCE_UPDATED = "attendance.updated"
ATTENDANCE_DELETED = "attendance.deleted"
STUDENT_MARKED_ABSENT = "attendance.student_absent"


@dataclass
class DomainEvent:
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)


Handler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def subscribe(self, event_name: str, handler: Handler) -> None:
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug("Registered handler %s for %s", getattr(handler, "__name__", handler), event_name)

    def publish(self, event: DomainEvent) -> None:
        """Enqueue without waiting; the worker picks it up."""
        logger.debug("Publishing %s", event.name)
        self._queue.put_nowait(event)

    async def start(self) -> None:
        if self.running:
            logger.warning("Event bus is already running")
            return
        self._worker_task = asyncio.create_task(self._worker())
        logger.info("Event bus started")

    async def stop(self) -> None:
        if not self.running:
            return
        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        self._worker_task = None
        logger.info("Event bus stopped")

    async def join(self) -> None:
        """Wait until every published event has been handled."""
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: DomainEvent) -> None:
        handlers = self._handlers.get(event.name, [])
        if not handlers:
            logger.debug("No handlers for %s", event.name)
            return
        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception("Handler %s failed for %s", getattr(handler, "__name__", handler), event.name)


def get_event_bus(request: Request) -> EventBus:
    """FastAPI dependency: the bus created in the application lifespan."""
    return request.app.state.event_bus
