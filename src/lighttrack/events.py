"""Asyncio event bus broadcasting tracking status and activity updates."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

logger = logging.getLogger(__name__)

TRACKING_STATUS = "tracking-status"
ACTIVITY_UPDATE = "activity-update"
NOTIFICATION = "notification"


class Broadcast(Protocol):
    def publish(self, event: dict[str, Any]) -> None: ...


class NullBroadcast:
    def publish(self, event: dict[str, Any]) -> None:
        return None


class EventBus:
    """Pub/sub for server-push events, used from the event loop thread only.

    The engine publishes fire-and-forget; WebSocket handlers subscribe and
    receive events through a bounded queue. Subscribers that fall behind are
    dropped.
    """

    def __init__(self, queue_size: int = 256) -> None:
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()
        self._queue_size = queue_size

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: dict[str, Any]) -> None:
        dead: list[asyncio.Queue[dict[str, Any]]] = []
        for q in self._subscribers:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                dead.append(q)
        for q in dead:
            logger.debug("Dropping slow event subscriber.")
            self._subscribers.discard(q)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[dict[str, Any]]]:
        """Context manager that yields a queue receiving all published events."""
        q: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(q)
        try:
            yield q
        finally:
            self._subscribers.discard(q)
