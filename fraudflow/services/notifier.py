"""
Notifier - change notifications for workflow records.

Replaces polling: every store write publishes ``{"type": "<collection>.<action>",
"id": ..., "version": ...}``. Two kinds of consumers:
- listeners: synchronous callbacks, called in publish order
- subscribers: asyncio queues, streamed to HTTP clients as Server-Sent Events

Usage:
- Subscribe: GET /api/v1/stream
- Publish: notifier.publish({"type": "alerts.updated", "id": "ALT-..."})
"""

import asyncio
import json
from typing import AsyncGenerator, Callable

import structlog

logger = structlog.get_logger(__name__)

Listener = Callable[[dict], None]


class Notifier:
    """
    Change pub/sub.

    Listener exceptions are logged and do not affect the write that
    triggered the notification.
    """

    def __init__(self, queue_size: int = 1000, keepalive_seconds: float = 30.0):
        self._listeners: list[Listener] = []
        self._subscribers: set[asyncio.Queue] = set()
        self._queue_size = queue_size
        self._keepalive_seconds = keepalive_seconds

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, event: dict) -> None:
        """Deliver an event to every listener and subscriber queue."""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.error("notifier_listener_failed", event_type=event.get("type"), error=str(exc))

        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("notifier_queue_full", event_type=event.get("type"))

        logger.debug(
            "notifier_published",
            event_type=event.get("type"),
            listeners=len(self._listeners),
            subscribers=len(self._subscribers),
        )

    async def subscribe(self) -> AsyncGenerator[str, None]:
        """
        Yield SSE-formatted strings for every published event.

        Sends a keepalive comment when nothing happened for a while.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        logger.info("sse_subscriber_added", total=len(self._subscribers))

        try:
            while True:
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=self._keepalive_seconds)
                    yield f"data: {json.dumps(data, ensure_ascii=False)}\n\n"
                except asyncio.TimeoutError:
                    # SSE comment = keepalive (not data, won't trigger onmessage)
                    yield ": keepalive\n\n"
        finally:
            self._subscribers.discard(queue)
            logger.info("sse_subscriber_removed", remaining=len(self._subscribers))
