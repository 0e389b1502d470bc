"""In-process fan-out of push events to connected clients."""

import asyncio
from typing import Any

from structlog import get_logger


logger = get_logger(__name__)

SUBSCRIBER_QUEUE_SIZE = 100

QUEUE_EVENT = "esi:queue"
STATUS_EVENT = "esi:status"
PERMISSIONS_EVENT = "permissions:updated"

Event = dict[str, Any]


class EventHub:
    """Broadcasts events to every subscriber queue.

    A subscriber that stops draining its queue loses events rather than
    blocking the publisher.
    """

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[Event]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[Event]:
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Event]) -> None:
        self._subscribers.discard(queue)

    def publish(self, event: str, data: Any) -> None:
        message: Event = {"event": event, "data": data}
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("event_dropped", event_name=event)
