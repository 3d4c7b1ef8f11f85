"""
In-process publish/subscribe.

Destinations are plain strings:
- /queue/notifications/<email>   one user's direct notifications
- /topic/project/<projectId>     everyone watching a project
- /topic/broadcast               every connected client

Each subscriber owns a bounded asyncio.Queue. ``send`` never blocks: a
subscriber whose queue is full loses the message.
"""

import asyncio
import logging
from collections import defaultdict

logger = logging.getLogger(__name__)

BROADCAST_DESTINATION = "/topic/broadcast"


def user_destination(email: str) -> str:
    return f"/queue/notifications/{email}"


def project_destination(project_id: int) -> str:
    return f"/topic/project/{project_id}"


class MessageBroker:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, destination: str, queue: asyncio.Queue | None = None) -> asyncio.Queue:
        queue = queue or asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[destination].add(queue)
        logger.debug("Subscribed to %s (subscribers=%d)", destination, len(self._subscribers[destination]))
        return queue

    def unsubscribe(self, destination: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(destination)
        if not subscribers:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[destination]

    def subscriber_count(self, destination: str) -> int:
        return len(self._subscribers.get(destination, ()))

    def send(self, destination: str, message: dict) -> int:
        """Fan a message out to every subscriber of a destination; returns how many got it."""
        delivered = 0
        for queue in list(self._subscribers.get(destination, ())):
            try:
                queue.put_nowait({"destination": destination, "body": message})
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Subscriber queue full, dropping message for %s", destination)
        return delivered
