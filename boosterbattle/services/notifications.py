"""
Change notifications for connected clients.

The core publishes an event after it commits a state change. Delivery is
best effort: a failed publish is logged and never undoes or fails the
operation that triggered it.

Channels:
- battle:{battle_id} receives challenge_accepted, cards_revealed,
  battle_completed
- user:{user_id} receives challenge
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


def battle_channel(battle_id: str) -> str:
    return f"battle:{battle_id}"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


@dataclass(frozen=True, slots=True)
class Event:
    """One notification delivered to subscribers of a channel."""

    channel: str
    event: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"channel": self.channel, "event": self.event, "payload": self.payload}


class EventBroker:
    """
    In-process publish/subscribe broker.

    Each subscriber gets its own bounded queue. A subscriber that falls
    behind loses events rather than blocking publishers.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue[Event]]] = defaultdict(set)

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> int:
        """
        Deliver an event to every subscriber of channel.

        Returns:
            Number of subscribers the event was queued for.
        """
        message = Event(channel=channel, event=event, payload=payload)
        delivered = 0
        for queue in list(self._subscribers.get(channel, ())):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "EVENT_DROPPED",
                    extra={"channel": channel, "event": event},
                )
        logger.debug(
            "EVENT_PUBLISHED",
            extra={"channel": channel, "event": event, "subscribers": delivered},
        )
        return delivered

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncIterator[asyncio.Queue[Event]]:
        """Subscribe to a channel for the lifetime of the context."""
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[channel].add(queue)
        try:
            yield queue
        finally:
            subscribers = self._subscribers.get(channel)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))


async def publish_event(
    broker: EventBroker, channel: str, event: str, payload: dict[str, Any]
) -> None:
    """Publish without letting a delivery failure reach the caller."""
    try:
        await broker.publish(channel, event, payload)
    except Exception:
        logger.exception("EVENT_PUBLISH_FAILED", extra={"channel": channel, "event": event})


# Singleton broker instance
_event_broker: EventBroker | None = None


def get_event_broker() -> EventBroker:
    """Get the global event broker instance."""
    global _event_broker
    if _event_broker is None:
        _event_broker = EventBroker()
    return _event_broker


def reset_event_broker() -> None:
    """Reset the global event broker (for testing)."""
    global _event_broker
    _event_broker = None
