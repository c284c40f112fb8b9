"""
GenBridge SG — Realtime change feed.

A small in-process publish/subscribe bus carrying row-level change events.
Consumers depend only on ``subscribe(topic, handler) -> unsubscribe``;
producers (the conversation service) publish after their writes.

Topics used:
  ``messages``                    every message insert/update (unscoped)
  ``messages:<conversation_id>``  changes for one conversation

Events for one topic are delivered to handlers in publish order.  There is
no ordering guarantee across topics.
"""

from __future__ import annotations

import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

import structlog

logger = structlog.get_logger("genbridge.realtime")

Handler = Callable[["RowChange"], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]

MESSAGES_TOPIC = "messages"


def conversation_topic(conversation_id: Any) -> str:
    return f"{MESSAGES_TOPIC}:{conversation_id}"


@dataclass(frozen=True)
class RowChange:
    event_type: str  # "INSERT" / "UPDATE"
    table: str
    new: dict = field(default_factory=dict)
    old: dict = field(default_factory=dict)
    # User ids allowed to see this row; empty means unrestricted.
    audience: frozenset = frozenset()

    def visible_to(self, user_id: Any) -> bool:
        return not self.audience or str(user_id) in self.audience


class EventBus:
    """Topic-keyed handler registry.  Handlers may be sync or async."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Unsubscribe:
        self._handlers[topic].append(handler)
        logger.debug("realtime_subscribed", topic=topic)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(topic)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[topic]
                logger.debug("realtime_unsubscribed", topic=topic)

        return _unsubscribe

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, ()))

    async def publish(self, topic: str, change: RowChange) -> None:
        # Copy so handlers may unsubscribe while being called.
        for handler in list(self._handlers.get(topic, ())):
            try:
                result = handler(change)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "realtime_handler_failed",
                    topic=topic,
                    event_type=change.event_type,
                )

    async def publish_message_change(self, change: RowChange) -> None:
        """Fan a ``messages`` row change out to both message topics."""
        await self.publish(MESSAGES_TOPIC, change)
        conversation_id = change.new.get("conversation_id")
        if conversation_id is not None:
            await self.publish(conversation_topic(conversation_id), change)


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Process-wide bus shared by the API layer and the WebSocket feed."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus

