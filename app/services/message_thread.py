"""
GenBridge SG — Realtime consumers for the messaging view.

``MessageThread`` follows one conversation; ``UnreadCounter`` follows every
message the user can see.  Both depend only on ``EventBus.subscribe`` and are
started/stopped explicitly by their owner (the WebSocket handler).
"""

from __future__ import annotations

import inspect
import uuid
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

import structlog

from app.services.realtime import (
    MESSAGES_TOPIC,
    EventBus,
    RowChange,
    Unsubscribe,
    conversation_topic,
)
from app.services.scam_detection_service import detect_scam_patterns

logger = structlog.get_logger("genbridge.message_thread")

ReadReceiptCallback = Callable[[uuid.UUID], Union[None, Awaitable[None]]]
ChangeCallback = Callable[[Any], Union[None, Awaitable[None]]]


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


def annotate_message(message: dict) -> dict:
    """Attach the scam heuristic result to a message payload."""
    return {**message, "scam_warning": detect_scam_patterns(message.get("content")).to_dict()}


class MessageThread:
    """Ordered, annotated message list for one conversation.

    Inserts are appended in arrival order.  An insert from the other
    participant triggers ``on_read_receipt`` so the view marks it read
    straight away.
    """

    def __init__(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        event_bus: EventBus,
        on_read_receipt: Optional[ReadReceiptCallback] = None,
        on_message: Optional[ChangeCallback] = None,
    ) -> None:
        self.conversation_id = conversation_id
        self.user_id = user_id
        self.event_bus = event_bus
        self.messages: list[dict] = []
        self._on_read_receipt = on_read_receipt
        self._on_message = on_message
        self._unsubscribe: Unsubscribe | None = None

    def load(self, messages: Iterable[dict]) -> None:
        self.messages = [m if "scam_warning" in m else annotate_message(m) for m in messages]

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.event_bus.subscribe(
                conversation_topic(self.conversation_id), self.handle_change
            )

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    async def handle_change(self, change: RowChange) -> None:
        if change.new.get("conversation_id") != str(self.conversation_id):
            return

        if change.event_type == "INSERT":
            message_id = change.new.get("id")
            if any(str(m.get("id")) == message_id for m in self.messages):
                return
            message = annotate_message(change.new)
            self.messages.append(message)
            if self._on_message is not None:
                await _maybe_await(self._on_message(message))
            if change.new.get("sender_id") != str(self.user_id) and self._on_read_receipt is not None:
                await _maybe_await(self._on_read_receipt(self.conversation_id))

        elif change.event_type == "UPDATE":
            message_id = change.new.get("id")
            for message in self.messages:
                if str(message.get("id")) == message_id:
                    message["read_at"] = change.new.get("read_at")
                    break


class UnreadCounter:
    """Live count of unread messages addressed to ``user_id``.

    Incremented locally for every visible insert from someone else; an update
    that sets ``read_at`` triggers a full refetch through ``fetch_count``.
    """

    def __init__(
        self,
        user_id: uuid.UUID,
        event_bus: EventBus,
        fetch_count: Callable[[], Awaitable[int]],
        on_change: Optional[ChangeCallback] = None,
    ) -> None:
        self.user_id = user_id
        self.event_bus = event_bus
        self.count = 0
        self._fetch_count = fetch_count
        self._on_change = on_change
        self._unsubscribe: Unsubscribe | None = None

    async def refresh(self) -> int:
        self.count = await self._fetch_count()
        await self._changed()
        return self.count

    async def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.event_bus.subscribe(MESSAGES_TOPIC, self.handle_change)
        await self.refresh()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def handle_change(self, change: RowChange) -> None:
        if not change.visible_to(self.user_id):
            return

        if change.event_type == "INSERT":
            if change.new.get("sender_id") != str(self.user_id):
                self.count += 1
                await self._changed()

        elif change.event_type == "UPDATE":
            if change.old.get("read_at") is None and change.new.get("read_at") is not None:
                await self.refresh()

    async def _changed(self) -> None:
        logger.debug("unread_count_changed", user_id=str(self.user_id), count=self.count)
        if self._on_change is not None:
            await _maybe_await(self._on_change(self.count))
