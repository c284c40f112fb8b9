"""Unit tests for the realtime consumers: MessageThread and UnreadCounter."""
import uuid
from unittest.mock import AsyncMock

import pytest

from app.services.message_thread import MessageThread, UnreadCounter
from app.services.realtime import RowChange


def insert(conversation_id, sender_id, content="hello", audience=()):
    return RowChange(
        event_type="INSERT",
        table="messages",
        new={
            "id": str(uuid.uuid4()),
            "conversation_id": str(conversation_id),
            "sender_id": str(sender_id),
            "content": content,
            "read_at": None,
        },
        audience=frozenset(str(a) for a in audience),
    )


def read_receipt(message_id, conversation_id, audience=()):
    return RowChange(
        event_type="UPDATE",
        table="messages",
        new={"id": message_id, "conversation_id": str(conversation_id), "read_at": "2026-01-01T00:00:00+00:00"},
        old={"id": message_id, "read_at": None},
        audience=frozenset(str(a) for a in audience),
    )


class TestMessageThread:

    @pytest.mark.asyncio
    async def test_appends_and_requests_read_receipt(self, event_bus, sample_user_id, sample_user_id_b):
        conversation_id = uuid.uuid4()
        on_read = AsyncMock()
        thread = MessageThread(conversation_id, sample_user_id, event_bus, on_read_receipt=on_read)
        thread.start()

        await event_bus.publish_message_change(insert(conversation_id, sample_user_id_b, "Send money via PayPal"))

        assert len(thread.messages) == 1
        assert thread.messages[0]["scam_warning"]["isScammy"] is True
        on_read.assert_awaited_once_with(conversation_id)

    @pytest.mark.asyncio
    async def test_own_message_not_marked_read(self, event_bus, sample_user_id):
        conversation_id = uuid.uuid4()
        on_read = AsyncMock()
        thread = MessageThread(conversation_id, sample_user_id, event_bus, on_read_receipt=on_read)
        thread.start()
        await event_bus.publish_message_change(insert(conversation_id, sample_user_id))
        assert len(thread.messages) == 1
        on_read.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_insert_ignored(self, event_bus, sample_user_id, sample_user_id_b):
        conversation_id = uuid.uuid4()
        thread = MessageThread(conversation_id, sample_user_id, event_bus)
        change = insert(conversation_id, sample_user_id_b)
        thread.load([change.new])
        thread.start()
        await event_bus.publish_message_change(change)
        assert len(thread.messages) == 1

    @pytest.mark.asyncio
    async def test_update_sets_read_at(self, event_bus, sample_user_id, sample_user_id_b):
        conversation_id = uuid.uuid4()
        thread = MessageThread(conversation_id, sample_user_id_b, event_bus)
        change = insert(conversation_id, sample_user_id_b)
        thread.load([change.new])
        thread.start()
        await event_bus.publish_message_change(read_receipt(change.new["id"], conversation_id))
        assert thread.messages[0]["read_at"] is not None

    @pytest.mark.asyncio
    async def test_other_conversation_and_stop(self, event_bus, sample_user_id, sample_user_id_b):
        conversation_id = uuid.uuid4()
        thread = MessageThread(conversation_id, sample_user_id, event_bus)
        thread.start()
        await event_bus.publish_message_change(insert(uuid.uuid4(), sample_user_id_b))
        assert thread.messages == []

        thread.stop()
        assert not thread.active
        await event_bus.publish_message_change(insert(conversation_id, sample_user_id_b))
        assert thread.messages == []


class TestUnreadCounter:

    @pytest.mark.asyncio
    async def test_start_fetches_initial_count(self, event_bus, sample_user_id):
        pushed = []
        counter = UnreadCounter(sample_user_id, event_bus, AsyncMock(return_value=3), pushed.append)
        await counter.start()
        assert counter.count == 3
        assert pushed == [3]

    @pytest.mark.asyncio
    async def test_increments_for_visible_insert_from_others(self, event_bus, sample_user_id, sample_user_id_b):
        counter = UnreadCounter(sample_user_id, event_bus, AsyncMock(return_value=0))
        await counter.start()
        audience = (sample_user_id, sample_user_id_b)

        await event_bus.publish_message_change(insert(uuid.uuid4(), sample_user_id_b, audience=audience))
        await event_bus.publish_message_change(insert(uuid.uuid4(), sample_user_id, audience=audience))
        assert counter.count == 1

    @pytest.mark.asyncio
    async def test_ignores_changes_for_other_users(self, event_bus, sample_user_id, sample_user_id_b):
        counter = UnreadCounter(sample_user_id, event_bus, AsyncMock(return_value=0))
        await counter.start()
        strangers = (uuid.uuid4(), sample_user_id_b)
        await event_bus.publish_message_change(insert(uuid.uuid4(), sample_user_id_b, audience=strangers))
        assert counter.count == 0

    @pytest.mark.asyncio
    async def test_read_receipt_refetches(self, event_bus, sample_user_id):
        fetch = AsyncMock(side_effect=[5, 2])
        counter = UnreadCounter(sample_user_id, event_bus, fetch)
        await counter.start()
        await event_bus.publish_message_change(read_receipt(str(uuid.uuid4()), uuid.uuid4()))
        assert counter.count == 2
        assert fetch.await_count == 2
