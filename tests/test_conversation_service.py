"""Unit tests for ConversationService — idempotent creation and messaging."""
import uuid
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.models.conversation import Conversation
from app.services.conversation_service import ConversationService
from app.services.exceptions import (
    ConversationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.services.realtime import MESSAGES_TOPIC


@pytest.fixture
def service(event_bus):
    return ConversationService(event_bus=event_bus)


@pytest.fixture
def conversation(sample_user_id, sample_user_id_b):
    return Conversation(
        id=uuid.uuid4(),
        participant_one=sample_user_id,
        participant_two=sample_user_id_b,
    )


@pytest.fixture
def published(event_bus):
    changes = []
    event_bus.subscribe(MESSAGES_TOPIC, changes.append)
    return changes


class TestGetOrCreateConversation:

    @pytest.mark.asyncio
    async def test_rejects_self_conversation(self, service, mock_db, sample_user_id):
        with pytest.raises(ValidationError):
            await service.get_or_create_conversation(sample_user_id, sample_user_id, mock_db)
        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_returns_existing_in_either_order(self, service, mock_db, conversation,
                                                    sample_user_id, sample_user_id_b):
        with patch.object(service, "_find_conversation", AsyncMock(return_value=conversation)), \
             patch.object(service, "_insert_conversation", AsyncMock()) as insert:
            first = await service.get_or_create_conversation(sample_user_id, sample_user_id_b, mock_db)
            second = await service.get_or_create_conversation(sample_user_id_b, sample_user_id, mock_db)
        assert first == second == conversation.id
        insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inserts_when_missing(self, service, mock_db, conversation,
                                        sample_user_id, sample_user_id_b):
        with patch.object(service, "_find_conversation", AsyncMock(return_value=None)), \
             patch.object(service, "_insert_conversation", AsyncMock(return_value=conversation)):
            result = await service.get_or_create_conversation(sample_user_id, sample_user_id_b, mock_db)
        assert result == conversation.id

    @pytest.mark.asyncio
    async def test_lost_insert_race_rereads_winner(self, service, mock_db, conversation,
                                                   sample_user_id, sample_user_id_b):
        duplicate = IntegrityError("INSERT", {}, Exception("uq_conversation_pair"))
        find = AsyncMock(side_effect=[None, conversation])
        with patch.object(service, "_find_conversation", find), \
             patch.object(service, "_insert_conversation", AsyncMock(side_effect=duplicate)):
            result = await service.get_or_create_conversation(sample_user_id, sample_user_id_b, mock_db)
        assert result == conversation.id
        assert find.await_count == 2

    @pytest.mark.asyncio
    async def test_store_failure_raises_conversation_error(self, service, mock_db,
                                                           sample_user_id, sample_user_id_b):
        failure = OperationalError("SELECT", {}, Exception("connection lost"))
        with patch.object(service, "_find_conversation", AsyncMock(side_effect=failure)):
            with pytest.raises(ConversationError):
                await service.get_or_create_conversation(sample_user_id, sample_user_id_b, mock_db)


class TestStartConversation:

    @pytest.mark.asyncio
    async def test_returns_none_on_failure(self, service, mock_db, sample_user_id):
        assert await service.start_conversation(sample_user_id, sample_user_id, mock_db) is None

    @pytest.mark.asyncio
    async def test_opens_and_commits_own_session(self, event_bus, conversation,
                                                 sample_user_id, sample_user_id_b):
        session = AsyncMock()

        @asynccontextmanager
        async def factory():
            yield session

        service = ConversationService(event_bus=event_bus, session_factory=factory)
        with patch.object(service, "_find_conversation", AsyncMock(return_value=conversation)):
            result = await service.start_conversation(sample_user_id, sample_user_id_b)
        assert result == conversation.id
        session.commit.assert_awaited_once()


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_accepts_5000_chars(self, service, mock_db, conversation, sample_user_id, published):
        mock_db.get.return_value = conversation
        message = await service.send_message(conversation.id, sample_user_id, "a" * 5000, mock_db)
        assert len(message.content) == 5000
        mock_db.flush.assert_awaited()
        assert len(published) == 1
        assert published[0].event_type == "INSERT"
        assert published[0].visible_to(sample_user_id)
        assert not published[0].visible_to(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_commits_before_publishing(self, service, mock_db, conversation,
                                             sample_user_id, event_bus):
        mock_db.get.return_value = conversation
        committed_at_publish = []
        event_bus.subscribe(
            MESSAGES_TOPIC,
            lambda change: committed_at_publish.append(mock_db.commit.await_count),
        )
        await service.send_message(conversation.id, sample_user_id, "hello", mock_db)
        assert committed_at_publish == [1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing_step", ["flush", "commit"])
    async def test_failed_write_publishes_nothing(self, service, mock_db, conversation,
                                                  sample_user_id, published, failing_step):
        mock_db.get.return_value = conversation
        getattr(mock_db, failing_step).side_effect = OperationalError("stmt", {}, Exception("down"))
        with pytest.raises(OperationalError):
            await service.send_message(conversation.id, sample_user_id, "hello", mock_db)
        assert published == []

    @pytest.mark.asyncio
    async def test_rejects_5001_chars_before_db(self, service, mock_db, conversation, sample_user_id):
        with pytest.raises(ValidationError, match="Message too long"):
            await service.send_message(conversation.id, sample_user_id, "a" * 5001, mock_db)
        mock_db.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_whitespace(self, service, mock_db, conversation, sample_user_id):
        with pytest.raises(ValidationError, match="Message cannot be empty"):
            await service.send_message(conversation.id, sample_user_id, "   \n", mock_db)
        mock_db.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_trims_content(self, service, mock_db, conversation, sample_user_id):
        mock_db.get.return_value = conversation
        message = await service.send_message(conversation.id, sample_user_id, "  hello  ", mock_db)
        assert message.content == "hello"

    @pytest.mark.asyncio
    async def test_non_participant_denied(self, service, mock_db, conversation):
        mock_db.get.return_value = conversation
        with pytest.raises(PermissionDeniedError):
            await service.send_message(conversation.id, uuid.uuid4(), "hi", mock_db)

    @pytest.mark.asyncio
    async def test_missing_conversation(self, service, mock_db, sample_user_id):
        mock_db.get.return_value = None
        with pytest.raises(NotFoundError):
            await service.send_message(uuid.uuid4(), sample_user_id, "hi", mock_db)


class TestMarkRead:

    @pytest.mark.asyncio
    async def test_publishes_update_per_row(self, service, mock_db, conversation,
                                            sample_user_id, sample_user_id_b, published):
        mock_db.get.return_value = conversation
        rows = [(uuid.uuid4(), sample_user_id_b), (uuid.uuid4(), sample_user_id_b)]
        result = MagicMock()
        result.all.return_value = rows
        mock_db.execute.return_value = result

        count = await service.mark_read(conversation.id, sample_user_id, mock_db)

        assert count == 2
        assert [c.event_type for c in published] == ["UPDATE", "UPDATE"]
        assert all(c.old["read_at"] is None and c.new["read_at"] for c in published)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_commit_publishes_nothing(self, service, mock_db, conversation,
                                                   sample_user_id, sample_user_id_b, published):
        mock_db.get.return_value = conversation
        result = MagicMock()
        result.all.return_value = [(uuid.uuid4(), sample_user_id_b)]
        mock_db.execute.return_value = result
        mock_db.commit.side_effect = OperationalError("stmt", {}, Exception("down"))

        with pytest.raises(OperationalError):
            await service.mark_read(conversation.id, sample_user_id, mock_db)
        assert published == []

    @pytest.mark.asyncio
    async def test_nothing_unread(self, service, mock_db, conversation, sample_user_id, published):
        mock_db.get.return_value = conversation
        result = MagicMock()
        result.all.return_value = []
        mock_db.execute.return_value = result
        assert await service.mark_read(conversation.id, sample_user_id, mock_db) == 0
        assert published == []
        mock_db.commit.assert_not_awaited()
