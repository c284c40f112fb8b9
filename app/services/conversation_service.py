"""
GenBridge SG — Conversations & Messages

Idempotent conversation creation plus the messaging operations behind the
chat view:

  get_or_create_conversation  — one conversation per unordered user pair
  send_message                — validated insert + realtime INSERT event
  mark_read                   — read receipts + realtime UPDATE events
  list_conversations / list_messages / unread_count

The two writers commit the caller's session before publishing, so
subscribers reading from their own sessions see the committed rows and a
failed write broadcasts nothing.

The pair lookup checks both participant orderings before inserting.  The
``uq_conversation_pair`` index turns a lost insert race into an
``IntegrityError``; the winner's row is then re-read and returned.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import async_session_factory
from app.models.conversation import Conversation, Message
from app.models.profile import Profile
from app.services.exceptions import (
    ConversationError,
    GenBridgeError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.services.realtime import EventBus, RowChange, get_event_bus
from app.services.scam_detection_service import detect_scam_patterns
from app.utils.validation import validate_message_content

logger = structlog.get_logger("genbridge.conversation_service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def message_to_dict(message: Message) -> dict[str, Any]:
    return {
        "id": str(message.id),
        "conversation_id": str(message.conversation_id),
        "sender_id": str(message.sender_id),
        "content": message.content,
        "created_at": message.created_at.isoformat() if message.created_at else None,
        "read_at": message.read_at.isoformat() if message.read_at else None,
    }


def _audience(conversation: Conversation) -> frozenset:
    return frozenset({str(conversation.participant_one), str(conversation.participant_two)})


class ConversationService:
    """Conversation store operations.

    Every method accepts the caller's ``AsyncSession``.  ``start_conversation``
    may also be called without one (the swipe session controller outlives the
    request that created it) and then opens its own session.
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        session_factory: Callable[[], Any] = async_session_factory,
    ) -> None:
        self.event_bus = event_bus or get_event_bus()
        self._session_factory = session_factory

    # ══════════════════════════════════════════════════════════════════
    # Idempotent creation
    # ══════════════════════════════════════════════════════════════════

    async def _find_conversation(
        self,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
        db_session: AsyncSession,
    ) -> Conversation | None:
        stmt = select(Conversation).where(
            or_(
                and_(
                    Conversation.participant_one == user_a,
                    Conversation.participant_two == user_b,
                ),
                and_(
                    Conversation.participant_one == user_b,
                    Conversation.participant_two == user_a,
                ),
            )
        ).limit(1)
        result = await db_session.execute(stmt)
        return result.scalars().first()

    async def _insert_conversation(
        self,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
        db_session: AsyncSession,
    ) -> Conversation:
        now = _utcnow()
        conversation = Conversation(
            participant_one=user_a,
            participant_two=user_b,
            created_at=now,
            updated_at=now,
        )
        async with db_session.begin_nested():
            db_session.add(conversation)
            await db_session.flush()
        return conversation

    async def get_or_create_conversation(
        self,
        user_a: uuid.UUID,
        user_b: uuid.UUID,
        db_session: AsyncSession,
    ) -> uuid.UUID:
        """Return the id of the single conversation for ``{user_a, user_b}``.

        Raises
        ------
        ValidationError
            If both ids are the same user.
        ConversationError
            If the store fails.
        """
        if user_a == user_b:
            raise ValidationError("Cannot start a conversation with yourself")

        log = logger.bind(user_a=str(user_a), user_b=str(user_b))

        try:
            existing = await self._find_conversation(user_a, user_b, db_session)
            if existing is not None:
                log.info("conversation_exists", conversation_id=str(existing.id))
                return existing.id

            try:
                conversation = await self._insert_conversation(user_a, user_b, db_session)
            except IntegrityError:
                log.info("conversation_insert_race_lost")
                existing = await self._find_conversation(user_a, user_b, db_session)
                if existing is None:
                    raise ConversationError("Conversation insert conflicted but no row found")
                return existing.id

        except SQLAlchemyError as exc:
            log.error("conversation_store_error", error=str(exc))
            raise ConversationError("Failed to start conversation") from exc

        log.info("conversation_created", conversation_id=str(conversation.id))
        return conversation.id

    async def start_conversation(
        self,
        current_user_id: uuid.UUID,
        target_user_id: uuid.UUID,
        db_session: AsyncSession | None = None,
    ) -> uuid.UUID | None:
        """Like ``get_or_create_conversation`` but never raises.

        Returns ``None`` on failure so the caller can surface a notification
        and stop (no navigation, no celebration).
        """
        try:
            if db_session is not None:
                return await self.get_or_create_conversation(
                    current_user_id, target_user_id, db_session
                )
            async with self._session_factory() as session:
                conversation_id = await self.get_or_create_conversation(
                    current_user_id, target_user_id, session
                )
                await session.commit()
                return conversation_id
        except (GenBridgeError, SQLAlchemyError) as exc:
            logger.warning(
                "start_conversation_failed",
                user_a=str(current_user_id),
                user_b=str(target_user_id),
                error=str(exc),
            )
            return None

    # ══════════════════════════════════════════════════════════════════
    # Messaging
    # ══════════════════════════════════════════════════════════════════

    async def _load_for_participant(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Conversation:
        conversation = await db_session.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found.")
        if not conversation.has_participant(user_id):
            raise PermissionDeniedError("You are not part of this conversation.")
        return conversation

    async def send_message(
        self,
        conversation_id: uuid.UUID,
        sender_id: uuid.UUID,
        content: str,
        db_session: AsyncSession,
    ) -> Message:
        """Insert a message after validating it locally."""
        text = validate_message_content(content)

        conversation = await self._load_for_participant(conversation_id, sender_id, db_session)

        now = _utcnow()
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            content=text,
            created_at=now,
        )
        db_session.add(message)
        conversation.updated_at = now
        await db_session.flush()
        # Subscribers read the row from their own sessions.
        await db_session.commit()

        logger.info(
            "message_sent",
            conversation_id=str(conversation.id),
            sender_id=str(sender_id),
            length=len(text),
        )

        await self._publish([
            RowChange(
                event_type="INSERT",
                table="messages",
                new=message_to_dict(message),
                audience=_audience(conversation),
            )
        ])
        return message

    async def mark_read(
        self,
        conversation_id: uuid.UUID,
        reader_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> int:
        """Stamp ``read_at`` on every unread message from the other side."""
        conversation = await self._load_for_participant(conversation_id, reader_id, db_session)

        now = _utcnow()
        stmt = (
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.sender_id != reader_id,
                Message.read_at.is_(None),
            )
            .values(read_at=now)
            .returning(Message.id, Message.sender_id)
        )
        result = await db_session.execute(stmt)
        rows = result.all()
        if not rows:
            return 0

        await db_session.commit()
        logger.info(
            "messages_marked_read",
            conversation_id=str(conversation_id),
            reader_id=str(reader_id),
            count=len(rows),
        )

        await self._publish([
            RowChange(
                event_type="UPDATE",
                table="messages",
                new={
                    "id": str(message_id),
                    "conversation_id": str(conversation_id),
                    "sender_id": str(sender_id),
                    "read_at": now.isoformat(),
                },
                old={"id": str(message_id), "read_at": None},
                audience=_audience(conversation),
            )
            for message_id, sender_id in rows
        ])
        return len(rows)

    async def _publish(self, changes: list[RowChange]) -> None:
        """Broadcast changes.  Callers commit first."""
        for change in changes:
            await self.event_bus.publish_message_change(change)

    async def list_conversations(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> list[dict[str, Any]]:
        """All conversations for ``user_id``, most recently active first."""
        stmt = (
            select(Conversation)
            .where(
                or_(
                    Conversation.participant_one == user_id,
                    Conversation.participant_two == user_id,
                )
            )
            .order_by(Conversation.updated_at.desc())
        )
        conversations = (await db_session.execute(stmt)).scalars().all()

        items: list[dict[str, Any]] = []
        for convo in conversations:
            other_id = convo.other_participant(user_id)

            profile_row = (
                await db_session.execute(
                    select(Profile.full_name, Profile.avatar_url).where(Profile.user_id == other_id)
                )
            ).first()

            last_row = (
                await db_session.execute(
                    select(Message.content, Message.created_at)
                    .where(Message.conversation_id == convo.id)
                    .order_by(Message.created_at.desc())
                    .limit(1)
                )
            ).first()

            items.append({
                "id": convo.id,
                "other_user_id": other_id,
                "other_user_name": (profile_row.full_name if profile_row else None) or "Anonymous",
                "other_user_avatar": profile_row.avatar_url if profile_row else None,
                "last_message": (
                    {"content": last_row.content, "created_at": last_row.created_at}
                    if last_row else None
                ),
                "updated_at": convo.updated_at,
            })

        return items

    async def list_messages(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> list[dict[str, Any]]:
        """Messages oldest-first, each annotated with a scam warning."""
        await self._load_for_participant(conversation_id, user_id, db_session)

        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc())
        )
        messages = (await db_session.execute(stmt)).scalars().all()

        return [
            {
                "id": m.id,
                "conversation_id": m.conversation_id,
                "sender_id": m.sender_id,
                "content": m.content,
                "created_at": m.created_at,
                "read_at": m.read_at,
                "scam_warning": detect_scam_patterns(m.content).to_dict(),
            }
            for m in messages
        ]

    async def unread_count(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> int:
        """Messages addressed to ``user_id`` that have no read receipt."""
        stmt = (
            select(func.count(Message.id))
            .join(Conversation, Conversation.id == Message.conversation_id)
            .where(
                or_(
                    Conversation.participant_one == user_id,
                    Conversation.participant_two == user_id,
                ),
                Message.sender_id != user_id,
                Message.read_at.is_(None),
            )
        )
        return int((await db_session.execute(stmt)).scalar_one())
