"""
GenBridge SG — Conversations API

Conversation list, idempotent creation, messages (with scam annotations),
sending and read receipts.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id, http_error
from app.database import get_db
from app.schemas.conversation import (
    ConversationCreate,
    ConversationCreated,
    ConversationSummary,
    MessageCreate,
    MessageResponse,
    UnreadCountResponse,
)
from app.services.conversation_service import ConversationService
from app.services.exceptions import GenBridgeError
from app.services.scam_detection_service import detect_scam_patterns

logger = structlog.get_logger("genbridge.api.conversations")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_conversation_service: ConversationService | None = None


def _get_conversation_service() -> ConversationService:
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = ConversationService()
    return _conversation_service


# ──────────────────────────────────────────────────────────────────────────────
# GET / — Caller's conversations, most recent first
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/",
    response_model=list[ConversationSummary],
    summary="List the caller's conversations",
)
async def list_conversations(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    return await _get_conversation_service().list_conversations(user_id, db)


# ──────────────────────────────────────────────────────────────────────────────
# POST / — Get or create the conversation with another user
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/",
    response_model=ConversationCreated,
    summary="Start (or reopen) a conversation with another user",
)
async def start_conversation(
    payload: ConversationCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ConversationCreated:
    log = logger.bind(user_id=str(user_id), other_user_id=str(payload.other_user_id))
    try:
        conversation_id = await _get_conversation_service().get_or_create_conversation(
            user_id, payload.other_user_id, db
        )
    except GenBridgeError as exc:
        log.warning("start_conversation_failed", error=str(exc))
        raise http_error(exc)
    return ConversationCreated(conversation_id=conversation_id)


# ──────────────────────────────────────────────────────────────────────────────
# GET /unread-count
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/unread-count",
    response_model=UnreadCountResponse,
    summary="Number of unread messages addressed to the caller",
)
async def unread_count(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> UnreadCountResponse:
    count = await _get_conversation_service().unread_count(user_id, db)
    return UnreadCountResponse(count=count)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{conversation_id}/messages
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{conversation_id}/messages",
    response_model=list[MessageResponse],
    summary="Messages in a conversation, oldest first",
)
async def list_messages(
    conversation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    try:
        return await _get_conversation_service().list_messages(conversation_id, user_id, db)
    except GenBridgeError as exc:
        raise http_error(exc)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{conversation_id}/messages
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    conversation_id: uuid.UUID,
    payload: MessageCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    content = payload.content if isinstance(payload.content, str) else None
    try:
        message = await _get_conversation_service().send_message(
            conversation_id, user_id, content, db
        )
    except GenBridgeError as exc:
        logger.info(
            "send_message_rejected",
            conversation_id=str(conversation_id),
            user_id=str(user_id),
            error=str(exc),
        )
        raise http_error(exc)

    response = MessageResponse.model_validate(message)
    response.scam_warning = detect_scam_patterns(message.content).to_dict()
    return response


# ──────────────────────────────────────────────────────────────────────────────
# POST /{conversation_id}/read — Read receipts
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{conversation_id}/read",
    summary="Mark the other participant's messages as read",
)
async def mark_read(
    conversation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    try:
        marked = await _get_conversation_service().mark_read(conversation_id, user_id, db)
    except GenBridgeError as exc:
        raise http_error(exc)
    return {"marked": marked}
