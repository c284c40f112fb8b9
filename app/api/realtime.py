"""
GenBridge SG — Realtime WebSocket feed.

``/realtime/ws?token=<bearer>`` pushes:

  {"type": "unread_count", "count": n}
  {"type": "messages", "conversation_id": ..., "messages": [...]}  (on select)
  {"type": "message", "message": {...}}                             (live insert)

The client selects a conversation with
``{"type": "select_conversation", "conversation_id": "..."}``.  Messages from
the other participant in the selected conversation are marked read as they
arrive.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from app.api.deps import authenticate_token
from app.database import async_session_factory
from app.services.conversation_service import ConversationService
from app.services.exceptions import GenBridgeError
from app.services.message_thread import MessageThread, UnreadCounter
from app.services.realtime import get_event_bus

logger = structlog.get_logger("genbridge.api.realtime")

router = APIRouter()

_conversation_service: ConversationService | None = None


def _get_conversation_service() -> ConversationService:
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = ConversationService()
    return _conversation_service


class RealtimeConnection:
    """State for one connected client."""

    def __init__(self, websocket: WebSocket, user_id: uuid.UUID) -> None:
        self.websocket = websocket
        self.user_id = user_id
        self.service = _get_conversation_service()
        self.bus = get_event_bus()
        self.thread: MessageThread | None = None
        self.unread = UnreadCounter(
            user_id,
            self.bus,
            fetch_count=self._fetch_unread_count,
            on_change=self._push_unread,
        )

    async def _send(self, payload: dict[str, Any]) -> None:
        await self.websocket.send_json(jsonable_encoder(payload))

    async def _fetch_unread_count(self) -> int:
        async with async_session_factory() as session:
            return await self.service.unread_count(self.user_id, session)

    async def _push_unread(self, count: int) -> None:
        await self._send({"type": "unread_count", "count": count})

    async def _push_message(self, message: dict) -> None:
        await self._send({"type": "message", "message": message})

    async def _mark_read(self, conversation_id: uuid.UUID) -> None:
        async with async_session_factory() as session:
            await self.service.mark_read(conversation_id, self.user_id, session)
            await session.commit()

    async def select_conversation(self, conversation_id: uuid.UUID) -> None:
        self.close_thread()

        async with async_session_factory() as session:
            messages = await self.service.list_messages(conversation_id, self.user_id, session)
            await self.service.mark_read(conversation_id, self.user_id, session)
            await session.commit()

        thread = MessageThread(
            conversation_id,
            self.user_id,
            self.bus,
            on_read_receipt=self._mark_read,
            on_message=self._push_message,
        )
        thread.load(
            {**m, "id": str(m["id"]), "conversation_id": str(m["conversation_id"]),
             "sender_id": str(m["sender_id"])}
            for m in messages
        )
        thread.start()
        self.thread = thread

        await self._send({
            "type": "messages",
            "conversation_id": str(conversation_id),
            "messages": thread.messages,
        })

    def close_thread(self) -> None:
        if self.thread is not None:
            self.thread.stop()
            self.thread = None

    def close(self) -> None:
        self.close_thread()
        self.unread.stop()


@router.websocket("/ws")
async def realtime_ws(websocket: WebSocket) -> None:
    token = websocket.query_params.get("token")
    try:
        user = await authenticate_token(token)
    except HTTPException as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc.detail))
        return

    await websocket.accept()
    log = logger.bind(user_id=str(user.id))
    log.info("realtime_connected")

    connection = RealtimeConnection(websocket, user.id)
    try:
        await connection.unread.start()
        while True:
            data = await websocket.receive_json()
            kind = data.get("type") if isinstance(data, dict) else None

            if kind == "select_conversation":
                try:
                    conversation_id = uuid.UUID(str(data.get("conversation_id")))
                    await connection.select_conversation(conversation_id)
                except (ValueError, GenBridgeError) as exc:
                    await connection._send({"type": "error", "message": str(exc)})
            elif kind == "leave_conversation":
                connection.close_thread()
            else:
                await connection._send({"type": "error", "message": "Unknown message type"})
    except WebSocketDisconnect:
        log.info("realtime_disconnected")
    finally:
        connection.close()
