"""
GenBridge SG — AI API

  POST /chat       GenBridge assistant, streamed as server-sent events
  POST /translate  one-shot translation of a chat message

Both are per-user rate limited (fixed one-minute windows) before the
gateway is contacted.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Response
from fastapi.responses import StreamingResponse

from app.api.deps import get_current_user_id, http_error
from app.config import get_settings
from app.schemas.ai import ChatRequest, TranslateRequest, TranslateResponse
from app.services.ai_gateway_service import AIGatewayService
from app.services.exceptions import GenBridgeError, RateLimitedError
from app.services.rate_limit_service import RateLimitResult, get_rate_limiter

logger = structlog.get_logger("genbridge.api.ai")

router = APIRouter()

_ai_service: AIGatewayService | None = None


def _get_ai_service() -> AIGatewayService:
    global _ai_service
    if _ai_service is None:
        _ai_service = AIGatewayService()
    return _ai_service


async def _check_limit(scope: str, user_id: uuid.UUID, limit: int) -> RateLimitResult:
    settings = get_settings()
    result = await get_rate_limiter().check(
        scope, user_id, limit, settings.RATE_LIMIT_WINDOW_SECONDS
    )
    if not result.allowed:
        logger.info("ai_rate_limited", scope=scope, user_id=str(user_id))
        raise http_error(
            RateLimitedError(
                "Rate limit exceeded. Please try again in a moment.",
                reset_in=result.reset_in,
            )
        )
    return result


@router.post(
    "/chat",
    summary="Chat with the GenBridge assistant (streamed)",
)
async def chat(
    payload: ChatRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> StreamingResponse:
    limit = await _check_limit("chat", user_id, get_settings().CHAT_RATE_LIMIT)

    try:
        body = await _get_ai_service().stream_chat(payload.messages)
    except GenBridgeError as exc:
        logger.warning("ai_chat_failed", user_id=str(user_id), error=str(exc))
        raise http_error(exc)

    return StreamingResponse(
        body,
        media_type="text/event-stream",
        headers={"X-RateLimit-Remaining": str(limit.remaining)},
    )


@router.post(
    "/translate",
    response_model=TranslateResponse,
    summary="Translate a message",
)
async def translate(
    payload: TranslateRequest,
    response: Response,
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> TranslateResponse:
    limit = await _check_limit("translate", user_id, get_settings().TRANSLATE_RATE_LIMIT)

    try:
        translated = await _get_ai_service().translate(payload.text, payload.targetLanguage)
    except GenBridgeError as exc:
        logger.warning("ai_translate_failed", user_id=str(user_id), error=str(exc))
        raise http_error(exc)

    response.headers["X-RateLimit-Remaining"] = str(limit.remaining)
    return TranslateResponse(translatedText=translated)
