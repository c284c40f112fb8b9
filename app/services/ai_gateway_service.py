"""
GenBridge SG — AI Gateway Service

Thin client for the OpenAI-compatible chat-completions gateway that powers
two features:

  * the GenBridge assistant chat (streamed SSE passthrough)
  * one-shot message translation

Requests are validated locally first; nothing invalid reaches the gateway.
Transport-level failures (connect errors, timeouts) are retried with
exponential backoff via tenacity.  HTTP error statuses are never retried and
map onto the domain taxonomy:

    429 → UpstreamRateLimitedError       ("try again in a moment")
    402 → UpstreamCreditsExhaustedError  ("contact support")
    *   → UpstreamError                  (500)
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Sequence

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import get_settings
from app.services.exceptions import (
    UpstreamCreditsExhaustedError,
    UpstreamError,
    UpstreamRateLimitedError,
    ValidationError,
)

logger = structlog.get_logger("genbridge.ai_gateway")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

MAX_CHAT_MESSAGE_LENGTH = 2000
MAX_CHAT_MESSAGES = 50
VALID_ROLES: tuple[str, ...] = ("user", "assistant", "system")

MAX_TRANSLATE_LENGTH = 5000
VALID_LANGUAGES: tuple[str, ...] = (
    "en", "zh", "ms", "ta", "English", "Chinese", "Malay", "Tamil",
)

SYSTEM_PROMPT = """You are GenBridge AI, a friendly and helpful assistant for a skill exchange marketplace in Singapore. Your role is to:

1. Help users find skill matches - explain how the matching system works (users are matched when their offered skills align with others' wanted skills and vice versa)
2. Answer questions about skill swapping - explain the concept of exchanging skills with others in the community
3. Provide tips for creating an attractive profile - suggest adding detailed skills, a bio, and location
4. Guide users on how to start conversations with matches
5. Explain what "Perfect Matches" are - when both users can teach what the other wants to learn

Be warm, encouraging, and supportive. Use simple language suitable for all ages (the platform serves both young adults and elderly users). Keep responses concise but helpful. If asked about specific user data or matches, explain that you can provide general guidance but users should check their dashboard for personal match information.

Important context:
- This is a skill exchange platform, not a dating app (though it uses similar matching mechanics)
- Users can offer skills they can teach and list skills they want to learn
- Matches are found based on skill compatibility
- The platform is designed for the Singapore community"""

TRANSLATE_PROMPT = (
    "You are a translator. Translate the given text to {language}. "
    "Only output the translation, nothing else. "
    "Keep the tone and style of the original message."
)

_RETRY_ATTEMPTS = 3


# ──────────────────────────────────────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────────────────────────────────────

def validate_chat_messages(messages: Any) -> list[dict[str, str]]:
    if not isinstance(messages, (list, tuple)):
        raise ValidationError("Messages must be an array")
    if not messages:
        raise ValidationError("Messages array cannot be empty")
    if len(messages) > MAX_CHAT_MESSAGES:
        raise ValidationError(f"Too many messages. Maximum allowed: {MAX_CHAT_MESSAGES}")

    validated: list[dict[str, str]] = []
    for i, message in enumerate(messages):
        if not isinstance(message, dict):
            raise ValidationError(f"Message at index {i} must be an object")
        role = message.get("role")
        content = message.get("content")
        if role not in VALID_ROLES:
            raise ValidationError(
                f"Invalid role at index {i}. Must be one of: {', '.join(VALID_ROLES)}"
            )
        if not isinstance(content, str):
            raise ValidationError(f"Content at index {i} must be a string")
        if len(content) > MAX_CHAT_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message at index {i} exceeds maximum length of "
                f"{MAX_CHAT_MESSAGE_LENGTH} characters"
            )
        validated.append({"role": role, "content": content})
    return validated


def validate_translation(text: Any, target_language: Any) -> tuple[str, str]:
    if not isinstance(text, str):
        raise ValidationError("Text must be a string")
    if not text.strip():
        raise ValidationError("Text cannot be empty")
    if len(text) > MAX_TRANSLATE_LENGTH:
        raise ValidationError(
            f"Text exceeds maximum length of {MAX_TRANSLATE_LENGTH} characters"
        )
    if target_language not in VALID_LANGUAGES:
        raise ValidationError(
            f"Invalid target language. Must be one of: {', '.join(VALID_LANGUAGES)}"
        )
    return text.strip(), target_language


def _map_status(status_code: int, body: str) -> UpstreamError:
    if status_code == 429:
        return UpstreamRateLimitedError("Rate limit exceeded. Please try again in a moment.")
    if status_code == 402:
        return UpstreamCreditsExhaustedError("AI credits exhausted. Please contact support.")
    logger.error("ai_gateway_error", status_code=status_code, body=body[:500])
    return UpstreamError("Failed to get AI response")


# ──────────────────────────────────────────────────────────────────────────────
# Service
# ──────────────────────────────────────────────────────────────────────────────

class AIGatewayService:
    """Chat and translation calls against the configured gateway.

    ``transport`` and ``retry_wait`` exist so tests can plug in an
    ``httpx.MockTransport`` and a zero wait.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_wait: Any = None,
    ) -> None:
        settings = get_settings()
        self.url = settings.AI_GATEWAY_URL
        self.api_key = settings.AI_GATEWAY_API_KEY
        self.model = settings.AI_MODEL
        self.timeout = settings.AI_TIMEOUT_SECONDS
        self._transport = transport
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=4)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise UpstreamError("AI_GATEWAY_API_KEY is not configured")
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _send(
        self,
        client: httpx.AsyncClient,
        payload: dict[str, Any],
        stream: bool = False,
    ) -> httpx.Response:
        """POST ``payload``, retrying transport errors only."""
        headers = self._headers()
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(httpx.TransportError),
                stop=stop_after_attempt(_RETRY_ATTEMPTS),
                wait=self._retry_wait,
                reraise=True,
            ):
                with attempt:
                    logger.debug(
                        "ai_gateway_attempt",
                        attempt_number=attempt.retry_state.attempt_number,
                        stream=stream,
                    )
                    request = client.build_request("POST", self.url, json=payload, headers=headers)
                    return await client.send(request, stream=stream)
        except httpx.TransportError as exc:
            logger.error("ai_gateway_unreachable", error=str(exc))
            raise UpstreamError("Failed to get AI response") from exc
        raise UpstreamError("Failed to get AI response")  # pragma: no cover

    async def stream_chat(self, messages: Sequence[dict]) -> AsyncIterator[bytes]:
        """Validate, call the gateway with ``stream=True`` and return the body.

        Upstream errors are raised here, before any byte is streamed, so the
        caller can still answer with a proper status code.
        """
        validated = validate_chat_messages(messages)
        payload = {
            "model": self.model,
            "messages": [{"role": "system", "content": SYSTEM_PROMPT}, *validated],
            "stream": True,
        }

        client = self._client()
        try:
            response = await self._send(client, payload, stream=True)
        except Exception:
            await client.aclose()
            raise

        if response.status_code != 200:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            await client.aclose()
            raise _map_status(response.status_code, body)

        logger.info("ai_chat_stream_started", message_count=len(validated))

        async def _body() -> AsyncIterator[bytes]:
            try:
                async for chunk in response.aiter_bytes():
                    yield chunk
            finally:
                await response.aclose()
                await client.aclose()

        return _body()

    async def translate(self, text: str, target_language: str) -> str:
        """Translate ``text`` into ``target_language``; returns the translation."""
        clean_text, language = validate_translation(text, target_language)
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": TRANSLATE_PROMPT.format(language=language)},
                {"role": "user", "content": clean_text},
            ],
        }

        async with self._client() as client:
            response = await self._send(client, payload)
            if response.status_code != 200:
                raise _map_status(response.status_code, response.text)
            data = response.json()

        try:
            translated = data["choices"][0]["message"]["content"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            logger.error("ai_translate_bad_payload", error=str(exc))
            raise UpstreamError("Failed to translate") from exc

        logger.info(
            "ai_translation_complete",
            target_language=language,
            input_length=len(clean_text),
        )
        return translated
