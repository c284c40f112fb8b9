"""
GenBridge SG — Client-input validation helpers.

Everything here runs before any database or network call; a failure raises
``ValidationError`` and nothing is sent to the backend.
"""

from __future__ import annotations

from app.services.exceptions import ValidationError

MAX_MESSAGE_LENGTH = 5000
MAX_REPORT_WORDS = 200


def validate_message_content(content: str | None) -> str:
    """Return the trimmed message, or raise if empty / longer than 5000."""
    trimmed = (content or "").strip()
    if not trimmed:
        raise ValidationError("Message cannot be empty")
    if len(trimmed) > MAX_MESSAGE_LENGTH:
        raise ValidationError("Message too long")
    return trimmed


def count_words(text: str) -> int:
    return len(text.split())


def validate_report_description(description: str | None) -> str:
    """Return the trimmed description, or raise if empty / over 200 words."""
    trimmed = (description or "").strip()
    if not trimmed:
        raise ValidationError("Please describe what happened")
    if count_words(trimmed) > MAX_REPORT_WORDS:
        raise ValidationError(f"Description must be {MAX_REPORT_WORDS} words or less")
    return trimmed
