"""
GenBridge SG — Domain exceptions raised by services.

Routers translate these into ``HTTPException`` responses; long-lived
components (the swipe session controller) translate them into user-facing
notifications instead.
"""

from __future__ import annotations


class GenBridgeError(Exception):
    """Base class for all domain errors."""


class ValidationError(GenBridgeError):
    """Input rejected before any backend call was made."""


class NotFoundError(GenBridgeError):
    """A referenced row does not exist."""


class PermissionDeniedError(GenBridgeError):
    """The caller is not allowed to touch the referenced row."""


class ConversationError(GenBridgeError):
    """Conversation lookup or creation failed in the store."""


class CandidateFetchError(GenBridgeError):
    """The candidate list could not be fetched."""


class RateLimitedError(GenBridgeError):
    """A fixed-window rate limit has been exhausted."""

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.",
                 reset_in: int = 0, remaining: int = 0) -> None:
        super().__init__(message)
        self.reset_in = reset_in
        self.remaining = remaining


class UpstreamError(GenBridgeError):
    """The AI gateway failed for a reason the caller cannot fix."""

    status_code: int = 500


class UpstreamRateLimitedError(UpstreamError):
    status_code = 429


class UpstreamCreditsExhaustedError(UpstreamError):
    status_code = 402
