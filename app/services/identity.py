"""
GenBridge SG — Identity provider client.

Resolves a bearer token to the signed-in user by calling the provider's
``GET {AUTH_URL}/user`` endpoint.  Any non-200 answer means the token is not
valid; transport failures surface as ``IdentityUnavailableError``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import httpx
import structlog

from app.config import get_settings
from app.services.exceptions import GenBridgeError

logger = structlog.get_logger("genbridge.identity")


class IdentityUnavailableError(GenBridgeError):
    """The identity provider could not be reached."""


@dataclass(frozen=True)
class AuthenticatedUser:
    id: uuid.UUID
    email: str | None = None


class IdentityClient:

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        settings = get_settings()
        self.base_url = settings.AUTH_URL.rstrip("/")
        self.api_key = settings.AUTH_API_KEY
        self._transport = transport

    async def get_user(self, token: str) -> AuthenticatedUser | None:
        """Return the token's user, or ``None`` when the token is rejected."""
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.get(f"{self.base_url}/user", headers=headers)
        except httpx.TransportError as exc:
            logger.error("identity_unreachable", error=str(exc))
            raise IdentityUnavailableError("Identity provider unavailable") from exc

        if response.status_code != 200:
            logger.info("identity_token_rejected", status_code=response.status_code)
            return None

        data = response.json()
        try:
            user_id = uuid.UUID(str(data["id"]))
        except (KeyError, ValueError, TypeError):
            logger.warning("identity_bad_payload")
            return None
        return AuthenticatedUser(id=user_id, email=data.get("email"))


_identity_client: IdentityClient | None = None


def get_identity_client() -> IdentityClient:
    global _identity_client
    if _identity_client is None:
        _identity_client = IdentityClient()
    return _identity_client
