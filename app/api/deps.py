"""
GenBridge SG — Shared API dependencies.

  get_current_user     bearer token → identity provider user (401 otherwise)
  get_user_context     user id + persisted language preference
  require_moderator    403 unless the caller holds admin or moderator
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.profile import Profile
from app.services.exceptions import (
    ConversationError,
    GenBridgeError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
    UpstreamError,
    ValidationError,
)
from app.services.identity import (
    AuthenticatedUser,
    IdentityUnavailableError,
    get_identity_client,
)
from app.services.role_service import MODERATOR_ROLES, RoleService

logger = structlog.get_logger("genbridge.api.deps")

_role_service = RoleService()


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def authenticate_token(token: str | None) -> AuthenticatedUser:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
        )
    try:
        user = await get_identity_client().get_user(token)
    except IdentityUnavailableError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable",
        )
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return user


async def get_current_user(
    authorization: str | None = Header(None),
) -> AuthenticatedUser:
    return await authenticate_token(_bearer_token(authorization))


async def get_current_user_id(
    user: AuthenticatedUser = Depends(get_current_user),
) -> uuid.UUID:
    return user.id


@dataclass(frozen=True)
class UserContext:
    """Per-request view of who is calling and in which language."""

    user_id: uuid.UUID
    language: str = "en"


async def get_user_context(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> UserContext:
    result = await db.execute(
        select(Profile.preferred_language).where(Profile.user_id == user_id)
    )
    language = result.scalar_one_or_none() or "en"
    return UserContext(user_id=user_id, language=language)


async def require_moderator(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> uuid.UUID:
    if not await _role_service.has_any_role(user_id, MODERATOR_ROLES, db):
        logger.warning("moderator_access_denied", user_id=str(user_id))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Moderator access required.",
        )
    return user_id


def http_error(exc: GenBridgeError) -> HTTPException:
    """Translate a domain error into the matching HTTP response."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, RateLimitedError):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(exc),
            headers={
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(exc.reset_in),
            },
        )
    if isinstance(exc, UpstreamError):
        return HTTPException(status_code=exc.status_code, detail=str(exc))
    if isinstance(exc, ConversationError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start conversation",
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc) or "Internal error",
    )
