"""
GenBridge SG — Profiles API

Owner profile (lazy creation, updates, language preference), the
rate-limited public browse listing, and single public profiles.
"""

from __future__ import annotations

import uuid
from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import UserContext, get_current_user_id, get_user_context, http_error
from app.database import get_db
from app.schemas.profile import (
    BrowseResponse,
    LanguageUpdate,
    ProfileResponse,
    ProfileUpdate,
    PublicProfile,
)
from app.services.exceptions import GenBridgeError
from app.services.matching_service import MatchingService
from app.services.profile_service import ProfileService, check_browse_rate_limit

logger = structlog.get_logger("genbridge.api.profiles")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_profile_service: ProfileService | None = None


def _get_profile_service() -> ProfileService:
    global _profile_service
    if _profile_service is None:
        _profile_service = ProfileService()
    return _profile_service


# ──────────────────────────────────────────────────────────────────────────────
# GET /me — Caller's own profile (created on first access)
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/me",
    response_model=ProfileResponse,
    summary="Get (or lazily create) the caller's profile",
)
async def get_my_profile(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    service = _get_profile_service()
    profile = await service.get_or_create_profile(user_id, db)
    return service.to_response(profile)


# ──────────────────────────────────────────────────────────────────────────────
# PUT /me — Update the caller's profile
# ──────────────────────────────────────────────────────────────────────────────

@router.put(
    "/me",
    response_model=ProfileResponse,
    summary="Update the caller's profile",
)
async def update_my_profile(
    payload: ProfileUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    log = logger.bind(user_id=str(user_id))
    log.info("update_profile_start", fields=sorted(payload.model_fields_set))

    service = _get_profile_service()
    try:
        profile = await service.update_profile(user_id, payload, db)
    except GenBridgeError as exc:
        log.warning("update_profile_rejected", error=str(exc))
        raise http_error(exc)

    return service.to_response(profile)


# ──────────────────────────────────────────────────────────────────────────────
# PUT /me/language — Persist the language preference
# ──────────────────────────────────────────────────────────────────────────────

@router.put(
    "/me/language",
    summary="Set the caller's preferred language",
)
async def set_my_language(
    payload: LanguageUpdate,
    context: UserContext = Depends(get_user_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    if payload.language != context.language:
        await _get_profile_service().set_language(context.user_id, payload.language, db)
    return {"language": payload.language}


# ──────────────────────────────────────────────────────────────────────────────
# GET /browse — Rate-limited public listing
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/browse",
    response_model=BrowseResponse,
    summary="List public profiles (30 requests/minute)",
)
async def browse_profiles(
    response: Response,
    listing_type: Literal["browse", "matching"] = Query(
        "browse",
        alias="type",
        description="browse: any skills; matching: at least one offered skill",
    ),
    search: Optional[str] = Query(None, max_length=100),
    category: Optional[str] = Query(None, description="Skill category or 'all'"),
    age_group: Optional[str] = Query(None, description="Age group or 'all'"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> BrowseResponse:
    log = logger.bind(user_id=str(user_id), listing_type=listing_type)

    try:
        limit = await check_browse_rate_limit(user_id)
    except GenBridgeError as exc:
        log.warning("browse_rate_limited")
        raise http_error(exc)

    profiles = await _get_profile_service().list_public_profiles(db, kind=listing_type)
    profiles = [p for p in profiles if p.user_id != user_id]
    if search or category or age_group:
        profiles = MatchingService.filter_profiles(profiles, search, category, age_group)

    response.headers.update(limit.headers())
    log.info("browse_profiles", count=len(profiles), remaining=limit.remaining)

    return BrowseResponse(
        profiles=profiles,
        rateLimit={"remaining": limit.remaining, "resetIn": limit.reset_in},
    )


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id} — One public profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}",
    response_model=PublicProfile,
    summary="Get a public profile",
)
async def get_public_profile(
    user_id: uuid.UUID,
    _caller: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> PublicProfile:
    try:
        return await _get_profile_service().get_public_profile(user_id, db)
    except GenBridgeError as exc:
        raise http_error(exc)
