"""
GenBridge SG — Profile Service

Owner-side profile operations (lazy creation, updates, language preference)
and the public, non-sensitive aggregate the matching engine consumes.

Public listing kinds:

  browse    profiles with at least one skill in either list
  matching  profiles with at least one offered skill

Phone numbers are stored Fernet-encrypted and only ever decrypted for the
owner's own view.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Literal

import structlog
from cryptography.fernet import InvalidToken
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import async_session_factory
from app.models.profile import Profile
from app.schemas.profile import (
    ProfileResponse,
    ProfileUpdate,
    PublicProfile,
    normalize_skills,
    prune_proficiency,
)
from app.services.exceptions import (
    CandidateFetchError,
    NotFoundError,
    RateLimitedError,
    ValidationError,
)
from app.services.rate_limit_service import RateLimiter, RateLimitResult, get_rate_limiter
from app.utils.encryption import decrypt_phone_number, encrypt_phone_number

logger = structlog.get_logger("genbridge.profile_service")

ListingKind = Literal["browse", "matching"]

BROWSE_SCOPE = "browse"


class ProfileService:
    """Profile reads and writes against the ``profiles`` table."""

    # ── Completeness ──────────────────────────────────────────────────────

    @staticmethod
    def is_complete(profile: Profile) -> bool:
        """Onboarding is done once name, both skill lists and the
        questionnaire answer are present."""
        return bool(
            (profile.full_name or "").strip()
            and normalize_skills(profile.skills_offered)
            and normalize_skills(profile.skills_wanted)
            and (profile.joining_reason or "").strip()
        )

    # ── Owner operations ──────────────────────────────────────────────────

    async def get_profile(self, user_id: uuid.UUID, db_session: AsyncSession) -> Profile | None:
        result = await db_session.execute(select(Profile).where(Profile.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_or_create_profile(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        full_name: str | None = None,
    ) -> Profile:
        """Return the caller's profile, creating an empty one on first access."""
        profile = await self.get_profile(user_id, db_session)
        if profile is not None:
            return profile

        profile = Profile(
            user_id=user_id,
            full_name=full_name,
            skills_offered=[],
            skills_wanted=[],
            skills_proficiency={},
            credibility_score=0,
            credits=0,
            preferred_language="en",
            created_at=datetime.now(timezone.utc),
        )
        db_session.add(profile)
        await db_session.flush()
        logger.info("profile_created", user_id=str(user_id))
        return profile

    def to_response(self, profile: Profile) -> ProfileResponse:
        phone_number = None
        if profile.phone_number_encrypted:
            try:
                phone_number = decrypt_phone_number(profile.phone_number_encrypted)
            except (InvalidToken, RuntimeError) as exc:
                logger.warning(
                    "phone_number_decrypt_failed",
                    user_id=str(profile.user_id),
                    error=type(exc).__name__,
                )

        public = PublicProfile.model_validate(profile)
        return ProfileResponse(
            **public.model_dump(),
            id=profile.id,
            credits=max(0, profile.credits or 0),
            phone_number=phone_number,
            preferred_language=profile.preferred_language or "en",
            is_complete=self.is_complete(profile),
            created_at=profile.created_at,
        )

    async def update_profile(
        self,
        user_id: uuid.UUID,
        payload: ProfileUpdate,
        db_session: AsyncSession,
    ) -> Profile:
        """Apply the fields present in ``payload``.

        The proficiency map is re-pruned against the resulting offered list
        so removing a skill also drops its level.
        """
        profile = await self.get_or_create_profile(user_id, db_session)
        changes: dict[str, Any] = payload.model_dump(exclude_unset=True)

        if "phone_number" in changes:
            phone = changes.pop("phone_number")
            try:
                profile.phone_number_encrypted = encrypt_phone_number(phone) if phone else None
            except RuntimeError as exc:
                logger.error("phone_number_encrypt_failed", user_id=str(user_id), error=str(exc))
                raise ValidationError("Phone numbers cannot be stored right now") from exc

        for field_name, value in changes.items():
            if field_name in ("skills_offered", "skills_wanted") and value is None:
                value = []
            setattr(profile, field_name, value)

        profile.skills_proficiency = prune_proficiency(
            profile.skills_proficiency, normalize_skills(profile.skills_offered)
        )
        profile.updated_at = datetime.now(timezone.utc)
        await db_session.flush()

        logger.info(
            "profile_updated",
            user_id=str(user_id),
            fields=sorted(payload.model_fields_set),
        )
        return profile

    async def set_language(
        self,
        user_id: uuid.UUID,
        language: str,
        db_session: AsyncSession,
    ) -> Profile:
        profile = await self.get_or_create_profile(user_id, db_session)
        profile.preferred_language = language
        profile.updated_at = datetime.now(timezone.utc)
        await db_session.flush()
        logger.info("language_updated", user_id=str(user_id), language=language)
        return profile

    # ── Public aggregate ──────────────────────────────────────────────────

    async def list_public_profiles(
        self,
        db_session: AsyncSession,
        kind: ListingKind = "browse",
    ) -> list[PublicProfile]:
        """All public profiles of the requested listing kind."""
        stmt = select(Profile).order_by(Profile.created_at.desc())
        if kind == "matching":
            stmt = stmt.where(func.cardinality(Profile.skills_offered) > 0)
        else:
            stmt = stmt.where(
                or_(
                    func.cardinality(Profile.skills_offered) > 0,
                    func.cardinality(Profile.skills_wanted) > 0,
                )
            )

        rows = (await db_session.execute(stmt)).scalars().all()
        profiles = [PublicProfile.model_validate(row) for row in rows]

        # Rows holding only blank skills pass the SQL filter; drop them here.
        if kind == "matching":
            return [p for p in profiles if p.skills_offered]
        return [p for p in profiles if p.has_skills]

    async def get_public_profile(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> PublicProfile:
        profile = await self.get_profile(user_id, db_session)
        if profile is None:
            raise NotFoundError(f"Profile for user {user_id} not found.")
        return PublicProfile.model_validate(profile)


async def check_browse_rate_limit(
    user_id: uuid.UUID,
    limiter: RateLimiter | None = None,
) -> RateLimitResult:
    """Count one candidate fetch against the caller's browse window.

    Raises ``RateLimitedError`` when the window is exhausted.
    """
    settings = get_settings()
    limiter = limiter or get_rate_limiter()
    result = await limiter.check(
        BROWSE_SCOPE,
        user_id,
        settings.BROWSE_RATE_LIMIT,
        settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    if not result.allowed:
        raise RateLimitedError(reset_in=result.reset_in, remaining=0)
    return result


class ProfileCandidateSource:
    """Candidate fetch for a swipe session.

    Shares the browse rate-limit window with ``GET /profiles/browse`` and
    opens its own database session, since the swipe session outlives the
    request that created it.
    """

    def __init__(
        self,
        user_id: uuid.UUID,
        profile_service: ProfileService | None = None,
        limiter: RateLimiter | None = None,
        session_factory: Callable[[], Any] = async_session_factory,
    ) -> None:
        self.user_id = user_id
        self.profile_service = profile_service or ProfileService()
        self._limiter = limiter
        self._session_factory = session_factory

    async def __call__(self) -> list[PublicProfile]:
        await check_browse_rate_limit(self.user_id, self._limiter)
        try:
            async with self._session_factory() as session:
                return await self.profile_service.list_public_profiles(session, kind="browse")
        except Exception as exc:
            logger.error("candidate_fetch_failed", user_id=str(self.user_id), error=str(exc))
            raise CandidateFetchError("Failed to load profiles") from exc
