"""
GenBridge SG — Role lookups (``has_role``).
"""

from __future__ import annotations

import uuid
from typing import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.role import UserRole

logger = structlog.get_logger("genbridge.role_service")

ROLES: tuple[str, ...] = ("admin", "moderator", "user")
MODERATOR_ROLES: tuple[str, ...] = ("admin", "moderator")


class RoleService:

    async def has_role(self, user_id: uuid.UUID, role: str, db_session: AsyncSession) -> bool:
        return await self.has_any_role(user_id, (role,), db_session)

    async def has_any_role(
        self,
        user_id: uuid.UUID,
        roles: Iterable[str],
        db_session: AsyncSession,
    ) -> bool:
        stmt = (
            select(UserRole.id)
            .where(UserRole.user_id == user_id, UserRole.role.in_(tuple(roles)))
            .limit(1)
        )
        result = await db_session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def grant_role(self, user_id: uuid.UUID, role: str, db_session: AsyncSession) -> UserRole:
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        existing = (
            await db_session.execute(
                select(UserRole).where(UserRole.user_id == user_id, UserRole.role == role)
            )
        ).scalar_one_or_none()
        if existing is not None:
            return existing
        user_role = UserRole(user_id=user_id, role=role)
        db_session.add(user_role)
        await db_session.flush()
        logger.info("role_granted", user_id=str(user_id), role=role)
        return user_role
