"""
GenBridge SG — Reports API

User-facing report submission.  Review happens in the moderation console
under ``/admin/moderation``.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id, http_error
from app.database import get_db
from app.models.report import Report
from app.schemas.report import ReportCreate, ReportResponse
from app.services.exceptions import GenBridgeError
from app.services.moderation_service import ModerationService

logger = structlog.get_logger("genbridge.api.reports")

router = APIRouter()

_moderation_service: ModerationService | None = None


def _get_moderation_service() -> ModerationService:
    global _moderation_service
    if _moderation_service is None:
        _moderation_service = ModerationService()
    return _moderation_service


@router.post(
    "/",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report another user",
)
async def submit_report(
    payload: ReportCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Report:
    """File a report; the description must be 200 words or fewer."""
    try:
        return await _get_moderation_service().submit_report(
            user_id, payload.reported_user_id, payload.description, db
        )
    except GenBridgeError as exc:
        logger.info("submit_report_rejected", user_id=str(user_id), error=str(exc))
        raise http_error(exc)
