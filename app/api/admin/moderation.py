"""
GenBridge SG — Admin Moderation API

The moderation console.  The router itself is mounted behind
``require_moderator``, so every endpoint here is reachable only by admins
and moderators; the handlers do not re-check.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import http_error, require_moderator
from app.database import get_db
from app.models.report import Report
from app.schemas.report import (
    ModerationActionRequest,
    ReportListItem,
    ReportResponse,
    ReportStatusUpdate,
)
from app.services.exceptions import GenBridgeError
from app.services.moderation_service import ModerationService

logger = structlog.get_logger("genbridge.api.admin.moderation")

router = APIRouter(dependencies=[Depends(require_moderator)])

_moderation_service: ModerationService | None = None


def _get_moderation_service() -> ModerationService:
    global _moderation_service
    if _moderation_service is None:
        _moderation_service = ModerationService()
    return _moderation_service


# ──────────────────────────────────────────────────────────────────────────────
# GET /reports — Report queue
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/reports",
    response_model=list[ReportListItem],
    summary="List reports, newest first",
)
async def list_reports(
    report_status: Optional[str] = Query(
        None,
        alias="status",
        description="Filter by status: pending, reviewing, resolved, dismissed",
    ),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    try:
        return await _get_moderation_service().list_reports(db, status=report_status)
    except GenBridgeError as exc:
        raise http_error(exc)


@router.get(
    "/reports/counts",
    summary="Report counts per status",
)
async def report_counts(
    db: AsyncSession = Depends(get_db),
) -> dict[str, int]:
    return await _get_moderation_service().report_counts(db)


# ──────────────────────────────────────────────────────────────────────────────
# PATCH /reports/{report_id}/status
# ──────────────────────────────────────────────────────────────────────────────

@router.patch(
    "/reports/{report_id}/status",
    response_model=ReportResponse,
    summary="Move a report to another status",
)
async def update_report_status(
    report_id: uuid.UUID,
    payload: ReportStatusUpdate,
    moderator_id: uuid.UUID = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
) -> Report:
    try:
        return await _get_moderation_service().update_status(
            report_id, payload.status, moderator_id, db
        )
    except GenBridgeError as exc:
        raise http_error(exc)


# ──────────────────────────────────────────────────────────────────────────────
# POST /reports/{report_id}/action — warn / reduce_score / ban
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/reports/{report_id}/action",
    response_model=ReportResponse,
    summary="Apply a moderation action and resolve the report",
)
async def apply_action(
    report_id: uuid.UUID,
    payload: ModerationActionRequest,
    moderator_id: uuid.UUID = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
) -> Report:
    log = logger.bind(report_id=str(report_id), action=payload.action)
    try:
        report = await _get_moderation_service().apply_action(
            report_id, payload.action, moderator_id, db, note=payload.note
        )
    except GenBridgeError as exc:
        log.warning("apply_action_failed", error=str(exc))
        raise http_error(exc)
    log.info("apply_action_complete")
    return report
