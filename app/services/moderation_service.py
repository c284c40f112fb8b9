"""
GenBridge SG — Moderation Service

User reports and the moderator actions taken on them:

  warn          resolve the report, profile untouched
  reduce_score  credibility_score = max(0, current - SCORE_REDUCTION_STEP)
                (a missing score counts as 100)
  ban           credibility_score = 0

A credibility score of 0 is the platform's ban signal; there is no separate
banned flag.  Access to every moderator operation is gated by the router
(``require_moderator``); the operations here do not re-check roles.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.profile import Profile
from app.models.report import Report
from app.services.exceptions import NotFoundError, ValidationError
from app.utils.validation import validate_report_description

logger = structlog.get_logger("genbridge.moderation_service")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

REPORT_STATUSES: tuple[str, ...] = ("pending", "reviewing", "resolved", "dismissed")
MODERATION_ACTIONS: tuple[str, ...] = ("warn", "reduce_score", "ban")

# Score assumed for a profile that has never been scored.
_UNSCORED_BASELINE = 100


def reduced_score(current: int | None, step: int) -> int:
    """``max(0, current - step)`` with ``None`` treated as the baseline."""
    base = _UNSCORED_BASELINE if current is None else current
    return max(0, base - step)


class ModerationService:
    """Report intake and moderator actions."""

    def __init__(self) -> None:
        settings = get_settings()
        self.score_step = settings.SCORE_REDUCTION_STEP

    # ── Intake ────────────────────────────────────────────────────────────

    async def submit_report(
        self,
        reporter_id: uuid.UUID,
        reported_user_id: uuid.UUID,
        description: str,
        db_session: AsyncSession,
    ) -> Report:
        """File a report.  Validation happens before anything is inserted."""
        text = validate_report_description(description)
        if reporter_id == reported_user_id:
            raise ValidationError("You cannot report yourself")

        report = Report(
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            description=text,
            status="pending",
            created_at=datetime.now(timezone.utc),
        )
        db_session.add(report)
        await db_session.flush()

        logger.info(
            "report_submitted",
            report_id=str(report.id),
            reporter_id=str(reporter_id),
            reported_user_id=str(reported_user_id),
        )
        return report

    # ── Console queries ───────────────────────────────────────────────────

    async def list_reports(
        self,
        db_session: AsyncSession,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        """Reports newest first, with both names and the reported user's score."""
        if status is not None and status not in REPORT_STATUSES:
            raise ValidationError(f"Unknown report status: {status}")

        stmt = select(Report).order_by(Report.created_at.desc())
        if status is not None:
            stmt = stmt.where(Report.status == status)
        reports = (await db_session.execute(stmt)).scalars().all()

        user_ids = {r.reporter_id for r in reports} | {r.reported_user_id for r in reports}
        profiles: dict[uuid.UUID, Any] = {}
        if user_ids:
            rows = await db_session.execute(
                select(Profile.user_id, Profile.full_name, Profile.credibility_score)
                .where(Profile.user_id.in_(user_ids))
            )
            profiles = {row.user_id: row for row in rows}

        items = []
        for report in reports:
            reporter = profiles.get(report.reporter_id)
            reported = profiles.get(report.reported_user_id)
            items.append({
                "id": report.id,
                "reporter_id": report.reporter_id,
                "reported_user_id": report.reported_user_id,
                "description": report.description,
                "status": report.status,
                "action_taken": report.action_taken,
                "reviewed_by": report.reviewed_by,
                "reviewed_at": report.reviewed_at,
                "created_at": report.created_at,
                "reporter_name": (reporter.full_name if reporter else None) or "Unknown",
                "reported_name": (reported.full_name if reported else None) or "Unknown",
                "reported_credibility_score": reported.credibility_score if reported else None,
            })
        return items

    async def report_counts(self, db_session: AsyncSession) -> dict[str, int]:
        """Number of reports per status; every status is present."""
        rows = await db_session.execute(
            select(Report.status, func.count(Report.id)).group_by(Report.status)
        )
        counts = {s: 0 for s in REPORT_STATUSES}
        for status, count in rows:
            counts[status] = int(count)
        return counts

    # ── Moderator operations ──────────────────────────────────────────────

    async def _get_report(self, report_id: uuid.UUID, db_session: AsyncSession) -> Report:
        report = await db_session.get(Report, report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found.")
        return report

    async def update_status(
        self,
        report_id: uuid.UUID,
        status: str,
        moderator_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Report:
        if status not in REPORT_STATUSES:
            raise ValidationError(f"Unknown report status: {status}")

        report = await self._get_report(report_id, db_session)
        report.status = status
        report.reviewed_by = moderator_id
        report.reviewed_at = datetime.now(timezone.utc)
        await db_session.flush()

        logger.info(
            "report_status_updated",
            report_id=str(report_id),
            status=status,
            moderator_id=str(moderator_id),
        )
        return report

    async def apply_action(
        self,
        report_id: uuid.UUID,
        action: str,
        moderator_id: uuid.UUID,
        db_session: AsyncSession,
        note: str | None = None,
    ) -> Report:
        """Apply ``warn`` / ``reduce_score`` / ``ban`` and resolve the report.

        ``action_taken`` records what was done plus the moderator's optional
        note, e.g. ``"Credibility score reduced from 60 to 40 - Note: spam"``.
        """
        if action not in MODERATION_ACTIONS:
            raise ValidationError(f"Unknown moderation action: {action}")

        report = await self._get_report(report_id, db_session)
        log = logger.bind(
            report_id=str(report_id),
            action=action,
            moderator_id=str(moderator_id),
        )

        if action == "warn":
            description = "Warning issued"
        else:
            profile = (
                await db_session.execute(
                    select(Profile).where(Profile.user_id == report.reported_user_id)
                )
            ).scalar_one_or_none()
            if profile is None:
                raise NotFoundError(
                    f"Profile for user {report.reported_user_id} not found."
                )

            previous = profile.credibility_score
            if action == "ban":
                profile.credibility_score = 0
                description = "User banned (credibility score set to 0)"
            else:
                profile.credibility_score = reduced_score(previous, self.score_step)
                shown_previous = _UNSCORED_BASELINE if previous is None else previous
                description = (
                    f"Credibility score reduced from {shown_previous} "
                    f"to {profile.credibility_score}"
                )
            log = log.bind(previous_score=previous, new_score=profile.credibility_score)

        note = (note or "").strip()
        report.action_taken = f"{description} - Note: {note}" if note else description
        report.status = "resolved"
        report.reviewed_by = moderator_id
        report.reviewed_at = datetime.now(timezone.utc)
        await db_session.flush()

        log.info("moderation_action_applied")
        return report
