"""
GenBridge SG — Matching API

Ranked skill-match candidates and the server-held swipe session that walks
through them.  Each user has at most one live ``SwipeSessionController``;
every session endpoint returns its snapshot plus any notifications raised
since the previous call.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id, http_error
from app.database import get_db
from app.schemas.match import DragRequest, SessionResponse, SessionStartRequest, SwipeRequest
from app.services.conversation_service import ConversationService
from app.services.exceptions import GenBridgeError
from app.services.matching_service import MatchingService
from app.services.profile_service import (
    ProfileCandidateSource,
    ProfileService,
    check_browse_rate_limit,
)
from app.services.swipe_session import SwipeSessionController, SwipeSessionRegistry
from app.utils.scheduler import AsyncioScheduler

logger = structlog.get_logger("genbridge.api.matching")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_matching_service: MatchingService | None = None
_profile_service: ProfileService | None = None
_conversation_service: ConversationService | None = None
_registry: SwipeSessionRegistry | None = None


def _get_matching_service() -> MatchingService:
    global _matching_service
    if _matching_service is None:
        _matching_service = MatchingService()
    return _matching_service


def _get_profile_service() -> ProfileService:
    global _profile_service
    if _profile_service is None:
        _profile_service = ProfileService()
    return _profile_service


def _get_conversation_service() -> ConversationService:
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = ConversationService()
    return _conversation_service


def get_swipe_registry() -> SwipeSessionRegistry:
    global _registry
    if _registry is None:
        _registry = SwipeSessionRegistry()
    return _registry


def _build_controller(user_id: uuid.UUID) -> SwipeSessionController:
    return SwipeSessionController(
        user_id=user_id,
        candidate_source=ProfileCandidateSource(user_id, _get_profile_service()),
        conversation_starter=_get_conversation_service().start_conversation,
        scheduler=AsyncioScheduler(),
        matching_service=_get_matching_service(),
    )


def _session_response(controller: SwipeSessionController) -> SessionResponse:
    return SessionResponse(
        session=controller.snapshot(),
        notifications=[n.to_dict() for n in controller.drain_notifications()],
    )


def _require_session(user_id: uuid.UUID) -> SwipeSessionController:
    controller = get_swipe_registry().get(user_id)
    if controller is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active swipe session. Start one first.",
        )
    return controller


def _conflict(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


# ──────────────────────────────────────────────────────────────────────────────
# GET /candidates — Ranked candidates for the caller's saved skills
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/candidates",
    summary="Ranked skill-match candidates",
)
async def get_candidates(
    response: Response,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Score every public profile against the caller's own skill lists."""
    log = logger.bind(user_id=str(user_id))

    try:
        limit = await check_browse_rate_limit(user_id)
    except GenBridgeError as exc:
        log.warning("candidates_rate_limited")
        raise http_error(exc)

    profile_service = _get_profile_service()
    me = await profile_service.get_or_create_profile(user_id, db)
    profiles = await profile_service.list_public_profiles(db, kind="browse")

    candidates = _get_matching_service().rank_candidates(
        me.skills_offered or [],
        me.skills_wanted or [],
        profiles,
        exclude_user_id=user_id,
    )
    response.headers.update(limit.headers())
    log.info("candidates_listed", count=len(candidates))

    return {
        "candidates": [c.to_dict() for c in candidates],
        "rateLimit": {"remaining": limit.remaining, "resetIn": limit.reset_in},
    }


# ──────────────────────────────────────────────────────────────────────────────
# Swipe session
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/session",
    response_model=SessionResponse,
    summary="Start the swipe session, or reload it if the skills changed",
)
async def start_session(
    payload: SessionStartRequest | None = None,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    log = logger.bind(user_id=str(user_id))

    offered = payload.skills_offered if payload else None
    wanted = payload.skills_wanted if payload else None
    if offered is None or wanted is None:
        me = await _get_profile_service().get_or_create_profile(user_id, db)
        offered = me.skills_offered if offered is None else offered
        wanted = me.skills_wanted if wanted is None else wanted

    registry = get_swipe_registry()
    controller = registry.get_or_create(user_id, lambda: _build_controller(user_id))
    if controller.commit_in_flight:
        raise _conflict("A swipe is still being processed.")

    reloaded = await controller.update_skills(offered, wanted)
    log.info("swipe_session_started", reloaded=reloaded, state=controller.state.value)
    return _session_response(controller)


@router.get(
    "/session",
    response_model=SessionResponse,
    summary="Current swipe session state",
)
async def get_session(
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> SessionResponse:
    return _session_response(_require_session(user_id))


@router.post(
    "/session/swipe",
    response_model=SessionResponse,
    summary="Commit a left (pass) or right (connect) swipe",
)
async def swipe(
    payload: SwipeRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> SessionResponse:
    controller = _require_session(user_id)
    if not await controller.swipe(payload.direction):
        raise _conflict("Swiping is not available right now.")
    return _session_response(controller)


@router.post(
    "/session/drag",
    response_model=SessionResponse,
    summary="Feed a drag gesture (start / move / end)",
)
async def drag(
    payload: DragRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> SessionResponse:
    controller = _require_session(user_id)
    if payload.phase == "start":
        if not controller.drag_start(payload.x, payload.y):
            raise _conflict("Swiping is not available right now.")
    elif payload.phase == "move":
        controller.drag_move(payload.x, payload.y)
    else:
        await controller.drag_end()
    return _session_response(controller)


@router.post(
    "/session/undo",
    response_model=SessionResponse,
    summary="Bring back the most recently skipped candidate",
)
async def undo(
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> SessionResponse:
    controller = _require_session(user_id)
    if not controller.undo():
        raise _conflict("Nothing to undo.")
    return _session_response(controller)


@router.post(
    "/session/restart",
    response_model=SessionResponse,
    summary="Start the same queue again from the top",
)
async def restart(
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> SessionResponse:
    controller = _require_session(user_id)
    if not controller.restart():
        raise _conflict("The queue has not been exhausted yet.")
    return _session_response(controller)


@router.post(
    "/session/celebration/dismiss",
    response_model=SessionResponse,
    summary="Close the match celebration",
)
async def dismiss_celebration(
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> SessionResponse:
    controller = _require_session(user_id)
    controller.dismiss_celebration()
    return _session_response(controller)


@router.delete(
    "/session",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="End the swipe session",
)
async def end_session(
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> Response:
    get_swipe_registry().discard(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
