"""
GenBridge SG — Swipe Session Controller

Explicit finite-state machine behind the matching deck:

    LOADING ──► READY ⇄ DRAGGING
                  │         │
                  ▼         ▼
               COMMITTING(direction) ──► READY | EXHAUSTED

    terminal variants:  EMPTY (caller has no skills)
                        NO_MATCHES (queue empty after scoring)
                        LOAD_FAILED (rate limited / fetch error)

One commit may be in flight at a time.  Settle delays and the celebration
auto-dismiss go through an injected ``Scheduler`` so tests can drive them
with a virtual clock.

Errors never escape a commit: a failed right-swipe produces an error
notification and the cursor still advances.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

import structlog

from app.config import get_settings
from app.schemas.profile import PublicProfile, normalize_skills
from app.services.exceptions import CandidateFetchError, RateLimitedError
from app.services.matching_service import MatchCandidate, MatchingService
from app.utils.scheduler import AsyncioScheduler, Scheduler, TimerHandle

logger = structlog.get_logger("genbridge.swipe_session")

# Vertical drag component is damped to this fraction of the raw delta.
VERTICAL_DAMPING = 0.3

RATE_LIMITED_NOTICE = "Too many requests. Please wait a moment before browsing more profiles."
LOAD_FAILED_NOTICE = "Failed to load matches"
CONNECT_FAILED_NOTICE = "Failed to start conversation"

CandidateSource = Callable[[], Awaitable[Sequence[PublicProfile]]]
ConversationStarter = Callable[[uuid.UUID, uuid.UUID], Awaitable[Optional[uuid.UUID]]]


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    DRAGGING = "dragging"
    COMMITTING = "committing"
    EXHAUSTED = "exhausted"
    EMPTY = "empty"
    NO_MATCHES = "no_matches"
    LOAD_FAILED = "load_failed"


class SwipeDirection(str, Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class Notification:
    level: str  # "success" / "error" / "info"
    message: str

    def to_dict(self) -> dict:
        return {"level": self.level, "message": self.message}


@dataclass(frozen=True)
class Celebration:
    candidate: MatchCandidate
    conversation_id: uuid.UUID


@dataclass(frozen=True)
class SkipEntry:
    index: int
    candidate: MatchCandidate


class SwipeSessionController:
    """Per-user swipe deck.

    Parameters
    ----------
    user_id : UUID
        The caller; their own profile is never queued.
    candidate_source : async callable
        Returns the candidate profiles.  May raise ``RateLimitedError`` or
        ``CandidateFetchError``.
    conversation_starter : async callable
        ``(me, them) -> conversation_id | None``; ``None`` means failure.
    scheduler : Scheduler, optional
        Defaults to ``AsyncioScheduler``.
    notifier : callable, optional
        Receives every ``Notification`` as it is raised.
    on_connected : callable, optional
        Called with ``(conversation_id, candidate)`` after a successful
        right-swipe, once any celebration has been dismissed.
    """

    def __init__(
        self,
        user_id: uuid.UUID,
        candidate_source: CandidateSource,
        conversation_starter: ConversationStarter,
        scheduler: Scheduler | None = None,
        matching_service: MatchingService | None = None,
        notifier: Callable[[Notification], None] | None = None,
        on_connected: Callable[[uuid.UUID, MatchCandidate], None] | None = None,
        swipe_threshold: float | None = None,
        settle_delay_ms: float | None = None,
        celebration_timeout_ms: float | None = None,
    ) -> None:
        settings = get_settings()

        self.user_id = user_id
        self._candidate_source = candidate_source
        self._conversation_starter = conversation_starter
        self.scheduler: Scheduler = scheduler or AsyncioScheduler()
        self.matching_service = matching_service or MatchingService()
        self._notifier = notifier
        self._on_connected = on_connected

        self.swipe_threshold = (
            settings.SWIPE_THRESHOLD if swipe_threshold is None else swipe_threshold
        )
        self.settle_delay_ms = (
            settings.SWIPE_SETTLE_DELAY_MS if settle_delay_ms is None else settle_delay_ms
        )
        self.celebration_timeout_ms = (
            settings.CELEBRATION_TIMEOUT_MS
            if celebration_timeout_ms is None else celebration_timeout_ms
        )

        self.state = SessionState.LOADING
        self.queue: list[MatchCandidate] = []
        self.cursor = 0
        self.skipped: list[SkipEntry] = []
        self.drag_origin: tuple[float, float] | None = None
        self.drag_offset: tuple[float, float] = (0.0, 0.0)
        self.celebration: Celebration | None = None
        self.notifications: list[Notification] = []
        self.last_connected_conversation_id: uuid.UUID | None = None

        self._skills: tuple[list[str], list[str]] | None = None
        self._commit_in_flight = False
        self._committing_direction: SwipeDirection | None = None
        self._celebration_timer: TimerHandle | None = None
        self._pending_success: tuple[uuid.UUID, MatchCandidate] | None = None
        # Bumped on every reload/close; a commit started under an older
        # generation must not touch the new queue.
        self._generation = 0

    # ──────────────────────────────────────────────────────────────────
    # Read-only views
    # ──────────────────────────────────────────────────────────────────

    @property
    def current(self) -> MatchCandidate | None:
        if 0 <= self.cursor < len(self.queue):
            return self.queue[self.cursor]
        return None

    @property
    def commit_in_flight(self) -> bool:
        return self._commit_in_flight

    @property
    def can_swipe(self) -> bool:
        # The celebration overlay is modal.
        return (
            not self._commit_in_flight
            and self.celebration is None
            and self.state in (SessionState.READY, SessionState.DRAGGING)
            and self.current is not None
        )

    @property
    def can_undo(self) -> bool:
        # Only the most recent commit may be undone, and only when it was a
        # skip: the top skip entry must sit directly behind the cursor.
        return (
            not self._commit_in_flight
            and self.celebration is None
            and self.state in (SessionState.READY, SessionState.EXHAUSTED)
            and self.cursor > 0
            and bool(self.skipped)
            and self.skipped[-1].index == self.cursor - 1
        )

    @property
    def can_restart(self) -> bool:
        return (
            not self._commit_in_flight
            and self.celebration is None
            and self.state is SessionState.EXHAUSTED
        )

    def snapshot(self) -> dict[str, Any]:
        current = self.current
        return {
            "state": self.state.value,
            "cursor": self.cursor,
            "total": len(self.queue),
            "remaining": max(0, len(self.queue) - self.cursor),
            "current": current.to_dict() if current is not None else None,
            "committing": (
                self._committing_direction.value
                if self._committing_direction is not None else None
            ),
            "dragOffset": {"x": self.drag_offset[0], "y": self.drag_offset[1]},
            "canSwipe": self.can_swipe,
            "canUndo": self.can_undo,
            "canRestart": self.can_restart,
            "lastConversationId": (
                str(self.last_connected_conversation_id)
                if self.last_connected_conversation_id is not None else None
            ),
            "celebration": (
                {
                    "conversationId": str(self.celebration.conversation_id),
                    "candidate": self.celebration.candidate.to_dict(),
                }
                if self.celebration is not None else None
            ),
        }

    def drain_notifications(self) -> list[Notification]:
        pending, self.notifications = self.notifications, []
        return pending

    # ──────────────────────────────────────────────────────────────────
    # Loading
    # ──────────────────────────────────────────────────────────────────

    async def load(self, offered: Sequence[str] | None, wanted: Sequence[str] | None) -> SessionState:
        """Fetch, score and queue candidates for the given skill lists."""
        my_offered = normalize_skills(offered)
        my_wanted = normalize_skills(wanted)

        generation = self._detach()
        self._skills = (my_offered, my_wanted)
        # Announce a connection still behind the overlay before the deck resets.
        self.dismiss_celebration()
        self.state = SessionState.LOADING
        self.queue = []
        self.cursor = 0
        self.skipped = []
        self._reset_drag()

        log = logger.bind(user_id=str(self.user_id))

        if not my_offered and not my_wanted:
            self.state = SessionState.EMPTY
            log.info("swipe_session_empty")
            return self.state

        try:
            profiles = await self._candidate_source()
        except RateLimitedError as exc:
            if generation == self._generation:
                self.state = SessionState.LOAD_FAILED
                self._notify("error", RATE_LIMITED_NOTICE)
            log.warning("swipe_candidates_rate_limited", reset_in=exc.reset_in)
            return self.state
        except CandidateFetchError as exc:
            if generation == self._generation:
                self.state = SessionState.LOAD_FAILED
                self._notify("error", LOAD_FAILED_NOTICE)
            log.warning("swipe_candidates_fetch_failed", error=str(exc))
            return self.state

        if generation != self._generation:
            # A newer load superseded this one while it was awaiting.
            return self.state

        self.queue = self.matching_service.rank_candidates(
            my_offered, my_wanted, profiles, exclude_user_id=self.user_id
        )
        self.state = SessionState.READY if self.queue else SessionState.NO_MATCHES

        log.info("swipe_session_loaded", queue_length=len(self.queue), state=self.state.value)
        return self.state

    async def update_skills(self, offered: Sequence[str] | None, wanted: Sequence[str] | None) -> bool:
        """Reload only when the caller's offered/wanted sets actually changed."""
        new_offered = normalize_skills(offered)
        new_wanted = normalize_skills(wanted)
        if self._skills is not None:
            old_offered, old_wanted = self._skills
            if set(old_offered) == set(new_offered) and set(old_wanted) == set(new_wanted):
                return False
        await self.load(new_offered, new_wanted)
        return True

    # ──────────────────────────────────────────────────────────────────
    # Drag gestures
    # ──────────────────────────────────────────────────────────────────

    def drag_start(self, x: float, y: float) -> bool:
        if not self.can_swipe or self.state is not SessionState.READY:
            return False
        self.drag_origin = (x, y)
        self.drag_offset = (0.0, 0.0)
        self.state = SessionState.DRAGGING
        return True

    def drag_move(self, x: float, y: float) -> tuple[float, float]:
        """Update the rendering offset; queue state is untouched."""
        if self.state is SessionState.DRAGGING and self.drag_origin is not None:
            ox, oy = self.drag_origin
            self.drag_offset = (x - ox, (y - oy) * VERTICAL_DAMPING)
        return self.drag_offset

    async def drag_end(self) -> SwipeDirection | None:
        """Commit if the horizontal offset passed the threshold, else snap back."""
        if self.state is not SessionState.DRAGGING:
            return None

        dx = self.drag_offset[0]
        if abs(dx) > self.swipe_threshold:
            direction = SwipeDirection.RIGHT if dx > 0 else SwipeDirection.LEFT
            await self.swipe(direction)
            return direction

        self._reset_drag()
        self.state = SessionState.READY
        return None

    # ──────────────────────────────────────────────────────────────────
    # Commits
    # ──────────────────────────────────────────────────────────────────

    async def swipe(self, direction: SwipeDirection | str) -> bool:
        """Commit the current candidate.  Returns False when swiping is disabled."""
        direction = SwipeDirection(direction)
        if not self.can_swipe:
            return False

        candidate = self.current
        index = self.cursor
        generation = self._generation

        self._commit_in_flight = True
        self._committing_direction = direction
        self.state = SessionState.COMMITTING

        logger.info(
            "swipe_committing",
            user_id=str(self.user_id),
            candidate_id=str(candidate.user_id),
            direction=direction.value,
            cursor=index,
        )

        try:
            await self.scheduler.sleep(self.settle_delay_ms)
            if generation != self._generation:
                return False
            if direction is SwipeDirection.RIGHT:
                await self._connect(candidate, generation)
            else:
                self.skipped.append(SkipEntry(index=index, candidate=candidate))
        finally:
            # A stale commit leaves the mutex to whatever newer commit holds it.
            if generation == self._generation:
                self._commit_in_flight = False
                self._committing_direction = None
                self._advance()

        return True

    async def _connect(self, candidate: MatchCandidate, generation: int) -> None:
        try:
            conversation_id = await self._conversation_starter(self.user_id, candidate.user_id)
        except Exception:
            logger.exception(
                "swipe_connect_error",
                user_id=str(self.user_id),
                candidate_id=str(candidate.user_id),
            )
            conversation_id = None

        if generation != self._generation:
            return

        if conversation_id is None:
            self._notify("error", CONNECT_FAILED_NOTICE)
            return

        logger.info(
            "swipe_connected",
            user_id=str(self.user_id),
            candidate_id=str(candidate.user_id),
            conversation_id=str(conversation_id),
            perfect_match=candidate.is_perfect_match,
        )

        if candidate.is_perfect_match:
            self.dismiss_celebration()
            self.celebration = Celebration(candidate=candidate, conversation_id=conversation_id)
            self._pending_success = (conversation_id, candidate)
            self._celebration_timer = self.scheduler.call_later(
                self.celebration_timeout_ms, self.dismiss_celebration
            )
        else:
            self._announce_connection(conversation_id, candidate)

    def dismiss_celebration(self) -> bool:
        """Close the overlay (tap or timeout) and announce the connection."""
        if self.celebration is None:
            return False
        if self._celebration_timer is not None:
            self._celebration_timer.cancel()
            self._celebration_timer = None
        self.celebration = None
        pending, self._pending_success = self._pending_success, None
        if pending is not None:
            self._announce_connection(*pending)
        return True

    def undo(self) -> bool:
        """Bring back the most recently skipped candidate."""
        if not self.can_undo:
            return False
        entry = self.skipped.pop()
        self.cursor = entry.index
        self._reset_drag()
        self.state = SessionState.READY
        logger.info("swipe_undone", user_id=str(self.user_id), cursor=self.cursor)
        return True

    def restart(self) -> bool:
        """Re-present the same queue from the top, without refetching."""
        if not self.can_restart:
            return False
        self.skipped = []
        self.cursor = 0
        self._reset_drag()
        self.state = SessionState.READY
        logger.info("swipe_restarted", user_id=str(self.user_id), queue_length=len(self.queue))
        return True

    def close(self) -> None:
        """Detach from any in-flight work and drop pending timers."""
        self._detach()
        self._cancel_celebration()

    # ──────────────────────────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────────────────────────

    def _detach(self) -> int:
        self._generation += 1
        self._commit_in_flight = False
        self._committing_direction = None
        return self._generation

    def _advance(self) -> None:
        self.cursor += 1
        self._reset_drag()
        self.state = (
            SessionState.EXHAUSTED if self.cursor >= len(self.queue) else SessionState.READY
        )

    def _reset_drag(self) -> None:
        self.drag_origin = None
        self.drag_offset = (0.0, 0.0)

    def _cancel_celebration(self) -> None:
        if self._celebration_timer is not None:
            self._celebration_timer.cancel()
            self._celebration_timer = None
        self.celebration = None
        self._pending_success = None

    def _announce_connection(self, conversation_id: uuid.UUID, candidate: MatchCandidate) -> None:
        self.last_connected_conversation_id = conversation_id
        self._notify("success", f"Conversation started with {candidate.display_name}!")
        if self._on_connected is not None:
            self._on_connected(conversation_id, candidate)

    def _notify(self, level: str, message: str) -> None:
        notification = Notification(level=level, message=message)
        self.notifications.append(notification)
        if self._notifier is not None:
            self._notifier(notification)


class SwipeSessionRegistry:
    """One live controller per user, kept for the lifetime of the process."""

    def __init__(self) -> None:
        self._sessions: dict[uuid.UUID, SwipeSessionController] = {}

    def get(self, user_id: uuid.UUID) -> SwipeSessionController | None:
        return self._sessions.get(user_id)

    def get_or_create(
        self,
        user_id: uuid.UUID,
        factory: Callable[[], SwipeSessionController],
    ) -> SwipeSessionController:
        session = self._sessions.get(user_id)
        if session is None:
            session = factory()
            self._sessions[user_id] = session
            logger.info("swipe_session_created", user_id=str(user_id))
        return session

    def discard(self, user_id: uuid.UUID) -> bool:
        session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        session.close()
        return True

    def close_all(self) -> int:
        count = len(self._sessions)
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
        return count

    def __len__(self) -> int:
        return len(self._sessions)
