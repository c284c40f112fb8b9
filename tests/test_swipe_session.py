"""Unit tests for SwipeSessionController — the swipe deck state machine.

Settle delays and the celebration timeout run on a ManualScheduler, so every
test moves the virtual clock explicitly.
"""
import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.exceptions import CandidateFetchError, RateLimitedError
from app.services.swipe_session import (
    CONNECT_FAILED_NOTICE,
    LOAD_FAILED_NOTICE,
    RATE_LIMITED_NOTICE,
    SessionState,
    SwipeDirection,
    SwipeSessionController,
    SwipeSessionRegistry,
)

SETTLE_MS = 300
CELEBRATION_MS = 3000


@pytest.fixture
def candidates(make_profile):
    """Three one-sided matches for a caller who wants Yoga."""
    return [
        make_profile("Alice", offered=["Yoga"]),
        make_profile("Bala", offered=["Yoga"]),
        make_profile("Chen", offered=["Yoga"]),
    ]


@pytest.fixture
def make_controller(scheduler, sample_user_id):
    def _make(profiles=(), starter=None, source=None, **kwargs):
        return SwipeSessionController(
            user_id=sample_user_id,
            candidate_source=source or AsyncMock(return_value=list(profiles)),
            conversation_starter=starter or AsyncMock(return_value=uuid.uuid4()),
            scheduler=scheduler,
            swipe_threshold=100,
            settle_delay_ms=SETTLE_MS,
            celebration_timeout_ms=CELEBRATION_MS,
            **kwargs,
        )

    return _make


async def settle(controller, scheduler, direction):
    """Run one swipe to completion through the virtual clock."""
    task = asyncio.create_task(controller.swipe(direction))
    await asyncio.sleep(0)
    scheduler.advance(SETTLE_MS)
    return await task


class TestLoading:

    @pytest.mark.asyncio
    async def test_loads_ready_queue(self, make_controller, candidates):
        controller = make_controller(candidates)
        state = await controller.load([], ["Yoga"])
        assert state is SessionState.READY
        assert controller.current.display_name == "Alice"
        assert controller.snapshot()["total"] == 3

    @pytest.mark.asyncio
    async def test_no_skills_is_empty(self, make_controller, candidates):
        source = AsyncMock(return_value=candidates)
        controller = make_controller(source=source)
        assert await controller.load(["  "], []) is SessionState.EMPTY
        source.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_overlap_is_no_matches(self, make_controller, candidates):
        controller = make_controller(candidates)
        assert await controller.load(["Chess"], ["Tennis"]) is SessionState.NO_MATCHES

    @pytest.mark.asyncio
    async def test_rate_limited_load(self, make_controller):
        source = AsyncMock(side_effect=RateLimitedError(reset_in=42))
        controller = make_controller(source=source)
        assert await controller.load([], ["Yoga"]) is SessionState.LOAD_FAILED
        assert [n.message for n in controller.drain_notifications()] == [RATE_LIMITED_NOTICE]

    @pytest.mark.asyncio
    async def test_fetch_error_load(self, make_controller):
        source = AsyncMock(side_effect=CandidateFetchError("boom"))
        controller = make_controller(source=source)
        assert await controller.load([], ["Yoga"]) is SessionState.LOAD_FAILED
        assert controller.drain_notifications()[0].message == LOAD_FAILED_NOTICE

    @pytest.mark.asyncio
    async def test_update_skills_only_reloads_on_change(self, make_controller, candidates):
        source = AsyncMock(return_value=candidates)
        controller = make_controller(source=source)
        assert await controller.update_skills([], ["Yoga"]) is True
        assert await controller.update_skills([], [" Yoga "]) is False
        assert source.await_count == 1
        assert await controller.update_skills(["Python"], ["Yoga"]) is True
        assert source.await_count == 2


class TestSwipeLeftAndUndo:

    @pytest.mark.asyncio
    async def test_swipe_left_then_undo_restores_candidate(self, make_controller, candidates, scheduler):
        controller = make_controller(candidates)
        await controller.load([], ["Yoga"])

        assert await settle(controller, scheduler, "left") is True
        assert controller.cursor == 1
        assert controller.current.display_name == "Bala"
        assert controller.can_undo

        assert controller.undo() is True
        assert controller.cursor == 0
        assert controller.current.display_name == "Alice"
        assert controller.skipped == []

    @pytest.mark.asyncio
    async def test_undo_disabled_without_skips(self, make_controller, candidates):
        controller = make_controller(candidates)
        await controller.load([], ["Yoga"])
        assert not controller.can_undo
        assert controller.undo() is False

    @pytest.mark.asyncio
    async def test_undo_disabled_after_right_swipe(self, make_controller, candidates, scheduler):
        controller = make_controller(candidates)
        await controller.load([], ["Yoga"])
        await settle(controller, scheduler, "left")
        await settle(controller, scheduler, "right")
        assert controller.cursor == 2
        assert len(controller.skipped) == 1
        assert controller.undo() is False

    @pytest.mark.asyncio
    async def test_repeated_undo_walks_back(self, make_controller, candidates, scheduler):
        controller = make_controller(candidates)
        await controller.load([], ["Yoga"])
        await settle(controller, scheduler, "left")
        await settle(controller, scheduler, "left")
        assert controller.undo() and controller.cursor == 1
        assert controller.undo() and controller.cursor == 0
        assert controller.undo() is False


class TestCommitMutex:

    @pytest.mark.asyncio
    async def test_second_swipe_rejected_while_in_flight(self, make_controller, candidates, scheduler):
        controller = make_controller(candidates)
        await controller.load([], ["Yoga"])

        first = asyncio.create_task(controller.swipe(SwipeDirection.LEFT))
        await asyncio.sleep(0)
        assert controller.commit_in_flight
        assert controller.state is SessionState.COMMITTING
        assert await controller.swipe(SwipeDirection.RIGHT) is False
        assert controller.undo() is False

        scheduler.advance(SETTLE_MS)
        assert await first is True
        assert controller.cursor == 1
        assert not controller.commit_in_flight

    @pytest.mark.asyncio
    async def test_close_detaches_in_flight_commit(self, make_controller, candidates, scheduler):
        controller = make_controller(candidates)
        await controller.load([], ["Yoga"])
        task = asyncio.create_task(controller.swipe("left"))
        await asyncio.sleep(0)
        controller.close()
        scheduler.advance(SETTLE_MS)
        assert await task is False
        assert controller.cursor == 0

    @pytest.mark.asyncio
    async def test_stale_commit_keeps_newer_commit_locked(self, make_controller, candidates, scheduler):
        controller = make_controller(candidates)
        await controller.load([], ["Yoga"])
        stale = asyncio.create_task(controller.swipe("left"))
        await asyncio.sleep(0)
        scheduler.advance(SETTLE_MS - 100)

        await controller.load([], ["Yoga"])
        assert not controller.commit_in_flight
        fresh = asyncio.create_task(controller.swipe("left"))
        await asyncio.sleep(0)

        scheduler.advance(100)
        assert await stale is False
        assert controller.commit_in_flight
        assert controller.state is SessionState.COMMITTING

        scheduler.advance(SETTLE_MS)
        assert await fresh is True
        assert controller.cursor == 1
        assert not controller.commit_in_flight


class TestSwipeRight:

    @pytest.mark.asyncio
    async def test_success_notifies_and_calls_back(self, make_controller, candidates, scheduler):
        conversation_id = uuid.uuid4()
        on_connected = MagicMock()
        controller = make_controller(
            candidates,
            starter=AsyncMock(return_value=conversation_id),
            on_connected=on_connected,
        )
        await controller.load([], ["Yoga"])
        await settle(controller, scheduler, "right")

        assert controller.last_connected_conversation_id == conversation_id
        assert controller.drain_notifications()[0].message == "Conversation started with Alice!"
        on_connected.assert_called_once()

    @pytest.mark.asyncio
    async def test_failure_still_advances(self, make_controller, candidates, scheduler):
        controller = make_controller(candidates, starter=AsyncMock(return_value=None))
        await controller.load([], ["Yoga"])
        await settle(controller, scheduler, "right")

        assert controller.cursor == 1
        notes = controller.drain_notifications()
        assert [(n.level, n.message) for n in notes] == [("error", CONNECT_FAILED_NOTICE)]

    @pytest.mark.asyncio
    async def test_starter_exception_treated_as_failure(self, make_controller, candidates, scheduler):
        controller = make_controller(candidates, starter=AsyncMock(side_effect=RuntimeError("db")))
        await controller.load([], ["Yoga"])
        await settle(controller, scheduler, "right")
        assert controller.cursor == 1
        assert controller.drain_notifications()[0].level == "error"


class TestCelebration:

    @pytest.fixture
    def perfect(self, make_profile):
        return [make_profile("Ah Ma", offered=["Yoga"], wanted=["Guitar"])]

    @pytest.mark.asyncio
    async def test_auto_dismiss_after_timeout(self, make_controller, perfect, scheduler):
        on_connected = MagicMock()
        controller = make_controller(perfect, on_connected=on_connected)
        await controller.load(["Guitar"], ["Yoga"])
        await settle(controller, scheduler, "right")

        assert controller.celebration is not None
        assert controller.state is SessionState.EXHAUSTED
        on_connected.assert_not_called()

        scheduler.advance(CELEBRATION_MS - 1)
        assert controller.celebration is not None
        scheduler.advance(1)
        assert controller.celebration is None
        on_connected.assert_called_once()

    @pytest.mark.asyncio
    async def test_tap_dismiss_cancels_timer(self, make_controller, perfect, scheduler):
        on_connected = MagicMock()
        controller = make_controller(perfect, on_connected=on_connected)
        await controller.load(["Guitar"], ["Yoga"])
        await settle(controller, scheduler, "right")

        assert controller.dismiss_celebration() is True
        assert scheduler.pending == 0
        scheduler.advance(CELEBRATION_MS)
        on_connected.assert_called_once()
        assert controller.dismiss_celebration() is False

    @pytest.mark.asyncio
    async def test_back_to_back_perfect_matches_both_announced(self, make_controller,
                                                               make_profile, scheduler):
        connected = []
        controller = make_controller(
            [
                make_profile("Alice", offered=["Yoga"], wanted=["Guitar"]),
                make_profile("Bala", offered=["Yoga"], wanted=["Guitar"]),
            ],
            on_connected=lambda conversation_id, c: connected.append(c.display_name),
        )
        await controller.load(["Guitar"], ["Yoga"])
        await settle(controller, scheduler, "right")

        assert controller.celebration is not None
        assert not controller.can_swipe
        assert controller.drag_start(0, 0) is False
        assert await controller.swipe("right") is False
        assert controller.cursor == 1

        scheduler.advance(CELEBRATION_MS)
        assert controller.can_swipe
        await settle(controller, scheduler, "right")
        scheduler.advance(CELEBRATION_MS)

        assert [n.message for n in controller.drain_notifications()] == [
            "Conversation started with Alice!",
            "Conversation started with Bala!",
        ]
        assert connected == ["Alice", "Bala"]

    @pytest.mark.asyncio
    async def test_undo_and_restart_wait_for_dismissal(self, make_controller, perfect, scheduler):
        controller = make_controller(perfect)
        await controller.load(["Guitar"], ["Yoga"])
        await settle(controller, scheduler, "right")

        assert controller.state is SessionState.EXHAUSTED
        assert controller.undo() is False
        assert controller.restart() is False
        snapshot = controller.snapshot()
        assert not snapshot["canRestart"] and not snapshot["canUndo"]

        controller.dismiss_celebration()
        assert controller.restart() is True

    @pytest.mark.asyncio
    async def test_reload_announces_pending_connection(self, make_controller, perfect, scheduler):
        on_connected = MagicMock()
        controller = make_controller(perfect, on_connected=on_connected)
        await controller.load(["Guitar"], ["Yoga"])
        await settle(controller, scheduler, "right")

        await controller.load(["Guitar"], ["Yoga"])

        assert controller.celebration is None
        assert scheduler.pending == 0
        on_connected.assert_called_once()
        assert controller.drain_notifications()[-1].message == "Conversation started with Ah Ma!"


class TestRestart:

    @pytest.mark.asyncio
    async def test_restart_keeps_queue(self, make_controller, candidates, scheduler):
        source = AsyncMock(return_value=candidates)
        controller = make_controller(source=source)
        await controller.load([], ["Yoga"])
        assert controller.restart() is False

        for _ in candidates:
            await settle(controller, scheduler, "left")
        assert controller.state is SessionState.EXHAUSTED
        assert controller.can_restart

        assert controller.restart() is True
        assert controller.cursor == 0
        assert controller.skipped == []
        assert controller.current.display_name == "Alice"
        assert source.await_count == 1


class TestDrag:

    @pytest.mark.asyncio
    async def test_vertical_damping(self, make_controller, candidates):
        controller = make_controller(candidates)
        await controller.load([], ["Yoga"])
        assert controller.drag_start(10, 10)
        assert controller.drag_move(60, 110) == (50, pytest.approx(30.0))
        assert controller.cursor == 0

    @pytest.mark.asyncio
    async def test_short_drag_snaps_back(self, make_controller, candidates):
        controller = make_controller(candidates)
        await controller.load([], ["Yoga"])
        controller.drag_start(0, 0)
        controller.drag_move(100, 0)
        assert await controller.drag_end() is None
        assert controller.state is SessionState.READY
        assert controller.drag_offset == (0.0, 0.0)
        assert controller.cursor == 0

    @pytest.mark.asyncio
    async def test_long_drag_left_commits(self, make_controller, candidates, scheduler):
        controller = make_controller(candidates)
        await controller.load([], ["Yoga"])
        controller.drag_start(200, 0)
        controller.drag_move(50, 0)
        task = asyncio.create_task(controller.drag_end())
        await asyncio.sleep(0)
        scheduler.advance(SETTLE_MS)
        assert await task is SwipeDirection.LEFT
        assert controller.cursor == 1


class TestRegistry:

    def test_get_or_create_reuses(self, make_controller, sample_user_id):
        registry = SwipeSessionRegistry()
        first = registry.get_or_create(sample_user_id, make_controller)
        second = registry.get_or_create(sample_user_id, make_controller)
        assert first is second
        assert len(registry) == 1

    def test_discard_and_close_all(self, make_controller, sample_user_id):
        registry = SwipeSessionRegistry()
        registry.get_or_create(sample_user_id, make_controller)
        registry.get_or_create(uuid.uuid4(), make_controller)
        assert registry.discard(sample_user_id) is True
        assert registry.discard(sample_user_id) is False
        assert registry.close_all() == 1
        assert len(registry) == 0
