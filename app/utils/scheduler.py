"""
GenBridge SG — Timer scheduling abstraction.

The swipe session controller never touches the event loop's clock directly;
it asks a ``Scheduler`` to sleep or to run a callback later.  Production code
uses ``AsyncioScheduler``.  ``ManualScheduler`` keeps a virtual clock that
only moves when ``advance()`` is called, which makes settle delays and the
celebration auto-dismiss deterministic.

All delays are in milliseconds.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...

    async def sleep(self, delay_ms: float) -> None: ...


class AsyncioScheduler:
    """Real-time scheduler backed by the running event loop."""

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000.0, callback)

    async def sleep(self, delay_ms: float) -> None:
        await asyncio.sleep(delay_ms / 1000.0)


class _ManualTimer:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-clock scheduler; timers fire only inside ``advance()``."""

    def __init__(self) -> None:
        self.now_ms: float = 0.0
        self._queue: list[tuple[float, int, _ManualTimer]] = []
        self._seq = itertools.count()

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(callback)
        heapq.heappush(self._queue, (self.now_ms + delay_ms, next(self._seq), timer))
        return timer

    async def sleep(self, delay_ms: float) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def _wake() -> None:
            if not future.done():
                future.set_result(None)

        timer = self.call_later(delay_ms, _wake)
        try:
            await future
        finally:
            timer.cancel()

    @property
    def pending(self) -> int:
        """Number of live (uncancelled) timers."""
        return sum(1 for _, _, t in self._queue if not t.cancelled)

    def advance(self, delay_ms: float) -> None:
        """Move the clock forward, firing every due timer in order."""
        target = self.now_ms + delay_ms
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            self.now_ms = due
            if not timer.cancelled:
                timer.callback()
        self.now_ms = target
