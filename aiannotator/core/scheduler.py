"""Timer scheduling used by the coalescing buffer, cooldowns and polling."""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Any, Callable, Optional, Protocol

__all__ = [
    "Scheduler",
    "TimerHandle",
    "AsyncioScheduler",
    "VirtualScheduler",
]


class TimerHandle(Protocol):  # pragma: no cover - structural typing only
    """Handle returned for a scheduled callback."""

    def cancel(self) -> None:
        ...

    def cancelled(self) -> bool:
        ...


class Scheduler(Protocol):  # pragma: no cover - structural typing only
    """Clock and deadline queue shared by the engine components."""

    def now(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...


class AsyncioScheduler:
    """Schedule callbacks on the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback, *args)


class _VirtualTimer:
    """Cancellable entry in the virtual deadline queue."""

    __slots__ = ("deadline", "callback", "args", "_cancelled")

    def __init__(self, deadline: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.deadline = deadline
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class VirtualScheduler:
    """Deterministic scheduler whose clock only moves when advanced.

    Callbacks run synchronously from :meth:`advance` in deadline order, ties
    broken by scheduling order.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, _VirtualTimer]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _VirtualTimer:
        timer = _VirtualTimer(self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (timer.deadline, next(self._counter), timer))
        return timer

    def advance(self, seconds: float) -> int:
        """Move the clock forward and run every callback that came due."""

        target = self._now + max(0.0, seconds)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            deadline, _, timer = heapq.heappop(self._queue)
            if timer.cancelled():
                continue
            self._now = max(self._now, deadline)
            timer.callback(*timer.args)
            fired += 1
        self._now = target
        return fired

    def pending(self) -> int:
        """Return the number of live timers still queued."""

        return sum(1 for _, _, timer in self._queue if not timer.cancelled())
