from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol, runtime_checkable


@runtime_checkable
class CancelHandle(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class Scheduler(Protocol):
    def schedule(self, delay: float, callback: Callable[[], None]) -> CancelHandle: ...


class AsyncioScheduler:
    """Deferred callbacks on the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def schedule(self, delay: float, callback: Callable[[], None]) -> CancelHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), callback)


class _ManualHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-time scheduler; callbacks only fire from advance()."""

    def __init__(self) -> None:
        self._now = 0.0
        self._seq = itertools.count()
        self._queue: list[tuple[float, int, Callable[[], None], _ManualHandle]] = []

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending_count(self) -> int:
        return sum(1 for *_, handle in self._queue if not handle.cancelled)

    def schedule(self, delay: float, callback: Callable[[], None]) -> CancelHandle:
        handle = _ManualHandle()
        heapq.heappush(self._queue, (self._now + max(0.0, delay), next(self._seq), callback, handle))
        return handle

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks in order. Returns the number fired."""
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, callback, handle = heapq.heappop(self._queue)
            self._now = due
            if handle.cancelled:
                continue
            callback()
            fired += 1
        self._now = target
        return fired

    def run_all(self, *, limit: int = 10_000) -> int:
        fired = 0
        while self._queue and fired < limit:
            due = self._queue[0][0]
            fired += self.advance(max(0.0, due - self._now))
        return fired
