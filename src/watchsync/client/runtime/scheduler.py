"""Cancellable timer scheduling for the sync runtime.

Everything that the engine delays (heartbeats, caption restores, headless
player callbacks) goes through a :class:`Scheduler` so a session reset can
cancel outstanding work and tests can drive time explicitly.
"""

from __future__ import annotations

import asyncio
import heapq
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from itertools import count
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def now(self) -> float:
        return self._loop.time()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0.0, float(delay_s)), callback)


@dataclass
class _ManualTimer:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler advanced by explicit :meth:`advance` calls.

    Used by headless harnesses and tests. Timers scheduled while firing run in
    the same :meth:`advance` call when they fall inside the window.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._seq = count()
        self._heap: list[tuple[float, int, _ManualTimer]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(due=self._now + max(0.0, float(delay_s)), callback=callback)
        heapq.heappush(self._heap, (timer.due, next(self._seq), timer))
        return timer

    def pending(self) -> int:
        return sum(1 for _, _, timer in self._heap if not timer.cancelled)

    def advance(self, seconds: float = 0.0) -> int:
        """Move the clock forward, firing due timers in order; return how many ran."""

        target = self._now + max(0.0, float(seconds))
        fired = 0
        while self._heap and self._heap[0][0] <= target:
            due, _, timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            self._now = max(self._now, due)
            timer.callback()
            fired += 1
        self._now = target
        return fired

    def run_pending(self) -> int:
        return self.advance(0.0)


@dataclass
class TimerGroup:
    """Timers owned by one playback session, cancelled together on teardown."""

    scheduler: Scheduler
    _handles: list[TimerHandle] = field(default_factory=list)
    closed: bool = False

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> Optional[TimerHandle]:
        if self.closed:
            logger.debug("TimerGroup closed; dropping timer (delay=%.3fs)", delay_s)
            return None
        issued: list[TimerHandle] = []

        def _fire() -> None:
            if issued:
                self.discard(issued[0])
            callback()

        handle = self.scheduler.call_later(delay_s, _fire)
        issued.append(handle)
        self._handles.append(handle)
        return handle

    def discard(self, handle: Optional[TimerHandle]) -> None:
        if handle is None:
            return
        try:
            self._handles.remove(handle)
        except ValueError:
            pass

    def cancel_all(self) -> None:
        handles, self._handles = self._handles, []
        for handle in handles:
            handle.cancel()
        self.closed = True

    def __len__(self) -> int:
        return len(self._handles)


__all__ = [
    "AsyncioScheduler",
    "ManualScheduler",
    "Scheduler",
    "TimerGroup",
    "TimerHandle",
]
