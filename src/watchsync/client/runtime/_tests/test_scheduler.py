from __future__ import annotations

import asyncio

from watchsync.client.runtime.scheduler import AsyncioScheduler, ManualScheduler, TimerGroup


def test_manual_scheduler_fires_in_order() -> None:
    sched = ManualScheduler()
    fired: list[str] = []
    sched.call_later(0.5, lambda: fired.append("b"))
    sched.call_later(0.1, lambda: fired.append("a"))
    sched.call_later(2.0, lambda: fired.append("c"))

    assert sched.advance(1.0) == 2
    assert fired == ["a", "b"]
    assert sched.now() == 1.0
    assert sched.pending() == 1


def test_manual_scheduler_runs_nested_timers_inside_window() -> None:
    sched = ManualScheduler()
    fired: list[float] = []

    def _first() -> None:
        fired.append(sched.now())
        sched.call_later(0.25, lambda: fired.append(sched.now()))

    sched.call_later(0.25, _first)
    sched.advance(1.0)
    assert fired == [0.25, 0.5]


def test_cancelled_timer_does_not_fire() -> None:
    sched = ManualScheduler()
    fired: list[int] = []
    handle = sched.call_later(0.1, lambda: fired.append(1))
    handle.cancel()
    assert sched.advance(1.0) == 0
    assert fired == []


def test_timer_group_cancel_all_and_close() -> None:
    sched = ManualScheduler()
    group = TimerGroup(sched)
    fired: list[int] = []
    group.call_later(0.1, lambda: fired.append(1))
    group.call_later(0.2, lambda: fired.append(2))
    assert len(group) == 2

    group.cancel_all()
    sched.advance(1.0)
    assert fired == []
    assert group.closed
    assert group.call_later(0.1, lambda: fired.append(3)) is None


def test_timer_group_forgets_fired_handles() -> None:
    sched = ManualScheduler()
    group = TimerGroup(sched)
    group.call_later(0.1, lambda: None)
    sched.advance(0.2)
    assert len(group) == 0


def test_asyncio_scheduler_uses_loop_clock() -> None:
    async def _run() -> list[str]:
        sched = AsyncioScheduler()
        fired: list[str] = []
        start = sched.now()
        sched.call_later(0.01, lambda: fired.append("x"))
        await asyncio.sleep(0.05)
        assert sched.now() >= start
        return fired

    assert asyncio.run(_run()) == ["x"]
