"""Periodic ``state`` report so the coordinator can track drift."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from watchsync.protocol.messages import STATE_TYPE, PlaybackState

from ..runtime.scheduler import TimerGroup

logger = logging.getLogger(__name__)

Sample = Callable[[], Optional[tuple[int, PlaybackState]]]
Send = Callable[..., Any]


class HeartbeatReporter:
    """Schedules ``state [position_ms, state]`` on a session's timer group.

    The timers belong to the session, so a hard reset cancels the old cycle and
    the engine starts a new one for the next session.
    """

    def __init__(self, interval_s: float = 30.0) -> None:
        assert interval_s > 0, "heartbeat interval must be positive"
        self.interval_s = float(interval_s)
        self.sent = 0

    def start(self, timers: TimerGroup, sample: Sample, send: Send) -> None:
        def _tick() -> None:
            if timers.closed:
                return
            try:
                reading = sample()
                if reading is not None:
                    position_ms, state = reading
                    send(STATE_TYPE, int(position_ms), int(state))
                    self.sent += 1
            except Exception:
                logger.debug("heartbeat: report failed", exc_info=True)
            timers.call_later(self.interval_s, _tick)

        timers.call_later(self.interval_s, _tick)


__all__ = ["HeartbeatReporter"]
