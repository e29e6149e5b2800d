from __future__ import annotations

import json
from typing import Any

from watchsync.client.config import load_client_config
from watchsync.client.control.heartbeat import HeartbeatReporter
from watchsync.client.control.reconciler import ReconciliationEngine
from watchsync.client.player.headless import HeadlessPlayer
from watchsync.client.runtime.scheduler import ManualScheduler, TimerGroup
from watchsync.protocol import PlaybackState, encode_packet


def test_reporter_sends_state_every_interval() -> None:
    sched = ManualScheduler()
    timers = TimerGroup(sched)
    sent: list[tuple[Any, ...]] = []
    reporter = HeartbeatReporter(30.0)
    reporter.start(timers, lambda: (int(sched.now() * 1000), PlaybackState.PLAYING), lambda *a: sent.append(a))

    sched.advance(29.0)
    assert sent == []
    sched.advance(61.0)
    assert sent == [("state", 30000, 1), ("state", 60000, 1), ("state", 90000, 1)]
    assert reporter.sent == 3


def test_reporter_skips_empty_samples_and_survives_send_failure() -> None:
    sched = ManualScheduler()
    timers = TimerGroup(sched)
    readings = iter([None, (1000, PlaybackState.PAUSED), (2000, PlaybackState.PAUSED)])
    sent: list[tuple[Any, ...]] = []
    calls = {"n": 0}

    def _send(*args: Any) -> None:
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConnectionError("socket gone")
        sent.append(args)

    HeartbeatReporter(1.0).start(timers, lambda: next(readings), _send)
    sched.advance(3.0)
    assert sent == [("state", 2000, 0)]


def test_reporter_stops_with_timer_group() -> None:
    sched = ManualScheduler()
    timers = TimerGroup(sched)
    sent: list[tuple[Any, ...]] = []
    HeartbeatReporter(1.0).start(timers, lambda: (0, PlaybackState.PAUSED), lambda *a: sent.append(a))
    sched.advance(1.0)
    timers.cancel_all()
    sched.advance(10.0)
    assert len(sent) == 1


class _Transport:
    def __init__(self) -> None:
        self.sent: list[tuple[Any, ...]] = []

    def send(self, message_type: str, *args: Any) -> None:
        self.sent.append((message_type, *args))


def test_engine_heartbeat_restarts_on_hard_reset() -> None:
    sched = ManualScheduler()
    transport = _Transport()
    engine = ReconciliationEngine(
        sched,
        config=load_client_config({"WATCHSYNC_HEARTBEAT_S": "30"}),
        transport=transport,
        player_factory=lambda kind: HeadlessPlayer(sched, kind=kind),
    )

    def _video(url: str) -> str:
        payload = {"url": url, "time": 0, "state": 1, "permission": 1, "cc_url": "", "current_player": 0}
        return encode_packet("video_data", [json.dumps(payload)])

    engine.handle_frame(_video("a.mp4"))
    sched.advance(20.0)
    engine.handle_frame(_video("b.mp4"))
    sched.advance(20.0)
    assert transport.sent == []
    sched.advance(10.0)
    assert transport.sent == [("state", 30000, 1)]
