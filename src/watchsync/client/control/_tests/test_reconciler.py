from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any

import pytest

from watchsync.client.config import load_client_config
from watchsync.client.control.reconciler import ReconciliationEngine
from watchsync.client.identity import IdentityStore
from watchsync.client.player.adapter import OFFSET_KEY, NativeEvent, NativeEventKind
from watchsync.client.player.headless import HeadlessPlayer
from watchsync.client.runtime.scheduler import ManualScheduler
from watchsync.protocol import PermissionMask, PlayerKind, encode_packet


class _Transport:
    def __init__(self) -> None:
        self.sent: list[tuple[Any, ...]] = []

    def send(self, message_type: str, *args: Any) -> None:
        self.sent.append((message_type, *args))


def _harness(env: dict[str, str] | None = None, *, reload_on_caption: bool = False, identity=None):
    base = {"WATCHSYNC_HEARTBEAT_S": "3600"}
    base.update(env or {})
    sched = ManualScheduler()
    transport = _Transport()
    players: list[HeadlessPlayer] = []

    def _factory(kind: PlayerKind) -> HeadlessPlayer:
        player = HeadlessPlayer(sched, kind=kind, reload_on_caption=reload_on_caption)
        players.append(player)
        return player

    affordances: list[Any] = []
    engine = ReconciliationEngine(
        sched,
        config=load_client_config(base),
        transport=transport,
        player_factory=_factory,
        identity=identity,
        on_affordances=affordances.append,
    )
    return SimpleNamespace(
        engine=engine,
        sched=sched,
        transport=transport,
        players=players,
        affordances=affordances,
    )


def _video(url="a.mp4", time=10000, state=1, permission=1, cc_url="", current_player=0) -> str:
    payload = {
        "url": url,
        "time": time,
        "state": state,
        "permission": permission,
        "cc_url": cc_url,
        "current_player": current_player,
    }
    return encode_packet("video_data", [json.dumps(payload)])


def _joined(h, **video) -> HeadlessPlayer:
    h.engine.handle_frame(_video(**video))
    h.sched.run_pending()
    return h.players[-1]


def test_fresh_session_seeks_and_plays_on_ready() -> None:
    h = _harness()
    h.engine.handle_frame(_video(time=10000, state=1, permission=1))
    assert len(h.players) == 1
    player = h.players[0]
    assert player.commands[0] == ("set_mute", False)
    assert player.commands[1] == ("setup", "a.mp4", True)

    h.sched.run_pending()

    assert ("seek", 10000) in player.commands
    assert player.get_current_time_ms() == 10000
    assert player.get_observed_state() == "playing"
    assert h.transport.sent == []
    assert all(h.engine.tracker.snapshot().values())


def test_paused_load_is_started_on_ready() -> None:
    h = _harness()
    h.engine.handle_frame(_video(time=10000, state=0))
    h.engine.handle_frame(encode_packet("state", [10000, 1]))
    player = h.players[0]
    assert player.commands[1] == ("setup", "a.mp4", False)

    h.sched.run_pending()

    assert player.commands[-2:] == [("seek", 10000), ("play",)]
    assert player.get_observed_state() == "playing"
    assert h.transport.sent == []
    assert all(h.engine.tracker.snapshot().values())


def test_state_update_seeks_then_pauses_and_swallows_both_echoes() -> None:
    h = _harness()
    player = _joined(h, time=10000, state=1)

    h.engine.handle_frame(encode_packet("state", [12000, 0]))

    assert player.commands[-2:] == [("seek", 12000), ("pause",)]
    assert h.engine.tracker.snapshot() == {"seek": False, "play": True, "pause": False}
    h.sched.run_pending()
    assert all(h.engine.tracker.snapshot().values())
    assert h.transport.sent == []
    assert h.engine.last_snapshot.position_ms == 12000
    assert player.get_observed_state() == "paused"


def test_second_same_kind_event_is_genuine() -> None:
    h = _harness()
    player = _joined(h, time=10000, state=1)
    h.engine.handle_frame(encode_packet("seek", [40000]))
    h.sched.run_pending()
    assert h.transport.sent == []

    player.user_seek(45000)
    h.sched.run_pending()
    assert h.transport.sent == [("seek", 45000)]


def test_within_tolerance_needs_no_correction() -> None:
    h = _harness()
    player = _joined(h, time=10000, state=1)
    before = list(player.commands)
    h.engine.handle_frame(encode_packet("state", [10999, 1]))
    h.engine.handle_frame(encode_packet("seek", [10500]))
    assert player.commands == before
    assert h.engine.last_snapshot.position_ms == 10500


def test_restricted_drag_is_reverted_without_send() -> None:
    h = _harness()
    player = _joined(h, time=10000, state=0, permission=0)

    player.user_seek(50000)
    h.sched.run_pending()

    assert player.commands[-1] == ("seek", 10000)
    assert player.get_current_time_ms() == 10000
    assert h.transport.sent == []
    assert all(h.engine.tracker.snapshot().values())


def test_restricted_play_is_reverted_to_pause() -> None:
    h = _harness()
    player = _joined(h, time=0, state=0, permission=0)
    player.user_play()
    h.sched.run_pending()
    assert player.commands[-1] == ("pause",)
    assert player.get_observed_state() == "paused"
    assert h.transport.sent == []


def test_automatic_pause_is_neither_relayed_nor_reverted() -> None:
    for permission in (0, 1):
        h = _harness()
        player = _joined(h, time=0, state=1, permission=permission)
        commands = len(player.commands)
        player.buffer_pause()
        h.sched.run_pending()
        assert h.transport.sent == []
        assert len(player.commands) == commands


def test_controllable_actions_are_relayed() -> None:
    h = _harness()
    player = _joined(h, time=10000, state=0)

    player.user_seek(50000)
    player.user_play()
    h.sched.advance(2.0)
    player.user_pause()
    h.sched.run_pending()

    assert h.transport.sent == [("seek", 50000), ("play", 50000), ("pause", 52000)]


def test_skip_forward_is_a_genuine_seek() -> None:
    h = _harness()
    player = _joined(h, time=10000, state=0)
    assert h.engine.skip_forward() is True
    h.sched.run_pending()
    assert player.get_current_time_ms() == 20000
    assert h.transport.sent == [("seek", 20000)]


def test_skip_forward_requires_control() -> None:
    h = _harness()
    _joined(h, time=10000, state=0, permission=0)
    assert h.engine.skip_forward(5) is False


def test_hard_reset_clears_tracker_and_recreates_adapter() -> None:
    h = _harness()
    first = _joined(h, url="a.mp4")
    old_generation = h.engine.generation
    tracker = h.engine.tracker
    tracker.expect_echo("seek")
    tracker.expect_echo("play")

    h.engine.handle_frame(_video(url="b.mp4"))

    assert first.closed
    assert len(h.players) == 2
    assert h.engine.generation == old_generation + 1
    assert all(h.engine.tracker.snapshot().values())
    assert h.players[1].commands[0] == ("setup", "b.mp4", True)


def test_player_kind_change_is_a_hard_reset() -> None:
    h = _harness()
    _joined(h, url="a.mp4", current_player=0)
    h.engine.handle_frame(_video(url="a.mp4", current_player=1))
    assert len(h.players) == 2
    assert h.players[1].kind is PlayerKind.ELEMENT


def test_stale_generation_events_are_ignored() -> None:
    h = _harness()
    _joined(h, url="a.mp4", time=0, state=0)
    stale = h.engine.generation
    _joined(h, url="b.mp4", time=0, state=0)

    h.engine.on_native_event(NativeEvent(NativeEventKind.SEEK, {OFFSET_KEY: 99.0}, generation=stale))
    assert h.transport.sent == []


def test_mute_applied_to_first_instance_only() -> None:
    h = _harness({"WATCHSYNC_START_MUTED": "1"})
    _joined(h, url="a.mp4")
    _joined(h, url="b.mp4")
    assert h.players[0].muted is True
    assert not any(c[0] == "set_mute" for c in h.players[1].commands)


def test_updates_before_ready_are_applied_on_ready() -> None:
    h = _harness()
    h.engine.handle_frame(_video(time=10000, state=1))
    h.engine.handle_frame(encode_packet("state", [20000, 0]))
    player = h.players[0]
    assert [c[0] for c in player.commands] == ["set_mute", "setup"]

    h.sched.run_pending()
    assert player.get_current_time_ms() == 20000
    assert player.get_observed_state() == "paused"
    assert h.transport.sent == []


def test_remote_play_and_pause_messages() -> None:
    h = _harness()
    player = _joined(h, time=0, state=0)
    h.engine.handle_frame(encode_packet("play", [15000]))
    h.sched.run_pending()
    assert player.get_observed_state() == "playing"
    assert player.get_current_time_ms() == 15000
    h.engine.handle_frame(encode_packet("pause", [15000]))
    h.sched.run_pending()
    assert player.get_observed_state() == "paused"
    assert h.transport.sent == []


def test_permission_application_is_idempotent() -> None:
    h = _harness()
    _joined(h, permission=0)
    first = h.engine.apply_permission(PermissionMask.CONTROLLABLE)
    calls = len(h.affordances)
    second = h.engine.apply_permission(PermissionMask.CONTROLLABLE)
    assert first == second
    assert len(h.affordances) == calls
    assert h.affordances[-1].seek_bar is True


def test_permission_applied_after_time_and_state_correction() -> None:
    h = _harness()
    player = _joined(h, time=10000, state=1, permission=1)
    seen: list[list[tuple]] = []
    h.engine.on_affordances = lambda _aff: seen.append(list(player.commands))

    h.engine.handle_frame(_video(time=30000, state=0, permission=0))

    assert len(seen) == 1
    assert seen[0][-2:] == [("seek", 30000), ("pause",)]
    assert h.engine.affordances.seek_bar is False


def test_permission_follows_video_data() -> None:
    h = _harness()
    _joined(h, permission=1)
    assert h.engine.affordances.seek_bar is True
    h.engine.handle_frame(_video(permission=0))
    assert h.engine.affordances.seek_bar is False
    assert h.engine.affordances.caption_picker is True


def test_caption_from_snapshot_applied_on_ready_and_cleared_later() -> None:
    h = _harness()
    player = _joined(h, time=0, state=0, cc_url="https://cdn.example/a.vtt")
    assert player.caption == ("https://cdn.example/a.vtt", "Captions")

    h.engine.handle_frame(_video(time=0, state=0, cc_url=""))
    assert player.caption is None
    assert h.engine.session.applied_caption_url is None


def test_native_error_is_logged_without_teardown(caplog) -> None:
    h = _harness()
    player = _joined(h)
    player.fail("decoder crashed")
    with caplog.at_level("WARNING"):
        h.sched.run_pending()
    assert "decoder crashed" in caplog.text
    assert not player.closed
    assert h.transport.sent == []


def test_bad_frames_are_dropped() -> None:
    h = _harness()
    _joined(h)
    h.engine.handle_frame("no header")
    h.engine.handle_frame("||-=-||mystery-=-1")
    h.engine.handle_frame(encode_packet("video_data", ["{broken"]))
    assert len(h.players) == 1


def test_failed_action_message_resets_tracker_kind() -> None:
    h = _harness()
    _joined(h)
    h.engine.tracker.expect_echo("seek")
    h.engine.handle_frame(encode_packet("seek", ["not-a-number"]))
    assert h.engine.tracker.is_genuine("seek")


def test_overflowing_position_is_dropped_and_resets_tracker_kind() -> None:
    h = _harness()
    player = _joined(h, time=10000, state=1)
    h.engine.tracker.expect_echo("seek")
    h.engine.handle_frame(encode_packet("seek", ["1e999"]))
    assert h.engine.tracker.is_genuine("seek")
    assert h.engine.last_snapshot.position_ms == 10000

    h.engine.handle_frame(_video(time=10000).replace("10000", "1e999"))
    assert h.engine.session.adapter is player
    assert h.engine.last_snapshot.position_ms == 10000

    player.user_seek(20000)
    h.sched.run_pending()
    assert h.transport.sent == [("seek", 20000)]


def test_timeline_messages_before_video_data_are_ignored() -> None:
    h = _harness()
    h.engine.handle_frame(encode_packet("state", [1000, 1]))
    assert h.players == []
    assert h.engine.last_snapshot is None


def test_identity_messages(tmp_path) -> None:
    identity = IdentityStore(tmp_path / "identity.json")
    identity.remember_owner_auth("secret")
    h = _harness(identity=identity)

    h.engine.handle_frame(encode_packet("auth_name", ["alice#2"]))
    h.engine.handle_frame(encode_packet("not_owner"))
    h.engine.handle_frame(encode_packet("joined", ["bob"]))

    assert identity.name == "alice#2"
    assert identity.owner_auth is None


def test_no_transport_drops_outbound() -> None:
    h = _harness()
    player = _joined(h, time=0, state=0)
    h.engine.transport = None
    player.user_seek(5000)
    h.sched.run_pending()
    assert h.transport.sent == []


def test_close_tears_down_session() -> None:
    h = _harness()
    player = _joined(h)
    h.engine.close()
    assert player.closed
    assert h.engine.session is None


@pytest.mark.parametrize("tolerance, current, target, within", [
    (1000, 10000, 10999, True),
    (1000, 10999, 11000, False),
    (500, 10000, 10400, True),
    (500, 10400, 10600, False),
])
def test_tolerance_flooring(tolerance, current, target, within) -> None:
    h = _harness({"WATCHSYNC_SYNC_TOLERANCE_MS": str(tolerance)})
    assert h.engine.within_tolerance(current, target) is within
