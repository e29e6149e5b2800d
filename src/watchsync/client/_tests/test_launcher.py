from __future__ import annotations

import pytest

from watchsync.client import launcher


@pytest.fixture
def captured(monkeypatch, tmp_path):
    calls = []
    monkeypatch.setenv("WATCHSYNC_IDENTITY_FILE", str(tmp_path / "identity.json"))
    for name in ("WATCHSYNC_ROOM", "WATCHSYNC_SERVER", "WATCHSYNC_BACKEND", "WATCHSYNC_NAME"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(launcher, "launch_sync_client", lambda config, debug=False: calls.append((config, debug)))
    return calls


def test_cli_flags_override_env(captured, monkeypatch) -> None:
    monkeypatch.setenv("WATCHSYNC_SERVER", "ws://env.example/ws")
    rc = launcher.main(["--room", "r1", "--server", "ws://cli.example/ws", "--backend", "mpv", "--debug"])
    assert rc == 0
    config, debug = captured[0]
    assert config.room_id == "r1"
    assert config.server_url == "ws://cli.example/ws"
    assert config.playlist_backend == config.element_backend == "mpv"
    assert debug is True


def test_name_flag_is_remembered(captured, tmp_path) -> None:
    launcher.main(["--room", "r1", "--name", "carol"])
    from watchsync.client.identity import IdentityStore

    assert IdentityStore(tmp_path / "identity.json").name == "carol"


def test_room_is_required(captured) -> None:
    with pytest.raises(SystemExit):
        launcher.main([])
    assert captured == []
