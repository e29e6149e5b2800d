from __future__ import annotations

import pytest

from watchsync.client.config import load_client_config
from watchsync.client.player.adapter import AdapterError
from watchsync.client.player.factory import create_player
from watchsync.client.player.headless import HeadlessPlayer
from watchsync.client.runtime.scheduler import ManualScheduler
from watchsync.protocol import PlayerKind


def test_headless_backend_for_both_kinds() -> None:
    config = load_client_config({})
    sched = ManualScheduler()
    for kind in PlayerKind:
        player = create_player(kind, config, sched)
        assert isinstance(player, HeadlessPlayer)
        assert player.kind is kind
        assert player.scheduler is sched


def test_backend_chosen_per_kind() -> None:
    config = load_client_config({"WATCHSYNC_ELEMENT_BACKEND": "mpv"})
    assert config.backend_for(PlayerKind.PLAYLIST) == "headless"
    assert config.backend_for(PlayerKind.ELEMENT) == "mpv"


def test_unknown_backend_raises() -> None:
    config = load_client_config({}).with_overrides(playlist_backend="vlc")
    with pytest.raises(AdapterError):
        create_player(PlayerKind.PLAYLIST, config)
