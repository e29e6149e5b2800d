"""In-process player backend with a simulated timeline.

The headless player keeps a position anchored to the scheduler clock and fires
native events the way a browser player would: commands and user interactions
produce ``seek``/``play``/``pause`` callbacks, delivered through the scheduler
so they arrive after the command returns. Bots and tests drive it directly.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any, Optional

from watchsync.protocol.messages import PlayerKind

from ..runtime.scheduler import Scheduler
from .adapter import (
    OBSERVED_IDLE,
    OBSERVED_PAUSED,
    OBSERVED_PLAYING,
    OFFSET_KEY,
    PAUSE_REASON_INTERACTION,
    PAUSE_REASON_KEY,
    NativeEventKind,
    PlayerAdapter,
    ms_to_seconds,
)

logger = logging.getLogger(__name__)

PAUSE_REASON_EXTERNAL = "external"


class HeadlessPlayer(PlayerAdapter):
    """Simulated player.

    ``reload_on_caption`` emulates backends that reload the source when a
    caption track is attached or removed: the position drops to zero and
    playback pauses, announced by an automatic (reason-less) pause.
    """

    name = "headless"

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        *,
        kind: PlayerKind = PlayerKind.PLAYLIST,
        duration_ms: Optional[int] = None,
        reload_on_caption: bool = False,
        event_delay_s: float = 0.0,
    ) -> None:
        super().__init__()
        self.scheduler = scheduler
        self.kind = PlayerKind(kind)
        self.duration_ms = duration_ms
        self.reload_on_caption = bool(reload_on_caption)
        self.event_delay_s = float(event_delay_s)
        self.source_url: Optional[str] = None
        self.caption: Optional[tuple[str, str]] = None
        self.muted = False
        self.commands: list[tuple[Any, ...]] = []
        self._loaded = False
        self._playing = False
        self._anchor_ms = 0.0
        self._anchor_clock = self._clock()

    # ------------------------------------------------------------------ clock
    def _clock(self) -> float:
        if self.scheduler is not None:
            return float(self.scheduler.now())
        return time.monotonic()

    def _position_ms(self) -> float:
        position = self._anchor_ms
        if self._playing:
            position += (self._clock() - self._anchor_clock) * 1000.0
        if self.duration_ms is not None:
            position = min(position, float(self.duration_ms))
        return max(0.0, position)

    def _rebase(self, position_ms: Optional[float] = None) -> None:
        self._anchor_ms = self._position_ms() if position_ms is None else max(0.0, float(position_ms))
        self._anchor_clock = self._clock()

    def _deliver(self, kind: NativeEventKind, payload: Optional[Mapping[str, Any]] = None) -> None:
        if self.scheduler is None:
            self._emit(kind, payload)
            return
        frozen = dict(payload) if payload is not None else None
        self.scheduler.call_later(self.event_delay_s, lambda: self._emit(kind, frozen))

    # ------------------------------------------------------------------ commands
    def setup(self, source_url: str, autostart: bool) -> None:
        self._ensure_open()
        self.commands.append(("setup", source_url, bool(autostart)))
        self.source_url = str(source_url)
        self.caption = None
        self._rebase(0.0)
        self._playing = bool(autostart)
        self._loaded = True
        logger.debug("headless: setup url=%s autostart=%s", source_url, autostart)
        self._deliver(NativeEventKind.READY)

    def seek(self, ms: float) -> None:
        self._ensure_open()
        self.commands.append(("seek", int(ms)))
        self._apply_seek(ms)

    def play(self) -> None:
        self._ensure_open()
        self.commands.append(("play",))
        self._apply_play()

    def pause(self) -> None:
        self._ensure_open()
        self.commands.append(("pause",))
        self._apply_pause({PAUSE_REASON_KEY: PAUSE_REASON_EXTERNAL})

    def get_current_time_ms(self) -> int:
        return int(self._position_ms())

    def get_observed_state(self) -> str:
        if not self._loaded or self._closed:
            return OBSERVED_IDLE
        return OBSERVED_PLAYING if self._playing else OBSERVED_PAUSED

    def attach_caption(self, url: str, label: str) -> None:
        self._ensure_open()
        self.commands.append(("attach_caption", url, label))
        self.caption = (str(url), str(label))
        if self.reload_on_caption:
            self._reload()

    def detach_caption(self) -> None:
        self._ensure_open()
        self.commands.append(("detach_caption",))
        had_caption = self.caption is not None
        self.caption = None
        if had_caption and self.reload_on_caption:
            self._reload()

    def set_mute(self, muted: bool) -> None:
        self.commands.append(("set_mute", bool(muted)))
        self.muted = bool(muted)

    def _shutdown(self) -> None:
        self._playing = False
        self._loaded = False
        logger.debug("headless: closed url=%s", self.source_url)

    # ------------------------------------------------------------------ internals
    def _apply_seek(self, ms: float) -> None:
        self._rebase(ms)
        self._deliver(NativeEventKind.SEEK, {OFFSET_KEY: ms_to_seconds(self._anchor_ms)})

    def _apply_play(self) -> None:
        if self._playing:
            return
        self._rebase()
        self._playing = True
        self._deliver(NativeEventKind.PLAY, {"position": ms_to_seconds(self._anchor_ms)})

    def _apply_pause(self, payload: Mapping[str, Any]) -> None:
        if not self._playing:
            return
        self._rebase()
        self._playing = False
        self._deliver(NativeEventKind.PAUSE, payload)

    def _reload(self) -> None:
        was_playing = self._playing
        self._rebase(0.0)
        self._playing = False
        if was_playing:
            self._deliver(NativeEventKind.PAUSE, {"cause": "reload"})

    # ------------------------------------------------------------------ user simulation
    def user_seek(self, ms: float) -> None:
        """Simulate the viewer dragging the seek bar."""

        self._ensure_open()
        self._apply_seek(ms)

    def user_play(self) -> None:
        self._ensure_open()
        self._apply_play()

    def user_pause(self) -> None:
        self._ensure_open()
        self._apply_pause({PAUSE_REASON_KEY: PAUSE_REASON_INTERACTION})

    def buffer_pause(self) -> None:
        """Simulate an automatic stall: pauses without a pause reason."""

        self._ensure_open()
        self._apply_pause({"cause": "buffering"})

    def fail(self, message: str = "playback error") -> None:
        self._ensure_open()
        self._deliver(NativeEventKind.ERROR, {"message": str(message)})


__all__ = ["HeadlessPlayer", "PAUSE_REASON_EXTERNAL"]
