"""python-mpv backend.

mpv reports property changes and events on its own thread. When a ``dispatch``
callable is supplied (typically ``loop.call_soon_threadsafe``) every native
event is marshalled through it so handlers run on the engine's loop.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Optional

from .adapter import (
    OBSERVED_BUFFERING,
    OBSERVED_IDLE,
    OBSERVED_PAUSED,
    OBSERVED_PLAYING,
    OBSERVED_SEEKING,
    OFFSET_KEY,
    PAUSE_REASON_INTERACTION,
    PAUSE_REASON_KEY,
    AdapterError,
    NativeEventKind,
    PlayerAdapter,
    ms_to_seconds,
    seconds_to_ms,
)

logger = logging.getLogger(__name__)

Dispatch = Callable[[Callable[[], None]], Any]

_DEFAULT_OPTIONS: dict[str, Any] = {
    "input_default_bindings": True,
    "input_vo_keyboard": True,
    "osc": True,
    "keep_open": "yes",
}


def _create_mpv(options: Mapping[str, Any]) -> Any:
    try:
        import mpv  # type: ignore[import-not-found]
    except (ImportError, OSError) as exc:
        raise AdapterError("mpv backend requires python-mpv and libmpv") from exc
    return mpv.MPV(**dict(options))


class MpvPlayerAdapter(PlayerAdapter):
    name = "mpv"

    def __init__(
        self,
        player: Any = None,
        *,
        dispatch: Optional[Dispatch] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__()
        merged = dict(_DEFAULT_OPTIONS)
        if options:
            merged.update(options)
        self._mpv = player if player is not None else _create_mpv(merged)
        self._dispatch = dispatch
        self._loaded = False
        self._seek_pending = False
        self._last_pause: Optional[bool] = None
        self._caption_sid: Optional[int] = None
        self._install_observers()

    @property
    def mpv(self) -> Any:
        return self._mpv

    # ------------------------------------------------------------------ mpv thread
    def _install_observers(self) -> None:
        player = self._mpv
        player.observe_property("pause", self._on_pause_property)
        player.observe_property("paused-for-cache", self._on_cache_property)

        @player.event_callback("file-loaded")
        def _on_file_loaded(_event: Any) -> None:
            self._loaded = True
            self._last_pause = bool(self._read("pause", False))
            self._post(NativeEventKind.READY)

        @player.event_callback("seek")
        def _on_seek(_event: Any) -> None:
            self._seek_pending = True

        @player.event_callback("playback-restart")
        def _on_playback_restart(_event: Any) -> None:
            if not self._seek_pending:
                return
            self._seek_pending = False
            self._post(NativeEventKind.SEEK, {OFFSET_KEY: float(self._read("time-pos", 0.0) or 0.0)})

        @player.event_callback("end-file")
        def _on_end_file(event: Any) -> None:
            error = _end_file_error(event)
            if error:
                self._post(NativeEventKind.ERROR, {"message": error})

        self._callbacks = (_on_file_loaded, _on_seek, _on_playback_restart, _on_end_file)

    def _on_pause_property(self, _name: str, value: Any) -> None:
        if not self._loaded or value is None:
            return
        paused = bool(value)
        if paused == self._last_pause:
            return
        self._last_pause = paused
        if paused:
            self._post(NativeEventKind.PAUSE, self._pause_payload())
        else:
            self._post(NativeEventKind.PLAY, {"position": float(self._read("time-pos", 0.0) or 0.0)})

    def _pause_payload(self) -> dict[str, Any]:
        # keep-open pauses at end of file; that and cache stalls carry no reason.
        if self._read("eof-reached", False):
            return {"cause": "eof"}
        if self._read("paused-for-cache", False):
            return {"cause": "buffering"}
        return {PAUSE_REASON_KEY: PAUSE_REASON_INTERACTION}

    def _on_cache_property(self, _name: str, value: Any) -> None:
        if self._loaded and value:
            self._post(NativeEventKind.PAUSE, {"cause": "buffering"})

    def _post(self, kind: NativeEventKind, payload: Optional[Mapping[str, Any]] = None) -> None:
        if self._closed:
            return
        if self._dispatch is None:
            self._emit(kind, payload)
            return
        frozen = dict(payload) if payload is not None else None
        self._dispatch(lambda: self._emit(kind, frozen))

    def _read(self, prop: str, default: Any = None) -> Any:
        try:
            return self._mpv[prop]
        except Exception:
            logger.debug("mpv: property %s unavailable", prop, exc_info=True)
            return default

    # ------------------------------------------------------------------ commands
    def setup(self, source_url: str, autostart: bool) -> None:
        self._ensure_open()
        self._loaded = False
        self._seek_pending = False
        self._caption_sid = None
        self._mpv.pause = not autostart
        self._mpv.play(source_url)
        logger.info("mpv: loading %s (autostart=%s)", source_url, autostart)

    def seek(self, ms: float) -> None:
        self._ensure_open()
        self._mpv.seek(ms_to_seconds(ms), reference="absolute", precision="exact")

    def play(self) -> None:
        self._ensure_open()
        self._mpv.pause = False

    def pause(self) -> None:
        self._ensure_open()
        self._mpv.pause = True

    def get_current_time_ms(self) -> int:
        position = self._read("time-pos")
        if position is None:
            return 0
        return seconds_to_ms(position)

    def get_observed_state(self) -> str:
        if not self._loaded or self._closed:
            return OBSERVED_IDLE
        if self._read("seeking", False):
            return OBSERVED_SEEKING
        if self._read("paused-for-cache", False):
            return OBSERVED_BUFFERING
        return OBSERVED_PAUSED if self._read("pause", False) else OBSERVED_PLAYING

    def attach_caption(self, url: str, label: str) -> None:
        self._ensure_open()
        if self._caption_sid is not None:
            self._remove_caption()
        self._mpv.sub_add(url, "select", label)
        sid = self._read("sid")
        self._caption_sid = int(sid) if isinstance(sid, int) and not isinstance(sid, bool) else None
        logger.debug("mpv: caption %s attached as sid=%s", url, self._caption_sid)

    def detach_caption(self) -> None:
        self._ensure_open()
        if self._caption_sid is not None:
            self._remove_caption()

    def _remove_caption(self) -> None:
        sid, self._caption_sid = self._caption_sid, None
        try:
            self._mpv.sub_remove(sid)
        except Exception as exc:
            raise AdapterError(f"mpv: failed to remove caption sid={sid}") from exc

    def set_mute(self, muted: bool) -> None:
        self._mpv.mute = bool(muted)

    def _shutdown(self) -> None:
        try:
            self._mpv.terminate()
        except Exception:
            logger.debug("mpv: terminate failed", exc_info=True)


def _end_file_error(event: Any) -> Optional[str]:
    data = getattr(event, "data", None)
    reason = getattr(data, "reason", None)
    if reason is None and isinstance(event, Mapping):
        reason = event.get("reason")
    if reason is None:
        return None
    text = str(getattr(reason, "name", reason)).lower()
    if "error" not in text:
        return None
    detail = getattr(data, "error", None)
    return f"end-file: {detail}" if detail else "end-file: error"


__all__ = ["MpvPlayerAdapter"]
