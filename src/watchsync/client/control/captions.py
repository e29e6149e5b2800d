"""Caption attach/detach with position restore.

Some backends reload the source when the caption track changes. The
controller snapshots time and state before touching the track and restores
both after a short delay, marking each corrective command as an expected echo
so the restore is never relayed upstream.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from watchsync.protocol.messages import ActionKind, PlaybackState

from .session import PlaybackSession

logger = logging.getLogger(__name__)

LOCAL_CAPTION_LABEL = "Current CC"
REMOTE_CAPTION_LABEL = "Captions"


class CaptionController:
    def __init__(self, restore_delay_ms: int = 250) -> None:
        self.restore_delay_ms = max(0, int(restore_delay_ms))

    def attach(self, session: PlaybackSession, url: str, label: str = REMOTE_CAPTION_LABEL) -> None:
        self._swap(session, lambda: session.adapter.attach_caption(url, label))
        session.applied_caption_url = url
        logger.info("captions: attached %s (%s)", url, label)

    def detach(self, session: PlaybackSession) -> None:
        self._swap(session, session.adapter.detach_caption)
        session.applied_caption_url = None
        logger.info("captions: detached")

    def attach_local(self, session: PlaybackSession, path: str | Path) -> str:
        url = Path(path).expanduser().resolve().as_uri()
        self.attach(session, url, LOCAL_CAPTION_LABEL)
        return url

    def _swap(self, session: PlaybackSession, action: Callable[[], None]) -> None:
        adapter = session.adapter
        pending = session.caption_restore
        if pending is not None:
            # Back-to-back swaps restore to the position before the first one.
            handle, time_ms, was_playing = pending
            handle.cancel()
            session.timers.discard(handle)
        else:
            time_ms = adapter.get_current_time_ms()
            was_playing = PlaybackState.from_observed(adapter.get_observed_state()) is PlaybackState.PLAYING
        action()
        handle = session.timers.call_later(
            self.restore_delay_ms / 1000.0,
            lambda: self._restore(session, time_ms, was_playing),
        )
        session.caption_restore = (handle, time_ms, was_playing) if handle is not None else None

    def _restore(self, session: PlaybackSession, time_ms: int, was_playing: bool) -> None:
        session.caption_restore = None
        if session.closed:
            return
        adapter = session.adapter
        session.tracker.expect_echo(ActionKind.SEEK)
        adapter.seek(time_ms)
        observed: Optional[PlaybackState] = PlaybackState.from_observed(adapter.get_observed_state())
        if was_playing and observed is not PlaybackState.PLAYING:
            session.tracker.expect_echo(ActionKind.PLAY)
            adapter.play()
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("captions: restored t=%dms playing=%s", time_ms, was_playing)


__all__ = ["CaptionController", "LOCAL_CAPTION_LABEL", "REMOTE_CAPTION_LABEL"]
