"""State owned by one loaded source: adapter, echo flags, timers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from watchsync.protocol.messages import PermissionMask, PlayerKind

from ..player.adapter import PlayerAdapter
from ..runtime.scheduler import TimerGroup
from .pending_actions import PendingActionTracker

logger = logging.getLogger(__name__)


@dataclass
class PlaybackSession:
    """Everything torn down together on a hard reset."""

    generation: int
    url: str
    kind: PlayerKind
    adapter: PlayerAdapter
    timers: TimerGroup
    tracker: PendingActionTracker = field(default_factory=PendingActionTracker)
    applied_caption_url: Optional[str] = None
    applied_permission: Optional[PermissionMask] = None
    # (timer, time_ms, was_playing) while a caption restore is outstanding
    caption_restore: Optional[tuple[Any, int, bool]] = None
    ready: bool = False
    closed: bool = False

    def matches(self, url: str, kind: PlayerKind) -> bool:
        return self.url == url and self.kind == PlayerKind(kind)

    def teardown(self) -> None:
        """Cancel timers, detach subscriptions, close the adapter."""

        if self.closed:
            return
        self.closed = True
        self.timers.cancel_all()
        self.adapter.off_all()
        self.tracker.reset()
        try:
            self.adapter.close()
        except Exception:
            logger.warning("session %d: adapter close failed", self.generation, exc_info=True)


__all__ = ["PlaybackSession"]
