"""Backend selection for the player kind declared by the coordinator."""

from __future__ import annotations

import logging
from typing import Optional

from watchsync.protocol.messages import PlayerKind

from ..config import ClientConfig
from ..runtime.scheduler import AsyncioScheduler, Scheduler
from .adapter import AdapterError, PlayerAdapter

logger = logging.getLogger(__name__)


def create_player(
    kind: PlayerKind,
    config: ClientConfig,
    scheduler: Optional[Scheduler] = None,
) -> PlayerAdapter:
    """Instantiate the backend configured for ``kind``."""

    backend = config.backend_for(kind)
    logger.debug("create_player: kind=%s backend=%s", PlayerKind(kind).name, backend)
    if backend == "headless":
        from .headless import HeadlessPlayer

        return HeadlessPlayer(scheduler, kind=kind)
    if backend == "mpv":
        from .mpv_player import MpvPlayerAdapter

        dispatch = None
        if isinstance(scheduler, AsyncioScheduler):
            dispatch = scheduler.loop.call_soon_threadsafe
        return MpvPlayerAdapter(dispatch=dispatch)
    raise AdapterError(f"unknown player backend {backend!r}")


__all__ = ["create_player"]
