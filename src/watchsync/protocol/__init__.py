"""Wire protocol for watchsync clients and the room coordinator."""

from __future__ import annotations

from .messages import *  # noqa: F401,F403
from .str_packet import *  # noqa: F401,F403

__all__ = [name for name in globals().keys() if not name.startswith("_")]
