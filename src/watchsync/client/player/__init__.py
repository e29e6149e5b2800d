"""Player backends and the adapter surface the sync engine drives."""

from .adapter import AdapterError, NativeEvent, NativeEventKind, PlayerAdapter
from .factory import create_player
from .headless import HeadlessPlayer

__all__ = [
    "AdapterError",
    "HeadlessPlayer",
    "NativeEvent",
    "NativeEventKind",
    "PlayerAdapter",
    "create_player",
]
