"""Capability surface every media backend presents to the sync engine.

Positions cross this boundary in milliseconds; backends convert to their
native unit (fractional seconds for all shipped backends). Native events are
fanned out to every handler registered for their kind.
"""

from __future__ import annotations

import abc
import enum
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from watchsync.protocol.messages import ActionKind

logger = logging.getLogger(__name__)

OBSERVED_PLAYING = "playing"
OBSERVED_PAUSED = "paused"
OBSERVED_SEEKING = "seeking"
OBSERVED_BUFFERING = "buffering"
OBSERVED_IDLE = "idle"

# Native seek payloads carry the new offset in seconds.
OFFSET_KEY = "offset"
# User pauses carry a reason; automatic pauses (buffering, end of media) do not.
PAUSE_REASON_KEY = "pause_reason"
PAUSE_REASON_INTERACTION = "interaction"


class AdapterError(RuntimeError):
    """Raised when a backend cannot carry out a command."""


class NativeEventKind(str, enum.Enum):
    READY = "ready"
    SEEK = "seek"
    PLAY = "play"
    PAUSE = "pause"
    ERROR = "error"

    @property
    def action(self) -> Optional[ActionKind]:
        return ActionKind.from_type(self.value)


@dataclass(frozen=True)
class NativeEvent:
    """A backend callback translated into a typed event.

    ``generation`` identifies the playback session that owned the adapter when
    the event fired; the engine drops events from older sessions.
    """

    kind: NativeEventKind
    payload: Optional[Mapping[str, Any]] = None
    generation: int = 0

    def is_internal_pause(self) -> bool:
        if self.kind is not NativeEventKind.PAUSE or self.payload is None:
            return False
        return self.payload.get(PAUSE_REASON_KEY) is None

    def offset_ms(self) -> Optional[int]:
        if self.payload is None:
            return None
        offset = self.payload.get(OFFSET_KEY)
        if offset is None:
            return None
        return seconds_to_ms(float(offset))


NativeHandler = Callable[[NativeEvent], None]


def seconds_to_ms(seconds: float) -> int:
    return int(round(max(0.0, float(seconds)) * 1000.0))


def ms_to_seconds(ms: float) -> float:
    return max(0.0, float(ms)) / 1000.0


class PlayerAdapter(abc.ABC):
    """Uniform control surface over one concrete media backend instance."""

    name = "abstract"

    def __init__(self) -> None:
        self._handlers: dict[NativeEventKind, list[NativeHandler]] = {}
        self._closed = False

    # ------------------------------------------------------------------ events
    def on(self, kind: NativeEventKind | str, handler: NativeHandler) -> None:
        assert callable(handler), "native event handler must be callable"
        event_kind = NativeEventKind(kind)
        self._handlers.setdefault(event_kind, []).append(handler)

    def off_all(self) -> None:
        self._handlers.clear()

    def handler_count(self, kind: NativeEventKind | str | None = None) -> int:
        if kind is None:
            return sum(len(handlers) for handlers in self._handlers.values())
        return len(self._handlers.get(NativeEventKind(kind), ()))

    def _emit(self, kind: NativeEventKind, payload: Optional[Mapping[str, Any]] = None) -> None:
        handlers = tuple(self._handlers.get(kind, ()))
        if not handlers:
            return
        event = NativeEvent(kind=kind, payload=dict(payload) if payload is not None else None)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("%s: native %s handler failed", self.name, kind.value)

    # ------------------------------------------------------------------ lifecycle
    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Detach every subscription, then release the backend."""

        if self._closed:
            return
        self.off_all()
        self._closed = True
        self._shutdown()

    def _ensure_open(self) -> None:
        if self._closed:
            raise AdapterError(f"{self.name} adapter is closed")

    @abc.abstractmethod
    def _shutdown(self) -> None: ...

    # ------------------------------------------------------------------ commands
    @abc.abstractmethod
    def setup(self, source_url: str, autostart: bool) -> None: ...

    @abc.abstractmethod
    def seek(self, ms: float) -> None: ...

    @abc.abstractmethod
    def play(self) -> None: ...

    @abc.abstractmethod
    def pause(self) -> None: ...

    @abc.abstractmethod
    def get_current_time_ms(self) -> int: ...

    @abc.abstractmethod
    def get_observed_state(self) -> str: ...

    @abc.abstractmethod
    def attach_caption(self, url: str, label: str) -> None:
        """Attach a caption track, replacing any caption already attached."""

    @abc.abstractmethod
    def detach_caption(self) -> None: ...

    @abc.abstractmethod
    def set_mute(self, muted: bool) -> None: ...


__all__ = [
    "AdapterError",
    "NativeEvent",
    "NativeEventKind",
    "NativeHandler",
    "OBSERVED_BUFFERING",
    "OBSERVED_IDLE",
    "OBSERVED_PAUSED",
    "OBSERVED_PLAYING",
    "OBSERVED_SEEKING",
    "OFFSET_KEY",
    "PAUSE_REASON_INTERACTION",
    "PAUSE_REASON_KEY",
    "PlayerAdapter",
    "ms_to_seconds",
    "seconds_to_ms",
]
