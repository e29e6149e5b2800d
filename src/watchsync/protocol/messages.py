"""Message catalogue for the watch-party socket.

Every position travelling on the wire is an integer number of milliseconds.
Players work in fractional seconds; the conversion happens at the player
adapter boundary, never here.
"""

from __future__ import annotations

import enum
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any, Optional

from .str_packet import Packet

JOIN_ROOM_TYPE = "join_room"
VIDEO_DATA_TYPE = "video_data"
STATE_TYPE = "state"
SEEK_TYPE = "seek"
PLAY_TYPE = "play"
PAUSE_TYPE = "pause"
JOINED_TYPE = "joined"
LEFT_TYPE = "left"
AUTH_NAME_TYPE = "auth_name"
NOT_OWNER_TYPE = "not_owner"

PRESENCE_TYPES = frozenset({JOINED_TYPE, LEFT_TYPE})


class MessageError(ValueError):
    """Raised when a decoded packet carries arguments of the wrong shape."""


class PlaybackState(enum.IntEnum):
    PAUSED = 0
    PLAYING = 1

    @classmethod
    def from_observed(cls, observed: Optional[str]) -> Optional["PlaybackState"]:
        """Map a backend's textual state; ``None`` for transient states."""

        return _OBSERVED_STATES.get((observed or "").lower())


_OBSERVED_STATES = {
    "playing": PlaybackState.PLAYING,
    "paused": PlaybackState.PAUSED,
}


class PlayerKind(enum.IntEnum):
    """Backend family declared by the coordinator for a source."""

    PLAYLIST = 0
    ELEMENT = 1


class PermissionMask(enum.IntFlag):
    RESTRICTED = 0
    CONTROLLABLE = 0b001
    CHANGER = 0b010


class ActionKind(str, enum.Enum):
    """Playback actions that are relayed upstream and can echo back."""

    SEEK = SEEK_TYPE
    PLAY = PLAY_TYPE
    PAUSE = PAUSE_TYPE

    @classmethod
    def from_type(cls, message_type: str) -> Optional["ActionKind"]:
        try:
            return cls(message_type)
        except ValueError:
            return None


def parse_position_ms(raw: Any) -> int:
    """Parse a wire position, truncating fractional values like ``parseInt``."""

    if isinstance(raw, bool):
        raise MessageError(f"invalid position {raw!r}")
    try:
        value = int(raw)
    except (TypeError, ValueError, OverflowError):
        try:
            value = int(float(raw))
        except (TypeError, ValueError, OverflowError):
            raise MessageError(f"invalid position {raw!r}") from None
    if value < 0:
        raise MessageError(f"negative position {value}")
    return value


def parse_state(raw: Any) -> PlaybackState:
    try:
        return PlaybackState(int(raw))
    except (TypeError, ValueError, OverflowError):
        raise MessageError(f"invalid playback state {raw!r}") from None


def _parse_permission(raw: Any) -> PermissionMask:
    try:
        value = int(raw)
    except (TypeError, ValueError, OverflowError):
        raise MessageError(f"invalid permission {raw!r}") from None
    if value < 0:
        raise MessageError(f"invalid permission {raw!r}")
    return PermissionMask(value & (PermissionMask.CONTROLLABLE | PermissionMask.CHANGER))


def _parse_player_kind(raw: Any) -> PlayerKind:
    try:
        return PlayerKind(int(raw))
    except (TypeError, ValueError, OverflowError):
        raise MessageError(f"unknown player kind {raw!r}") from None


@dataclass(frozen=True)
class AuthoritativeSnapshot:
    """Latest coordinator-declared ground truth for the local player."""

    url: str
    position_ms: int
    state: PlaybackState
    permission: PermissionMask
    caption_url: Optional[str]
    player_kind: PlayerKind

    def __post_init__(self) -> None:
        if self.position_ms < 0:
            raise MessageError(f"negative snapshot position {self.position_ms}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuthoritativeSnapshot":
        if not isinstance(data, Mapping):
            raise MessageError("video_data payload must be a JSON object")
        url = data.get("url")
        if not isinstance(url, str):
            raise MessageError("video_data payload missing 'url'")
        caption_url = data.get("cc_url")
        if caption_url is not None and not isinstance(caption_url, str):
            raise MessageError("video_data 'cc_url' must be a string")
        return cls(
            url=url,
            position_ms=parse_position_ms(data.get("time", 0)),
            state=parse_state(data.get("state", PlaybackState.PAUSED)),
            permission=_parse_permission(data.get("permission", 0)),
            caption_url=caption_url or None,
            player_kind=_parse_player_kind(data.get("current_player", PlayerKind.PLAYLIST)),
        )

    @classmethod
    def from_json(cls, raw: str) -> "AuthoritativeSnapshot":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MessageError(f"video_data payload is not JSON: {exc}") from exc
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "time": int(self.position_ms),
            "state": int(self.state),
            "permission": int(self.permission),
            "cc_url": self.caption_url or "",
            "current_player": int(self.player_kind),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def same_source(self, other: Optional["AuthoritativeSnapshot"]) -> bool:
        return other is not None and other.url == self.url and other.player_kind == self.player_kind

    def at(self, position_ms: int, state: Optional[PlaybackState] = None) -> "AuthoritativeSnapshot":
        """Derive the snapshot implied by an incremental timeline message."""

        if state is None:
            return replace(self, position_ms=int(position_ms))
        return replace(self, position_ms=int(position_ms), state=PlaybackState(state))


def parse_video_data(packet: Packet) -> AuthoritativeSnapshot:
    if not packet.args:
        raise MessageError("video_data packet carries no payload")
    return AuthoritativeSnapshot.from_json(packet.args[0])


def parse_state_correction(packet: Packet) -> tuple[int, PlaybackState]:
    if len(packet.args) < 2:
        raise MessageError(f"state packet needs 2 arguments, got {len(packet.args)}")
    return parse_position_ms(packet.args[0]), parse_state(packet.args[1])


def parse_position_notice(packet: Packet) -> int:
    if not packet.args:
        raise MessageError(f"{packet.type} packet carries no position")
    return parse_position_ms(packet.args[0])


def join_room_args(room_id: str, name: str, owner_auth: Optional[str] = None) -> Sequence[str]:
    args = [str(room_id), str(name)]
    if owner_auth:
        args.append(str(owner_auth))
    return args


__all__ = [
    "AUTH_NAME_TYPE",
    "ActionKind",
    "AuthoritativeSnapshot",
    "JOINED_TYPE",
    "JOIN_ROOM_TYPE",
    "LEFT_TYPE",
    "MessageError",
    "NOT_OWNER_TYPE",
    "PAUSE_TYPE",
    "PLAY_TYPE",
    "PRESENCE_TYPES",
    "PermissionMask",
    "PlaybackState",
    "PlayerKind",
    "SEEK_TYPE",
    "STATE_TYPE",
    "VIDEO_DATA_TYPE",
    "join_room_args",
    "parse_position_ms",
    "parse_position_notice",
    "parse_state",
    "parse_state_correction",
    "parse_video_data",
]
