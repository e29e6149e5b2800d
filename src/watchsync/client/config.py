"""Environment-derived configuration for the watch-party client."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from watchsync.protocol.messages import PlayerKind
from watchsync.protocol.str_packet import (
    DEFAULT_ARG_SEP,
    DEFAULT_HEADER,
    DEFAULT_TYPE_SEP,
    PacketFormat,
)
from watchsync.utils.env import EnvMapping, env_bool, env_choice, env_float, env_int, env_str, env_text

BACKENDS = ("headless", "mpv")

DEFAULT_SERVER_URL = "ws://localhost:8080/ws"
DEFAULT_NAME = "viewer"


def _default_identity_path() -> Path:
    return Path.home() / ".config" / "watchsync" / "identity.json"


@dataclass(frozen=True)
class ClientConfig:
    """Resolved settings for one client process."""

    server_url: str
    room_id: Optional[str]
    name: str
    owner_auth: Optional[str]
    playlist_backend: str
    element_backend: str
    packet_format: PacketFormat
    sync_tolerance_ms: int
    heartbeat_interval_s: float
    caption_restore_delay_ms: int
    skip_seconds: float
    start_muted: bool
    identity_path: Path
    log_sync_info: bool

    def backend_for(self, kind: PlayerKind) -> str:
        if PlayerKind(kind) is PlayerKind.ELEMENT:
            return self.element_backend
        return self.playlist_backend

    def with_overrides(self, **changes) -> "ClientConfig":
        """Return a copy with the non-``None`` keyword values applied."""

        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def load_client_config(env: Optional[EnvMapping] = None) -> ClientConfig:
    """Resolve ``WATCHSYNC_*`` environment variables into a ``ClientConfig``."""

    default_backend = env_choice("WATCHSYNC_BACKEND", BACKENDS, "headless", env)
    playlist_backend = env_choice("WATCHSYNC_PLAYLIST_BACKEND", BACKENDS, default_backend, env)
    element_backend = env_choice("WATCHSYNC_ELEMENT_BACKEND", BACKENDS, default_backend, env)

    packet_format = PacketFormat(
        header=env_str("WATCHSYNC_PACKET_HEADER", DEFAULT_HEADER, env) or DEFAULT_HEADER,
        type_sep=env_str("WATCHSYNC_PACKET_TYPE_SEP", DEFAULT_TYPE_SEP, env) or DEFAULT_TYPE_SEP,
        arg_sep=env_str("WATCHSYNC_PACKET_ARG_SEP", DEFAULT_ARG_SEP, env) or DEFAULT_ARG_SEP,
    )

    tolerance_ms = max(1, env_int("WATCHSYNC_SYNC_TOLERANCE_MS", 1000, env))
    heartbeat_s = max(0.5, float(env_float("WATCHSYNC_HEARTBEAT_S", 30.0, env)))
    restore_ms = max(0, env_int("WATCHSYNC_CAPTION_RESTORE_MS", 250, env))
    skip_s = max(0.0, float(env_float("WATCHSYNC_SKIP_SECONDS", 10.0, env)))

    identity_raw = env_text("WATCHSYNC_IDENTITY_FILE", env)
    identity_path = Path(identity_raw).expanduser() if identity_raw else _default_identity_path()

    return ClientConfig(
        server_url=env_text("WATCHSYNC_SERVER", env) or DEFAULT_SERVER_URL,
        room_id=env_text("WATCHSYNC_ROOM", env),
        name=env_text("WATCHSYNC_NAME", env) or DEFAULT_NAME,
        owner_auth=env_text("WATCHSYNC_OWNER_AUTH", env),
        playlist_backend=playlist_backend,
        element_backend=element_backend,
        packet_format=packet_format,
        sync_tolerance_ms=tolerance_ms,
        heartbeat_interval_s=heartbeat_s,
        caption_restore_delay_ms=restore_ms,
        skip_seconds=skip_s,
        start_muted=env_bool("WATCHSYNC_START_MUTED", False, env),
        identity_path=identity_path,
        log_sync_info=env_bool("WATCHSYNC_LOG_SYNC", False, env),
    )


__all__ = ["BACKENDS", "ClientConfig", "DEFAULT_SERVER_URL", "load_client_config"]
