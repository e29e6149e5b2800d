"""Reconciliation engine: converge the local player on the room timeline.

The engine owns the current :class:`PlaybackSession` and the latest
authoritative snapshot. Inbound frames drive corrective commands; native
player events are either swallowed as echoes of those commands, reverted when
the client lacks control, or relayed upstream. All entry points run on one
event loop; nothing here is thread-safe.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from watchsync.protocol.messages import (
    AUTH_NAME_TYPE,
    NOT_OWNER_TYPE,
    PAUSE_TYPE,
    PLAY_TYPE,
    PRESENCE_TYPES,
    SEEK_TYPE,
    STATE_TYPE,
    VIDEO_DATA_TYPE,
    ActionKind,
    AuthoritativeSnapshot,
    MessageError,
    PermissionMask,
    PlaybackState,
    PlayerKind,
    parse_position_notice,
    parse_state_correction,
    parse_video_data,
)
from watchsync.protocol.str_packet import DecodeError, Packet, decode_packet
from watchsync.shared.permissions import ControlAffordances, is_controllable, project_affordances

from ..config import ClientConfig, load_client_config
from ..identity import IdentityStore
from ..player.adapter import AdapterError, NativeEvent, NativeEventKind, PlayerAdapter
from ..player.factory import create_player
from ..runtime.scheduler import Scheduler, TimerGroup
from .captions import REMOTE_CAPTION_LABEL, CaptionController
from .heartbeat import HeartbeatReporter
from .pending_actions import PendingActionTracker
from .session import PlaybackSession

logger = logging.getLogger(__name__)


def _maybe_enable_debug_logger() -> None:
    """Enable DEBUG logs for this module only when WATCHSYNC_SYNC_DEBUG is set.

    - Attaches a module-local handler at DEBUG.
    - Disables propagation to avoid a global DEBUG flood.
    """
    flag = (os.getenv("WATCHSYNC_SYNC_DEBUG") or "").lower()
    if flag not in ("1", "true", "yes", "on", "debug"):
        return
    if any(getattr(h, "_watchsync_local", False) for h in logger.handlers):
        return
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("[%(asctime)s] %(name)s - %(levelname)s - %(message)s"))
    h.setLevel(logging.DEBUG)
    setattr(h, "_watchsync_local", True)
    logger.addHandler(h)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False


class Transport(Protocol):
    def send(self, message_type: str, *args: Any) -> None: ...


PlayerFactory = Callable[[PlayerKind], PlayerAdapter]
AffordanceCallback = Callable[[ControlAffordances], None]


class ReconciliationEngine:
    """Single-owner sync state machine for one client."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        config: Optional[ClientConfig] = None,
        transport: Optional[Transport] = None,
        player_factory: Optional[PlayerFactory] = None,
        identity: Optional[IdentityStore] = None,
        on_affordances: Optional[AffordanceCallback] = None,
    ) -> None:
        _maybe_enable_debug_logger()
        self.config = config if config is not None else load_client_config()
        self.scheduler = scheduler
        self.transport = transport
        self.identity = identity
        self.on_affordances = on_affordances
        self._player_factory: PlayerFactory = player_factory or (
            lambda kind: create_player(kind, self.config, self.scheduler)
        )
        self.tolerance_ms = max(1, int(self.config.sync_tolerance_ms))
        self.captions = CaptionController(self.config.caption_restore_delay_ms)
        self.heartbeat = HeartbeatReporter(self.config.heartbeat_interval_s)
        self.last_snapshot: Optional[AuthoritativeSnapshot] = None
        self.session: Optional[PlaybackSession] = None
        self.affordances: Optional[ControlAffordances] = None
        # Native events enter here; the runtime swaps in its queue.
        self.native_sink: Callable[[NativeEvent], None] = self.on_native_event
        self._generation = 0
        self._adapters_created = 0
        self._log_sync = logger.info if self.config.log_sync_info else logger.debug

    # ------------------------------------------------------------------ helpers
    @property
    def tracker(self) -> Optional[PendingActionTracker]:
        return self.session.tracker if self.session is not None else None

    @property
    def generation(self) -> int:
        return self._generation

    def within_tolerance(self, current_ms: float, target_ms: float) -> bool:
        return int(current_ms) // self.tolerance_ms == int(target_ms) // self.tolerance_ms

    def _live_session(self) -> Optional[PlaybackSession]:
        session = self.session
        if session is None or session.closed:
            return None
        return session

    def _observed_state(self, session: PlaybackSession) -> Optional[PlaybackState]:
        observed = PlaybackState.from_observed(session.adapter.get_observed_state())
        if observed is None and self.last_snapshot is not None:
            return self.last_snapshot.state
        return observed

    def _send(self, message_type: str, *args: Any) -> None:
        transport = self.transport
        if transport is None:
            logger.debug("no transport; dropping outbound %s", message_type)
            return
        try:
            transport.send(message_type, *args)
        except Exception:
            logger.warning("transport send failed for %s", message_type, exc_info=True)

    def _command_seek(self, session: PlaybackSession, target_ms: int) -> None:
        session.tracker.expect_echo(ActionKind.SEEK)
        session.adapter.seek(target_ms)

    def _command_state(self, session: PlaybackSession, target: PlaybackState) -> None:
        if target is PlaybackState.PLAYING:
            session.tracker.expect_echo(ActionKind.PLAY)
            session.adapter.play()
        else:
            session.tracker.expect_echo(ActionKind.PAUSE)
            session.adapter.pause()

    # ------------------------------------------------------------------ authoritative updates
    def apply_authoritative(self, update: AuthoritativeSnapshot) -> None:
        session = self._live_session()
        if session is None or not session.matches(update.url, update.player_kind):
            # Stored first so a synchronous ``ready`` reads the new snapshot.
            self.last_snapshot = update
            self._hard_reset(update)
            return
        self.last_snapshot = update
        if not session.ready:
            logger.debug("session %d not ready; snapshot deferred to ready", session.generation)
            return
        self.reconcile_time_and_state(update.position_ms, update.state)
        self.apply_permission(update.permission)
        self._apply_caption_url(session, update.caption_url)

    def _hard_reset(self, update: AuthoritativeSnapshot) -> None:
        old = self.session
        if old is not None:
            self._log_sync("hard reset: %s -> %s (%s)", old.url, update.url, update.player_kind.name)
            old.teardown()
        self.session = None
        self._generation += 1
        generation = self._generation
        adapter = self._player_factory(update.player_kind)
        session = PlaybackSession(
            generation=generation,
            url=update.url,
            kind=update.player_kind,
            adapter=adapter,
            timers=TimerGroup(self.scheduler),
        )
        self.session = session

        def _tag(event: NativeEvent) -> None:
            self.native_sink(replace(event, generation=generation))

        for kind in NativeEventKind:
            adapter.on(kind, _tag)
        if self._adapters_created == 0:
            adapter.set_mute(self.config.start_muted)
        self._adapters_created += 1
        self.heartbeat.start(session.timers, self._heartbeat_sample, self._send)
        adapter.setup(update.url, autostart=update.state is PlaybackState.PLAYING)

    def reconcile_time_and_state(self, target_ms: int, target_state: PlaybackState) -> None:
        session = self._live_session()
        if session is None:
            return
        current_ms = session.adapter.get_current_time_ms()
        if not self.within_tolerance(current_ms, target_ms):
            self._log_sync("reconcile: seek %dms -> %dms", current_ms, target_ms)
            self._command_seek(session, int(target_ms))
        observed = self._observed_state(session)
        if observed is not PlaybackState(target_state):
            self._log_sync("reconcile: state %s -> %s", observed, PlaybackState(target_state).name)
            self._command_state(session, PlaybackState(target_state))

    def apply_permission(self, mask: int, *, force: bool = False) -> ControlAffordances:
        permission = PermissionMask(mask)
        affordances = project_affordances(permission)
        session = self._live_session()
        changed = session is None or session.applied_permission != permission
        if session is not None:
            session.applied_permission = permission
        self.affordances = affordances
        if (changed or force) and self.on_affordances is not None:
            try:
                self.on_affordances(affordances)
            except Exception:
                logger.debug("affordance callback failed", exc_info=True)
        return affordances

    def _apply_caption_url(self, session: PlaybackSession, caption_url: Optional[str]) -> None:
        if caption_url == session.applied_caption_url:
            return
        if caption_url:
            self.captions.attach(session, caption_url, REMOTE_CAPTION_LABEL)
        else:
            self.captions.detach(session)

    # ------------------------------------------------------------------ native events
    def on_native_event(self, event: NativeEvent) -> None:
        session = self._live_session()
        if session is None or event.generation != session.generation:
            logger.debug("dropping %s from stale generation %d", event.kind.value, event.generation)
            return
        if event.kind is NativeEventKind.READY:
            self.on_ready()
            return
        if event.kind is NativeEventKind.ERROR:
            logger.warning("player error (session %d): %s", session.generation, dict(event.payload or {}))
            return
        action = event.kind.action
        assert action is not None, f"unhandled native event {event.kind}"
        snapshot = self.last_snapshot
        if snapshot is not None and action is not ActionKind.SEEK:
            self.apply_permission(snapshot.permission, force=True)
        if session.tracker.consume(action):
            logger.debug("swallowed %s echo", action.value)
            return
        if event.is_internal_pause():
            logger.debug("ignoring automatic pause %s", dict(event.payload or {}))
            return
        if snapshot is None:
            return
        if not is_controllable(snapshot.permission):
            logger.debug("control denied; reverting local %s", action.value)
            self._revert(session, action, snapshot)
            return
        adapter = session.adapter
        if action is ActionKind.SEEK:
            offset_ms = event.offset_ms()
            self._send(SEEK_TYPE, offset_ms if offset_ms is not None else adapter.get_current_time_ms())
        else:
            self._send(action.value, adapter.get_current_time_ms())

    def _revert(self, session: PlaybackSession, action: ActionKind, snapshot: AuthoritativeSnapshot) -> None:
        if action is ActionKind.SEEK:
            self._command_seek(session, snapshot.position_ms)
            return
        observed = PlaybackState.from_observed(session.adapter.get_observed_state())
        if observed is not None and observed is not snapshot.state:
            self._command_state(session, snapshot.state)

    def on_ready(self) -> None:
        session = self._live_session()
        snapshot = self.last_snapshot
        if session is None or snapshot is None:
            return
        session.ready = True
        self._log_sync("session %d ready at %dms", session.generation, session.adapter.get_current_time_ms())
        self.apply_permission(snapshot.permission, force=True)
        # An autostarted session already observes playing, so no play() is issued;
        # a play() the player ignores would leave its echo flag pending.
        self.reconcile_time_and_state(snapshot.position_ms, snapshot.state)
        self._apply_caption_url(session, snapshot.caption_url)

    # ------------------------------------------------------------------ inbound frames
    def handle_frame(self, frame: str | bytes) -> None:
        try:
            packet = decode_packet(frame, self.config.packet_format)
        except DecodeError as exc:
            logger.warning("dropping undecodable frame: %s", exc)
            return
        self.handle_packet(packet)

    def handle_packet(self, packet: Packet) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("inbound %s %s", packet.type, packet.args)
        action = ActionKind.from_type(packet.type)
        try:
            self._dispatch(packet)
        except (MessageError, DecodeError, AdapterError) as exc:
            logger.warning("failed to handle %s: %s", packet.type, exc)
            session = self._live_session()
            if action is not None and session is not None:
                session.tracker.mark_genuine(action)

    def _dispatch(self, packet: Packet) -> None:
        message_type = packet.type
        if message_type == VIDEO_DATA_TYPE:
            self.apply_authoritative(parse_video_data(packet))
            return
        if message_type in PRESENCE_TYPES:
            logger.info("%s: %s", message_type, ", ".join(packet.args))
            return
        if message_type == AUTH_NAME_TYPE:
            name = packet.arg(0)
            if self.identity is not None:
                self.identity.remember_name(name)
            logger.info("server assigned display name %r", name)
            return
        if message_type == NOT_OWNER_TYPE:
            if self.identity is not None:
                self.identity.clear_owner_auth()
            logger.info("owner credential rejected")
            return
        if message_type == STATE_TYPE:
            position_ms, state = parse_state_correction(packet)
            self._timeline_update(position_ms, state)
            return
        if message_type == PLAY_TYPE:
            self._timeline_update(parse_position_notice(packet), PlaybackState.PLAYING)
            return
        if message_type == PAUSE_TYPE:
            self._timeline_update(parse_position_notice(packet), PlaybackState.PAUSED)
            return
        if message_type == SEEK_TYPE:
            self._seek_update(parse_position_notice(packet))
            return
        logger.warning("unknown message type %r", message_type)

    def _timeline_update(self, position_ms: int, state: PlaybackState) -> None:
        if self.last_snapshot is None:
            logger.debug("timeline update before video_data; ignored")
            return
        self.last_snapshot = self.last_snapshot.at(position_ms, state)
        session = self._live_session()
        if session is None or not session.ready:
            return
        self.reconcile_time_and_state(position_ms, state)

    def _seek_update(self, position_ms: int) -> None:
        if self.last_snapshot is None:
            logger.debug("seek before video_data; ignored")
            return
        self.last_snapshot = self.last_snapshot.at(position_ms)
        session = self._live_session()
        if session is None or not session.ready:
            return
        if self.within_tolerance(session.adapter.get_current_time_ms(), position_ms):
            return
        self._log_sync("remote seek -> %dms", position_ms)
        self._command_seek(session, position_ms)

    # ------------------------------------------------------------------ local controls
    def skip_forward(self, seconds: Optional[float] = None) -> bool:
        """Seek ahead as a genuine local action; relayed like a user seek."""

        session = self._live_session()
        snapshot = self.last_snapshot
        if session is None or snapshot is None or not is_controllable(snapshot.permission):
            return False
        step = self.config.skip_seconds if seconds is None else float(seconds)
        target = session.adapter.get_current_time_ms() + int(step * 1000)
        session.adapter.seek(target)
        return True

    def attach_caption(self, url: str, label: str = REMOTE_CAPTION_LABEL) -> bool:
        session = self._live_session()
        if session is None:
            return False
        self.captions.attach(session, url, label)
        return True

    def attach_local_caption(self, path: str | Path) -> Optional[str]:
        session = self._live_session()
        if session is None:
            return None
        return self.captions.attach_local(session, path)

    def detach_caption(self) -> bool:
        session = self._live_session()
        if session is None:
            return False
        self.captions.detach(session)
        return True

    # ------------------------------------------------------------------ heartbeat / lifecycle
    def _heartbeat_sample(self) -> Optional[tuple[int, PlaybackState]]:
        session = self._live_session()
        if session is None or not session.ready or self.transport is None:
            return None
        state = self._observed_state(session)
        if state is None:
            return None
        return session.adapter.get_current_time_ms(), state

    def close(self) -> None:
        session, self.session = self.session, None
        if session is not None:
            session.teardown()


__all__ = ["ReconciliationEngine", "Transport"]
