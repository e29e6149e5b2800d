"""Single-owner runtime: one loop, one queue, one engine.

Inbound frames from the channel and native events from the player are funnelled
through one ``asyncio.Queue`` and handled to completion in arrival order, so
the engine never sees interleaved callbacks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from ..config import ClientConfig
from ..control.reconciler import AffordanceCallback, PlayerFactory, ReconciliationEngine
from ..identity import IdentityStore
from ..player.adapter import NativeEvent
from .scheduler import AsyncioScheduler

logger = logging.getLogger(__name__)

_FRAME = "frame"
_NATIVE = "native"
_STOP = object()

ChannelFactory = Callable[["SyncRuntime"], Any]


class SyncRuntime:
    def __init__(
        self,
        config: ClientConfig,
        *,
        identity: Optional[IdentityStore] = None,
        player_factory: Optional[PlayerFactory] = None,
        channel_factory: Optional[ChannelFactory] = None,
        on_affordances: Optional[AffordanceCallback] = None,
    ) -> None:
        self.config = config
        self.identity = identity
        self._player_factory = player_factory
        self._channel_factory = channel_factory or _default_channel
        self._on_affordances = on_affordances
        self.engine: Optional[ReconciliationEngine] = None
        self.channel: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue[Any]] = None
        self.handled = 0

    # ------------------------------------------------------------------ producers
    def post_frame(self, frame: str | bytes) -> None:
        self._put((_FRAME, frame))

    def post_native(self, event: NativeEvent) -> None:
        self._put((_NATIVE, event))

    def post_native_threadsafe(self, event: NativeEvent) -> None:
        loop = self._loop
        if loop is None:
            logger.debug("runtime not running; dropping native %s", event.kind.value)
            return
        loop.call_soon_threadsafe(self.post_native, event)

    def _put(self, item: Any) -> None:
        q = self._queue
        if q is None:
            logger.debug("runtime not running; dropping %r", item[0] if isinstance(item, tuple) else item)
            return
        q.put_nowait(item)

    def stop(self) -> None:
        """Request shutdown; safe to call from any thread."""

        loop = self._loop
        q = self._queue
        if loop is None or q is None:
            return
        try:
            loop.call_soon_threadsafe(q.put_nowait, _STOP)
        except RuntimeError:
            logger.debug("SyncRuntime.stop: loop already closed", exc_info=True)

    # ------------------------------------------------------------------ loop
    def run(self) -> None:
        """Create a private event loop and serve until :meth:`stop`."""

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self.serve())
        finally:
            loop.close()

    async def serve(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        engine = ReconciliationEngine(
            AsyncioScheduler(self._loop),
            config=self.config,
            identity=self.identity,
            player_factory=self._player_factory,
            on_affordances=self._on_affordances,
        )
        engine.native_sink = self.post_native
        self.engine = engine
        self.channel = self._channel_factory(self)
        engine.transport = self.channel
        channel_task = asyncio.create_task(self.channel.run())
        try:
            await self._consume()
        finally:
            await self.channel.close()
            channel_task.cancel()
            try:
                await channel_task
            except asyncio.CancelledError:
                pass
            engine.close()
            self._queue = None
            self._loop = None
            logger.info("SyncRuntime stopped after %d items", self.handled)

    async def _consume(self) -> None:
        q = self._queue
        engine = self.engine
        assert q is not None and engine is not None, "runtime not started"
        while True:
            item = await q.get()
            if item is _STOP:
                return
            kind, payload = item
            try:
                if kind == _FRAME:
                    engine.handle_frame(payload)
                else:
                    engine.on_native_event(payload)
            except Exception:
                logger.exception("SyncRuntime: %s handling failed", kind)
            self.handled += 1


def _default_channel(runtime: SyncRuntime) -> Any:
    from .channel import SyncChannel

    config = runtime.config
    identity = runtime.identity
    assert config.room_id, "a room id is required to connect"

    def _name() -> str:
        if identity is not None and identity.name:
            return identity.name
        return config.name

    def _owner_auth() -> Optional[str]:
        # The store wins so a ``not_owner`` reply is honoured on reconnect.
        if identity is not None:
            return identity.owner_auth
        return config.owner_auth

    return SyncChannel(
        config.server_url,
        config.room_id,
        name=_name,
        owner_auth=_owner_auth,
        on_frame=runtime.post_frame,
        packet_format=config.packet_format,
    )


__all__ = ["SyncRuntime"]
