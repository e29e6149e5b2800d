"""WebSocket transport to the room coordinator.

The channel runs as a task on the runtime's event loop and keeps reconnecting
with backoff. Every (re)connect sends ``join_room`` first; the coordinator
answers with a fresh ``video_data`` which re-drives the engine.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import websockets

from watchsync.protocol.messages import JOIN_ROOM_TYPE, join_room_args
from watchsync.protocol.str_packet import DEFAULT_FORMAT, PacketFormat, encode_packet

logger = logging.getLogger(__name__)

RETRY_DELAY_S = 5.0
MAX_RETRY_DELAY_S = 30.0
RETRY_BACKOFF = 1.5


class SyncChannel:
    """Maintains the coordinator WebSocket.

    - Sends ``join_room`` on every connect.
    - Hands inbound text frames to ``on_frame`` unparsed.
    - Queues outbound frames; frames sent while disconnected are dropped.
    """

    def __init__(
        self,
        url: str,
        room_id: str,
        *,
        name: Callable[[], str],
        owner_auth: Optional[Callable[[], Optional[str]]] = None,
        on_frame: Optional[Callable[[str], None]] = None,
        on_connected: Optional[Callable[[], None]] = None,
        on_disconnect: Optional[Callable[[Optional[Exception]], None]] = None,
        packet_format: PacketFormat = DEFAULT_FORMAT,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self.url = url
        self.room_id = room_id
        self._name = name
        self._owner_auth = owner_auth
        self.on_frame = on_frame
        self.on_connected = on_connected
        self.on_disconnect = on_disconnect
        self.packet_format = packet_format
        self._connect = connect
        self._ws: Any = None
        self._out_q: Optional[asyncio.Queue[str]] = None
        self._stop = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def join_frame(self) -> str:
        credential = self._owner_auth() if self._owner_auth is not None else None
        args = join_room_args(self.room_id, self._name(), credential)
        return encode_packet(JOIN_ROOM_TYPE, args, self.packet_format)

    def send(self, message_type: str, *args: Any) -> bool:
        """Queue a frame for the current connection; must run on the loop thread."""

        frame = encode_packet(message_type, args, self.packet_format)
        q = self._out_q
        if q is None:
            logger.debug("SyncChannel not connected; dropping %s", message_type)
            return False
        q.put_nowait(frame)
        return True

    async def run(self) -> None:
        logger.info("Connecting to room %s at %s", self.room_id, self.url)
        retry_delay = RETRY_DELAY_S
        while not self._stop:
            try:
                async with self._connect(self.url) as ws:
                    logger.info("Connected to coordinator")
                    retry_delay = RETRY_DELAY_S
                    self._ws = ws
                    # Fresh queue per connection; frames from a dead session are dropped.
                    self._out_q = asyncio.Queue()
                    await ws.send(self.join_frame())
                    if self.on_connected:
                        try:
                            self.on_connected()
                        except Exception:
                            logger.debug("on_connected callback failed", exc_info=True)

                    send_task = asyncio.create_task(self._sender(ws, self._out_q))
                    try:
                        async for msg in ws:
                            if isinstance(msg, bytes):
                                msg = msg.decode("utf-8", errors="replace")
                            if self.on_frame is None:
                                continue
                            try:
                                self.on_frame(msg)
                            except Exception:
                                logger.debug("SyncChannel frame dispatch failed", exc_info=True)
                    finally:
                        send_task.cancel()
                        self._ws = None
                        self._out_q = None
                    if self.on_disconnect:
                        try:
                            self.on_disconnect(None)
                        except Exception:
                            logger.debug("on_disconnect callback failed", exc_info=True)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                msg = str(e) or e.__class__.__name__
                if isinstance(e, (EOFError, ConnectionRefusedError)):
                    logger.info("Coordinator unavailable (%s); retrying in %.0fs", msg, retry_delay)
                elif isinstance(e, websockets.exceptions.InvalidHandshake):
                    logger.info("Coordinator handshake failed (%s); retrying in %.0fs", msg, retry_delay)
                elif isinstance(e, OSError):
                    logger.info("Coordinator socket error (%s); retrying in %.0fs", msg, retry_delay)
                else:
                    logger.exception("SyncChannel error")
                if self.on_disconnect:
                    try:
                        self.on_disconnect(e)
                    except Exception:
                        logger.debug("on_disconnect callback failed (exc)", exc_info=True)
                if self._stop:
                    break
            if self._stop:
                break
            await asyncio.sleep(retry_delay)
            retry_delay = min(MAX_RETRY_DELAY_S, retry_delay * RETRY_BACKOFF)
            logger.info("Reconnecting to coordinator...")

    async def _sender(self, ws: Any, q: asyncio.Queue[str]) -> None:
        while True:
            frame = await q.get()
            try:
                await ws.send(frame)
            except Exception:
                logger.debug("SyncChannel sender failed; stopping", exc_info=True)
                return
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("SyncChannel sent %s", frame)

    def stop(self) -> None:
        """Stop reconnecting once the current connection ends."""

        self._stop = True

    async def close(self) -> None:
        """Stop reconnecting and close the live socket, if any."""

        self.stop()
        ws = self._ws
        if ws is not None:
            try:
                await ws.close()
            except Exception:
                logger.debug("SyncChannel.close: close failed", exc_info=True)


__all__ = ["MAX_RETRY_DELAY_S", "RETRY_BACKOFF", "RETRY_DELAY_S", "SyncChannel"]
