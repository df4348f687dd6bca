"""Per-connection lifecycle: handshake, inbound dispatch, outbound writes."""

from __future__ import annotations

import asyncio
import enum
from typing import Protocol

from websockets.exceptions import ConnectionClosed

from ..common.attenuation import InvalidParameter
from ..common.log import get_logger
from ..common.protocol import (
    AudioChunk,
    MalformedFrame,
    PositionUpdate,
    deserialize_client_frame,
    serialize_server_frame,
)
from .audio_router import ProximityRouter, RelayStats, UnknownSender
from .config import RelayConfig
from .outbox import Outbox, OutboxClosed
from .registry import DuplicateId, PlayerRegistry

logger = get_logger(__name__)

# WebSocket close code for policy violations (missing or duplicate nick)
CLOSE_POLICY_VIOLATION = 1008


class Transport(Protocol):
    """The subset of a WebSocket connection a session needs."""

    async def recv(self) -> str | bytes: ...

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class ConnectionSession:
    """One player's connection.

    ``open`` performs the handshake and registers the player; ``serve`` runs
    the outbound writer alongside the inbound read loop until the transport
    closes; ``close`` deregisters exactly once and releases the outbox.
    """

    def __init__(
        self,
        transport: Transport,
        registry: PlayerRegistry,
        router: ProximityRouter,
        config: RelayConfig,
        stats: RelayStats | None = None,
        remote: str = "",
    ) -> None:
        self.transport = transport
        self.registry = registry
        self.router = router
        self.config = config
        self.stats = stats if stats is not None else router.stats
        self.remote = remote
        self.state = SessionState.CONNECTING
        self.player_id: str | None = None
        self.outbox: Outbox | None = None
        self._registered = False
        self._writer_task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()

    async def open(self, nick: str | None) -> bool:
        """Register ``nick``. On failure the transport is closed unregistered."""
        if self.state is not SessionState.CONNECTING:
            raise RuntimeError(f"open() called in state {self.state.value}")

        nick = (nick or "").strip()
        reason = ""
        if not nick:
            reason = "Nick required"
        else:
            try:
                handle = self.registry.connect(nick)
            except DuplicateId:
                reason = "Nick already connected"
            except InvalidParameter as e:
                reason = str(e)
            else:
                self.player_id = handle.id
                self.outbox = handle.outbox
                self._registered = True

        if not self._registered:
            logger.debug(f"Handshake rejected for {nick!r} from {self.remote}: {reason}")
            self.state = SessionState.CLOSED
            try:
                await self.transport.close(CLOSE_POLICY_VIOLATION, reason)
            except (ConnectionClosed, OSError):
                pass
            self._closed.set()
            return False

        self.state = SessionState.ACTIVE
        print(f"Player {nick} joined (total: {len(self.registry)})")
        return True

    async def serve(self) -> None:
        """Run until the connection ends, then clean up."""
        if self.state is not SessionState.ACTIVE:
            return
        self._writer_task = asyncio.create_task(self._write_loop())
        try:
            await self._read_loop()
        except (ConnectionClosed, ConnectionResetError, BrokenPipeError, OSError):
            pass  # Client disconnected
        except Exception as e:
            logger.error(
                f"Unexpected error for {self.player_id}: {type(e).__name__}: {e}",
                exc_info=True,
            )
        finally:
            await self.close()

    async def run(self, nick: str | None) -> None:
        if await self.open(nick):
            await self.serve()

    async def _read_loop(self) -> None:
        while self.state is SessionState.ACTIVE:
            message = await self.transport.recv()
            self.handle_message(message)

    def handle_message(self, data: str | bytes) -> None:
        """Decode one inbound frame and dispatch it. Bad frames are dropped."""
        if self.player_id is None or self.state is not SessionState.ACTIVE:
            return
        try:
            frame = deserialize_client_frame(data)
        except MalformedFrame as e:
            self.stats.malformed_frames += 1
            logger.debug(f"Dropped malformed frame from {self.player_id}: {e}")
            return

        if isinstance(frame, PositionUpdate):
            self.registry.update_position(self.player_id, frame.x, frame.z, frame.y)
        elif isinstance(frame, AudioChunk):
            try:
                self.router.route(
                    self.player_id,
                    frame.audio_data,
                    self.config.max_distance,
                    self.config.curve_kind,
                )
            except UnknownSender:
                logger.debug(f"Dropped audio from unregistered {self.player_id}")

    async def _write_loop(self) -> None:
        assert self.outbox is not None
        while True:
            try:
                frame = await self.outbox.get()
            except OutboxClosed:
                return
            try:
                await self.transport.send(serialize_server_frame(frame))
            except (ConnectionClosed, ConnectionResetError, BrokenPipeError, OSError):
                self.stats.send_failures += 1
                logger.debug(f"Send to {self.player_id} failed, closing session")
                await self.close()
                return

    async def close(self) -> None:
        """Deregister, release the outbox and close the transport. Idempotent."""
        if self.state in (SessionState.CLOSING, SessionState.CLOSED):
            await self._closed.wait()
            return
        self.state = SessionState.CLOSING

        if self._registered and self.player_id is not None:
            self._registered = False
            # Also closes the outbox, which stops the writer
            self.registry.disconnect(self.player_id)
            print(f"Player {self.player_id} left (total: {len(self.registry)})")

        task = self._writer_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        try:
            await self.transport.close()
        except (ConnectionClosed, OSError):
            pass

        self.state = SessionState.CLOSED
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()
