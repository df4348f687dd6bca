"""WebSocket relay server handling connections and shared state."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from http import HTTPStatus
from urllib.parse import parse_qs, urlparse

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.http11 import Request, Response

from ..common.log import get_logger
from .audio_router import ProximityRouter, RelayStats
from .config import RelayConfig
from .registry import PlayerRegistry
from .roster import RosterBroadcaster
from .session import ConnectionSession

logger = get_logger(__name__)


def nick_from_path(path: str) -> str:
    """Extract the ``nick`` query parameter from a request path."""
    values = parse_qs(urlparse(path).query).get("nick", [])
    return values[0].strip() if values else ""


class RelayServer:
    def __init__(self, config: RelayConfig | None = None) -> None:
        self.config = (config or RelayConfig()).validate()
        self.stats = RelayStats()
        self.registry = PlayerRegistry(self.config.outbox_size)
        self.router = ProximityRouter(
            self.registry, on_send_failure=self._on_send_failure, stats=self.stats
        )
        self.roster = RosterBroadcaster(
            self.registry, self.config.roster_debounce, self.config.roster_interval
        )
        self.sessions: dict[str, ConnectionSession] = {}
        self._server: Server | None = None
        self._cleanup_tasks: set[asyncio.Task[None]] = set()

    @property
    def port(self) -> int:
        """Port actually bound (useful when configured with port 0)."""
        if self._server is None:
            raise RuntimeError("Server is not running")
        sockets = list(self._server.sockets)
        return int(sockets[0].getsockname()[1])

    def _process_request(
        self, connection: ServerConnection, request: Request
    ) -> Response | None:
        """Reject bad handshakes before the WebSocket upgrade."""
        nick = nick_from_path(request.path)
        if not nick:
            return connection.respond(HTTPStatus.BAD_REQUEST, "Nick required\n")
        if nick in self.registry:
            logger.debug(f"Rejected duplicate nick {nick!r}")
            return connection.respond(HTTPStatus.CONFLICT, "Nick already connected\n")
        return None

    async def _handle_connection(self, connection: ServerConnection) -> None:
        nick = nick_from_path(connection.request.path if connection.request else "")
        session = ConnectionSession(
            connection,
            self.registry,
            self.router,
            self.config,
            stats=self.stats,
            remote=str(connection.remote_address),
        )
        if not await session.open(nick):
            return

        self.sessions[nick] = session
        try:
            await session.serve()
        finally:
            if self.sessions.get(nick) is session:
                del self.sessions[nick]

    def _on_send_failure(self, player_id: str) -> None:
        """Schedule disconnect cleanup for a recipient that can't be reached."""
        session = self.sessions.get(player_id)
        if session is not None:
            task = asyncio.create_task(session.close())
            self._cleanup_tasks.add(task)
            task.add_done_callback(self._cleanup_tasks.discard)
        else:
            self.registry.disconnect(player_id)

    @asynccontextmanager
    async def serve(self) -> AsyncIterator[RelayServer]:
        """Listen for connections for the duration of the context."""
        async with serve(
            self._handle_connection,
            self.config.host,
            self.config.port,
            process_request=self._process_request,
            ping_interval=self.config.ping_interval,
            max_size=self.config.max_frame_size,
        ) as server:
            self._server = server
            self.roster.start()
            print(f"Relay listening on {self.config.host}:{self.port}")
            try:
                yield self
            finally:
                await self.roster.stop()
                for session in list(self.sessions.values()):
                    await session.close()
                self._server = None
                logger.debug(f"Relay stats: {self.stats.as_dict()}")

    async def start(self) -> None:
        async with self.serve():
            assert self._server is not None
            await self._server.serve_forever()
