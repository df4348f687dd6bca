"""Async relay client: sends position and audio, receives relayed frames."""

from __future__ import annotations

from collections.abc import AsyncIterator
from types import TracebackType
from urllib.parse import urlencode

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from ..common.log import get_logger
from ..common.protocol import (
    AudioRelay,
    MalformedFrame,
    RosterSnapshot,
    ServerFrame,
    deserialize_server_frame,
    serialize_audio_chunk,
    serialize_position_update,
)
from .listener import ListenerMixer, MixParams

logger = get_logger(__name__)


def relay_url(host: str, port: int, nick: str, path: str = "/ws") -> str:
    return f"ws://{host}:{port}{path}?{urlencode({'nick': nick})}"


class RelayClient:
    """One player's connection to the relay.

    Incoming roster snapshots and relayed audio are fed to ``mixer`` so
    ``mix_params`` always reflects the latest positions.
    """

    def __init__(self, url: str, nick: str, mixer: ListenerMixer | None = None):
        self.url = url
        self.nick = nick
        self.mixer = mixer if mixer is not None else ListenerMixer(nick)
        self.connection: ClientConnection | None = None
        self.roster: RosterSnapshot | None = None
        self.mix_params: dict[str, MixParams] = {}

    async def connect(self) -> None:
        self.connection = await connect(self.url)

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    async def __aenter__(self) -> RelayClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _require_connection(self) -> ClientConnection:
        if self.connection is None:
            raise RuntimeError("RelayClient is not connected")
        return self.connection

    async def send_position(self, x: float, z: float, y: float | None = None) -> None:
        await self._require_connection().send(serialize_position_update(x, z, y))

    async def send_audio(self, audio: bytes) -> None:
        await self._require_connection().send(serialize_audio_chunk(audio))

    def _apply(self, frame: ServerFrame) -> None:
        if isinstance(frame, RosterSnapshot):
            self.roster = frame
            self.mixer.update_roster(frame)
        elif isinstance(frame, AudioRelay):
            params = self.mixer.mix(frame)
            if params is not None:
                self.mix_params[frame.player_nick] = params

    async def recv(self) -> ServerFrame:
        """Wait for the next well-formed server frame."""
        connection = self._require_connection()
        while True:
            message = await connection.recv()
            try:
                frame = deserialize_server_frame(message)
            except MalformedFrame as e:
                logger.debug(f"Ignoring bad frame from server: {e}")
                continue
            self._apply(frame)
            return frame

    async def frames(self) -> AsyncIterator[ServerFrame]:
        """Yield server frames until the connection closes."""
        try:
            while True:
                yield await self.recv()
        except ConnectionClosed:
            return
