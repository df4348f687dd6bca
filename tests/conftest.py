"""Shared fixtures for proximity relay tests."""

from __future__ import annotations

import asyncio

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from proximity_relay.common.protocol import ServerFrame, deserialize_server_frame
from proximity_relay.server.audio_router import ProximityRouter
from proximity_relay.server.config import RelayConfig
from proximity_relay.server.registry import PlayerRegistry

_HANGUP = object()


class FakeTransport:
    """In-memory stand-in for a WebSocket connection."""

    def __init__(self, fail_send: bool = False) -> None:
        self._inbound: asyncio.Queue[object] = asyncio.Queue()
        self.sent: list[str] = []
        self.closed = False
        self.close_code: int | None = None
        self.close_reason = ""
        self.fail_send = fail_send

    def feed(self, message: str | bytes) -> None:
        """Queue a message as if the client had sent it."""
        self._inbound.put_nowait(message)

    def hang_up(self) -> None:
        """Simulate the client closing the connection."""
        self._inbound.put_nowait(_HANGUP)

    async def recv(self) -> str | bytes:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        message = await self._inbound.get()
        if message is _HANGUP:
            self.closed = True
            raise ConnectionClosedOK(None, None)
        assert isinstance(message, (str, bytes))
        return message

    async def send(self, message: str) -> None:
        if self.closed or self.fail_send:
            raise ConnectionClosedError(None, None)
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbound.put_nowait(_HANGUP)

    def frames(self) -> list[ServerFrame]:
        """Every frame sent so far, decoded."""
        return [deserialize_server_frame(m) for m in self.sent]


async def settle(rounds: int = 10) -> None:
    """Let pending tasks (session writers, readers) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def registry() -> PlayerRegistry:
    """An empty registry with small outboxes."""
    return PlayerRegistry(outbox_size=8)


@pytest.fixture
def router(registry: PlayerRegistry) -> ProximityRouter:
    return ProximityRouter(registry)


@pytest.fixture
def config() -> RelayConfig:
    """Relay settings used by the end-to-end examples."""
    return RelayConfig(
        max_distance=20.0,
        curve="exponential",
        outbox_size=8,
        roster_debounce=0.0,
        roster_interval=0.0,
    )


def place(registry: PlayerRegistry, player_id: str, x: float, z: float) -> None:
    """Connect a player and move it to (x, z)."""
    registry.connect(player_id)
    registry.update_position(player_id, x, z)
