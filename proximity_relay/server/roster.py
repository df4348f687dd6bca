"""Roster broadcasts: debounced on join/leave, plus a periodic refresh."""

from __future__ import annotations

import asyncio
import threading

from ..common.constants import ROSTER_DEBOUNCE, ROSTER_INTERVAL
from ..common.log import get_logger
from ..common.protocol import PlayerInfo, RosterSnapshot, now_ms
from .outbox import OutboxClosed
from .registry import PlayerRegistry, RegistryEvent

logger = get_logger(__name__)


class RosterBroadcaster:
    """Pushes the full roster to every connected player.

    Registry mutations mark the roster dirty; a burst of joins and leaves
    inside ``debounce`` seconds produces a single broadcast. With a non-zero
    ``interval`` the roster is also pushed periodically, which is how
    position changes reach clients.
    """

    def __init__(
        self,
        registry: PlayerRegistry,
        debounce: float = ROSTER_DEBOUNCE,
        interval: float = ROSTER_INTERVAL,
    ) -> None:
        self.registry = registry
        self.debounce = debounce
        self.interval = interval
        self.broadcasts = 0
        self._wake: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        """Start the broadcast task on the running event loop."""
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._wake = asyncio.Event()
        self.registry.add_listener(self._on_registry_change)
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self.registry.remove_listener(self._on_registry_change)
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def _on_registry_change(self, event: RegistryEvent, player_id: str) -> None:
        if self._wake is None or self._loop is None:
            return
        logger.debug(f"Roster dirty after {event} {player_id}")
        if threading.get_ident() == self._loop_thread:
            self._wake.set()
        else:
            self._loop.call_soon_threadsafe(self._wake.set)

    async def _run(self) -> None:
        assert self._wake is not None
        while True:
            if self.interval > 0:
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
            else:
                await self._wake.wait()

            if self._wake.is_set() and self.debounce > 0:
                # Let a burst of joins/leaves settle into one broadcast
                await asyncio.sleep(self.debounce)
            self._wake.clear()
            self.broadcast_now()

    def build_snapshot(self) -> RosterSnapshot:
        players = tuple(
            PlayerInfo(e.id, e.x, e.y, e.z) for e in self.registry.snapshot()
        )
        return RosterSnapshot(players, now_ms())

    def broadcast_now(self) -> RosterSnapshot:
        """Push a fresh snapshot to every outbox immediately."""
        snapshot = self.build_snapshot()
        for player_id, outbox in self.registry.outboxes():
            try:
                outbox.put_roster(snapshot)
            except OutboxClosed:
                # Session is shutting down
                logger.debug(f"Roster skipped for closing session {player_id}")
        self.broadcasts += 1
        return snapshot
