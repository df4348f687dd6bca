"""Registry of connected players and their last-known positions."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Literal

from ..common.attenuation import InvalidParameter
from ..common.constants import OUTBOX_SIZE
from ..common.log import get_logger
from .outbox import Outbox
from .player import Player, PlayerHandle, RosterEntry

logger = get_logger(__name__)

RegistryEvent = Literal["connect", "disconnect"]
RegistryListener = Callable[[RegistryEvent, str], None]


class DuplicateId(KeyError):
    """A player with this id is already connected."""


class NotFound(KeyError):
    """No connected player has this id."""


class PlayerRegistry:
    """Single source of truth for who is online and where they are.

    All operations are atomic with respect to each other (one coarse lock
    around the map, which is plenty for tens of players). Listeners are
    notified after connect/disconnect, outside the lock.
    """

    def __init__(self, outbox_size: int = OUTBOX_SIZE) -> None:
        self.outbox_size = outbox_size
        self._players: dict[str, Player] = {}
        self._lock = threading.Lock()
        self._listeners: list[RegistryListener] = []

    def add_listener(self, listener: RegistryListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: RegistryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: RegistryEvent, player_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, player_id)
            except Exception as e:
                logger.error(
                    f"Registry listener failed on {event} {player_id}: "
                    f"{type(e).__name__}: {e}",
                    exc_info=True,
                )

    def connect(self, player_id: str, outbox: Outbox | None = None) -> PlayerHandle:
        """Register a player at the spawn position."""
        if not player_id:
            raise InvalidParameter("player id must be a non-empty string")
        with self._lock:
            if player_id in self._players:
                raise DuplicateId(player_id)
            if outbox is None:
                outbox = Outbox(self.outbox_size, name=player_id)
            player = Player(player_id, outbox)
            self._players[player_id] = player
            count = len(self._players)
        logger.debug(f"Registered {player_id} (total {count})")
        self._notify("connect", player_id)
        return PlayerHandle(player.id, player.outbox, player.connected_at)

    def update_position(
        self, player_id: str, x: float, z: float, y: float | None = None
    ) -> bool:
        """Overwrite a player's position. Unknown ids are ignored."""
        with self._lock:
            player = self._players.get(player_id)
            if player is None:
                return False
            new_y = player.position[1] if y is None else y
            player.position = (x, new_y, z)
            player.last_seen = time.time()
        return True

    def disconnect(self, player_id: str) -> bool:
        """Remove a player and release its outbox. Unknown ids are ignored."""
        with self._lock:
            player = self._players.pop(player_id, None)
            count = len(self._players)
        if player is None:
            return False
        player.outbox.close()
        logger.debug(f"Removed {player_id} (total {count})")
        self._notify("disconnect", player_id)
        return True

    def snapshot(self) -> tuple[RosterEntry, ...]:
        """Consistent copy of every player, in connection order."""
        with self._lock:
            return tuple(p.entry() for p in self._players.values())

    def get(self, player_id: str) -> RosterEntry:
        with self._lock:
            player = self._players.get(player_id)
            if player is None:
                raise NotFound(player_id)
            return player.entry()

    def last_seen(self, player_id: str) -> float:
        with self._lock:
            player = self._players.get(player_id)
            if player is None:
                raise NotFound(player_id)
            return player.last_seen

    def outbox_for(self, player_id: str) -> Outbox | None:
        with self._lock:
            player = self._players.get(player_id)
            return player.outbox if player is not None else None

    def outboxes(self) -> list[tuple[str, Outbox]]:
        with self._lock:
            return [(p.id, p.outbox) for p in self._players.values()]

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._players)

    def __contains__(self, player_id: object) -> bool:
        with self._lock:
            return player_id in self._players

    def __len__(self) -> int:
        with self._lock:
            return len(self._players)
