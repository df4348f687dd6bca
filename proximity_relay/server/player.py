"""Player state for the server."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import NamedTuple

from ..common.constants import SPAWN_X, SPAWN_Y, SPAWN_Z
from .outbox import Outbox


class RosterEntry(NamedTuple):
    id: str
    x: float
    y: float
    z: float

    @property
    def position(self) -> tuple[float, float]:
        """Horizontal (x, z) position used for distance and pan."""
        return (self.x, self.z)


@dataclass(frozen=True)
class PlayerHandle:
    id: str
    outbox: Outbox
    connected_at: float


@dataclass
class Player:
    id: str
    outbox: Outbox
    # Position is replaced as a whole tuple so readers never see a mix of writes
    position: tuple[float, float, float] = (SPAWN_X, SPAWN_Y, SPAWN_Z)
    connected_at: float = field(default_factory=time.time)
    last_seen: float = field(default_factory=time.time)

    def entry(self) -> RosterEntry:
        x, y, z = self.position
        return RosterEntry(self.id, x, y, z)
