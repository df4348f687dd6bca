"""Client-side mix parameters for relayed audio."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ..common.attenuation import Curve, distance, lowpass_cutoff, mix_gain, pan
from ..common.constants import (
    DEFAULT_CURVE,
    DEFAULT_MASTER_VOLUME,
    DEFAULT_MAX_DISTANCE,
)
from ..common.protocol import AudioRelay, PlayerInfo, RosterSnapshot


@dataclass(frozen=True)
class MixParams:
    gain: float  # Curve gain times master volume
    pan: float
    cutoff_hz: float
    distance: float


@dataclass(frozen=True)
class NearbyPlayer:
    nick: str
    x: float
    z: float
    distance: float


def nearby_players(
    players: Iterable[PlayerInfo],
    nick: str,
    max_distance: float = DEFAULT_MAX_DISTANCE,
) -> list[NearbyPlayer]:
    """Other players within ``max_distance`` of ``nick``, nearest first.

    Returns an empty list while ``nick`` is missing from the roster.
    """
    players = list(players)
    me = next((p for p in players if p.nick == nick), None)
    if me is None:
        return []
    result = []
    for p in players:
        if p.nick == nick:
            continue
        d = distance((p.x, p.z), (me.x, me.z))
        if d <= max_distance:
            result.append(NearbyPlayer(p.nick, p.x, p.z, d))
    result.sort(key=lambda n: n.distance)
    return result


class ListenerMixer:
    """Tracks the roster and turns each relayed chunk into mix parameters.

    Gain and pan are recomputed from the sender coordinates in the relay
    frame and the listener's own position from the latest roster, so the
    result matches what the server computed for the same positions.
    """

    def __init__(
        self,
        nick: str,
        max_distance: float = DEFAULT_MAX_DISTANCE,
        curve: str | Curve = DEFAULT_CURVE,
        master_volume: float = DEFAULT_MASTER_VOLUME,
    ) -> None:
        self.nick = nick
        self.max_distance = max_distance
        self.curve = Curve.parse(curve)
        self.master_volume = master_volume
        self.players: dict[str, PlayerInfo] = {}
        self.last_params: dict[str, MixParams] = {}

    @property
    def position(self) -> tuple[float, float] | None:
        me = self.players.get(self.nick)
        return (me.x, me.z) if me is not None else None

    def set_master_volume(self, volume: float) -> None:
        self.master_volume = max(0.0, min(1.0, volume))

    def update_roster(self, snapshot: RosterSnapshot) -> None:
        self.players = {p.nick: p for p in snapshot.players}
        # Forget mix state for players who left
        for nick in list(self.last_params):
            if nick not in self.players:
                del self.last_params[nick]

    def mix(self, relay: AudioRelay) -> MixParams | None:
        """Mix parameters for one relayed chunk (None until we know our position)."""
        me = self.position
        if me is None:
            return None
        sender = (relay.x, relay.z)
        d = distance(sender, me)
        params = MixParams(
            gain=mix_gain(d, self.max_distance, self.curve, self.master_volume),
            pan=pan(sender, me),
            cutoff_hz=lowpass_cutoff(d, self.max_distance),
            distance=d,
        )
        self.last_params[relay.player_nick] = params
        return params

    def nearby(self) -> list[NearbyPlayer]:
        return nearby_players(self.players.values(), self.nick, self.max_distance)
