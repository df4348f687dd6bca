"""Proximity-based audio routing."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from ..common.attenuation import Curve, check_max_distance, distance, gain, pan
from ..common.log import get_logger
from ..common.protocol import AudioRelay
from .outbox import OutboxClosed
from .player import RosterEntry
from .registry import NotFound, PlayerRegistry

logger = get_logger(__name__)


class UnknownSender(LookupError):
    """Audio arrived for a player id that is not in the registry."""


@dataclass
class RelayStats:
    packets_routed: int = 0
    deliveries: int = 0
    unknown_sender: int = 0
    send_failures: int = 0
    dropped_audio: int = 0  # Recipient outbox full
    malformed_frames: int = 0

    def as_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class Delivery:
    recipient_id: str
    distance: float
    gain: float
    pan: float


@dataclass(frozen=True)
class RoutingResult:
    sender_id: str
    sender_position: tuple[float, float]
    deliveries: tuple[Delivery, ...] = ()
    dropped: tuple[str, ...] = ()  # Outbox full, newest frame discarded
    failed: tuple[str, ...] = ()  # Outbox closed, recipient scheduled for cleanup

    @property
    def recipient_ids(self) -> set[str]:
        """Everyone in range, whether or not the frame was queued."""
        ids = {d.recipient_id for d in self.deliveries}
        return ids.union(self.dropped, self.failed)


class ProximityRouter:
    """Fans audio out to every player within range of the sender.

    Filtering happens here, once per packet, and is authoritative. Each
    relayed frame carries the sender's position plus the listener-relative
    gain and pan so clients can mix directly or recompute.
    """

    def __init__(
        self,
        registry: PlayerRegistry,
        on_send_failure: Callable[[str], None] | None = None,
        stats: RelayStats | None = None,
    ) -> None:
        self.registry = registry
        self.on_send_failure = on_send_failure
        self.stats = stats if stats is not None else RelayStats()

    def recipients(
        self, sender_id: str, max_distance: float
    ) -> list[tuple[RosterEntry, float]]:
        """Players within ``max_distance`` of the sender, with their distance."""
        try:
            source = self.registry.get(sender_id)
        except NotFound:
            raise UnknownSender(sender_id) from None
        return self._in_range(source, max_distance)

    def _in_range(
        self, source: RosterEntry, max_distance: float
    ) -> list[tuple[RosterEntry, float]]:
        result = []
        for entry in self.registry.snapshot():
            if entry.id == source.id:
                continue
            d = distance(entry.position, source.position)
            if d <= max_distance:
                result.append((entry, d))
        return result

    def route(
        self,
        sender_id: str,
        payload: str,
        max_distance: float,
        curve: str | Curve = Curve.EXPONENTIAL,
    ) -> RoutingResult:
        """Deliver one audio payload to everyone in range of the sender."""
        check_max_distance(max_distance)
        try:
            source = self.registry.get(sender_id)
        except NotFound:
            self.stats.unknown_sender += 1
            raise UnknownSender(sender_id) from None

        self.stats.packets_routed += 1
        deliveries: list[Delivery] = []
        dropped: list[str] = []
        failed: list[str] = []

        for entry, d in self._in_range(source, max_distance):
            outbox = self.registry.outbox_for(entry.id)
            if outbox is None:
                # Left after the snapshot was taken
                continue

            g = gain(d, max_distance, curve)
            p = pan(source.position, entry.position)
            frame = AudioRelay(sender_id, payload, source.x, source.z, g, p)
            try:
                queued = outbox.put_audio(frame)
            except OutboxClosed:
                self.stats.send_failures += 1
                failed.append(entry.id)
                logger.debug(f"Send {sender_id} -> {entry.id} failed: outbox closed")
                if self.on_send_failure is not None:
                    self.on_send_failure(entry.id)
                continue

            if not queued:
                self.stats.dropped_audio += 1
                dropped.append(entry.id)
                continue

            self.stats.deliveries += 1
            deliveries.append(Delivery(entry.id, d, g, p))

        return RoutingResult(
            sender_id,
            source.position,
            tuple(deliveries),
            tuple(dropped),
            tuple(failed),
        )
