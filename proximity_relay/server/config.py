"""Relay configuration."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..common.attenuation import Curve, InvalidParameter
from ..common.constants import (
    DEFAULT_CURVE,
    DEFAULT_HOST,
    DEFAULT_MASTER_VOLUME,
    DEFAULT_MAX_DISTANCE,
    DEFAULT_PORT,
    LOG_FILE,
    MAX_FRAME_SIZE,
    OUTBOX_SIZE,
    PING_INTERVAL,
    ROSTER_DEBOUNCE,
    ROSTER_INTERVAL,
)


@dataclass
class RelayConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_distance: float = DEFAULT_MAX_DISTANCE
    curve: str = DEFAULT_CURVE
    master_volume: float = DEFAULT_MASTER_VOLUME  # Applied client-side
    outbox_size: int = OUTBOX_SIZE
    roster_debounce: float = ROSTER_DEBOUNCE
    roster_interval: float = ROSTER_INTERVAL
    ping_interval: float | None = PING_INTERVAL
    max_frame_size: int = MAX_FRAME_SIZE
    log_file: str = LOG_FILE

    @property
    def curve_kind(self) -> Curve:
        return Curve(self.curve)

    def validate(self) -> RelayConfig:
        """Check every field, raising InvalidParameter on the first bad one.

        Unlike the attenuation model, which falls back to linear for an
        unknown curve, configuration is strict about curve names.
        """
        if not math.isfinite(self.max_distance) or self.max_distance <= 0:
            raise InvalidParameter(
                f"max_distance must be > 0, got {self.max_distance!r}"
            )
        if self.curve not in {c.value for c in Curve}:
            raise InvalidParameter(f"unknown curve {self.curve!r}")
        if not 0.0 <= self.master_volume <= 1.0:
            raise InvalidParameter(
                f"master_volume must be in [0, 1], got {self.master_volume!r}"
            )
        if self.outbox_size < 1:
            raise InvalidParameter(f"outbox_size must be >= 1, got {self.outbox_size}")
        if self.roster_debounce < 0 or self.roster_interval < 0:
            raise InvalidParameter("roster intervals must be >= 0")
        if self.ping_interval is not None and self.ping_interval <= 0:
            raise InvalidParameter(
                f"ping_interval must be > 0, got {self.ping_interval!r}"
            )
        if not 0 <= self.port <= 65535:
            raise InvalidParameter(f"port out of range: {self.port}")
        if self.max_frame_size < 1:
            raise InvalidParameter(
                f"max_frame_size must be >= 1, got {self.max_frame_size}"
            )
        return self
