"""Distance attenuation and stereo pan model.

Everything here is pure and deterministic: the server uses it to filter and
annotate relayed audio, and clients use the same functions to mix what they
receive. Only the horizontal (x, z) plane is considered.
"""

from __future__ import annotations

import enum
import math
from typing import NamedTuple

from .constants import LOWPASS_FAR_HZ, LOWPASS_NEAR_HZ


class InvalidParameter(ValueError):
    """Raised for out-of-range model or configuration parameters."""


class Position(NamedTuple):
    x: float
    z: float


class Curve(str, enum.Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    LOGARITHMIC = "logarithmic"
    INVERSE_SQUARE = "inverse_square"

    @classmethod
    def parse(cls, name: str | Curve) -> Curve:
        """Resolve a curve name, falling back to linear for unknown names."""
        if isinstance(name, Curve):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            return cls.LINEAR


def distance(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Euclidean distance between two (x, z) points."""
    dx = a[0] - b[0]
    dz = a[1] - b[1]
    return math.sqrt(dx * dx + dz * dz)


def check_max_distance(max_distance: float) -> None:
    """Raise InvalidParameter unless ``max_distance`` is finite and positive."""
    if not math.isfinite(max_distance) or max_distance <= 0:
        raise InvalidParameter(f"max_distance must be > 0, got {max_distance!r}")


def gain(
    distance: float, max_distance: float, curve: str | Curve = Curve.LINEAR
) -> float:
    """Map a distance to a volume multiplier in [0, 1] under ``curve``."""
    check_max_distance(max_distance)
    if math.isnan(distance):
        raise InvalidParameter("distance must be a number, got NaN")
    d = max(distance, 0.0)
    ratio = min(d / max_distance, 1.0)
    kind = Curve.parse(curve)

    if kind is Curve.EXPONENTIAL:
        return (1.0 - ratio) ** 2
    if kind is Curve.LOGARITHMIC:
        if d == 0:
            return 1.0
        # log1p stays non-zero for any positive max_distance, however small
        return max(0.0, 1.0 - math.log1p(d) / math.log1p(max_distance))
    if kind is Curve.INVERSE_SQUARE:
        if d == 0:
            return 1.0
        return 1.0 / (ratio + 1.0) ** 2
    return max(0.0, 1.0 - ratio)


def pan(sender: tuple[float, float], listener: tuple[float, float]) -> float:
    """Stereo balance of ``sender`` as heard by ``listener``, in [-1, 1].

    Only the x offset is considered, so a speaker anywhere to the left is
    fully left and one straight ahead or behind is centered. Front/back
    placement is not represented by this model.
    """
    dx = sender[0] - listener[0]
    angle = math.atan2(dx, 0.0)
    return max(-1.0, min(1.0, math.sin(angle)))


def lowpass_cutoff(distance: float, max_distance: float) -> float:
    """Lowpass cutoff in Hz used to muffle distant speakers."""
    check_max_distance(max_distance)
    ratio = min(max(distance, 0.0) / max_distance, 1.0)
    return LOWPASS_NEAR_HZ - ratio * (LOWPASS_NEAR_HZ - LOWPASS_FAR_HZ)


def mix_gain(
    distance: float,
    max_distance: float,
    curve: str | Curve = Curve.LINEAR,
    master_volume: float = 1.0,
) -> float:
    """Curve gain scaled by a master volume clamped to [0, 1]."""
    master = max(0.0, min(1.0, master_volume))
    return gain(distance, max_distance, curve) * master
