"""Wire protocol for client-server communication.

Every frame is a JSON text message. Clients send position updates and audio
chunks; the server sends roster snapshots and relayed audio.
"""

from __future__ import annotations

import base64
import binascii
import enum
import json
import math
import time
from dataclasses import dataclass
from typing import Any


class FrameType(str, enum.Enum):
    POSITION_UPDATE = "position_update"  # Client -> Server
    UPDATE_COORDS = "update_coords"  # Client -> Server, alias of POSITION_UPDATE
    AUDIO_CHUNK = "audio_chunk"  # Both directions (relay adds sender fields)
    PLAYERS_UPDATE = "players_update"  # Server -> Client: roster snapshot


class MalformedFrame(ValueError):
    """Raised when an inbound frame cannot be decoded."""


@dataclass(frozen=True)
class PositionUpdate:
    x: float
    z: float
    y: float | None = None


@dataclass(frozen=True)
class AudioChunk:
    audio_data: str  # base64, relayed untouched


@dataclass(frozen=True)
class PlayerInfo:
    nick: str
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class RosterSnapshot:
    players: tuple[PlayerInfo, ...]
    timestamp: int  # epoch milliseconds


@dataclass(frozen=True)
class AudioRelay:
    player_nick: str
    audio_data: str
    x: float
    z: float
    gain: float | None = None  # Server-side, listener-relative
    pan: float | None = None


ClientFrame = PositionUpdate | AudioChunk
ServerFrame = RosterSnapshot | AudioRelay


def now_ms() -> int:
    return int(time.time() * 1000)


def _load(data: str | bytes) -> dict[str, Any]:
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedFrame(f"frame is not UTF-8: {e}") from e
    try:
        obj = json.loads(data)
    except ValueError as e:
        raise MalformedFrame(f"frame is not JSON: {e}") from e
    if not isinstance(obj, dict):
        raise MalformedFrame(f"frame must be an object, got {type(obj).__name__}")
    return obj


def _number(obj: dict[str, Any], key: str) -> float:
    value = obj.get(key)
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedFrame(f"field {key!r} must be a number, got {value!r}")
    try:
        result = float(value)
    except OverflowError as e:
        raise MalformedFrame(f"field {key!r} is out of range") from e
    if not math.isfinite(result):
        raise MalformedFrame(f"field {key!r} must be finite, got {value!r}")
    return result


def _string(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str):
        raise MalformedFrame(f"field {key!r} must be a string, got {value!r}")
    return value


def _base64(obj: dict[str, Any], key: str) -> str:
    value = _string(obj, key)
    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedFrame(f"field {key!r} is not valid base64: {e}") from e
    return value


# Client -> Server


def serialize_position_update(x: float, z: float, y: float | None = None) -> str:
    body: dict[str, Any] = {"x": x, "z": z}
    if y is not None:
        body["y"] = y
    return json.dumps(body)


def serialize_audio_chunk(audio: bytes) -> str:
    return json.dumps(
        {
            "type": FrameType.AUDIO_CHUNK.value,
            "audioData": base64.b64encode(audio).decode("ascii"),
        }
    )


def deserialize_client_frame(data: str | bytes) -> ClientFrame:
    """Decode an inbound frame into a PositionUpdate or AudioChunk."""
    obj = _load(data)
    frame_type = obj.get("type")

    if frame_type == FrameType.AUDIO_CHUNK.value:
        return AudioChunk(_base64(obj, "audioData"))

    if frame_type in (
        None,
        FrameType.POSITION_UPDATE.value,
        FrameType.UPDATE_COORDS.value,
    ):
        y = _number(obj, "y") if obj.get("y") is not None else None
        return PositionUpdate(_number(obj, "x"), _number(obj, "z"), y)

    raise MalformedFrame(f"unknown frame type {frame_type!r}")


# Server -> Client


def serialize_roster_snapshot(snapshot: RosterSnapshot) -> str:
    return json.dumps(
        {
            "type": FrameType.PLAYERS_UPDATE.value,
            "players": [
                {"nick": p.nick, "x": p.x, "y": p.y, "z": p.z}
                for p in snapshot.players
            ],
            "timestamp": snapshot.timestamp,
        }
    )


def serialize_audio_relay(relay: AudioRelay) -> str:
    body: dict[str, Any] = {
        "type": FrameType.AUDIO_CHUNK.value,
        "playerNick": relay.player_nick,
        "audioData": relay.audio_data,
        "x": relay.x,
        "z": relay.z,
    }
    if relay.gain is not None:
        body["gain"] = relay.gain
    if relay.pan is not None:
        body["pan"] = relay.pan
    return json.dumps(body)


def serialize_server_frame(frame: ServerFrame) -> str:
    if isinstance(frame, RosterSnapshot):
        return serialize_roster_snapshot(frame)
    return serialize_audio_relay(frame)


def deserialize_server_frame(data: str | bytes) -> ServerFrame:
    """Decode an outbound frame (used by clients)."""
    obj = _load(data)
    frame_type = obj.get("type")

    if frame_type == FrameType.PLAYERS_UPDATE.value:
        players_data = obj.get("players")
        if not isinstance(players_data, list):
            raise MalformedFrame("field 'players' must be a list")
        players = []
        for p in players_data:
            if not isinstance(p, dict):
                raise MalformedFrame("roster entries must be objects")
            y = _number(p, "y") if p.get("y") is not None else 0.0
            players.append(
                PlayerInfo(_string(p, "nick"), _number(p, "x"), y, _number(p, "z"))
            )
        timestamp = obj.get("timestamp", 0)
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise MalformedFrame(
                f"field 'timestamp' must be an int, got {timestamp!r}"
            )
        return RosterSnapshot(tuple(players), timestamp)

    if frame_type == FrameType.AUDIO_CHUNK.value:
        gain = _number(obj, "gain") if obj.get("gain") is not None else None
        pan = _number(obj, "pan") if obj.get("pan") is not None else None
        return AudioRelay(
            _string(obj, "playerNick"),
            _string(obj, "audioData"),
            _number(obj, "x"),
            _number(obj, "z"),
            gain,
            pan,
        )

    raise MalformedFrame(f"unknown frame type {frame_type!r}")
