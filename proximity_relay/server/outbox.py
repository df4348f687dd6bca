"""Bounded per-connection delivery queue."""

from __future__ import annotations

import asyncio
import collections
from typing import Generic, TypeVar

from ..common.constants import OUTBOX_SIZE
from ..common.log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class OutboxClosed(Exception):
    """Raised when pushing to or reading from a released outbox."""


class Outbox(Generic[T]):
    """Outbound frames for one connection.

    Audio frames go into a bounded FIFO; when it is full the newest frame is
    dropped. Roster frames use a single slot where a pending snapshot is
    replaced by the latest one, so they never consume audio capacity and are
    never lost to backpressure.
    """

    def __init__(self, maxsize: int = OUTBOX_SIZE, name: str = "") -> None:
        if maxsize < 1:
            raise ValueError(f"Outbox maxsize must be >= 1, got {maxsize}")
        self.name = name
        self.maxsize = maxsize
        self._audio: collections.deque[T] = collections.deque()
        self._roster: T | None = None
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped_audio = 0
        self.coalesced_rosters = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._audio) + (1 if self._roster is not None else 0)

    def put_audio(self, frame: T) -> bool:
        """Queue an audio frame. Returns False if it was dropped (queue full)."""
        if self._closed:
            raise OutboxClosed(self.name)
        if len(self._audio) >= self.maxsize:
            self.dropped_audio += 1
            if self.dropped_audio % 50 == 1:
                logger.debug(f"Outbox {self.name}: dropped {self.dropped_audio} frames")
            return False
        self._audio.append(frame)
        self._ready.set()
        return True

    def put_roster(self, frame: T) -> None:
        """Queue a roster frame, replacing any roster not yet delivered."""
        if self._closed:
            raise OutboxClosed(self.name)
        if self._roster is not None:
            self.coalesced_rosters += 1
        self._roster = frame
        self._ready.set()

    def get_nowait(self) -> T | None:
        """Pop the next frame (pending roster first), or None if empty."""
        if self._roster is not None:
            frame = self._roster
            self._roster = None
            return frame
        if self._audio:
            return self._audio.popleft()
        return None

    async def get(self) -> T:
        """Wait for the next frame. Raises OutboxClosed once released."""
        while True:
            if self._closed:
                raise OutboxClosed(self.name)
            frame = self.get_nowait()
            if frame is not None:
                return frame
            self._ready.clear()
            await self._ready.wait()

    def close(self) -> None:
        """Release the outbox: drop pending frames and wake the consumer."""
        if self._closed:
            return
        self._closed = True
        self._audio.clear()
        self._roster = None
        self._ready.set()
