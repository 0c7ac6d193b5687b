"""Replay channels carrying the feed's outputs to consumers.

A channel remembers its most recent value and hands it to every new
subscriber straight away, then forwards later values in publish order.
Channels backed by a live record take a ``seed`` callable instead, so a late
subscriber always starts from the record's current state even when it was
changed without a publish.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Callable, Generic, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


class Subscription(Generic[T]):
    """Handle returned by :meth:`ReplayChannel.subscribe`."""

    def __init__(self, channel: "ReplayChannel[T]", callback: Callable[[T], None]) -> None:
        self._channel = channel
        self._callback = callback

    @property
    def active(self) -> bool:
        return self._channel._has_callback(self._callback)

    def unsubscribe(self) -> None:
        self._channel._remove_callback(self._callback)


class ReplayChannel(Generic[T]):
    """Append-only output stream replaying its latest value on subscribe."""

    def __init__(self, name: str, *, seed: Optional[Callable[[], T]] = None) -> None:
        self.name = name
        self._seed = seed
        self._latest: object = _MISSING
        self._callbacks: list[Callable[[T], None]] = []
        self._queues: list[asyncio.Queue[T]] = []

    @property
    def latest(self) -> Optional[T]:
        """Value a new subscriber would receive first, or ``None``."""

        value = self._replay_value()
        return None if value is _MISSING else value  # type: ignore[return-value]

    def publish(self, value: T) -> None:
        self._latest = value

        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception:
                LOGGER.exception("Subscriber of %s channel failed", self.name)

        for queue in list(self._queues):
            queue.put_nowait(value)

    def subscribe(self, callback: Callable[[T], None]) -> Subscription[T]:
        """Register ``callback`` and deliver the replay value to it at once."""

        if callback in self._callbacks:
            raise ValueError("Callback already subscribed")

        self._callbacks.append(callback)
        replay = self._replay_value()
        if replay is not _MISSING:
            try:
                callback(replay)  # type: ignore[arg-type]
            except Exception:
                LOGGER.exception("Subscriber of %s channel failed on replay", self.name)
        return Subscription(self, callback)

    async def stream(self) -> AsyncIterator[T]:
        """Iterate over the replay value followed by every later publish."""

        queue: asyncio.Queue[T] = asyncio.Queue()
        replay = self._replay_value()
        if replay is not _MISSING:
            queue.put_nowait(replay)  # type: ignore[arg-type]
        self._queues.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            with contextlib.suppress(ValueError):
                self._queues.remove(queue)

    def _replay_value(self) -> object:
        if self._seed is not None:
            value = self._seed()
            if value is not None:
                return value
        return self._latest

    def _has_callback(self, callback: Callable[[T], None]) -> bool:
        return callback in self._callbacks

    def _remove_callback(self, callback: Callable[[T], None]) -> None:
        with contextlib.suppress(ValueError):
            self._callbacks.remove(callback)
