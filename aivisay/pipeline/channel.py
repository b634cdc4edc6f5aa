"""Closeable, cancellation-aware message channel between pipeline stages."""

from __future__ import annotations

from collections.abc import Iterator
import queue
import threading
from typing import Generic, TypeVar

from .cancellation import CancellationToken

_Item = TypeVar("_Item")

_CLOSED = object()


class ChannelClosedError(RuntimeError):
    """Raised when sending on a channel that has already been closed."""


class Channel(Generic[_Item]):
    """Unbounded FIFO channel with an explicit end-of-stream signal.

    Receivers iterate the channel; iteration ends after `close()` once every
    item sent before it has been yielded, or as soon as the token is cancelled.
    """

    def __init__(
        self,
        cancel_token: CancellationToken,
        name: str = "channel",
        poll_interval_seconds: float = 0.05,
    ) -> None:
        self.name = name
        self._cancel_token = cancel_token
        self._poll_interval_seconds = poll_interval_seconds
        self._queue: queue.Queue[object] = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, item: _Item) -> None:
        """Enqueue one item; never blocks."""

        with self._lock:
            if self._closed:
                raise ChannelClosedError(f"Cannot send on closed channel `{self.name}`.")
            self._queue.put(item)

    def close(self) -> None:
        """Signal end-of-stream; idempotent."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[_Item]:
        while True:
            if self._cancel_token.cancelled:
                return
            try:
                item = self._queue.get(timeout=self._poll_interval_seconds)
            except queue.Empty:
                continue
            if item is _CLOSED:
                # Leave the marker for any later iterator.
                self._queue.put(_CLOSED)
                return
            yield item  # type: ignore[misc]
