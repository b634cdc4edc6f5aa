"""Cooperative cancellation for one speech pipeline run.

Responsibilities:
- Carry a run-wide cancellation flag into every stage.
- Provide interruptible waits for stage suspension points.
- Map process interrupt signals onto the token instead of tearing down the process.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import signal
import threading
from typing import Any

from ..errors import PipelineCancelledError

DEFAULT_CANCEL_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """Thread-safe, one-way cancellation flag shared by pipeline stages."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._raise_on_signal = False

    @property
    def cancelled(self) -> bool:
        """Return whether cancellation has been requested."""

        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation; idempotent."""

        self._event.set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, returning `True` early when cancelled."""

        if seconds <= 0:
            return self.cancelled
        return self._event.wait(seconds)

    def raise_if_cancelled(self) -> None:
        """Raise `PipelineCancelledError` when cancellation has been requested."""

        if self.cancelled:
            raise PipelineCancelledError("Pipeline run was cancelled.")

    @property
    def raises_on_signal(self) -> bool:
        """Return whether a cancelling signal should also raise in the main thread."""

        return self._raise_on_signal

    @contextmanager
    def raise_on_signal(self) -> Iterator[None]:
        """Let a cancelling signal abort a blocking main-thread call inside the block.

        Outside the block a signal only sets the flag and stages stop at their
        next check. Inside it the signal handler also raises
        `PipelineCancelledError`, which breaks out of blocking socket reads
        and sleeps that would otherwise be restarted after the handler.
        """

        previous = self._raise_on_signal
        self._raise_on_signal = True
        try:
            yield
        finally:
            self._raise_on_signal = previous


@contextmanager
def cancel_on_signals(
    token: CancellationToken,
    signals: tuple[signal.Signals, ...] = DEFAULT_CANCEL_SIGNALS,
) -> Iterator[CancellationToken]:
    """Cancel `token` on any of `signals` while the context is active.

    Handlers can only be installed from the main thread; elsewhere the
    context is a no-op and the token must be cancelled explicitly.
    """

    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def _handle(_signum: int, _frame: Any) -> None:
        token.cancel()
        if token.raises_on_signal:
            raise PipelineCancelledError("Interrupted by signal.")

    previous = {signum: signal.signal(signum, _handle) for signum in signals}
    try:
        yield token
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
