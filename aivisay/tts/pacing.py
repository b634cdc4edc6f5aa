"""Request pacing for one synthesis backend.

Responsibilities:
- Keep a minimum gap between the end of one backend request and the start
  of the next.
- Abandon the wait as soon as the run is cancelled.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from time import monotonic, sleep
from typing import TYPE_CHECKING

from ..errors import PipelineCancelledError

if TYPE_CHECKING:
    from ..pipeline.cancellation import CancellationToken


class RequestPacer:
    """Space out consecutive requests sent to a single backend.

    The gap is measured from when the previous request finished, so a busy
    local engine gets the configured idle time even after a long utterance.
    One pacer serves one generation worker; it is not shared across threads.
    """

    def __init__(
        self,
        min_interval_seconds: float = 0.0,
        *,
        cancel_token: CancellationToken | None = None,
        clock: Callable[[], float] = monotonic,
        sleeper: Callable[[float], None] = sleep,
    ) -> None:
        self.min_interval_seconds = max(0.0, min_interval_seconds)
        self.cancel_token = cancel_token
        self.clock = clock
        self.sleeper = sleeper
        self._last_finished_at: float | None = None

    @property
    def enabled(self) -> bool:
        return self.min_interval_seconds > 0.0

    def remaining_gap(self) -> float:
        """Return how long the next request still has to wait."""

        if not self.enabled or self._last_finished_at is None:
            return 0.0
        return max(0.0, self._last_finished_at + self.min_interval_seconds - self.clock())

    @contextmanager
    def request_slot(self) -> Iterator[None]:
        """Wait for the gap, run the request body, then restart the gap."""

        remaining = self.remaining_gap()
        if remaining > 0.0:
            if self.cancel_token is None:
                self.sleeper(remaining)
            elif self.cancel_token.wait(remaining):
                raise PipelineCancelledError("Cancelled while pacing backend requests.")
        try:
            yield
        finally:
            if self.enabled:
                self._last_finished_at = self.clock()
