"""Reorder stage: release generation results strictly by unit index.

Responsibilities:
- Buffer results that arrive ahead of the next expected index.
- Release consecutive runs of results as soon as the gap closes.
- End its output stream once the input stream ends.
"""

from __future__ import annotations

from ..models.datatypes import GenerationResult
from ..telemetry.logger import RunLogger
from .cancellation import CancellationToken
from .channel import Channel

STAGE_NAME = "reorder"


class ReorderBuffer:
    """Index-keyed holding area with a monotonically increasing release cursor.

    Every buffered key is always `>= next_expected`.
    """

    def __init__(self) -> None:
        self.next_expected = 0
        self._pending: dict[int, GenerationResult] = {}

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending_indices(self) -> list[int]:
        """Return buffered, not yet releasable indices in ascending order."""

        return sorted(self._pending)

    def insert(self, result: GenerationResult) -> list[GenerationResult]:
        """Buffer `result` and return every result that became releasable, in order."""

        if result.index < self.next_expected or result.index in self._pending:
            raise ValueError(f"Duplicate generation result for unit index {result.index}.")
        if result.index < 0:
            raise ValueError(f"Invalid unit index {result.index}.")
        self._pending[result.index] = result

        released: list[GenerationResult] = []
        while self.next_expected in self._pending:
            released.append(self._pending.pop(self.next_expected))
            self.next_expected += 1
        return released


class ReorderStage:
    """Forward generation results to playback in index order."""

    def __init__(self, run_logger: RunLogger, cancel_token: CancellationToken) -> None:
        self.run_logger = run_logger
        self.cancel_token = cancel_token
        self.buffer = ReorderBuffer()

    def run(
        self,
        source: Channel[GenerationResult],
        output: Channel[GenerationResult],
    ) -> None:
        """Drain `source` into `output` in index order, then close `output`."""

        self.run_logger.log_stage_start(STAGE_NAME)
        try:
            for result in source:
                for released in self.buffer.insert(result):
                    self.run_logger.log_unit_progress(STAGE_NAME, "released", released.index)
                    output.send(released)
        finally:
            output.close()

        if self.cancel_token.cancelled:
            return
        if len(self.buffer):
            self.run_logger.log_dropped_units(STAGE_NAME, self.buffer.pending_indices)
        self.run_logger.log_stage_complete(STAGE_NAME)
