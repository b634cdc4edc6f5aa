"""Structured run logging utilities.

Responsibilities:
- Emit concise, deterministic phase-level runtime logs through `loguru`.
- Keep per-unit failures visible while hiding progress and cache chatter
  unless debug output is requested.
"""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/", ","} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class RunLogger:
    """Emit deterministic phase logs for CLI-observable pipeline activity."""

    def __init__(self, sink: TextIO | None = None, debug: bool = False) -> None:
        """Initialize logger sink and configure deterministic formatting."""

        self._sink = sink or sys.stderr
        self.debug_enabled = debug
        _loguru_logger.remove()
        _loguru_logger.add(
            self._sink,
            format="{message}",
            level="DEBUG" if debug else "WARNING",
            colorize=False,
        )

    def _emit(self, level: str, event: str, stage: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = f"[phase] level={level} stage={stage} event={event}{_format_context(context)}"
        _loguru_logger.log(level, line)

    def log_stage_start(self, stage: str) -> None:
        """Emit a stage-start runtime event."""

        self._emit("INFO", "start", stage)

    def log_stage_complete(self, stage: str) -> None:
        """Emit a stage-complete runtime event."""

        self._emit("INFO", "complete", stage)

    def log_stage_failure(self, stage: str, error_type: str) -> None:
        """Emit a stage-failure runtime event without sensitive payload details."""

        self._emit("ERROR", "failure", stage, error_type=error_type)

    def log_state(self, state: str) -> None:
        """Emit a pipeline state transition."""

        self._emit("DEBUG", "transition", "pipeline", state=state)

    def log_unit_progress(self, stage: str, event: str, unit_index: int) -> None:
        """Emit per-unit progress, reported with 1-based unit numbers."""

        self._emit("DEBUG", event, stage, unit=unit_index + 1)

    def log_unit_failure(self, stage: str, unit_index: int, error: BaseException) -> None:
        """Emit a recovered per-unit failure."""

        self._emit(
            "WARNING",
            "unit_failure",
            stage,
            unit=unit_index + 1,
            error_type=type(error).__name__,
            detail=error,
        )

    def log_cache_error(self, operation: str, error: BaseException) -> None:
        """Emit a recovered unit-cache failure (debug only)."""

        self._emit(
            "DEBUG",
            "cache_error",
            "cache",
            operation=operation,
            error_type=type(error).__name__,
        )

    def log_dropped_units(self, stage: str, indices: list[int]) -> None:
        """Emit a warning for buffered units that could never be released."""

        self._emit(
            "WARNING",
            "dropped",
            stage,
            units=",".join(str(index + 1) for index in indices),
        )
