"""Playback stage: render ordered results through the audio sink.

Responsibilities:
- Display each unit's text as it starts.
- Skip failed units and survive sink errors.
- Pause between consecutive units to avoid clipped utterances.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING

from ..errors import AudioPlaybackError, PipelineCancelledError
from ..models.datatypes import GenerationResult, SpeechRunReport, TextUnit
from ..telemetry.logger import RunLogger
from .cancellation import CancellationToken

if TYPE_CHECKING:
    from ..audio.player import AudioSink

STAGE_NAME = "playback"


class PlaybackStage:
    """Consume index-ordered results and drive the audio sink."""

    def __init__(
        self,
        sink: AudioSink,
        run_logger: RunLogger,
        cancel_token: CancellationToken,
        pause_seconds: float = 0.3,
        unit_display_callback: Callable[[TextUnit], None] | None = None,
    ) -> None:
        self.sink = sink
        self.run_logger = run_logger
        self.cancel_token = cancel_token
        self.pause_seconds = pause_seconds
        self.unit_display_callback = unit_display_callback

    def play_result(
        self,
        unit: TextUnit,
        result: GenerationResult,
        is_last: bool,
        report: SpeechRunReport,
    ) -> None:
        """Display and play one unit, then pause unless it is the last one."""

        if self.unit_display_callback is not None:
            self.unit_display_callback(unit)

        if result.failed:
            report.generation_failures += 1
            self.run_logger.log_unit_failure("generate", unit.index, result.error)
            return
        if result.cache_hit:
            report.cache_hits += 1

        if result.audio_bytes is not None:
            self.run_logger.log_unit_progress(STAGE_NAME, "play", unit.index)
            try:
                self.sink.play(result.audio_bytes, result.audio_format, self.cancel_token)
            except (AudioPlaybackError, OSError) as exc:
                report.playback_failures += 1
                self.run_logger.log_unit_failure(STAGE_NAME, unit.index, exc)
            else:
                report.played += 1

        if not is_last and self.cancel_token.wait(self.pause_seconds):
            raise PipelineCancelledError("Playback cancelled during pause.")

    def run(
        self,
        units: Sequence[TextUnit],
        results: Iterable[GenerationResult],
        report: SpeechRunReport,
    ) -> None:
        """Play every result from `results` until the stream ends."""

        self.run_logger.log_stage_start(STAGE_NAME)
        last_index = len(units) - 1
        for result in results:
            self.cancel_token.raise_if_cancelled()
            self.play_result(
                units[result.index],
                result,
                is_last=result.index == last_index,
                report=report,
            )
        self.cancel_token.raise_if_cancelled()
        self.run_logger.log_stage_complete(STAGE_NAME)
