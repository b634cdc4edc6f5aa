"""Pipeline orchestration for aivisay.

Responsibilities:
- Segment input text and choose the empty, single-unit, or streaming path.
- Run generation and reordering on worker threads while playback runs on the
  calling thread.
- Track the run state machine and collect a per-run report.

Key types:
- `SpeechPipeline`: orchestration facade.
- `PipelineState`: states of one run.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
import threading
from typing import TYPE_CHECKING

from ..errors import PipelineCancelledError, PipelineStageError
from ..io.unit_cache import UnitCache
from ..models.datatypes import GenerationResult, SpeechRunReport, TextUnit
from ..telemetry.logger import RunLogger
from ..text.segmenter import Segmenter
from ..tts.synthesizer import SpeechSynthesizer
from .cancellation import CancellationToken
from .channel import Channel
from .generation import GenerationStage
from .playback import PlaybackStage
from .reorder import ReorderStage

if TYPE_CHECKING:
    from ..audio.player import AudioSink


class PipelineState(str, Enum):
    """States of one speech pipeline run."""

    IDLE = "idle"
    SEGMENTING = "segmenting"
    EMPTY_DONE = "empty_done"
    SINGLE_PATH_RUNNING = "single_path_running"
    PIPELINE_RUNNING = "pipeline_running"
    DRAINING = "draining"
    DONE = "done"
    CANCELLED = "cancelled"


class _StageThread(threading.Thread):
    """Daemon thread that keeps the exception raised by its target."""

    def __init__(self, name: str, target: Callable[[], None]) -> None:
        super().__init__(name=name, daemon=True)
        self._stage_target = target
        self.error: BaseException | None = None

    def run(self) -> None:
        try:
            self._stage_target()
        except BaseException as exc:  # surfaced by the orchestrator after join
            self.error = exc


class SpeechPipeline:
    """Speak text through a synthesizer and sink with ordered streaming playback."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        sink: AudioSink,
        unit_cache: UnitCache | None = None,
        segmenter: Segmenter | None = None,
        run_logger: RunLogger | None = None,
        pause_seconds: float = 0.3,
        cancel_token: CancellationToken | None = None,
        unit_display_callback: Callable[[TextUnit], None] | None = None,
    ) -> None:
        """Initialize collaborators shared by every run of this pipeline."""

        self.synthesizer = synthesizer
        self.sink = sink
        self.unit_cache = unit_cache
        self.segmenter = segmenter or Segmenter()
        self.run_logger = run_logger or RunLogger()
        self.pause_seconds = pause_seconds
        self.cancel_token = cancel_token or CancellationToken()
        self.unit_display_callback = unit_display_callback
        self.cancel_join_timeout_seconds = 1.0
        self.state = PipelineState.IDLE
        self._state_lock = threading.Lock()

    def _transition(self, state: PipelineState) -> None:
        with self._state_lock:
            self.state = state
        self.run_logger.log_state(state.value)

    def _mark_draining(self) -> None:
        with self._state_lock:
            if self.state is not PipelineState.PIPELINE_RUNNING:
                return
        self._transition(PipelineState.DRAINING)

    def _generation_stage(self) -> GenerationStage:
        return GenerationStage(
            synthesizer=self.synthesizer,
            run_logger=self.run_logger,
            cancel_token=self.cancel_token,
            unit_cache=self.unit_cache,
        )

    def _playback_stage(self) -> PlaybackStage:
        return PlaybackStage(
            sink=self.sink,
            run_logger=self.run_logger,
            cancel_token=self.cancel_token,
            pause_seconds=self.pause_seconds,
            unit_display_callback=self.unit_display_callback,
        )

    def run(self, text: str) -> SpeechRunReport:
        """Speak `text` and return the run report.

        Per-unit generation and playback failures never fail the run; they are
        counted in the report. Cancellation ends the run in `CANCELLED` state.
        """

        report = SpeechRunReport()
        self._transition(PipelineState.SEGMENTING)
        units = self.segmenter.split(text)
        report.unit_count = len(units)

        try:
            if not units:
                self._transition(PipelineState.EMPTY_DONE)
            elif len(units) == 1:
                self._run_single(units[0], report)
                self._transition(PipelineState.DONE)
            else:
                self._run_streaming(units, report)
                self._transition(PipelineState.DONE)
        except PipelineCancelledError:
            report.cancelled = True
            self._transition(PipelineState.CANCELLED)

        report.final_state = self.state.value
        return report

    def _run_single(self, unit: TextUnit, report: SpeechRunReport) -> None:
        """Generate and play one unit synchronously, without channels or threads."""

        self._transition(PipelineState.SINGLE_PATH_RUNNING)
        self.cancel_token.raise_if_cancelled()
        with self.cancel_token.raise_on_signal():
            result = self._generation_stage().generate_unit(unit)
        self.cancel_token.raise_if_cancelled()
        self._playback_stage().play_result(unit, result, is_last=True, report=report)

    def _run_streaming(self, units: list[TextUnit], report: SpeechRunReport) -> None:
        """Overlap generation with playback and release results in index order."""

        self._transition(PipelineState.PIPELINE_RUNNING)
        generated: Channel[GenerationResult] = Channel(self.cancel_token, name="generated")
        ordered: Channel[GenerationResult] = Channel(self.cancel_token, name="ordered")

        generation = self._generation_stage()
        reorder = ReorderStage(run_logger=self.run_logger, cancel_token=self.cancel_token)
        workers = [
            _StageThread(
                "aivisay-generate",
                lambda: generation.run(units, generated, on_end_of_stream=self._mark_draining),
            ),
            _StageThread("aivisay-reorder", lambda: reorder.run(generated, ordered)),
        ]
        for worker in workers:
            worker.start()

        try:
            self._playback_stage().run(units, ordered, report)
        except BaseException:
            # Stop the workers before joining them.
            self.cancel_token.cancel()
            raise
        finally:
            for worker in workers:
                # A worker blocked in a backend request cannot be interrupted;
                # after cancellation it is left to die with the process.
                worker.join(
                    timeout=self.cancel_join_timeout_seconds
                    if self.cancel_token.cancelled
                    else None
                )

        for worker in workers:
            if worker.error is not None:
                self.run_logger.log_stage_failure(worker.name, type(worker.error).__name__)
                raise PipelineStageError(
                    stage=worker.name.removeprefix("aivisay-"),
                    detail=f"Pipeline worker `{worker.name}` failed: {worker.error}",
                ) from worker.error
