"""Unit tests for pipeline orchestration, run paths, and state transitions."""

from __future__ import annotations

from pathlib import Path
import signal
import threading
import time

import pytest
from pytest import MonkeyPatch

from aivisay.audio.player import SoxAudioPlayer
from aivisay.errors import PipelineStageError
from aivisay.io.unit_cache import UnitCache
from aivisay.pipeline import orchestrator as orchestrator_module
from aivisay.pipeline.cancellation import CancellationToken, cancel_on_signals
from aivisay.pipeline.orchestrator import PipelineState, SpeechPipeline
from aivisay.text.segmenter import Segmenter
from tests.fakes import (
    FakeSynthesizer,
    RecordingCancellationToken,
    RecordingRunLogger,
    RecordingSink,
    audio_for,
)


def _pipeline(
    synthesizer: FakeSynthesizer,
    sink: RecordingSink,
    run_logger: RecordingRunLogger | None = None,
    cancel_token: RecordingCancellationToken | None = None,
    unit_cache: UnitCache | None = None,
    pause_seconds: float = 0.3,
    displayed: list[str] | None = None,
) -> SpeechPipeline:
    """Build a pipeline over in-memory collaborators."""

    return SpeechPipeline(
        synthesizer=synthesizer,
        sink=sink,
        unit_cache=unit_cache,
        segmenter=Segmenter(terminators="。!?"),
        run_logger=run_logger or RecordingRunLogger(),
        pause_seconds=pause_seconds,
        cancel_token=cancel_token or RecordingCancellationToken(),
        unit_display_callback=(
            (lambda unit: displayed.append(unit.content)) if displayed is not None else None
        ),
    )


def test_empty_input_makes_no_backend_or_sink_calls() -> None:
    """Whitespace-only text should finish immediately without side effects."""

    synthesizer = FakeSynthesizer()
    sink = RecordingSink()
    run_logger = RecordingRunLogger()

    report = _pipeline(synthesizer, sink, run_logger=run_logger).run("   ")

    assert synthesizer.calls == []
    assert sink.played == []
    assert report.unit_count == 0
    assert report.final_state == PipelineState.EMPTY_DONE.value
    assert run_logger.states == ["segmenting", "empty_done"]


def test_single_unit_runs_without_channels_or_threads(monkeypatch: MonkeyPatch) -> None:
    """A one-unit input should take the synchronous path."""

    def _no_channels(*args: object, **kwargs: object) -> None:
        raise AssertionError("single-unit path must not construct channels")

    monkeypatch.setattr(orchestrator_module, "Channel", _no_channels)
    synthesizer = FakeSynthesizer()
    sink = RecordingSink()
    token = RecordingCancellationToken()
    run_logger = RecordingRunLogger()
    displayed: list[str] = []

    report = _pipeline(
        synthesizer, sink, run_logger=run_logger, cancel_token=token, displayed=displayed
    ).run("こんにちは。")

    assert synthesizer.calls == ["こんにちは。"]
    assert sink.played == [audio_for("こんにちは。")]
    assert displayed == ["こんにちは。"]
    assert token.waits == []
    assert report.played == 1
    assert run_logger.states == ["segmenting", "single_path_running", "done"]


def test_single_unit_generation_failure_is_reported_not_raised() -> None:
    """A failing single unit should end the run normally with a counted failure."""

    synthesizer = FakeSynthesizer(fail_on=("Broken.",))
    sink = RecordingSink()

    report = _pipeline(synthesizer, sink).run("Broken.")

    assert sink.played == []
    assert report.generation_failures == 1
    assert report.final_state == "done"


def test_streaming_run_plays_units_in_order_and_skips_failed_unit() -> None:
    """Unit 1 failing should leave units 0 and 2 played in order with one pause."""

    synthesizer = FakeSynthesizer(fail_on=("二。",))
    sink = RecordingSink()
    token = RecordingCancellationToken()
    displayed: list[str] = []

    report = _pipeline(
        synthesizer, sink, cancel_token=token, pause_seconds=0.3, displayed=displayed
    ).run("一。二。三。")

    assert synthesizer.calls == ["一。", "二。", "三。"]
    assert sink.played == [audio_for("一。"), audio_for("三。")]
    assert displayed == ["一。", "二。", "三。"]
    assert token.waits == [0.3]
    assert report.unit_count == 3
    assert report.played == 2
    assert report.generation_failures == 1
    assert report.cancelled is False
    assert report.final_state == "done"


def test_streaming_run_keeps_order_when_early_units_are_slow() -> None:
    """Playback order should follow unit indices even when generation timing varies."""

    synthesizer = FakeSynthesizer(delays={"A!": 0.05, "B?": 0.01})
    sink = RecordingSink()

    report = _pipeline(synthesizer, sink, pause_seconds=0.0).run("A! B? C。D!")

    assert sink.played == [audio_for("A!"), audio_for("B?"), audio_for("C。"), audio_for("D!")]
    assert report.played == 4


def test_streaming_run_passes_through_pipeline_and_draining_states() -> None:
    """Multi-unit runs should report the streaming state sequence."""

    run_logger = RecordingRunLogger()

    _pipeline(FakeSynthesizer(), RecordingSink(), run_logger=run_logger).run("一。二。")

    assert run_logger.states == ["segmenting", "pipeline_running", "draining", "done"]


def test_streaming_run_reuses_cached_units(tmp_path: Path) -> None:
    """A repeated run with caching should not call the backend again."""

    cache = UnitCache(tmp_path)
    first = FakeSynthesizer()
    _pipeline(first, RecordingSink(), unit_cache=cache, pause_seconds=0.0).run("一。二。")
    second = FakeSynthesizer()
    sink = RecordingSink()

    report = _pipeline(second, sink, unit_cache=cache, pause_seconds=0.0).run("一。二。")

    assert first.calls == ["一。", "二。"]
    assert second.calls == []
    assert sink.played == [audio_for("一。"), audio_for("二。")]
    assert report.cache_hits == 2


def test_cancellation_ends_run_in_cancelled_state() -> None:
    """Cancelling after the first unit should stop playback and report cancellation."""

    sink = RecordingSink(cancel_after=1)
    run_logger = RecordingRunLogger()

    report = _pipeline(FakeSynthesizer(), sink, run_logger=run_logger).run("一。二。三。")

    assert sink.played == [audio_for("一。")]
    assert report.cancelled is True
    assert report.final_state == "cancelled"
    assert run_logger.states[-1] == "cancelled"


def test_cancellation_before_single_unit_skips_generation() -> None:
    """A run started with a cancelled token should not call the backend."""

    synthesizer = FakeSynthesizer()
    token = RecordingCancellationToken()
    token.cancel()

    report = _pipeline(synthesizer, RecordingSink(), cancel_token=token).run("一。")

    assert synthesizer.calls == []
    assert report.cancelled is True


def test_worker_crash_surfaces_as_stage_error(tmp_path: Path, monkeypatch: MonkeyPatch) -> None:
    """Unexpected generation worker errors should fail the run with a stage error."""

    cache = UnitCache(tmp_path)

    def _corrupted_get(key: object) -> bytes | None:
        _ = key
        raise RuntimeError("corrupted cache index")

    monkeypatch.setattr(cache, "get", _corrupted_get)
    run_logger = RecordingRunLogger()

    with pytest.raises(PipelineStageError) as exc_info:
        _pipeline(
            FakeSynthesizer(), RecordingSink(), run_logger=run_logger, unit_cache=cache
        ).run("一。二。")

    assert exc_info.value.stage == "generate"
    assert "corrupted cache index" in exc_info.value.detail
    assert any("event=failure" in line for line in run_logger.lines())


def test_non_executable_player_counts_playback_failures(tmp_path: Path) -> None:
    """A player path that cannot be executed should fail each unit, not the run."""

    player_path = tmp_path / "play"
    player_path.write_text("not a program\n", encoding="utf-8")
    player_path.chmod(0o644)
    run_logger = RecordingRunLogger()

    report = SpeechPipeline(
        synthesizer=FakeSynthesizer(),
        sink=SoxAudioPlayer(executable=str(player_path)),
        segmenter=Segmenter(terminators="。"),
        run_logger=run_logger,
        cancel_token=RecordingCancellationToken(),
    ).run("一。二。")

    assert report.played == 0
    assert report.playback_failures == 2
    assert report.final_state == "done"
    assert sum("stage=playback event=unit_failure" in line for line in run_logger.lines()) == 2


def test_signal_cancels_single_unit_run_during_slow_request() -> None:
    """Ctrl+C while the only unit is being synthesized should end the run promptly."""

    token = CancellationToken()
    synthesizer = FakeSynthesizer(delays={"一。": 5.0})
    sink = RecordingSink()
    pipeline = SpeechPipeline(
        synthesizer=synthesizer,
        sink=sink,
        segmenter=Segmenter(terminators="。"),
        run_logger=RecordingRunLogger(),
        cancel_token=token,
    )
    timer = threading.Timer(
        0.2, signal.pthread_kill, args=(threading.main_thread().ident, signal.SIGINT)
    )
    started = time.monotonic()

    with cancel_on_signals(token, signals=(signal.SIGINT,)):
        timer.start()
        report = pipeline.run("一。")

    timer.join()
    assert time.monotonic() - started < 2.0
    assert synthesizer.calls == ["一。"]
    assert sink.played == []
    assert report.cancelled is True
    assert report.final_state == "cancelled"


class _CrashingSink(RecordingSink):
    """Sink with a programming error on its first payload."""

    def play(self, audio_bytes: bytes, audio_format: object, cancel_token: object = None) -> None:
        _ = audio_bytes, audio_format, cancel_token
        raise ValueError("sink bug")


def test_unexpected_playback_crash_cancels_workers_instead_of_waiting() -> None:
    """A playback crash should not wait for the remaining units to be generated."""

    token = RecordingCancellationToken()
    synthesizer = FakeSynthesizer(delays={"三。": 5.0})
    started = time.monotonic()

    with pytest.raises(ValueError, match="sink bug"):
        _pipeline(synthesizer, _CrashingSink(), cancel_token=token).run("一。二。三。")

    assert time.monotonic() - started < 3.0
    assert token.cancelled is True
