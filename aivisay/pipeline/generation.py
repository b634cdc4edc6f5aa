"""Generation stage: sequential, cache-first synthesis of text units.

Responsibilities:
- Probe the unit cache before calling the synthesis backend.
- Store fresh payloads in the cache on a best-effort basis.
- Emit exactly one `GenerationResult` per unit, in unit order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from ..errors import PipelineCancelledError
from ..io.unit_cache import UnitCache
from ..models.datatypes import GenerationResult, TextUnit
from ..telemetry.logger import RunLogger
from ..tts.synthesizer import SpeechSynthesizer
from .cancellation import CancellationToken
from .channel import Channel

STAGE_NAME = "generate"


class GenerationStage:
    """Turn text units into generation results, one backend request at a time."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        run_logger: RunLogger,
        cancel_token: CancellationToken,
        unit_cache: UnitCache | None = None,
    ) -> None:
        self.synthesizer = synthesizer
        self.unit_cache = unit_cache
        self.run_logger = run_logger
        self.cancel_token = cancel_token

    def generate_unit(self, unit: TextUnit) -> GenerationResult:
        """Generate audio for one unit; backend failures are captured, not raised."""

        audio_format = self.synthesizer.output_format
        cache_key = None
        if self.unit_cache is not None:
            cache_key = UnitCache.make_key(
                unit.content, self.synthesizer.voice_identity, audio_format
            )
            try:
                cached = self.unit_cache.get(cache_key)
            except OSError as exc:
                self.run_logger.log_cache_error("get", exc)
                cached = None
            if cached is not None:
                self.run_logger.log_unit_progress(STAGE_NAME, "cache_hit", unit.index)
                return GenerationResult(
                    index=unit.index,
                    audio_bytes=cached,
                    audio_format=audio_format,
                    cache_hit=True,
                )

        self.run_logger.log_unit_progress(STAGE_NAME, "request", unit.index)
        try:
            synthesized = self.synthesizer.synthesize(unit.content)
        except PipelineCancelledError:
            raise
        except Exception as exc:
            self.run_logger.log_unit_progress(STAGE_NAME, "failed", unit.index)
            return GenerationResult(
                index=unit.index,
                audio_bytes=None,
                audio_format=audio_format,
                error=exc,
            )
        self.run_logger.log_unit_progress(STAGE_NAME, "generated", unit.index)

        if self.unit_cache is not None and cache_key is not None:
            try:
                self.unit_cache.put(cache_key, synthesized.audio_bytes)
            except OSError as exc:
                self.run_logger.log_cache_error("put", exc)

        return GenerationResult(
            index=unit.index,
            audio_bytes=synthesized.audio_bytes,
            audio_format=synthesized.audio_format,
        )

    def run(
        self,
        units: Iterable[TextUnit],
        output: Channel[GenerationResult],
        on_end_of_stream: Callable[[], None] | None = None,
    ) -> None:
        """Generate every unit into `output`, then close it.

        The channel is closed on every exit path so downstream stages can finish.
        """

        self.run_logger.log_stage_start(STAGE_NAME)
        try:
            for unit in units:
                self.cancel_token.raise_if_cancelled()
                result = self.generate_unit(unit)
                self.cancel_token.raise_if_cancelled()
                output.send(result)
        except PipelineCancelledError:
            return
        finally:
            if not self.cancel_token.cancelled and on_end_of_stream is not None:
                on_end_of_stream()
            output.close()
        self.run_logger.log_stage_complete(STAGE_NAME)
