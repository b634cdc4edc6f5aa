"""Core datatypes shared across aivisay modules.

Responsibilities:
- Represent immutable records exchanged between pipeline stages.
- Provide explicit typing for the per-run report returned to the CLI.

Key types:
- `TextUnit`, `AudioFormat`, `SynthesizedAudio`, `GenerationResult`,
  and `SpeechRunReport`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AudioFormat(str, Enum):
    """Audio container formats produced by the supported synthesis backends."""

    WAV = "wav"
    MP3 = "mp3"

    @property
    def extension(self) -> str:
        """Return the file extension used for cached payloads of this format."""

        return self.value


@dataclass(frozen=True, slots=True)
class TextUnit:
    """One playable fragment of the input text.

    Attributes:
        index: 0-based contiguous position in the original text.
        content: Trimmed, non-empty fragment text including its terminator.
    """

    index: int
    content: str


@dataclass(frozen=True, slots=True)
class SynthesizedAudio:
    """Audio payload returned by a synthesis backend.

    Attributes:
        audio_bytes: Raw encoded audio container bytes.
        audio_format: Declared container format of `audio_bytes`.
    """

    audio_bytes: bytes
    audio_format: AudioFormat


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Outcome of generating audio for exactly one text unit.

    Attributes:
        index: Index of the `TextUnit` this result belongs to.
        audio_bytes: Audio payload, or `None` when generation failed.
        audio_format: Output format of the active backend.
        error: Failure raised while generating, if any.
        cache_hit: Whether the payload was served from the unit cache.
    """

    index: int
    audio_bytes: bytes | None
    audio_format: AudioFormat
    error: Exception | None = None
    cache_hit: bool = False

    @property
    def failed(self) -> bool:
        """Return whether this unit could not be generated."""

        return self.error is not None


@dataclass(slots=True)
class SpeechRunReport:
    """Per-run counters collected while speaking one input text.

    Attributes:
        unit_count: Number of units produced by segmentation.
        played: Units handed to the sink without a sink error.
        generation_failures: Units whose generation failed.
        playback_failures: Units whose sink playback failed.
        cache_hits: Units served from the unit cache.
        cancelled: Whether the run was interrupted.
        final_state: Terminal pipeline state name.
    """

    unit_count: int = 0
    played: int = 0
    generation_failures: int = 0
    playback_failures: int = 0
    cache_hits: int = 0
    cancelled: bool = False
    final_state: str = "idle"
