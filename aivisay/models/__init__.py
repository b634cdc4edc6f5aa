"""Shared typed data models for aivisay.

This package contains dataclasses used across pipeline modules to avoid
cross-module coupling and circular imports.
"""

from .datatypes import (
    AudioFormat,
    GenerationResult,
    SpeechRunReport,
    SynthesizedAudio,
    TextUnit,
)

__all__ = [
    "AudioFormat",
    "GenerationResult",
    "SpeechRunReport",
    "SynthesizedAudio",
    "TextUnit",
]
