"""Audio output sinks."""

from .player import AudioSink, SoxAudioPlayer

__all__ = ["AudioSink", "SoxAudioPlayer"]
