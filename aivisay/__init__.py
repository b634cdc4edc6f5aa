"""Top-level package for aivisay.

This package speaks text through AivisSpeech Engine or the Aivis Cloud API,
synthesizing later sentences while earlier ones play. The main orchestration
entry point is `SpeechPipeline`.
"""

from .pipeline import SpeechPipeline

__all__ = ["SpeechPipeline", "__version__"]

__version__ = "0.2.0"
