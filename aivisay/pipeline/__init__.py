"""Speech pipeline package.

This package contains the ordered streaming pipeline: cancellation, channels,
the generation, reorder, and playback stages, and their orchestrator.
"""

from .cancellation import CancellationToken, cancel_on_signals
from .channel import Channel
from .orchestrator import PipelineState, SpeechPipeline
from .reorder import ReorderBuffer

__all__ = [
    "CancellationToken",
    "Channel",
    "PipelineState",
    "ReorderBuffer",
    "SpeechPipeline",
    "cancel_on_signals",
]
