"""Text-to-speech backend abstractions.

This package contains voice profile types, HTTP clients, and synthesizer
implementations used by the pipeline generation stage.
"""

from .http_client import AivisCloudClient, AivisSpeechEngineClient, SynthesisProviderError
from .synthesizer import AivisCloudSynthesizer, AivisSpeechSynthesizer, SpeechSynthesizer
from .voices import VoiceProfile

__all__ = [
    "AivisCloudClient",
    "AivisCloudSynthesizer",
    "AivisSpeechEngineClient",
    "AivisSpeechSynthesizer",
    "SpeechSynthesizer",
    "SynthesisProviderError",
    "VoiceProfile",
]
