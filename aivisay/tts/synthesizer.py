"""Speech synthesizer interface and Aivis-backed implementations.

Responsibilities:
- Define the single `synthesize(text)` capability the pipeline depends on.
- Provide local AivisSpeech Engine and Aivis Cloud API adapters.
- Expose connectivity checks that run before the pipeline starts.
"""

from __future__ import annotations

from typing import Protocol

from ..errors import PipelineStageError
from ..models.datatypes import AudioFormat, SynthesizedAudio
from .http_client import AivisCloudClient, AivisSpeechEngineClient, SynthesisProviderError
from .voices import VoiceProfile


class SpeechSynthesizer(Protocol):
    """Protocol for synthesis backend implementations."""

    @property
    def voice_identity(self) -> str:
        """Voice namespace used for cache keys."""

    @property
    def output_format(self) -> AudioFormat:
        """Container format of every payload this backend returns."""

    def synthesize(self, text: str) -> SynthesizedAudio:
        """Synthesize one text unit or raise `SynthesisProviderError`."""

    def check_connection(self) -> None:
        """Raise `PipelineStageError` when the backend cannot be used."""


class AivisSpeechSynthesizer:
    """Local AivisSpeech Engine synthesizer (audio query, then synthesis)."""

    def __init__(
        self,
        voice: VoiceProfile,
        client: AivisSpeechEngineClient,
        connect_timeout_seconds: float = 3.0,
    ) -> None:
        """Initialize the local synthesizer with its voice and HTTP client."""

        self.voice = voice
        self.client = client
        self.connect_timeout_seconds = connect_timeout_seconds

    @property
    def voice_identity(self) -> str:
        return self.voice.voice_id

    @property
    def output_format(self) -> AudioFormat:
        return AudioFormat.WAV

    def synthesize(self, text: str) -> SynthesizedAudio:
        """Create an audio query, apply voice tuning, and render WAV bytes."""

        audio_query = self.client.create_audio_query(speaker_id=self.voice.voice_id, text=text)
        # Keep every other engine-provided value untouched.
        audio_query["speedScale"] = self.voice.speed
        audio_query["pitchScale"] = self.voice.pitch
        audio_query["volumeScale"] = self.voice.volume
        audio_query["prePhonemeLength"] = 0
        audio_query["postPhonemeLength"] = 0
        audio_bytes = self.client.synthesize(
            speaker_id=self.voice.voice_id,
            audio_query=audio_query,
        )
        return SynthesizedAudio(audio_bytes=audio_bytes, audio_format=self.output_format)

    def check_connection(self) -> None:
        """Probe the engine's speaker list with a short timeout."""

        try:
            self.client.list_speakers(timeout_seconds=self.connect_timeout_seconds)
        except SynthesisProviderError as exc:
            raise PipelineStageError(
                stage="connect",
                detail=f"Cannot connect to AivisSpeech Engine at {self.client.base_url}.",
                hint="Make sure AivisSpeech Engine is running, or set `AIVISSPEECH_URL`.",
            ) from exc


class AivisCloudSynthesizer:
    """Aivis Cloud API synthesizer returning MP3 payloads."""

    def __init__(self, voice: VoiceProfile, client: AivisCloudClient) -> None:
        """Initialize the cloud synthesizer with its model voice and HTTP client."""

        self.voice = voice
        self.client = client

    @property
    def voice_identity(self) -> str:
        return self.voice.voice_id

    @property
    def output_format(self) -> AudioFormat:
        return AudioFormat.MP3

    def synthesize(self, text: str) -> SynthesizedAudio:
        """Synthesize one unit through the cloud API."""

        audio_bytes = self.client.synthesize(
            model_uuid=self.voice.voice_id,
            text=text,
            output_format=self.output_format.value,
        )
        return SynthesizedAudio(audio_bytes=audio_bytes, audio_format=self.output_format)

    def check_connection(self) -> None:
        """Validate that credentials and model identity are configured."""

        if not self.client.api_key:
            raise PipelineStageError(
                stage="connect",
                detail="AIVIS_CLOUD_API_KEY is not set.",
                hint=(
                    "Set your API key with `export AIVIS_CLOUD_API_KEY=your_api_key`, "
                    "or pass `--prompt-api-key`."
                ),
            )
        if not self.voice.voice_id.strip():
            raise PipelineStageError(
                stage="connect",
                detail="AIVIS_CLOUD_MODEL_UUID is not set.",
                hint="Set your model UUID with `export AIVIS_CLOUD_MODEL_UUID=your_model_uuid`.",
            )
