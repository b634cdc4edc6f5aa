"""Provider factory helpers for synthesis backends, cache, and audio sink.

Responsibilities:
- Resolve the configured backend selector to a concrete synthesizer.
- Keep orchestration independent from concrete collaborator construction.
"""

from __future__ import annotations

from .audio.player import AudioSink, SoxAudioPlayer
from .config import SpeechRuntimeConfig
from .io.unit_cache import UnitCache
from .pipeline.cancellation import CancellationToken
from .tts.http_client import AivisCloudClient, AivisSpeechEngineClient
from .tts.pacing import RequestPacer
from .tts.synthesizer import AivisCloudSynthesizer, AivisSpeechSynthesizer, SpeechSynthesizer
from .tts.voices import VoiceProfile


class ProviderFactory:
    """Factory for the collaborators a speech pipeline run depends on."""

    @staticmethod
    def create_synthesizer(
        runtime: SpeechRuntimeConfig,
        cancel_token: CancellationToken | None = None,
    ) -> SpeechSynthesizer:
        """Create the synthesizer for the configured backend selector.

        `cancel_token` lets request pacing stop waiting once the run is cancelled.
        """

        pacer = RequestPacer(runtime.request_interval_seconds, cancel_token=cancel_token)
        if runtime.source == "local":
            return AivisSpeechSynthesizer(
                voice=VoiceProfile(
                    voice_id=runtime.speaker_id,
                    speed=runtime.speed,
                    pitch=runtime.pitch,
                    volume=runtime.volume,
                ),
                client=AivisSpeechEngineClient(
                    base_url=runtime.local_url,
                    pacer=pacer,
                ),
            )
        if runtime.source == "cloud":
            return AivisCloudSynthesizer(
                voice=VoiceProfile(voice_id=runtime.model_uuid),
                client=AivisCloudClient(
                    api_key=runtime.api_key,
                    base_url=runtime.cloud_url,
                    pacer=pacer,
                ),
            )
        raise ValueError(f"Unsupported synthesis source `{runtime.source}`.")

    @staticmethod
    def create_unit_cache(runtime: SpeechRuntimeConfig) -> UnitCache | None:
        """Create the unit cache when caching is enabled."""

        if not runtime.cache_enabled:
            return None
        return UnitCache(runtime.cache_dir)

    @staticmethod
    def create_audio_sink(runtime: SpeechRuntimeConfig) -> AudioSink:
        """Create the audio sink used for playback."""

        return SoxAudioPlayer(executable=runtime.player)
