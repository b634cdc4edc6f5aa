"""Unit tests for Aivis HTTP clients, synthesizer adapters, and request pacing."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import json
from typing import Any

import pytest
import requests
from pytest import MonkeyPatch

from aivisay.errors import PipelineStageError
from aivisay.models.datatypes import AudioFormat
from aivisay.tts.http_client import (
    AivisCloudClient,
    AivisSpeechEngineClient,
    SynthesisProviderError,
)
from aivisay.tts.synthesizer import AivisCloudSynthesizer, AivisSpeechSynthesizer
from aivisay.tts.voices import VoiceProfile


class _MockRequestsResponse:
    """Minimal requests response mock used by HTTP client tests."""

    def __init__(self, *, payload: bytes, status_code: int = 200) -> None:
        """Initialize response with payload bytes and status code."""

        self.content = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        """Raise HTTP error when status code indicates failure."""

        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


class _RecordingTransport:
    """Scripted replacement for `requests.request` that records every call."""

    def __init__(self, responses: list[_MockRequestsResponse | Exception]) -> None:
        """Initialize the queue of responses or errors to return."""

        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def __call__(self, method: str, url: str, **kwargs: Any) -> _MockRequestsResponse:
        """Record the request and return the next scripted response."""

        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _RecordingPacer:
    """Pacer test double that counts request slots without waiting."""

    def __init__(self) -> None:
        """Initialize the slot counter."""

        self.slots = 0

    @contextmanager
    def request_slot(self) -> Iterator[None]:
        """Count one paced request."""

        self.slots += 1
        yield


def _install_transport(
    monkeypatch: MonkeyPatch, responses: list[_MockRequestsResponse | Exception]
) -> _RecordingTransport:
    """Replace the HTTP transport used by the clients."""

    transport = _RecordingTransport(responses)
    monkeypatch.setattr("aivisay.tts.http_client.requests.request", transport)
    return transport


def test_local_synthesizer_runs_two_step_protocol_with_voice_tuning(
    monkeypatch: MonkeyPatch,
) -> None:
    """Local synthesis should create an audio query, tune it, then render WAV."""

    transport = _install_transport(
        monkeypatch,
        [
            _MockRequestsResponse(
                payload=json.dumps(
                    {"speedScale": 1.0, "pitchScale": 0.0, "accent_phrases": [], "kana": "コ"}
                ).encode("utf-8")
            ),
            _MockRequestsResponse(payload=b"RIFF-wav-bytes"),
        ],
    )
    synthesizer = AivisSpeechSynthesizer(
        voice=VoiceProfile(voice_id="888753760", speed=1.2, pitch=0.1, volume=0.8),
        client=AivisSpeechEngineClient(base_url="http://localhost:10101/"),
    )

    audio = synthesizer.synthesize("こんにちは。")

    assert audio.audio_bytes == b"RIFF-wav-bytes"
    assert audio.audio_format is AudioFormat.WAV
    query_call, synthesis_call = transport.calls
    assert query_call["method"] == "POST"
    assert query_call["url"] == "http://localhost:10101/audio_query"
    assert query_call["params"] == {"speaker": "888753760", "text": "こんにちは。"}
    assert synthesis_call["url"] == "http://localhost:10101/synthesis"
    assert synthesis_call["params"] == {"speaker": "888753760"}
    assert synthesis_call["json"] == {
        "speedScale": 1.2,
        "pitchScale": 0.1,
        "volumeScale": 0.8,
        "prePhonemeLength": 0,
        "postPhonemeLength": 0,
        "accent_phrases": [],
        "kana": "コ",
    }


def test_local_client_rejects_non_object_audio_query(monkeypatch: MonkeyPatch) -> None:
    """A malformed audio query should be classified as malformed output."""

    _install_transport(monkeypatch, [_MockRequestsResponse(payload=b"[1, 2]")])
    client = AivisSpeechEngineClient(base_url="http://localhost:10101")

    with pytest.raises(SynthesisProviderError) as exc_info:
        client.create_audio_query(speaker_id="1", text="x")

    assert exc_info.value.failure_kind == "malformed"


def test_local_client_rejects_empty_synthesis_body(monkeypatch: MonkeyPatch) -> None:
    """An empty synthesis response should not be treated as audio."""

    _install_transport(monkeypatch, [_MockRequestsResponse(payload=b"")])
    client = AivisSpeechEngineClient(base_url="http://localhost:10101")

    with pytest.raises(SynthesisProviderError, match="synthesis response is empty"):
        client.synthesize(speaker_id="1", audio_query={})


def test_local_check_connection_lists_speakers_with_short_timeout(
    monkeypatch: MonkeyPatch,
) -> None:
    """The connectivity check should use the speaker list and a short timeout."""

    transport = _install_transport(monkeypatch, [_MockRequestsResponse(payload=b"[]")])
    synthesizer = AivisSpeechSynthesizer(
        voice=VoiceProfile(voice_id="1"),
        client=AivisSpeechEngineClient(base_url="http://localhost:10101"),
    )

    synthesizer.check_connection()

    assert transport.calls[0]["method"] == "GET"
    assert transport.calls[0]["url"] == "http://localhost:10101/speakers"
    assert transport.calls[0]["timeout"] == 3.0


def test_local_check_connection_maps_transport_error_to_stage_error(
    monkeypatch: MonkeyPatch,
) -> None:
    """An unreachable engine should fail at the connect stage with a hint."""

    _install_transport(monkeypatch, [requests.ConnectionError("connection refused")])
    synthesizer = AivisSpeechSynthesizer(
        voice=VoiceProfile(voice_id="1"),
        client=AivisSpeechEngineClient(base_url="http://localhost:10101"),
    )

    with pytest.raises(PipelineStageError) as exc_info:
        synthesizer.check_connection()

    assert exc_info.value.stage == "connect"
    assert exc_info.value.detail == "Cannot connect to AivisSpeech Engine at http://localhost:10101."
    assert "AIVISSPEECH_URL" in (exc_info.value.hint or "")


def test_cloud_synthesizer_sends_bearer_auth_and_mp3_request(monkeypatch: MonkeyPatch) -> None:
    """Cloud synthesis should be a single authenticated JSON request."""

    transport = _install_transport(monkeypatch, [_MockRequestsResponse(payload=b"ID3-mp3")])
    pacer = _RecordingPacer()
    synthesizer = AivisCloudSynthesizer(
        voice=VoiceProfile(voice_id="model-uuid"),
        client=AivisCloudClient(
            api_key="  aivis_secret_key_123  ",
            pacer=pacer,  # type: ignore[arg-type]
        ),
    )

    audio = synthesizer.synthesize("Hello.")

    assert audio.audio_bytes == b"ID3-mp3"
    assert audio.audio_format is AudioFormat.MP3
    call = transport.calls[0]
    assert call["url"] == "https://api.aivis-project.com/v1/tts/synthesize"
    assert call["headers"]["Authorization"] == "Bearer aivis_secret_key_123"
    assert call["json"] == {
        "model_uuid": "model-uuid",
        "text": "Hello.",
        "use_ssml": False,
        "output_format": "mp3",
    }
    assert pacer.slots == 1


def test_cloud_client_requires_api_key_before_request(monkeypatch: MonkeyPatch) -> None:
    """Missing credentials should fail without touching the network."""

    transport = _install_transport(monkeypatch, [])
    client = AivisCloudClient(api_key=None)

    with pytest.raises(SynthesisProviderError) as exc_info:
        client.synthesize(model_uuid="m", text="x")

    assert exc_info.value.failure_kind == "invalid_api_key"
    assert transport.calls == []


@pytest.mark.parametrize(
    ("status_code", "body", "failure_kind", "headline"),
    [
        (401, b'{"detail": "Invalid API key"}', "invalid_api_key", "authentication failed"),
        (429, b'{"detail": "Too many requests"}', "rate_limited", "rate limit exceeded"),
        (504, b"gateway timeout", "timeout", "request timed out"),
        (500, b'{"detail": [{"msg": "engine crashed"}]}', "http_error", "request failed"),
    ],
)
def test_cloud_client_classifies_http_failures(
    monkeypatch: MonkeyPatch,
    status_code: int,
    body: bytes,
    failure_kind: str,
    headline: str,
) -> None:
    """HTTP failures should map to deterministic failure kinds and headlines."""

    _install_transport(monkeypatch, [_MockRequestsResponse(payload=body, status_code=status_code)])
    client = AivisCloudClient(api_key="key")

    with pytest.raises(SynthesisProviderError) as exc_info:
        client.synthesize(model_uuid="m", text="x")

    assert exc_info.value.failure_kind == failure_kind
    assert exc_info.value.status_code == status_code
    assert f"Aivis Cloud API {headline} (HTTP {status_code})" in str(exc_info.value)


def test_http_error_messages_redact_bearer_tokens(monkeypatch: MonkeyPatch) -> None:
    """Provider error bodies should never echo credentials back to the user."""

    _install_transport(
        monkeypatch,
        [
            _MockRequestsResponse(
                payload=b"rejected header Bearer abcdefghijklmnopqrstuvwxyz",
                status_code=400,
            )
        ],
    )
    client = AivisCloudClient(api_key="key")

    with pytest.raises(SynthesisProviderError) as exc_info:
        client.synthesize(model_uuid="m", text="x")

    assert "abcdefghijklmnopqrstuvwxyz" not in str(exc_info.value)
    assert "[redacted-token]" in str(exc_info.value)


def test_transport_timeout_is_classified(monkeypatch: MonkeyPatch) -> None:
    """Network timeouts should be reported as timeout failures."""

    _install_transport(monkeypatch, [requests.Timeout("read timed out")])
    client = AivisSpeechEngineClient(base_url="http://localhost:10101")

    with pytest.raises(SynthesisProviderError) as exc_info:
        client.create_audio_query(speaker_id="1", text="x")

    assert exc_info.value.failure_kind == "timeout"
    assert str(exc_info.value) == "AivisSpeech Engine request timed out."


def test_cloud_check_connection_requires_key_and_model() -> None:
    """Cloud connectivity checks should name the missing setting."""

    missing_key = AivisCloudSynthesizer(
        voice=VoiceProfile(voice_id="model-uuid"),
        client=AivisCloudClient(api_key=""),
    )
    missing_model = AivisCloudSynthesizer(
        voice=VoiceProfile(voice_id=" "),
        client=AivisCloudClient(api_key="key"),
    )

    with pytest.raises(PipelineStageError, match="AIVIS_CLOUD_API_KEY is not set"):
        missing_key.check_connection()
    with pytest.raises(PipelineStageError, match="AIVIS_CLOUD_MODEL_UUID is not set"):
        missing_model.check_connection()
