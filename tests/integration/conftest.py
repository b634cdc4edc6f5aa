"""Integration-test fixtures for deterministic CLI runs without audio or network."""

from __future__ import annotations

import os

import pytest

from aivisay.config import SpeechRuntimeConfig
from aivisay.pipeline.cancellation import CancellationToken
from aivisay.provider_factory import ProviderFactory
from tests.fakes import FakeBackend, FakeSynthesizer, InMemoryCredentialStore, RecordingSink


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove user `AIVIS*` settings so CLI runs resolve deterministic defaults."""

    for key in list(os.environ):
        if key.startswith("AIVIS"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def credential_store(monkeypatch: pytest.MonkeyPatch) -> InMemoryCredentialStore:
    """Replace the system keyring with an in-memory store."""

    store = InMemoryCredentialStore()
    monkeypatch.setattr("aivisay.cli.create_credential_store", lambda: store)
    return store


@pytest.fixture
def fake_backend(monkeypatch: pytest.MonkeyPatch) -> FakeBackend:
    """Replace the synthesis backend and audio sink with recording fakes."""

    backend = FakeBackend(synthesizer=FakeSynthesizer(), sink=RecordingSink())

    def _create_synthesizer(
        runtime: SpeechRuntimeConfig, cancel_token: CancellationToken | None = None
    ) -> FakeSynthesizer:
        _ = cancel_token
        backend.runtimes.append(runtime)
        return backend.synthesizer

    def _create_audio_sink(runtime: SpeechRuntimeConfig) -> RecordingSink:
        _ = runtime
        return backend.sink

    monkeypatch.setattr(ProviderFactory, "create_synthesizer", staticmethod(_create_synthesizer))
    monkeypatch.setattr(ProviderFactory, "create_audio_sink", staticmethod(_create_audio_sink))
    return backend
