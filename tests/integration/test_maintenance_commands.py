"""Integration tests for `check`, `cache-clear`, and `forget-api-key` commands."""

from __future__ import annotations

from pathlib import Path
import signal
import threading
import time

from pytest import MonkeyPatch
from typer.testing import CliRunner

from aivisay.cli import app
from aivisay.io.unit_cache import UnitCache
from aivisay.models.datatypes import AudioFormat
from tests.fakes import FakeBackend, InMemoryCredentialStore


def test_check_reports_runtime_summary_when_backend_and_player_are_ready(
    fake_backend: FakeBackend, monkeypatch: MonkeyPatch, tmp_path: Path
) -> None:
    """A healthy setup should print non-secret runtime metadata and succeed."""

    monkeypatch.setattr("aivisay.cli.is_executable_available", lambda name, override: True)
    monkeypatch.setenv("AIVIS_CACHE_DIR", str(tmp_path))
    runner = CliRunner()

    result = runner.invoke(app, ["check", "--speaker", "1431611904"])

    assert result.exit_code == 0, result.output
    assert fake_backend.synthesizer.connection_checks == 1
    assert "source: local" in result.output
    assert "voice: 1431611904" in result.output
    assert f"cache_dir: {tmp_path}" in result.output
    assert "Backend: ok" in result.output


def test_check_fails_at_player_stage_when_sox_is_missing(
    fake_backend: FakeBackend, monkeypatch: MonkeyPatch
) -> None:
    """A missing audio player should be reported with an install hint."""

    monkeypatch.setattr("aivisay.cli.is_executable_available", lambda name, override: False)
    runner = CliRunner()

    result = runner.invoke(app, ["check", "--player", "/missing/play"])

    assert result.exit_code == 1
    assert "check failed at stage `player`: Audio player `/missing/play` not found." in result.output
    assert "Hint: Install SoX" in result.output


def test_check_rejects_unknown_source(fake_backend: FakeBackend) -> None:
    """An unsupported backend selector should fail at the config stage."""

    runner = CliRunner()

    result = runner.invoke(app, ["check", "--source", "remote"])

    assert result.exit_code == 1
    assert "check failed at stage `config`: Invalid `source` value `remote`" in result.output
    assert fake_backend.runtimes == []


def test_check_missing_config_file_reports_config_stage(tmp_path: Path) -> None:
    """A nonexistent `--config` path should fail with a config-stage hint."""

    runner = CliRunner()

    result = runner.invoke(app, ["check", "--config", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 1
    assert "check failed at stage `config`: Config file not found" in result.output
    assert "Hint: Provide an existing path" in result.output


def test_cache_clear_removes_cached_audio(tmp_path: Path) -> None:
    """Cache clearing should delete payloads for every voice and report the count."""

    cache = UnitCache(tmp_path)
    cache.put(UnitCache.make_key("一。", "888753760", AudioFormat.WAV), b"wav")
    cache.put(UnitCache.make_key("二。", "model-uuid", AudioFormat.MP3), b"mp3")
    runner = CliRunner()

    result = runner.invoke(app, ["cache-clear", "--cache-dir", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert f"Removed 2 cached audio file(s) from {tmp_path}" in result.output
    assert list(tmp_path.iterdir()) == []


def test_cache_clear_uses_config_file_cache_dir(tmp_path: Path) -> None:
    """The cache directory should resolve from the YAML config when not passed."""

    cache_dir = tmp_path / "audio-cache"
    config_path = tmp_path / "aivisay.yaml"
    config_path.write_text(f"cache_dir: {cache_dir}\n", encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(app, ["cache-clear", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    assert f"Removed 0 cached audio file(s) from {cache_dir}" in result.output


def test_forget_api_key_reports_whether_a_key_was_removed(
    credential_store: InMemoryCredentialStore,
) -> None:
    """Forgetting the key should clear it once and report when none remains."""

    credential_store.set_api_key("aivis_stored_key")
    runner = CliRunner()

    first = runner.invoke(app, ["forget-api-key"])
    second = runner.invoke(app, ["forget-api-key"])

    assert first.exit_code == 0, first.output
    assert "Stored API key removed." in first.output
    assert second.exit_code == 0, second.output
    assert "No stored API key found." in second.output
    assert credential_store.get_api_key() is None


def test_check_interrupted_during_backend_check_exits_with_130(
    fake_backend: FakeBackend, monkeypatch: MonkeyPatch
) -> None:
    """SIGINT while waiting on the backend should report an interruption."""

    def _slow_check() -> None:
        signal.pthread_kill(threading.main_thread().ident, signal.SIGINT)
        time.sleep(5.0)

    monkeypatch.setattr(fake_backend.synthesizer, "check_connection", _slow_check)
    runner = CliRunner()

    result = runner.invoke(app, ["check"])

    assert result.exit_code == 130
    assert "Interrupted." in result.output
    assert "Backend: ok" not in result.output
