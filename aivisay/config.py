"""Configuration model and loaders for aivisay.

Responsibilities:
- Define runtime configuration as a typed dataclass.
- Provide deterministic precedence resolution for runtime backend/voice settings.
- Provide loader entry points for file- and environment-based configuration.

Key types:
- `AivisayConfig`: normalized settings for a speech run.
- `SpeechRuntimeConfig`: resolved backend, voice, cache, and pacing values.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `AivisayConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .parsing import (
    normalize_optional_string,
    parse_permissive_boolean,
    parse_required_boolean,
    parse_required_float,
)


_DEFAULT_LOCAL_URL = "http://localhost:10101"
_DEFAULT_SPEAKER_ID = "888753760"
_DEFAULT_CLOUD_URL = "https://api.aivis-project.com"
_DEFAULT_MODEL_UUID = "a59cb814-0083-4369-8542-f51a29e72af7"
_DEFAULT_SLEEP_SECONDS = 0.3
_SUPPORTED_SOURCES = frozenset({"local", "cloud"})


def default_cache_dir() -> Path:
    """Return the default audio cache directory under the user's home."""

    return Path.home() / ".cache" / "aivisay"


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Source mappings used for deterministic runtime value precedence.

    Attributes:
        cli: Values explicitly provided by CLI arguments.
        secure: Values loaded from secure local credential storage.
        env: Values loaded from environment variables.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    secure: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SpeechRuntimeConfig:
    """Resolved runtime values for one speech run.

    Attributes:
        source: Active backend selector (`local` or `cloud`).
        local_url: AivisSpeech Engine base URL.
        speaker_id: Local engine speaker identifier.
        cloud_url: Aivis Cloud API base URL.
        api_key: Cloud API key (resolved but never logged).
        model_uuid: Cloud model identifier.
        speed: Speaking rate forwarded to the local engine.
        pitch: Pitch offset forwarded to the local engine.
        volume: Volume multiplier forwarded to the local engine.
        cache_dir: Root directory of the unit audio cache.
        cache_enabled: Whether the unit cache is used.
        sleep_seconds: Pause between consecutive units.
        debug: Whether debug logging is enabled.
        request_interval_seconds: Minimum spacing between backend requests.
        player: Optional explicit audio player executable.
    """

    source: str
    local_url: str
    speaker_id: str
    cloud_url: str
    model_uuid: str
    speed: float
    pitch: float
    volume: float
    cache_dir: Path
    cache_enabled: bool
    sleep_seconds: float
    debug: bool
    request_interval_seconds: float = 0.0
    api_key: str | None = None
    player: str | None = None

    @property
    def voice_identity(self) -> str:
        """Return the voice namespace of the active backend."""

        return self.speaker_id if self.source == "local" else self.model_uuid

    def as_display_metadata(self) -> dict[str, str]:
        """Return non-secret runtime metadata safe to print or log."""

        return {
            "source": self.source,
            "voice": self.voice_identity,
            "cache": "on" if self.cache_enabled else "off",
            "cache_dir": str(self.cache_dir),
            "sleep": f"{self.sleep_seconds:g}",
        }


@dataclass(slots=True)
class AivisayConfig:
    """Base configuration for speech runs, before runtime source overrides.

    Attributes:
        source: Backend selector, `local` (AivisSpeech Engine) or `cloud`.
        local_url: AivisSpeech Engine base URL.
        speaker_id: Local engine speaker identifier.
        cloud_url: Aivis Cloud API base URL.
        api_key: Optional Aivis Cloud API key.
        model_uuid: Aivis Cloud model UUID.
        speed: Speaking rate multiplier.
        pitch: Pitch offset.
        volume: Volume multiplier.
        cache_dir: Unit audio cache directory.
        cache_enabled: Whether synthesized units are cached.
        sleep_seconds: Pause between consecutive units.
        debug: Emit debug-level run logs.
        request_interval_seconds: Minimum spacing between backend requests.
        player: Optional explicit audio player executable.
        runtime_sources: Optional runtime source overrides injected by CLI.
    """

    source: str = "local"
    local_url: str = _DEFAULT_LOCAL_URL
    speaker_id: str = _DEFAULT_SPEAKER_ID
    cloud_url: str = _DEFAULT_CLOUD_URL
    api_key: str | None = None
    model_uuid: str = _DEFAULT_MODEL_UUID
    speed: float = 1.0
    pitch: float = 0.0
    volume: float = 1.0
    cache_dir: Path = field(default_factory=default_cache_dir)
    cache_enabled: bool = False
    sleep_seconds: float = _DEFAULT_SLEEP_SECONDS
    debug: bool = False
    request_interval_seconds: float = 0.0
    player: str | None = None
    runtime_sources: RuntimeConfigSources = field(default_factory=RuntimeConfigSources)

    def validate(self) -> None:
        """Validate configuration values before a speech run."""

        self._validate_source(self.source)
        self._require_non_empty(self.local_url, "local_url")
        self._require_non_empty(self.speaker_id, "speaker_id")
        self._require_non_empty(self.cloud_url, "cloud_url")
        self._require_non_negative(self.sleep_seconds, "sleep_seconds")
        self._require_non_negative(self.request_interval_seconds, "request_interval_seconds")
        if self.speed <= 0:
            raise ValueError("`speed` must be a positive number.")
        if self.volume < 0:
            raise ValueError("`volume` must be a non-negative number.")

    def resolved_runtime(
        self, sources: RuntimeConfigSources | None = None
    ) -> SpeechRuntimeConfig:
        """Resolve runtime settings with deterministic source precedence.

        Precedence for each key is:
        `cli` > `secure` > `env` > config field default.
        """

        resolved_sources = sources if sources is not None else self.runtime_sources

        resolved = SpeechRuntimeConfig(
            source=self._resolve_runtime_value(
                "source", "AIVIS_SOURCE", self.source, resolved_sources
            ).lower(),
            local_url=self._resolve_runtime_value(
                "local_url", "AIVISSPEECH_URL", self.local_url, resolved_sources
            ),
            speaker_id=self._resolve_runtime_value(
                "speaker_id", "AIVISSPEECH_SPEAKER", self.speaker_id, resolved_sources
            ),
            cloud_url=self._resolve_runtime_value(
                "cloud_url", "AIVIS_CLOUD_URL", self.cloud_url, resolved_sources
            ),
            api_key=self._resolve_optional_runtime_value(
                "api_key", "AIVIS_CLOUD_API_KEY", self.api_key, resolved_sources
            ),
            model_uuid=self._resolve_runtime_value(
                "model_uuid", "AIVIS_CLOUD_MODEL_UUID", self.model_uuid, resolved_sources
            ),
            speed=self._resolve_runtime_float(
                "speed", "AIVISSPEECH_SPEED", self.speed, resolved_sources
            ),
            pitch=self._resolve_runtime_float(
                "pitch", "AIVISSPEECH_PITCH", self.pitch, resolved_sources
            ),
            volume=self._resolve_runtime_float(
                "volume", "AIVISSPEECH_VOLUME", self.volume, resolved_sources
            ),
            cache_dir=Path(
                self._resolve_runtime_value(
                    "cache_dir", "AIVIS_CACHE_DIR", str(self.cache_dir), resolved_sources
                )
            ).expanduser(),
            cache_enabled=self._resolve_runtime_bool(
                "cache_enabled", "AIVIS_CACHE", self.cache_enabled, resolved_sources
            ),
            sleep_seconds=self._resolve_runtime_float(
                "sleep_seconds", "AIVIS_SLEEP", self.sleep_seconds, resolved_sources
            ),
            debug=self._resolve_runtime_bool(
                "debug", "AIVIS_DEBUG", self.debug, resolved_sources
            ),
            request_interval_seconds=self._resolve_runtime_float(
                "request_interval_seconds",
                "AIVIS_REQUEST_INTERVAL",
                self.request_interval_seconds,
                resolved_sources,
            ),
            player=self._resolve_optional_runtime_value(
                "player", "AIVIS_PLAYER", self.player, resolved_sources
            ),
        )
        self._validate_source(resolved.source)
        self._require_non_negative(resolved.sleep_seconds, "sleep_seconds")
        self._require_non_negative(
            resolved.request_interval_seconds, "request_interval_seconds"
        )
        if resolved.speed <= 0:
            raise ValueError("`speed` must be a positive number.")
        return resolved

    def _resolve_runtime_value(
        self,
        key: str,
        env_key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str:
        """Resolve a runtime value from sources in deterministic precedence order."""

        value = self._resolve_optional_runtime_value(key, env_key, default_value, sources)
        if value is None:
            raise ValueError(
                f"`{key}` could not be resolved from CLI, secure storage, env, or defaults."
            )
        return value

    def _resolve_optional_runtime_value(
        self,
        key: str,
        env_key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str | None:
        """Resolve an optional runtime value from sources in deterministic order."""

        cli_value = self._normalized_lookup(sources.cli, key)
        if cli_value is not None:
            return cli_value

        secure_value = self._normalized_lookup(sources.secure, key)
        if secure_value is not None:
            return secure_value

        env_value = self._normalized_lookup(sources.env, env_key)
        if env_value is not None:
            return env_value

        return normalize_optional_string(default_value)

    def _resolve_runtime_bool(
        self,
        key: str,
        env_key: str,
        default_value: bool,
        sources: RuntimeConfigSources,
    ) -> bool:
        """Resolve a boolean runtime value from sources in deterministic precedence order."""

        raw_value = self._resolve_optional_runtime_value(key, env_key, None, sources)
        if raw_value is None:
            return bool(default_value)
        return parse_required_boolean(raw_value, key)

    def _resolve_runtime_float(
        self,
        key: str,
        env_key: str,
        default_value: float,
        sources: RuntimeConfigSources,
    ) -> float:
        """Resolve a numeric runtime value from sources in deterministic precedence order."""

        raw_value = self._resolve_optional_runtime_value(key, env_key, None, sources)
        if raw_value is None:
            return float(default_value)
        return parse_required_float(raw_value, key)

    @staticmethod
    def _normalized_lookup(mapping: Mapping[str, str], key: str) -> str | None:
        """Return a stripped mapping value for a key or `None` when missing/blank."""

        if key not in mapping:
            return None
        return normalize_optional_string(mapping.get(key))

    @staticmethod
    def _validate_source(source: str) -> None:
        """Validate the backend selector against supported sources."""

        if source not in _SUPPORTED_SOURCES:
            supported = ", ".join(sorted(_SUPPORTED_SOURCES))
            raise ValueError(f"Invalid `source` value `{source}`; supported: {supported}.")

    @staticmethod
    def _require_non_empty(value: str, field_name: str) -> None:
        """Validate that string fields are not empty."""

        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"`{field_name}` must be a non-empty string.")

    @staticmethod
    def _require_non_negative(value: float, field_name: str) -> None:
        """Validate that numeric fields are not negative."""

        if value < 0:
            raise ValueError(f"`{field_name}` must be a non-negative number.")


class ConfigLoader:
    """Factory methods for creating `AivisayConfig` from external sources."""

    _STRING_KEYS = (
        "source",
        "local_url",
        "speaker_id",
        "cloud_url",
        "api_key",
        "model_uuid",
        "player",
    )
    _FLOAT_KEYS = ("speed", "pitch", "volume", "sleep_seconds", "request_interval_seconds")
    _BOOL_KEYS = ("cache_enabled", "debug")
    _SUPPORTED_YAML_KEYS = frozenset(
        (*_STRING_KEYS, *_FLOAT_KEYS, *_BOOL_KEYS, "cache_dir")
    )
    _ENV_KEYS = {
        "source": "AIVIS_SOURCE",
        "local_url": "AIVISSPEECH_URL",
        "speaker_id": "AIVISSPEECH_SPEAKER",
        "cloud_url": "AIVIS_CLOUD_URL",
        "api_key": "AIVIS_CLOUD_API_KEY",
        "model_uuid": "AIVIS_CLOUD_MODEL_UUID",
        "player": "AIVIS_PLAYER",
        "speed": "AIVISSPEECH_SPEED",
        "pitch": "AIVISSPEECH_PITCH",
        "volume": "AIVISSPEECH_VOLUME",
        "sleep_seconds": "AIVIS_SLEEP",
        "request_interval_seconds": "AIVIS_REQUEST_INTERVAL",
        "cache_enabled": "AIVIS_CACHE",
        "debug": "AIVIS_DEBUG",
        "cache_dir": "AIVIS_CACHE_DIR",
    }

    @staticmethod
    def from_yaml(path: Path) -> AivisayConfig:
        """Create a validated config from a YAML file."""

        path_text = path.read_text(encoding="utf-8")
        payload = ConfigLoader._parse_yaml_payload(path_text, path)

        return ConfigLoader._build_config_from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> AivisayConfig:
        """Create a validated config from environment variables."""

        env_map: Mapping[str, str] = os.environ if env is None else env
        payload = {
            key: env_map[env_key]
            for key, env_key in ConfigLoader._ENV_KEYS.items()
            if normalize_optional_string(env_map.get(env_key)) is not None
        }
        return ConfigLoader._build_config_from_mapping(payload, source_label="environment")

    @staticmethod
    def _parse_yaml_payload(raw_text: str, path: Path) -> Mapping[str, Any]:
        """Parse YAML text and enforce a mapping root payload."""

        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` is not valid YAML: {exc}") from exc

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return payload

    @staticmethod
    def _build_config_from_mapping(payload: Mapping[str, Any], source_label: str) -> AivisayConfig:
        """Build a validated config from a normalized mapping payload."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(str(key) for key in unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

        values: dict[str, Any] = {}
        for key in ConfigLoader._STRING_KEYS:
            value = ConfigLoader._optional_non_empty_string(payload, key)
            if value is not None:
                values[key] = value.lower() if key == "source" else value
        for key in ConfigLoader._FLOAT_KEYS:
            if key in payload and payload[key] is not None:
                try:
                    values[key] = parse_required_float(payload[key], key)
                except ValueError as exc:
                    raise ValueError(f"{source_label} field {exc}") from exc
        for key in ConfigLoader._BOOL_KEYS:
            if key in payload:
                values[key] = ConfigLoader._optional_boolean(payload, key, source_label)
        cache_dir = ConfigLoader._optional_non_empty_string(payload, "cache_dir")
        if cache_dir is not None:
            values["cache_dir"] = Path(cache_dir).expanduser()

        config = AivisayConfig(**values)
        config.validate()
        return config

    @staticmethod
    def _optional_non_empty_string(payload: Mapping[str, Any], key: str) -> str | None:
        """Read an optional string field and normalize blank values to `None`."""

        if key not in payload:
            return None
        return normalize_optional_string(payload[key])

    @staticmethod
    def _optional_boolean(payload: Mapping[str, Any], key: str, source_label: str) -> bool:
        """Read and validate a boolean field from a payload."""

        parsed = parse_permissive_boolean(payload[key])
        if parsed is None:
            raise ValueError(
                f"{source_label} field `{key}` must be a boolean value "
                "(`true`/`false`, `1`/`0`, `yes`/`no`)."
            )
        return parsed
