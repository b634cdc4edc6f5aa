"""Aivis HTTP client utilities for the synthesis backends.

Responsibilities:
- Send audio-query, synthesis, and cloud TTS requests over `requests`.
- Normalize JSON/bytes response extraction for the synthesizer adapters.
- Raise actionable provider exceptions with classified failure kinds.
"""

from __future__ import annotations

import json
import re
import socket
from typing import Any

import requests

from .pacing import RequestPacer


class SynthesisProviderError(RuntimeError):
    """Raised when a synthesis backend request fails or returns malformed output."""

    def __init__(
        self,
        message: str,
        *,
        failure_kind: str = "unknown",
        status_code: int | None = None,
    ) -> None:
        """Initialize provider error metadata for stage-aware diagnostics."""

        super().__init__(message)
        self.failure_kind = failure_kind
        self.status_code = status_code


class _AivisBaseClient:
    """Shared HTTP settings and helpers used by the backend-specific clients."""

    _MAX_PROVIDER_MESSAGE_CHARS = 180
    _PROVIDER_LABEL = "Aivis"

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float | None = None,
        pacer: RequestPacer | None = None,
    ) -> None:
        """Initialize HTTP client settings.

        `timeout_seconds=None` leaves synthesis requests without a client-side
        timeout; long utterances can take a while on CPU-only engines.
        """

        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.pacer = pacer or RequestPacer()

    def _request_bytes(
        self,
        method: str,
        endpoint_path: str,
        *,
        params: dict[str, Any] | None = None,
        payload: Any = None,
        headers: dict[str, str] | None = None,
        timeout_seconds: float | None = None,
        require_non_empty_response: bool = False,
        empty_response_message: str = "Response body is empty.",
    ) -> bytes:
        """Execute an HTTP request and map failures consistently."""

        endpoint = f"{self.base_url}{endpoint_path}"
        timeout = timeout_seconds if timeout_seconds is not None else self.timeout_seconds
        try:
            with self.pacer.request_slot():
                response = requests.request(
                    method,
                    endpoint,
                    params=params,
                    json=payload,
                    headers=headers,
                    timeout=timeout,
                )
            response.raise_for_status()
            response_bytes = bytes(response.content)
        except requests.HTTPError as exc:
            raise self._http_error_to_provider_error(exc) from exc
        except requests.RequestException as exc:
            failure_kind = self._classify_transport_failure(exc)
            if failure_kind == "timeout":
                detail = f"{self._PROVIDER_LABEL} request timed out."
            else:
                detail = (
                    f"{self._PROVIDER_LABEL} request transport error: "
                    f"{self._short_message(str(exc))}"
                )
            raise SynthesisProviderError(detail, failure_kind=failure_kind) from exc
        except TimeoutError as exc:
            raise SynthesisProviderError(
                f"{self._PROVIDER_LABEL} request timed out.",
                failure_kind="timeout",
            ) from exc

        if require_non_empty_response and not response_bytes:
            raise SynthesisProviderError(empty_response_message, failure_kind="malformed")
        return response_bytes

    @staticmethod
    def _decode_error_body(exc: requests.HTTPError) -> str:
        """Decode an HTTP error body into a best-effort UTF-8 payload string."""

        response = exc.response
        if response is None:
            return ""
        try:
            return bytes(response.content).decode("utf-8", errors="replace").strip()
        except (TypeError, ValueError):
            return ""

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        """Redact bearer tokens and API-key-like values from provider error content."""

        redacted = re.sub(
            r"(?i)bearer\s+[A-Za-z0-9._-]{12,}",
            "Bearer [redacted-token]",
            text,
        )
        redacted = re.sub(r"\baivis_[A-Za-z0-9_-]{8,}\b", "[redacted-key]", redacted)
        return redacted

    @classmethod
    def _short_message(cls, text: str) -> str:
        """Normalize and cap user-facing provider message length."""

        compact = " ".join(text.split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_message(cls, body: str) -> str:
        """Extract a concise provider-facing message from an error body."""

        if not body:
            return ""

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(cls._redact_sensitive_tokens(body))

        message: str | None = None
        if isinstance(payload, dict):
            detail = payload.get("detail")
            if isinstance(detail, str) and detail.strip():
                message = detail.strip()
            elif isinstance(detail, list) and detail:
                first = detail[0]
                if isinstance(first, dict) and isinstance(first.get("msg"), str):
                    message = first["msg"].strip()

        if message is None:
            message = body

        return cls._short_message(cls._redact_sensitive_tokens(message))

    @staticmethod
    def _classify_http_failure(status_code: int, provider_message: str) -> str:
        """Classify HTTP errors into deterministic diagnostic kinds."""

        message_lower = provider_message.lower()
        if status_code in {401, 403} or "api key" in message_lower:
            return "invalid_api_key"
        if status_code == 429:
            return "rate_limited"
        if status_code in {408, 504} or "timeout" in message_lower or "timed out" in message_lower:
            return "timeout"
        return "http_error"

    @staticmethod
    def _classify_transport_failure(reason: object) -> str:
        """Classify network-layer failures into deterministic diagnostic kinds."""

        if isinstance(reason, TimeoutError | socket.timeout | requests.Timeout):
            return "timeout"
        return "transport"

    @classmethod
    def _http_error_to_provider_error(cls, exc: requests.HTTPError) -> SynthesisProviderError:
        """Convert HTTP errors into normalized provider exceptions with metadata."""

        status_code = exc.response.status_code if exc.response is not None else 0
        body = cls._decode_error_body(exc)
        provider_message = cls._extract_provider_message(body)
        failure_kind = cls._classify_http_failure(status_code, provider_message)

        headline = {
            "invalid_api_key": f"{cls._PROVIDER_LABEL} authentication failed",
            "rate_limited": f"{cls._PROVIDER_LABEL} rate limit exceeded",
            "timeout": f"{cls._PROVIDER_LABEL} request timed out",
        }.get(failure_kind, f"{cls._PROVIDER_LABEL} request failed")

        if provider_message:
            detail = f"{headline} (HTTP {status_code}): {provider_message}"
        else:
            detail = f"{headline} (HTTP {status_code})."

        return SynthesisProviderError(
            detail,
            failure_kind=failure_kind,
            status_code=status_code,
        )


class AivisSpeechEngineClient(_AivisBaseClient):
    """Minimal client for the local AivisSpeech Engine two-step protocol."""

    _PROVIDER_LABEL = "AivisSpeech Engine"

    def list_speakers(self, timeout_seconds: float = 3.0) -> list[Any]:
        """Return the engine's speaker list; used as a reachability probe."""

        raw_payload = self._request_bytes(
            "GET",
            "/speakers",
            timeout_seconds=timeout_seconds,
        )
        try:
            payload = json.loads(raw_payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise SynthesisProviderError(
                "AivisSpeech Engine returned an invalid speaker list.",
                failure_kind="malformed",
            ) from exc
        if not isinstance(payload, list):
            raise SynthesisProviderError(
                "AivisSpeech Engine speaker list is not a JSON array.",
                failure_kind="malformed",
            )
        return payload

    def create_audio_query(self, *, speaker_id: str, text: str) -> dict[str, Any]:
        """Create an audio query for `text`; parameters travel in the query string."""

        raw_payload = self._request_bytes(
            "POST",
            "/audio_query",
            params={"speaker": speaker_id, "text": text},
        )
        try:
            payload = json.loads(raw_payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise SynthesisProviderError(
                "AivisSpeech Engine returned an invalid audio query.",
                failure_kind="malformed",
            ) from exc
        if not isinstance(payload, dict):
            raise SynthesisProviderError(
                "AivisSpeech Engine audio query is not a JSON object.",
                failure_kind="malformed",
            )
        return payload

    def synthesize(self, *, speaker_id: str, audio_query: dict[str, Any]) -> bytes:
        """Render an audio query into WAV bytes."""

        return self._request_bytes(
            "POST",
            "/synthesis",
            params={"speaker": speaker_id},
            payload=audio_query,
            require_non_empty_response=True,
            empty_response_message="AivisSpeech Engine synthesis response is empty.",
        )


class AivisCloudClient(_AivisBaseClient):
    """Minimal client for the Aivis Cloud API single-call synthesis endpoint."""

    _PROVIDER_LABEL = "Aivis Cloud API"

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.aivis-project.com",
        timeout_seconds: float | None = None,
        pacer: RequestPacer | None = None,
    ) -> None:
        """Initialize cloud client settings and credentials."""

        super().__init__(
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            pacer=pacer,
        )
        self.api_key = api_key.strip() if isinstance(api_key, str) else ""

    def _require_api_key(self) -> None:
        """Require API key presence before issuing cloud requests."""

        if not self.api_key:
            raise SynthesisProviderError(
                "Missing Aivis Cloud API key. Set `AIVIS_CLOUD_API_KEY`, use `--api-key`, "
                "or `--prompt-api-key`.",
                failure_kind="invalid_api_key",
            )

    def synthesize(self, *, model_uuid: str, text: str, output_format: str = "mp3") -> bytes:
        """Return synthesized audio bytes from `/v1/tts/synthesize`."""

        self._require_api_key()

        payload = {
            "model_uuid": model_uuid,
            "text": text,
            "use_ssml": False,
            "output_format": output_format,
        }
        return self._request_bytes(
            "POST",
            "/v1/tts/synthesize",
            payload=payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            require_non_empty_response=True,
            empty_response_message="Aivis Cloud API speech response is empty.",
        )
