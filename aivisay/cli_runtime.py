"""CLI runtime resolution helpers.

This module isolates runtime source assembly, hidden API-key prompting,
and secure API-key persistence from the command wiring layer.
"""

from __future__ import annotations

from typing import Callable, Protocol

import typer

from .credentials import create_credential_store
from .errors import PipelineStageError
from .parsing import normalize_optional_string


class CredentialStoreProtocol(Protocol):
    """Protocol for secure credential store operations used by CLI runtime resolution."""

    def get_api_key(self) -> str | None:
        """Return currently stored API key, if available."""

    def set_api_key(self, api_key: str) -> None:
        """Persist API key value in secure storage."""


def _set_runtime_cli_value(
    runtime_cli_values: dict[str, str],
    key: str,
    value: object,
) -> None:
    """Set a normalized runtime CLI value when user input is present."""

    if isinstance(value, bool):
        runtime_cli_values[key] = "true" if value else "false"
        return
    normalized = normalize_optional_string(value)
    if normalized is not None:
        runtime_cli_values[key] = normalized


def _prompt_for_api_key() -> str | None:
    """Prompt for the cloud API key with hidden input."""

    return normalize_optional_string(
        typer.prompt(
            "Aivis Cloud API key (hidden; leave blank to skip)",
            default="",
            hide_input=True,
            show_default=False,
        )
    )


def resolve_runtime_sources(
    cli_values: dict[str, object],
    prompt_api_key: bool,
    store_api_key: bool,
    credential_store_factory: Callable[[], CredentialStoreProtocol] = create_credential_store,
) -> tuple[dict[str, str], dict[str, str]]:
    """Resolve CLI and secure runtime source mappings.

    Args:
        cli_values: Raw option values keyed by runtime config key; `None` means unset.
        prompt_api_key: Prompt for the cloud API key when none was passed.
        store_api_key: Persist an API key entered in this run to secure storage.
        credential_store_factory: Factory for the secure credential store.

    Returns:
        The `(cli, secure)` mappings for `RuntimeConfigSources`.
    """

    runtime_cli_values: dict[str, str] = {}
    for key, value in cli_values.items():
        _set_runtime_cli_value(runtime_cli_values, key, value)

    api_key_entered_in_run = "api_key" in runtime_cli_values
    if prompt_api_key and not api_key_entered_in_run:
        prompted_api_key = _prompt_for_api_key()
        if prompted_api_key is not None:
            runtime_cli_values["api_key"] = prompted_api_key
            api_key_entered_in_run = True

    credential_store = credential_store_factory()
    runtime_secure_values: dict[str, str] = {}
    stored_api_key = credential_store.get_api_key()
    if stored_api_key is not None:
        runtime_secure_values["api_key"] = stored_api_key

    if api_key_entered_in_run and store_api_key:
        try:
            credential_store.set_api_key(runtime_cli_values["api_key"])
        except Exception as exc:
            raise PipelineStageError(
                stage="credentials",
                detail="Failed to store the API key in secure credential storage.",
                hint="Rerun with `--no-store-api-key` or configure a system keyring backend.",
            ) from exc

    return runtime_cli_values, runtime_secure_values
