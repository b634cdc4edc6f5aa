"""External executable resolution helpers.

Responsibilities:
- Resolve the audio player executable with explicit-override-first precedence.
- Report whether a player is available for connectivity checks.
"""

from __future__ import annotations

import shutil

from .parsing import normalize_optional_string


def resolve_executable(command_name: str, override: str | None = None) -> str:
    """Resolve an executable path, preferring an explicit override.

    Resolution order:
    1. Explicit override (used verbatim when non-blank).
    2. System `PATH`.
    3. Raw command name (allowing subprocess to raise a native missing-binary error).
    """

    explicit = normalize_optional_string(override)
    if explicit is not None:
        return explicit

    normalized = command_name.strip()
    if not normalized:
        return command_name

    resolved_path = shutil.which(normalized)
    if resolved_path is not None:
        return resolved_path
    return normalized


def is_executable_available(command_name: str, override: str | None = None) -> bool:
    """Return whether the resolved executable can be found on disk or `PATH`."""

    resolved = resolve_executable(command_name, override)
    return shutil.which(resolved) is not None
