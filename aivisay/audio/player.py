"""Audio sink interface and SoX-backed player.

Responsibilities:
- Define the blocking `play(bytes, format)` capability used by playback.
- Pipe encoded audio into SoX `play` without decoding it in-process.
- Stop the player promptly when the run is cancelled.
"""

from __future__ import annotations

import subprocess
from typing import Protocol

from ..errors import AudioPlaybackError, PipelineCancelledError
from ..models.datatypes import AudioFormat
from ..parsing import normalize_optional_string
from ..pipeline.cancellation import CancellationToken
from ..runtime_tools import resolve_executable


class AudioSink(Protocol):
    """Protocol for audio output implementations."""

    def play(
        self,
        audio_bytes: bytes,
        audio_format: AudioFormat,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """Render one payload, blocking until playback completes or fails."""


class SoxAudioPlayer:
    """Play encoded audio through SoX `play -q -t <format> -`."""

    def __init__(
        self,
        executable: str | None = None,
        poll_interval_seconds: float = 0.1,
    ) -> None:
        """Resolve the player executable once per sink instance."""

        self.executable = resolve_executable("play", executable)
        self.poll_interval_seconds = poll_interval_seconds

    def command(self, audio_format: AudioFormat) -> list[str]:
        """Return the player command line for one payload format."""

        return [self.executable, "-q", "-t", audio_format.value, "-"]

    def play(
        self,
        audio_bytes: bytes,
        audio_format: AudioFormat,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """Pipe `audio_bytes` to the player and wait for it to exit."""

        try:
            process = subprocess.Popen(
                self.command(audio_format),
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise AudioPlaybackError(
                f"Audio player `{self.executable}` is not available on PATH."
            ) from exc
        except OSError as exc:
            raise AudioPlaybackError(
                f"Audio player `{self.executable}` could not be started: {exc.strerror or exc}"
            ) from exc

        pending_input: bytes | None = audio_bytes
        while True:
            try:
                _, stderr = process.communicate(
                    input=pending_input,
                    timeout=self.poll_interval_seconds,
                )
                break
            except subprocess.TimeoutExpired:
                # communicate() keeps its own write offset across retries.
                pending_input = None
                if cancel_token is not None and cancel_token.cancelled:
                    process.kill()
                    process.communicate()
                    raise PipelineCancelledError("Playback cancelled.") from None

        if process.returncode != 0:
            detail = normalize_optional_string(
                stderr.decode("utf-8", errors="replace") if stderr else None
            )
            raise AudioPlaybackError(
                f"Audio player exited with code {process.returncode}: "
                f"{detail or 'no stderr output'}",
                returncode=process.returncode,
            )
