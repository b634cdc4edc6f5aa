"""Command-line interface for aivisay.

Responsibilities:
- Expose user-facing commands for speaking text and maintaining local state.
- Convert CLI arguments into runtime sources and run the speech pipeline.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Annotated

import typer

from .cli_rendering import (
    echo_run_summary,
    echo_runtime_summary,
    echo_unit,
    exit_interrupted,
    exit_with_command_error,
)
from .cli_runtime import resolve_runtime_sources
from .config import AivisayConfig, ConfigLoader, RuntimeConfigSources, SpeechRuntimeConfig
from .credentials import create_credential_store
from .errors import PipelineCancelledError, PipelineStageError
from .io.unit_cache import UnitCache
from .pipeline import CancellationToken, SpeechPipeline, cancel_on_signals
from .provider_factory import ProviderFactory
from .runtime_tools import is_executable_available, resolve_executable
from .telemetry.logger import RunLogger

app = typer.Typer(
    name="aivisay",
    no_args_is_help=True,
    help="Speak text through AivisSpeech Engine or the Aivis Cloud API.",
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to YAML config file with defaults."),
]
SourceOption = Annotated[
    str | None,
    typer.Option("--source", help="Backend: `local` (AivisSpeech Engine) or `cloud`."),
]
LocalUrlOption = Annotated[
    str | None, typer.Option("--local-url", help="AivisSpeech Engine base URL.")
]
SpeakerOption = Annotated[
    str | None, typer.Option("--speaker", help="AivisSpeech Engine speaker id.")
]
CloudUrlOption = Annotated[
    str | None, typer.Option("--cloud-url", help="Aivis Cloud API base URL.")
]
ModelOption = Annotated[
    str | None, typer.Option("--model", help="Aivis Cloud model UUID.")
]
ApiKeyOption = Annotated[
    str | None,
    typer.Option(
        "--api-key",
        help="Aivis Cloud API key. Prefer `--prompt-api-key` to avoid shell history.",
    ),
]
CacheDirOption = Annotated[
    Path | None, typer.Option("--cache-dir", help="Audio cache directory.")
]
VerboseOption = Annotated[
    bool | None,
    typer.Option("--verbose/--quiet", help="Show debug-level run logs on stderr."),
]


def _load_yaml_config(config_path: Path | None) -> AivisayConfig:
    """Load a YAML config file when requested and map failures to stage errors."""

    if config_path is None:
        return AivisayConfig()

    try:
        return ConfigLoader.from_yaml(config_path)
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid config file `{config_path}`: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc
    except OSError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Failed to load config file `{config_path}`: {exc}",
            hint="Verify file permissions.",
        ) from exc


def _resolve_runtime(
    config_file: Path | None,
    cli_values: dict[str, object],
    prompt_api_key: bool = False,
    store_api_key: bool = False,
) -> SpeechRuntimeConfig:
    """Resolve effective runtime settings from YAML, CLI, keyring, and environment."""

    base_config = _load_yaml_config(config_file)
    runtime_cli_values, runtime_secure_values = resolve_runtime_sources(
        cli_values=cli_values,
        prompt_api_key=prompt_api_key,
        store_api_key=store_api_key,
        credential_store_factory=create_credential_store,
    )
    config = dataclasses.replace(
        base_config,
        runtime_sources=RuntimeConfigSources(
            cli=runtime_cli_values,
            secure=runtime_secure_values,
            env=os.environ,
        ),
    )
    try:
        return config.resolved_runtime()
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=str(exc),
            hint="Check CLI options, `AIVIS_*` environment variables, and the config file.",
        ) from exc


def _read_message(text: list[str] | None) -> str:
    """Join positional text, falling back to piped stdin."""

    if text:
        return " ".join(text).strip()
    stdin = typer.get_text_stream("stdin")
    if stdin.isatty():
        return ""
    return stdin.read().strip()


@app.command("speak")
def speak_command(
    text: Annotated[
        list[str] | None,
        typer.Argument(help="Text to speak. Read from stdin when omitted."),
    ] = None,
    cache: Annotated[
        bool | None,
        typer.Option("--cache/--no-cache", help="Reuse and store synthesized audio."),
    ] = None,
    config_file: ConfigOption = None,
    source: SourceOption = None,
    local_url: LocalUrlOption = None,
    speaker: SpeakerOption = None,
    cloud_url: CloudUrlOption = None,
    model: ModelOption = None,
    api_key: ApiKeyOption = None,
    prompt_api_key: Annotated[
        bool,
        typer.Option(
            "--prompt-api-key",
            help="Prompt for the cloud API key with hidden input (never echoed).",
        ),
    ] = False,
    store_api_key: Annotated[
        bool,
        typer.Option(
            "--store-api-key/--no-store-api-key",
            help="Persist a CLI-entered API key to secure credential storage.",
        ),
    ] = True,
    speed: Annotated[float | None, typer.Option("--speed", help="Speaking rate.")] = None,
    pitch: Annotated[float | None, typer.Option("--pitch", help="Pitch offset.")] = None,
    volume: Annotated[float | None, typer.Option("--volume", help="Volume.")] = None,
    sleep: Annotated[
        float | None,
        typer.Option("--sleep", help="Pause in seconds between sentences."),
    ] = None,
    cache_dir: CacheDirOption = None,
    player: Annotated[
        str | None, typer.Option("--player", help="Audio player executable (SoX `play`).")
    ] = None,
    verbose: VerboseOption = None,
) -> None:
    """Speak text sentence by sentence while later sentences are synthesized."""

    message = _read_message(text)
    if not message:
        exit_with_command_error(
            "speak",
            PipelineStageError(
                stage="input",
                detail="No text provided.",
                hint='Use `aivisay speak "text to speak"` or `echo "text" | aivisay speak`.',
            ),
        )

    cancel_token = CancellationToken()
    try:
        with cancel_on_signals(cancel_token):
            with cancel_token.raise_on_signal():
                runtime = _resolve_runtime(
                    config_file,
                    {
                        "source": source,
                        "local_url": local_url,
                        "speaker_id": speaker,
                        "cloud_url": cloud_url,
                        "model_uuid": model,
                        "api_key": api_key,
                        "speed": speed,
                        "pitch": pitch,
                        "volume": volume,
                        "sleep_seconds": sleep,
                        "cache_enabled": cache,
                        "cache_dir": cache_dir,
                        "player": player,
                        "debug": verbose,
                    },
                    prompt_api_key=prompt_api_key,
                    store_api_key=store_api_key,
                )
                synthesizer = ProviderFactory.create_synthesizer(runtime, cancel_token)
                synthesizer.check_connection()
            pipeline = SpeechPipeline(
                synthesizer=synthesizer,
                sink=ProviderFactory.create_audio_sink(runtime),
                unit_cache=ProviderFactory.create_unit_cache(runtime),
                run_logger=RunLogger(debug=runtime.debug),
                pause_seconds=runtime.sleep_seconds,
                cancel_token=cancel_token,
                unit_display_callback=echo_unit,
            )
            report = pipeline.run(message)
    except PipelineCancelledError:
        exit_interrupted()
    except Exception as exc:
        exit_with_command_error("speak", exc)

    if runtime.debug:
        echo_run_summary(report)
    if report.cancelled:
        exit_interrupted()


@app.command("check")
def check_command(
    config_file: ConfigOption = None,
    source: SourceOption = None,
    local_url: LocalUrlOption = None,
    speaker: SpeakerOption = None,
    cloud_url: CloudUrlOption = None,
    model: ModelOption = None,
    api_key: ApiKeyOption = None,
    player: Annotated[
        str | None, typer.Option("--player", help="Audio player executable (SoX `play`).")
    ] = None,
) -> None:
    """Verify backend connectivity and audio player availability."""

    cancel_token = CancellationToken()
    try:
        with cancel_on_signals(cancel_token), cancel_token.raise_on_signal():
            runtime = _resolve_runtime(
                config_file,
                {
                    "source": source,
                    "local_url": local_url,
                    "speaker_id": speaker,
                    "cloud_url": cloud_url,
                    "model_uuid": model,
                    "api_key": api_key,
                    "player": player,
                },
            )
            ProviderFactory.create_synthesizer(runtime).check_connection()
        if not is_executable_available("play", runtime.player):
            raise PipelineStageError(
                stage="player",
                detail=f"Audio player `{resolve_executable('play', runtime.player)}` not found.",
                hint="Install SoX (`play`) or pass `--player <path>`.",
            )
    except PipelineCancelledError:
        exit_interrupted()
    except Exception as exc:
        exit_with_command_error("check", exc)

    echo_runtime_summary(runtime.as_display_metadata())
    typer.echo("Backend: ok")


@app.command("cache-clear")
def cache_clear_command(
    config_file: ConfigOption = None,
    cache_dir: CacheDirOption = None,
) -> None:
    """Delete cached audio for every voice."""

    try:
        runtime = _resolve_runtime(config_file, {"cache_dir": cache_dir})
        removed = UnitCache(runtime.cache_dir).clear()
    except Exception as exc:
        exit_with_command_error("cache-clear", exc)

    typer.echo(f"Removed {removed} cached audio file(s) from {runtime.cache_dir}")


@app.command("forget-api-key")
def forget_api_key_command() -> None:
    """Remove the Aivis Cloud API key from secure credential storage."""

    try:
        removed = create_credential_store().clear_api_key()
    except Exception as exc:
        exit_with_command_error("forget-api-key", exc)

    if removed:
        typer.echo("Stored API key removed.")
    else:
        typer.echo("No stored API key found.")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
