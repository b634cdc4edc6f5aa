"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
spoken unit text, and run summaries.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .errors import PipelineStageError
from .models.datatypes import SpeechRunReport, TextUnit

INTERRUPTED_EXIT_CODE = 130


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def exit_interrupted() -> NoReturn:
    """Report an interrupted run and exit with the conventional SIGINT code."""

    typer.secho("Interrupted.", fg=typer.colors.YELLOW, err=True)
    raise typer.Exit(code=INTERRUPTED_EXIT_CODE)


def echo_unit(unit: TextUnit) -> None:
    """Print the text of the unit that is about to be spoken."""

    typer.echo(unit.content)


def echo_run_summary(report: SpeechRunReport) -> None:
    """Print per-run counters to stderr."""

    typer.echo(
        f"Units: {report.unit_count} played={report.played} "
        f"generation_failures={report.generation_failures} "
        f"playback_failures={report.playback_failures} "
        f"cache_hits={report.cache_hits} state={report.final_state}",
        err=True,
    )


def echo_runtime_summary(metadata: dict[str, str]) -> None:
    """Print resolved non-secret runtime metadata rows."""

    for key in sorted(metadata):
        typer.echo(f"{key}: {metadata[key]}")
