"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
streamed pipeline events, and history listings.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .errors import PipelineStageError, VeyaError, user_message
from .io.records import WordFrequency
from .models.datatypes import (
    AudioArtifact,
    EventKind,
    PodcastRecord,
    Provenance,
    QueryRecord,
    Section,
    StreamEvent,
)


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
    elif isinstance(exc, VeyaError):
        typer.secho(
            f"{command_name} failed ({exc.kind.value}): {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.detail != user_message(exc.kind):
            typer.secho(f"Hint: {user_message(exc.kind)}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


class StreamPrinter:
    """Render streamed pipeline deltas incrementally to stdout."""

    def __init__(self, command_name: str) -> None:
        """Initialize printer state for one command invocation."""

        self._command_name = command_name
        self._section: Section | None = None
        self._open_line = False

    def on_event(self, event: StreamEvent) -> None:
        """Print one event; terminal events only close the open content line."""

        if event.kind is EventKind.START:
            return
        if event.kind.terminal:
            self._close_line()
            return
        if event.section is None and event.provenance is None:
            self._echo_progress(event)
            return
        if event.section is not None and event.section is not self._section:
            self._close_line()
            self._section = event.section
            typer.secho(event.section.tag, bold=True)
        if event.content:
            fg = typer.colors.CYAN if event.provenance is Provenance.INFERRED else None
            typer.secho(event.content, fg=fg, nl=False)
            self._open_line = True

    def _echo_progress(self, event: StreamEvent) -> None:
        """Print one progress line for a stage transition or progress update."""

        self._close_line()
        line = f"[progress] command={self._command_name} stage={event.stage}"
        if event.progress is not None:
            line += f" progress={event.progress}%"
        typer.echo(line)
        if event.content:
            typer.echo(event.content)

    def _close_line(self) -> None:
        """Terminate a partially printed content line."""

        if self._open_line:
            typer.echo("")
            self._open_line = False


def echo_artifact(label: str, artifact: AudioArtifact) -> None:
    """Print an audio artifact path with its tier and size."""

    typer.echo(f"{label}: {artifact.path} ({artifact.tier.value}, {artifact.size_bytes} bytes)")


def echo_query_records(records: list[QueryRecord]) -> None:
    """Print compact query history rows, newest first."""

    if not records:
        typer.echo("No query history.")
        return
    for record in records:
        preview = " ".join(record.input_text.split())[:60]
        typer.echo(
            f"{record.id}. [{record.created_at}] {record.source} "
            f"lang={record.detected_language} {preview}"
        )


def echo_podcast_records(records: list[PodcastRecord]) -> None:
    """Print compact podcast history rows, newest first."""

    if not records:
        typer.echo("No podcast history.")
        return
    for record in records:
        typer.echo(
            f"{record.id}. [{record.created_at}] {record.source.value} "
            f"{record.podcast_mode.value}/{record.speed_mode.value} {record.audio_file_path}"
        )


def echo_word_frequencies(words: list[WordFrequency]) -> None:
    """Print most frequent query words with counts."""

    if not words:
        typer.echo("No query history.")
        return
    for entry in words:
        typer.echo(f"{entry.word}\t{entry.count}\t{entry.language}")
