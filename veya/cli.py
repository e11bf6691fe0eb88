"""Command-line interface for Veya.

Responsibilities:
- Expose user-facing commands for the three pipelines and audio cache upkeep.
- Resolve `VeyaConfig` from `--config` YAML or `VEYA_*` environment variables.
- Stream pipeline events to the terminal as they arrive.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Callable

import typer
import yaml

from .cli_rendering import (
    StreamPrinter,
    echo_artifact,
    echo_podcast_records,
    echo_query_records,
    echo_word_frequencies,
    exit_with_command_error,
)
from .config import ConfigLoader, VeyaConfig
from .credentials import SecretStore, api_key_ref_for, create_secret_store
from .errors import PipelineStageError, VeyaError
from .io.media_cache import MediaCacheManager
from .io.records import JsonlRecordStore
from .models.datatypes import (
    AudioArtifact,
    EventKind,
    PipelineKind,
    PodcastMode,
    PodcastSource,
    SpeedMode,
    StreamEvent,
)
from .parsing import normalize_optional_string
from .pipeline.orchestrator import PipelineOrchestrator
from .pipeline.vision_capture import PrerecognizedText
from .provider_factory import ProviderFactory
from .telemetry.logger import RunLogger

app = typer.Typer(
    name="veya",
    no_args_is_help=True,
    help="Veya CLI.",
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to YAML config file (defaults to `VEYA_*` env)."),
]


def _load_config(config_path: Path | None) -> VeyaConfig:
    """Load settings from YAML or the environment and map failures to stage errors."""

    try:
        if config_path is None:
            return ConfigLoader.from_env()
        return ConfigLoader.from_yaml(config_path)
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{exc.filename or config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>` or `VEYA_CONFIG`.",
        ) from exc
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid configuration: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc
    except (yaml.YAMLError, OSError) as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Failed to load config file `{config_path}`: {exc}",
            hint="Verify YAML syntax and file permissions.",
        ) from exc


def _read_input(text: str | None, input_file: Path | None, command_name: str) -> str:
    """Resolve command input from an argument or a UTF-8 text file."""

    if text is not None and input_file is not None:
        raise PipelineStageError(
            stage="input",
            detail="Pass either inline text or `--file`, not both.",
            hint=f"Run `veya {command_name}` with one input source.",
        )
    if input_file is not None:
        try:
            return input_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise PipelineStageError(
                stage="input",
                detail=f"Failed to read input file `{input_file}`: {exc}",
                hint="Verify the path and file permissions.",
            ) from exc
    resolved = normalize_optional_string(text)
    if resolved is None:
        raise PipelineStageError(
            stage="input",
            detail="Input text is required.",
            hint="Pass text as an argument or via `--file <path>`.",
        )
    return resolved


def _build_orchestrator(
    config: VeyaConfig,
    secret_store: SecretStore | None = None,
    recognizer: PrerecognizedText | None = None,
) -> PipelineOrchestrator:
    """Create an orchestrator wired to default storage backends."""

    run_logger = RunLogger()
    store = secret_store or create_secret_store()
    return PipelineOrchestrator(
        config,
        secret_store=store,
        recognizer=recognizer,
        record_store=JsonlRecordStore(config.records_path),
        provider_factory=ProviderFactory(store),
        run_logger=run_logger,
    )


async def _stream_run(
    orchestrator: PipelineOrchestrator,
    kind: PipelineKind,
    start: Callable[[], asyncio.Task[StreamEvent | None]],
    printer: StreamPrinter,
) -> StreamEvent:
    """Start one pipeline run and print its events until the terminal event."""

    channel = orchestrator.channel(kind)
    task = start()
    while True:
        event = await channel.receive()
        printer.on_event(event)
        if event.kind.terminal:
            await task
            return event


def _raise_for_error_event(event: StreamEvent) -> None:
    """Convert an `ERROR` event into the error it carries."""

    if event.kind is EventKind.ERROR and event.error is not None:
        raise VeyaError(event.error, event.content or "")


@app.command("insight")
def insight_command(
    text: Annotated[str | None, typer.Argument(help="Text to analyze.")] = None,
    input_file: Annotated[
        Path | None, typer.Option("--file", help="Read the text from a UTF-8 file.")
    ] = None,
    config_file: ConfigOption = None,
) -> None:
    """Stream a sectioned language analysis of a text."""

    try:
        content = _read_input(text, input_file, "insight")
        config = _load_config(config_file)

        async def run() -> StreamEvent:
            orchestrator = _build_orchestrator(config)
            return await _stream_run(
                orchestrator,
                PipelineKind.TEXT_INSIGHT,
                lambda: orchestrator.start_text_insight(content),
                StreamPrinter("insight"),
            )

        event = asyncio.run(run())
        _raise_for_error_event(event)
    except Exception as exc:
        exit_with_command_error("insight", exc)

    typer.echo(f"Detected language: {event.extra.get('language', 'und')}")


@app.command("capture-text")
def capture_text_command(
    text: Annotated[str | None, typer.Argument(help="Text recognized from a screen capture.")] = None,
    input_file: Annotated[
        Path | None, typer.Option("--file", help="Read recognized text from a UTF-8 file.")
    ] = None,
    completion: Annotated[
        bool | None,
        typer.Option(
            "--completion/--no-completion",
            help="Complete truncated text with AI (defaults to `ai_completion_enabled`).",
        ),
    ] = None,
    config_file: ConfigOption = None,
) -> None:
    """Run vision capture on already recognized text, optionally completing it."""

    try:
        recognized = _read_input(text, input_file, "capture-text")
        config = _load_config(config_file)

        async def run() -> StreamEvent:
            orchestrator = _build_orchestrator(config, recognizer=PrerecognizedText(recognized))
            return await _stream_run(
                orchestrator,
                PipelineKind.VISION_CAPTURE,
                lambda: orchestrator.start_vision_capture(b"", None, completion),
                StreamPrinter("capture-text"),
            )

        event = asyncio.run(run())
        _raise_for_error_event(event)
    except Exception as exc:
        exit_with_command_error("capture-text", exc)

    inferred_chars = sum(len(item) for item in event.ranges)
    typer.echo(f"Inferred characters: {inferred_chars}")


@app.command("cast")
def cast_command(
    content: Annotated[str | None, typer.Argument(help="Content to narrate.")] = None,
    input_file: Annotated[
        Path | None, typer.Option("--file", help="Read the content from a UTF-8 file.")
    ] = None,
    language: Annotated[
        str, typer.Option("--language", help="Target script language tag, e.g. `en` or `zh-CN`.")
    ] = "en",
    speed: Annotated[SpeedMode, typer.Option("--speed", help="Speaking pace.")] = SpeedMode.NORMAL,
    mode: Annotated[
        PodcastMode, typer.Option("--mode", help="Script style.")
    ] = PodcastMode.BILINGUAL,
    source: Annotated[
        PodcastSource, typer.Option("--source", help="Origin of the content.")
    ] = PodcastSource.CUSTOM,
    save: Annotated[
        bool,
        typer.Option("--save/--no-save", help="Promote the result to persisted storage."),
    ] = True,
    config_file: ConfigOption = None,
) -> None:
    """Generate a narrated audio podcast from content."""

    try:
        resolved = _read_input(content, input_file, "cast")
        config = _load_config(config_file)

        async def run() -> tuple[StreamEvent, AudioArtifact | None]:
            orchestrator = _build_orchestrator(config)
            event = await _stream_run(
                orchestrator,
                PipelineKind.CAST_ENGINE,
                lambda: orchestrator.start_cast(resolved, source, speed, mode, language),
                StreamPrinter("cast"),
            )
            if event.kind is EventKind.DONE and save and event.content:
                return event, await orchestrator.save_podcast(Path(event.content))
            return event, None

        event, saved = asyncio.run(run())
        _raise_for_error_event(event)
    except Exception as exc:
        exit_with_command_error("cast", exc)

    typer.echo(f"Temporary audio: {event.content}")
    typer.echo(f"Size: {event.extra.get('size_bytes')} bytes")
    typer.echo(f"Segments: {event.extra.get('segments')}")
    if saved is not None:
        echo_artifact("Saved audio", saved)


@app.command("save")
def save_command(
    audio_file: Annotated[Path, typer.Argument(help="Temporary audio file to keep.")],
    config_file: ConfigOption = None,
) -> None:
    """Promote a temporary podcast audio file to persisted storage."""

    try:
        config = _load_config(config_file)
        saved = asyncio.run(_build_orchestrator(config).save_podcast(audio_file))
    except Exception as exc:
        exit_with_command_error("save", exc)

    echo_artifact("Saved audio", saved)


@app.command("purge")
def purge_command(config_file: ConfigOption = None) -> None:
    """Remove all temporary podcast audio."""

    try:
        config = _load_config(config_file)
        cache = MediaCacheManager(config.temp_audio_dir, config.saved_audio_dir)
        removed = cache.purge_temporary()
    except Exception as exc:
        exit_with_command_error("purge", exc)

    typer.echo(f"Removed temporary audio files: {removed}")


@app.command("evict")
def evict_command(config_file: ConfigOption = None) -> None:
    """Evict persisted podcast audio by age and total size limits."""

    try:
        config = _load_config(config_file)
        evicted = asyncio.run(_build_orchestrator(config).run_eviction())
    except Exception as exc:
        exit_with_command_error("evict", exc)

    for artifact in evicted:
        typer.echo(f"Evicted: {artifact.path.name} ({artifact.size_bytes} bytes)")
    typer.echo(f"Evicted audio files: {len(evicted)}")


@app.command("history")
def history_command(
    podcasts: Annotated[
        bool, typer.Option("--podcasts", help="List podcast history instead of queries.")
    ] = False,
    words: Annotated[
        bool, typer.Option("--words", help="List most frequently queried words.")
    ] = False,
    page: Annotated[int, typer.Option("--page", min=1, help="1-based page number.")] = 1,
    page_size: Annotated[int, typer.Option("--page-size", min=1, help="Rows per page.")] = 20,
    config_file: ConfigOption = None,
) -> None:
    """List query or podcast history, newest first."""

    if podcasts and words:
        exit_with_command_error(
            "history",
            PipelineStageError(
                stage="history",
                detail="`--podcasts` and `--words` cannot be used together.",
                hint="Run one history listing per command invocation.",
            ),
        )
    try:
        config = _load_config(config_file)
        store = JsonlRecordStore(config.records_path)
        if words:
            echo_word_frequencies(store.frequent_words(limit=page_size))
        elif podcasts:
            echo_podcast_records(store.list_podcast_records(page, page_size))
        else:
            echo_query_records(store.list_query_records(page, page_size))
    except Exception as exc:
        exit_with_command_error("history", exc)


@app.command("credentials")
def credentials_command(
    provider_id: Annotated[str, typer.Argument(help="Configured provider endpoint id.")],
    set_api_key: Annotated[
        bool,
        typer.Option(
            "--set",
            help="Prompt for the provider API key (hidden input) and store it securely.",
        ),
    ] = False,
    clear_api_key: Annotated[
        bool,
        typer.Option("--clear", help="Remove the stored provider API key."),
    ] = False,
    config_file: ConfigOption = None,
) -> None:
    """Manage securely stored provider API keys."""

    if set_api_key and clear_api_key:
        exit_with_command_error(
            "credentials",
            PipelineStageError(
                stage="credentials",
                detail="`--set` and `--clear` cannot be used together.",
                hint="Run one credentials action per command invocation.",
            ),
        )

    try:
        config = _load_config(config_file)
        endpoint = config.provider_by_id(provider_id)
    except (PipelineStageError, ValueError) as exc:
        exit_with_command_error("credentials", exc)

    secret_store = create_secret_store()
    if set_api_key:
        prompted_api_key = normalize_optional_string(
            typer.prompt(
                f"{endpoint.name or endpoint.id} API key (hidden input)",
                default="",
                hide_input=True,
                show_default=False,
            )
        )
        if prompted_api_key is None:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail="No API key entered.",
                    hint="Provide a non-empty API key when using `--set`.",
                ),
            )
        try:
            updated = ProviderFactory.register_api_key(endpoint, prompted_api_key, secret_store)
        except Exception as exc:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail=f"Failed to store API key securely: {exc}",
                    hint="Install and configure a keyring backend and retry.",
                ),
            )
        typer.echo(f"API key stored in secure credential storage as `{updated.api_key_ref}`.")
        return

    ref_id = endpoint.api_key_ref or api_key_ref_for(endpoint.id)
    if clear_api_key:
        if secret_store.delete(ref_id):
            typer.echo("Stored API key cleared from secure credential storage.")
        else:
            typer.echo("No stored API key found in secure credential storage.")
        return

    availability = "available" if secret_store.is_available() else "unavailable"
    status = "present" if secret_store.get(ref_id) is not None else "not set"
    typer.echo(f"Secure credential storage: {availability}")
    typer.echo(f"Stored API key for `{endpoint.id}`: {status}")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
