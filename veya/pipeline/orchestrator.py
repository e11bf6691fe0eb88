"""Pipeline orchestration facade.

Responsibilities:
- Expose the three pipeline entry points and one event channel per pipeline type.
- Resolve settings, adapters, and retry policies fresh for every invocation.
- Persist history records after successful runs without affecting the event stream.
- Expose media cache operations (save, eviction) and orderly shutdown.

Key types:
- `PipelineOrchestrator`: the single entry point used by the UI layer and CLI.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable

from ..config import ModelType, VeyaConfig
from ..credentials import SecretStore
from ..errors import ErrorKind, VeyaError
from ..io.media_cache import MediaCacheManager
from ..io.records import RecordStore
from ..models.datatypes import (
    AudioArtifact,
    CaptureRegion,
    PipelineKind,
    PodcastMode,
    PodcastRecord,
    PodcastSource,
    QueryRecord,
    SpeedMode,
    StreamEvent,
)
from ..provider_factory import ProviderFactory
from ..providers.base import SpeechAdapter, TextAdapter
from ..providers.routing import route_speech_config
from ..retry import Sleeper
from ..telemetry.logger import RunLogger
from ..visibility import VisibilityController
from .base import Invocation, PipelineRunner
from .cast_engine import CastEnginePipeline, CastOptions
from .channel import EventChannel
from .text_insight import TextInsightPipeline
from .vision_capture import PrerecognizedText, TextRecognizer, VisionCapturePipeline


ConfigSource = Callable[[], VeyaConfig]


class PipelineOrchestrator:
    """Coordinate text insight, vision capture, and cast pipelines."""

    def __init__(
        self,
        config: VeyaConfig | ConfigSource,
        *,
        secret_store: SecretStore,
        recognizer: TextRecognizer | None = None,
        record_store: RecordStore | None = None,
        media_cache: MediaCacheManager | None = None,
        provider_factory: ProviderFactory | None = None,
        run_logger: RunLogger | None = None,
        sleeper: Sleeper | None = None,
        visibility: VisibilityController | None = None,
    ) -> None:
        """Wire pipelines, channels, and storage.

        Args:
            config: Settings, or a callable returning current settings; a
                callable is re-read at the start of every operation.
            secret_store: Source of provider API keys.
            recognizer: Host OCR used by vision capture.
            record_store: History persistence; history is skipped when `None`.
            media_cache: Audio storage; derived from settings when `None`.
            provider_factory: Adapter factory; built from `secret_store` when `None`.
            run_logger: Structured logger.
            sleeper: Retry sleep override used by every adapter.
            visibility: Result surface state; every pipeline start shows the surface.
        """

        self._config_source: ConfigSource = config if callable(config) else (lambda: config)
        self._run_logger = run_logger or RunLogger()
        self.visibility = visibility or VisibilityController()
        self._recognizer = recognizer
        self._record_store = record_store
        initial = self._config_source()
        self.media_cache = media_cache or MediaCacheManager(
            initial.temp_audio_dir,
            initial.saved_audio_dir,
            run_logger=self._run_logger,
        )
        self._factory = provider_factory or ProviderFactory(secret_store, sleeper=sleeper)
        self._runners = {
            kind: PipelineRunner(EventChannel(kind, self._run_logger), self._run_logger)
            for kind in PipelineKind
        }

    def channel(self, kind: PipelineKind) -> EventChannel:
        """Return the event channel of one pipeline type."""

        return self._runners[kind].channel

    def start_text_insight(self, text: str) -> asyncio.Task[StreamEvent | None]:
        """Start a text insight run, superseding any live one."""

        pipeline = TextInsightPipeline(self._text_adapter_provider(ModelType.TEXT))

        async def body(invocation: Invocation) -> None:
            record = await pipeline.run(invocation, text)
            await self._persist_query(record)

        self.visibility.show()
        return self._runners[PipelineKind.TEXT_INSIGHT].start(body)

    def start_vision_capture(
        self,
        image: bytes,
        region: CaptureRegion | None = None,
        ai_completion: bool | None = None,
    ) -> asyncio.Task[StreamEvent | None]:
        """Start a vision capture run, superseding any live one.

        `ai_completion` defaults to the `ai_completion_enabled` setting.
        """

        config = self._config_source()
        completion = config.ai_completion_enabled if ai_completion is None else ai_completion
        recognizer = self._recognizer or PrerecognizedText("")
        pipeline = VisionCapturePipeline(recognizer, self._text_adapter_provider(ModelType.VISION))

        async def body(invocation: Invocation) -> None:
            record = await pipeline.run(invocation, image, region, completion)
            await self._persist_query(record)

        self.visibility.show()
        return self._runners[PipelineKind.VISION_CAPTURE].start(body)

    def start_cast(
        self,
        content: str,
        source: PodcastSource,
        speed: SpeedMode,
        mode: PodcastMode,
        target_language: str,
    ) -> asyncio.Task[StreamEvent | None]:
        """Start a cast run, superseding any live one."""

        config = self._config_source()
        options = CastOptions(
            source=source,
            speed=speed,
            mode=mode,
            target_language=target_language,
            audio_format=config.audio_format,
        )
        pipeline = CastEnginePipeline(
            self._text_adapter_provider(ModelType.TEXT, cast=True),
            self._speech_adapter_provider(),
            self.media_cache,
        )

        async def body(invocation: Invocation) -> None:
            record = await pipeline.run(invocation, content, options)
            await self._persist_podcast(record)

        self.visibility.show()
        return self._runners[PipelineKind.CAST_ENGINE].start(body)

    async def save_podcast(self, artifact: AudioArtifact | Path) -> AudioArtifact:
        """Promote a temporary cast artifact to persisted storage."""

        if isinstance(artifact, Path):
            artifact = await asyncio.to_thread(self.media_cache.artifact_at, artifact)
        return await asyncio.to_thread(self.media_cache.promote, artifact)

    async def run_eviction(self) -> list[AudioArtifact]:
        """Evict persisted audio using the current cache policy."""

        policy = self._config_source().cache_policy()
        return await asyncio.to_thread(self.media_cache.evict, policy)

    async def shutdown(self) -> int:
        """Cancel live runs, wait for them to unwind, and purge temporary audio.

        Returns:
            Number of temporary artifacts removed.
        """

        tasks = [task for task in (runner.cancel() for runner in self._runners.values()) if task]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return await asyncio.to_thread(self.media_cache.purge_temporary)

    def _text_adapter_provider(
        self, model_type: ModelType, *, cast: bool = False
    ) -> Callable[[], TextAdapter]:
        """Return a provider that builds a text adapter from current settings."""

        def provide() -> TextAdapter:
            config = self._config_source()
            try:
                endpoint = (
                    config.vision_provider()
                    if model_type is ModelType.VISION
                    else config.text_provider()
                )
                policy = config.cast_retry_policy() if cast else config.retry_policy()
                return self._factory.create_text_adapter(endpoint, policy)
            except ValueError as exc:
                raise VeyaError(ErrorKind.SERVICE_UNAVAILABLE, str(exc)) from exc

        return provide

    def _speech_adapter_provider(self) -> Callable[[str], SpeechAdapter]:
        """Return a provider that routes by language and builds a speech adapter."""

        def provide(language: str) -> SpeechAdapter:
            config = self._config_source()
            endpoint = route_speech_config(
                language,
                config.active_providers(ModelType.TTS),
                config.tts_fallback_language,
            )
            try:
                return self._factory.create_speech_adapter(endpoint, config.cast_retry_policy())
            except ValueError as exc:
                raise VeyaError(ErrorKind.SYNTHESIS_FAILED, str(exc)) from exc

        return provide

    async def _persist_query(self, record: QueryRecord) -> None:
        """Append a query history record; failures are logged only."""

        if self._record_store is None:
            return
        try:
            await asyncio.to_thread(self._record_store.append_query_record, record)
        except (OSError, ValueError) as exc:
            self._run_logger.log_warning(
                record.source, "done", "record_failed", error_type=type(exc).__name__
            )

    async def _persist_podcast(self, record: PodcastRecord) -> None:
        """Append a podcast history record; failures are logged only."""

        if self._record_store is None:
            return
        try:
            await asyncio.to_thread(self._record_store.append_podcast_record, record)
        except (OSError, ValueError) as exc:
            self._run_logger.log_warning(
                PipelineKind.CAST_ENGINE, "done", "record_failed", error_type=type(exc).__name__
            )
