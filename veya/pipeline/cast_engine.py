"""Cast engine pipeline: script generation, segmented synthesis, and storage.

Stages: `script_generating` -> `script_done` -> `synthesizing` -> `done`.
Synthesis progress is reported as a non-decreasing percentage of completed
segments. The merged audio is stored as a temporary artifact and the `DONE`
event carries its path.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable

from ..audio.merger import AudioMerger
from ..errors import ErrorKind, VeyaError
from ..io.media_cache import MediaCacheManager
from ..models.datatypes import PodcastMode, PodcastRecord, PodcastSource, SpeedMode
from ..prompts import PromptLibrary
from ..providers.base import SpeechAdapter, SpeechRequest, TextAdapter, TextRequest
from ..text.segments import split_script_segments
from .base import Invocation


SCRIPT_PREVIEW_CHARS = 200


@dataclass(frozen=True, slots=True)
class CastOptions:
    """Cast request options.

    Attributes:
        source: Where the content came from; handled identically for all sources.
        speed: Speaking pace.
        mode: Script style.
        target_language: Language of the generated script and speech routing key.
        audio_format: Output container (`mp3` or `wav`).
    """

    source: PodcastSource
    speed: SpeedMode
    mode: PodcastMode
    target_language: str
    audio_format: str = "mp3"


def script_preview(script: str) -> str:
    """Return the first characters of a script, with an ellipsis when truncated."""

    if len(script) <= SCRIPT_PREVIEW_CHARS:
        return script
    return f"{script[:SCRIPT_PREVIEW_CHARS]}…"


class CastEnginePipeline:
    """Turn content into a narrated audio artifact."""

    def __init__(
        self,
        text_adapter_provider: Callable[[], TextAdapter],
        speech_adapter_provider: Callable[[str], SpeechAdapter],
        media_cache: MediaCacheManager,
        prompts: PromptLibrary | None = None,
        merger: AudioMerger | None = None,
        max_segment_chars: int = 4000,
    ) -> None:
        """Initialize with adapter providers resolved per run and the media cache."""

        self._text_adapter_provider = text_adapter_provider
        self._speech_adapter_provider = speech_adapter_provider
        self._media_cache = media_cache
        self._prompts = prompts or PromptLibrary()
        self._merger = merger or AudioMerger()
        self._max_segment_chars = max_segment_chars

    async def run(self, invocation: Invocation, content: str, options: CastOptions) -> PodcastRecord:
        """Run one cast and return the history record for it.

        Raises:
            VeyaError: `RECOGNITION_FAILED` for blank content, `SERVICE_UNAVAILABLE`
                for an empty script, `STORAGE_FAILURE` when the artifact cannot be
                written, or any adapter failure.
        """

        if not content.strip():
            raise VeyaError(ErrorKind.RECOGNITION_FAILED, "Cast content is empty.")

        invocation.transition("script_generating")
        text_adapter = self._text_adapter_provider()
        script = await text_adapter.call(
            TextRequest.of(
                self._prompts.script_messages(
                    content,
                    target_language=options.target_language,
                    speed=options.speed,
                    mode=options.mode,
                )
            )
        )
        segments = split_script_segments(script, max_chars=self._max_segment_chars)
        if not segments:
            raise VeyaError(ErrorKind.SERVICE_UNAVAILABLE, "Generated script is empty.")
        invocation.transition(
            "script_done",
            content=script_preview(script),
            extra={"segments": len(segments)},
        )

        speech_adapter = self._speech_adapter_provider(options.target_language)
        invocation.transition("synthesizing", progress=0)
        parts: list[bytes] = []
        audio_format = options.audio_format
        total = len(segments)
        for index, segment in enumerate(segments):
            audio = await speech_adapter.call(
                SpeechRequest(
                    text=segment,
                    language=options.target_language,
                    speed=options.speed.tts_speed,
                    audio_format=options.audio_format,
                )
            )
            parts.append(audio.data)
            audio_format = audio.audio_format
            invocation.progress((index + 1) * 100 // total)

        try:
            merged = self._merger.merge(parts, audio_format)
        except ValueError as exc:
            raise VeyaError(ErrorKind.SYNTHESIS_FAILED, f"Failed to merge audio: {exc}") from exc

        artifact = await asyncio.to_thread(self._media_cache.store_temporary, merged, audio_format)
        duration = self._merger.wav_duration_seconds(merged) if audio_format == "wav" else None
        invocation.done(
            content=str(artifact.path),
            extra={
                "size_bytes": artifact.size_bytes,
                "audio_format": audio_format,
                "segments": total,
                "duration_seconds": duration,
            },
        )
        return PodcastRecord(
            input_content=content,
            source=options.source,
            speed_mode=options.speed,
            podcast_mode=options.mode,
            audio_file_path=str(artifact.path),
            duration_seconds=duration,
        )
