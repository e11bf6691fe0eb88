"""Text insight pipeline: language detection plus six-section streamed analysis.

Stages: `detecting` -> `streaming` -> `done`. Section content arrives as
`DELTA` events tagged with their `Section`; `DONE` is emitted only once every
section has received non-blank content.
"""

from __future__ import annotations

import json
from typing import Callable

from ..errors import ErrorKind, VeyaError
from ..models.datatypes import QueryRecord, Section
from ..prompts import PromptLibrary
from ..providers.base import TextAdapter, TextRequest
from ..text.language import detect_language
from ..text.sections import SectionDemultiplexer
from .base import Invocation


class TextInsightPipeline:
    """Analyze selected text into six named sections."""

    def __init__(
        self,
        adapter_provider: Callable[[], TextAdapter],
        prompts: PromptLibrary | None = None,
    ) -> None:
        """Initialize with a text adapter provider resolved per run."""

        self._adapter_provider = adapter_provider
        self._prompts = prompts or PromptLibrary()

    async def run(self, invocation: Invocation, text: str) -> QueryRecord:
        """Run one analysis and return the history record for it.

        Raises:
            VeyaError: `RECOGNITION_FAILED` for blank input, `SERVICE_UNAVAILABLE`
                when the model output misses a section, or any adapter failure.
        """

        if not text.strip():
            raise VeyaError(ErrorKind.RECOGNITION_FAILED, "Input text is empty.")

        invocation.transition("detecting")
        language = detect_language(text)

        invocation.transition("streaming", extra={"language": language})
        adapter = self._adapter_provider()
        request = TextRequest.of(self._prompts.analysis_messages(text, language))

        demultiplexer = SectionDemultiplexer()
        collected: dict[Section, list[str]] = {section: [] for section in Section}
        async for fragment in adapter.stream(request):
            for section, piece in demultiplexer.feed(fragment):
                self._deliver(invocation, collected, section, piece)
        for section, piece in demultiplexer.finish():
            self._deliver(invocation, collected, section, piece)

        sections = {section: "".join(parts).strip() for section, parts in collected.items()}
        missing = [section.value for section, content in sections.items() if not content]
        if missing:
            raise VeyaError(
                ErrorKind.SERVICE_UNAVAILABLE,
                f"Model output is missing section(s): {', '.join(missing)}.",
            )

        analysis = json.dumps(
            {section.value: content for section, content in sections.items()},
            ensure_ascii=False,
        )
        invocation.done(content=analysis, extra={"language": language})
        return QueryRecord(
            input_text=text,
            source="text_insight",
            detected_language=language,
            analysis_result=analysis,
        )

    @staticmethod
    def _deliver(
        invocation: Invocation,
        collected: dict[Section, list[str]],
        section: Section,
        piece: str,
    ) -> None:
        """Emit one section delta and record it for the completeness check."""

        if not piece:
            return
        collected[section].append(piece)
        invocation.delta(piece, section=section)
