"""Vision capture pipeline: OCR text plus optional AI completion.

Stages: `recognizing` -> (`completing`) -> `done`. Recognized text is
verbatim; completion fragments are appended as inferred content, and the
`DONE` event carries the merged text with its inferred ranges.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Protocol

from ..errors import ErrorKind, VeyaError
from ..models.datatypes import CaptureRegion, Provenance, QueryRecord
from ..prompts import PromptLibrary
from ..providers.base import TextAdapter, TextRequest
from ..text.language import detect_language
from ..text.provenance import ProvenanceMerger
from .base import Invocation


class TextRecognizer(Protocol):
    """Platform OCR supplied by the host application."""

    def recognize(self, image: bytes, region: CaptureRegion | None) -> str:
        """Return text recognized in `region` of `image`, or an empty string."""


class PrerecognizedText:
    """Recognizer that returns text already recognized by the host."""

    def __init__(self, text: str) -> None:
        """Store the recognized text."""

        self._text = text

    def recognize(self, image: bytes, region: CaptureRegion | None) -> str:
        """Return the stored text regardless of input."""

        return self._text


class VisionCapturePipeline:
    """Recognize captured text and optionally complete truncated content."""

    def __init__(
        self,
        recognizer: TextRecognizer,
        adapter_provider: Callable[[], TextAdapter],
        prompts: PromptLibrary | None = None,
    ) -> None:
        """Initialize with a recognizer and a text adapter provider resolved per run."""

        self._recognizer = recognizer
        self._adapter_provider = adapter_provider
        self._prompts = prompts or PromptLibrary()

    async def run(
        self,
        invocation: Invocation,
        image: bytes,
        region: CaptureRegion | None,
        ai_completion: bool,
    ) -> QueryRecord:
        """Run one capture and return the history record for it.

        Raises:
            VeyaError: `RECOGNITION_FAILED` when OCR fails or yields no text,
                `PERMISSION_DENIED` when screen access is refused, or any
                adapter failure.
        """

        invocation.transition("recognizing")
        recognized = await self._recognize(image, region)
        if not recognized or not recognized.strip():
            raise VeyaError(
                ErrorKind.RECOGNITION_FAILED, "No text recognized in the selected region."
            )

        merger = ProvenanceMerger()
        merger.append(recognized, inferred=False)
        invocation.delta(recognized, provenance=Provenance.VERBATIM)

        if ai_completion:
            invocation.transition("completing")
            adapter = self._adapter_provider()
            request = TextRequest.of(self._prompts.completion_messages(recognized))
            async for fragment in adapter.stream(request):
                if not fragment:
                    continue
                merger.append(fragment, inferred=True)
                invocation.delta(fragment, provenance=Provenance.INFERRED)

        merged = merger.result()
        invocation.done(content=merged.text, ranges=merged.inferred_ranges)
        return QueryRecord(
            input_text=recognized,
            source="vision_capture",
            detected_language=detect_language(recognized),
            analysis_result=merged.text,
        )

    async def _recognize(self, image: bytes, region: CaptureRegion | None) -> str:
        """Run OCR off the event loop and classify recognizer failures.

        Raises:
            VeyaError: `PERMISSION_DENIED` when screen access is refused,
                `RECOGNITION_FAILED` for any other recognizer failure.
        """

        try:
            return await asyncio.to_thread(self._recognizer.recognize, image, region)
        except VeyaError:
            raise
        except PermissionError as exc:
            raise VeyaError(
                ErrorKind.PERMISSION_DENIED, f"Screen capture not permitted: {exc}"
            ) from exc
        except Exception as exc:
            raise VeyaError(
                ErrorKind.RECOGNITION_FAILED, f"Text recognition failed: {exc}"
            ) from exc
