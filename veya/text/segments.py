"""Cast script segmentation for speech synthesis.

Responsibilities:
- Split a generated script into paragraph-level speech segments.
- Bound each segment to the speech provider input limit at sentence boundaries.
"""

from __future__ import annotations

import re


DEFAULT_MAX_SEGMENT_CHARS = 4000


class ScriptSegmenter:
    """Split scripts into ordered, sentence-complete speech segments."""

    _MIN_BOUNDARY_RATIO = 0.60
    _MAX_EXTENSION_RATIO = 0.35
    _SENTENCE_TERMINATORS = (".", "!", "?", "。", "！", "？")
    _TRAILING_SENTENCE_CLOSERS = "\"')]}»”」』"
    _COMMON_ABBREVIATIONS = frozenset(
        {
            "mr.",
            "mrs.",
            "ms.",
            "dr.",
            "prof.",
            "st.",
            "etc.",
            "e.g.",
            "i.e.",
            "vs.",
            "no.",
        }
    )
    _ACRONYM_PATTERN = re.compile(r"(?:[A-Za-z]\.){2,}$")

    def __init__(self, max_chars: int = DEFAULT_MAX_SEGMENT_CHARS) -> None:
        """Initialize the segmenter with a per-segment character bound."""

        if max_chars <= 0:
            raise ValueError("`max_chars` must be a positive integer.")
        self.max_chars = max_chars

    def split(self, script: str) -> list[str]:
        """Split a script into ordered non-blank segments.

        Paragraphs (blank-line separated) are preferred. A script with fewer than
        two paragraphs falls back to single-line splitting, and a single line
        becomes one segment. Any segment longer than `max_chars` is further split
        at sentence boundaries.
        """

        paragraphs = self._paragraphs(script)
        segments: list[str] = []
        for paragraph in paragraphs:
            segments.extend(self._bound(paragraph))
        return segments

    @staticmethod
    def _paragraphs(script: str) -> list[str]:
        """Return blank-line paragraphs, single lines, or the whole trimmed script."""

        by_blank_line = [part.strip() for part in script.split("\n\n") if part.strip()]
        if len(by_blank_line) >= 2:
            return by_blank_line

        by_line = [part.strip() for part in script.split("\n") if part.strip()]
        if len(by_line) >= 2:
            return by_line

        trimmed = script.strip()
        return [trimmed] if trimmed else []

    def _bound(self, text: str) -> list[str]:
        """Split one paragraph into pieces no longer than the configured bound."""

        pieces: list[str] = []
        start = 0
        text_length = len(text)
        while start < text_length:
            end = self._resolve_boundary(text, start)
            piece = text[start:end].strip()
            if piece:
                pieces.append(piece)
            start = end
        return pieces

    def _resolve_boundary(self, text: str, start: int) -> int:
        """Resolve the end index for the piece starting at `start`."""

        text_length = len(text)
        if start + self.max_chars >= text_length:
            return text_length

        target_end = start + self.max_chars
        min_boundary = start + int(self.max_chars * self._MIN_BOUNDARY_RATIO)

        for index in range(target_end - 1, max(start, min_boundary) - 1, -1):
            if self._is_sentence_boundary(text, index):
                return self._consume_trailing_sentence_tail(text, index + 1, target_end)

        # Pieces must stay within the bound, so forward search is not allowed here.
        for index in range(target_end - 1, start, -1):
            if text[index].isspace():
                return index + 1
        return target_end

    def _is_sentence_boundary(self, text: str, index: int) -> bool:
        """Return whether the character at index terminates a sentence."""

        character = text[index]
        if character not in self._SENTENCE_TERMINATORS:
            return False
        if character != ".":
            return True
        if 0 < index < len(text) - 1 and text[index - 1].isdigit() and text[index + 1].isdigit():
            return False

        token_start = index
        while token_start > 0 and text[token_start - 1].isalpha():
            token_start -= 1
        if text[token_start : index + 1].lower() in self._COMMON_ABBREVIATIONS:
            return False
        window = text[max(0, index - 8) : index + 1]
        return not self._ACRONYM_PATTERN.search(window)

    def _consume_trailing_sentence_tail(self, text: str, index: int, limit: int) -> int:
        """Consume closing punctuation and whitespace after a sentence end, up to `limit`."""

        adjusted = index
        while adjusted < limit and text[adjusted] in self._TRAILING_SENTENCE_CLOSERS:
            adjusted += 1
        while adjusted < len(text) and text[adjusted].isspace():
            adjusted += 1
        return adjusted


def split_script_segments(script: str, max_chars: int = DEFAULT_MAX_SEGMENT_CHARS) -> list[str]:
    """Split a cast script into speech segments with the default segmenter."""

    return ScriptSegmenter(max_chars=max_chars).split(script)
