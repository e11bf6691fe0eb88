"""Streaming demultiplexer for tagged analysis output.

The analysis prompt asks the model to introduce each section with a bracketed
marker such as `[TRANSLATION]`. Markers may arrive split across streamed
fragments, so a trailing partial marker is held back until it can be resolved.
"""

from __future__ import annotations

from ..models.datatypes import Section


_TAGS: dict[str, Section] = {section.tag: section for section in Section}


class SectionDemultiplexer:
    """Route streamed text fragments to analysis sections."""

    def __init__(self) -> None:
        """Initialize with no active section and an empty hold-back buffer."""

        self._buffer = ""
        self._current: Section | None = None

    @property
    def current(self) -> Section | None:
        """Return the section receiving text at this point of the stream."""

        return self._current

    def feed(self, fragment: str) -> list[tuple[Section, str]]:
        """Consume one fragment and return routed `(section, text)` pieces in order."""

        self._buffer += fragment
        pieces: list[tuple[Section, str]] = []
        while self._buffer:
            bracket = self._buffer.find("[")
            if bracket < 0:
                self._route(pieces, self._buffer)
                self._buffer = ""
                break
            if bracket > 0:
                self._route(pieces, self._buffer[:bracket])
                self._buffer = self._buffer[bracket:]

            matched = self._match_tag(self._buffer)
            if matched is not None:
                tag, section = matched
                self._current = section
                self._buffer = self._buffer[len(tag) :]
                continue
            if self._is_partial_tag(self._buffer):
                break
            self._route(pieces, "[")
            self._buffer = self._buffer[1:]
        return pieces

    def finish(self) -> list[tuple[Section, str]]:
        """Flush any held-back text into the current section."""

        pieces: list[tuple[Section, str]] = []
        if self._buffer:
            self._route(pieces, self._buffer)
            self._buffer = ""
        return pieces

    def _route(self, pieces: list[tuple[Section, str]], text: str) -> None:
        """Append text to the current section, merging with the previous piece."""

        if not text or self._current is None:
            return
        if pieces and pieces[-1][0] is self._current:
            pieces[-1] = (self._current, pieces[-1][1] + text)
            return
        pieces.append((self._current, text))

    @staticmethod
    def _match_tag(buffer: str) -> tuple[str, Section] | None:
        """Return the marker at the buffer start, compared case-insensitively."""

        upper = buffer.upper()
        for tag, section in _TAGS.items():
            if upper.startswith(tag):
                return tag, section
        return None

    @staticmethod
    def _is_partial_tag(buffer: str) -> bool:
        """Return whether the buffer could still become a complete marker."""

        upper = buffer.upper()
        return any(len(upper) < len(tag) and tag.startswith(upper) for tag in _TAGS)
