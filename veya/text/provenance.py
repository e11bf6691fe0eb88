"""Provenance-preserving merge of verbatim and inferred text.

Responsibilities:
- Concatenate ordered segments into one display string.
- Record which code-point spans came from inferred (model-generated) content.

Key types:
- `Segment`: one ordered fragment tagged verbatim or inferred.
- `MergedText`: merged string plus maximal, disjoint inferred ranges.
- `ProvenanceMerger`: incremental builder used while a completion streams.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..models.datatypes import ProvenanceRange


@dataclass(frozen=True, slots=True)
class Segment:
    """An ordered text fragment and whether it was inferred."""

    text: str
    inferred: bool = False


@dataclass(frozen=True, slots=True)
class MergedText:
    """Merged display text and its inferred spans.

    Attributes:
        text: Concatenation of all non-empty segments in input order.
        inferred_ranges: Sorted, disjoint, maximal half-open inferred spans.
    """

    text: str
    inferred_ranges: tuple[ProvenanceRange, ...] = ()

    def verbatim_ranges(self) -> tuple[ProvenanceRange, ...]:
        """Return the complement of `inferred_ranges` within `[0, len(text))`."""

        ranges: list[ProvenanceRange] = []
        cursor = 0
        for inferred in self.inferred_ranges:
            if inferred.start > cursor:
                ranges.append(ProvenanceRange(cursor, inferred.start))
            cursor = inferred.end
        if cursor < len(self.text):
            ranges.append(ProvenanceRange(cursor, len(self.text)))
        return tuple(ranges)

    def inferred_text(self) -> str:
        """Return the concatenation of all inferred spans."""

        return "".join(self.text[item.start : item.end] for item in self.inferred_ranges)


class ProvenanceMerger:
    """Accumulate segments and track inferred spans in code-point offsets."""

    def __init__(self) -> None:
        """Initialize an empty merge buffer."""

        self._parts: list[str] = []
        self._length = 0
        self._ranges: list[list[int]] = []
        self._last_inferred: bool | None = None

    def append(self, text: str, *, inferred: bool) -> None:
        """Append one fragment; empty fragments are ignored."""

        if not text:
            return
        start = self._length
        self._parts.append(text)
        self._length += len(text)
        if inferred:
            if self._last_inferred and self._ranges and self._ranges[-1][1] == start:
                self._ranges[-1][1] = self._length
            else:
                self._ranges.append([start, self._length])
        self._last_inferred = inferred

    def result(self) -> MergedText:
        """Return the merged text and a snapshot of inferred ranges."""

        return MergedText(
            text="".join(self._parts),
            inferred_ranges=tuple(ProvenanceRange(start, end) for start, end in self._ranges),
        )


def merge_segments(segments: Iterable[Segment]) -> MergedText:
    """Merge ordered segments into text with inferred provenance ranges."""

    merger = ProvenanceMerger()
    for segment in segments:
        merger.append(segment.text, inferred=segment.inferred)
    return merger.result()
