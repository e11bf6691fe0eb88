"""Core datatypes shared across Veya modules.

Responsibilities:
- Represent immutable records exchanged between pipelines, adapters, and storage.
- Provide closed enumerations for pipeline kinds, event kinds, and cast options.

Key types:
- `StreamEvent`, `ProvenanceRange`, `AudioArtifact`, `CachePolicy`,
  `VisibilityState`, `QueryRecord`, `PodcastRecord`, and `CaptureRegion`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from ..errors import ErrorKind


class PipelineKind(str, Enum):
    """The three pipeline types, each with its own event channel."""

    TEXT_INSIGHT = "text_insight"
    VISION_CAPTURE = "vision_capture"
    CAST_ENGINE = "cast_engine"


class EventKind(str, Enum):
    """Stream event envelope kinds."""

    START = "start"
    DELTA = "delta"
    DONE = "done"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        """Return whether this kind ends an invocation's event stream."""

        return self in {EventKind.DONE, EventKind.ERROR}


class Provenance(str, Enum):
    """Origin of a content fragment."""

    VERBATIM = "verbatim"
    INFERRED = "inferred"


class Section(str, Enum):
    """Named sections of a text insight analysis, in display order."""

    ORIGINAL = "original"
    WORD_BY_WORD = "word_by_word"
    STRUCTURE = "structure"
    TRANSLATION = "translation"
    COLLOQUIAL = "colloquial"
    SIMPLIFIED = "simplified"

    @property
    def tag(self) -> str:
        """Return the bracketed marker used in model output, e.g. `[WORD_BY_WORD]`."""

        return f"[{self.value.upper()}]"


class Tier(str, Enum):
    """Audio artifact lifetime tier."""

    TEMPORARY = "temporary"
    PERSISTED = "persisted"


class PodcastSource(str, Enum):
    """Origin of cast input content; all sources are handled identically."""

    TEXT_INSIGHT = "text_insight"
    VISION_CAPTURE = "vision_capture"
    CUSTOM = "custom"


class SpeedMode(str, Enum):
    """Cast speaking pace."""

    SLOW = "slow"
    NORMAL = "normal"

    @property
    def tts_speed(self) -> float:
        """Return the speech-rate multiplier sent to speech providers."""

        return 0.75 if self is SpeedMode.SLOW else 1.0


class PodcastMode(str, Enum):
    """Cast script style."""

    BILINGUAL = "bilingual"
    IMMERSIVE = "immersive"


@dataclass(frozen=True, slots=True)
class ProvenanceRange:
    """Half-open `[start, end)` code-point span of inferred content."""

    start: int
    end: int

    def __post_init__(self) -> None:
        """Reject empty or inverted ranges."""

        if self.start < 0 or self.end <= self.start:
            raise ValueError(f"Invalid provenance range [{self.start}, {self.end}).")

    def __len__(self) -> int:
        return self.end - self.start


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """One typed event emitted by a pipeline invocation.

    Attributes:
        kind: Envelope kind (`START`, `DELTA`, `DONE`, `ERROR`).
        pipeline: Pipeline type that emitted the event.
        invocation: Generation of the emitting invocation.
        stage: Stage label for state transitions.
        section: Analysis section for text insight deltas.
        content: Text fragment, merged text, or artifact path.
        provenance: Origin of `content` for vision capture deltas.
        progress: Synthesis progress percentage in `[0, 100]`.
        error: Failure kind for `ERROR` events.
        ranges: Inferred provenance ranges for vision capture `DONE` events.
        extra: Additional scalar metadata such as detected language.
    """

    kind: EventKind
    pipeline: PipelineKind
    invocation: int
    stage: str | None = None
    section: Section | None = None
    content: str | None = None
    provenance: Provenance | None = None
    progress: int | None = None
    error: ErrorKind | None = None
    ranges: tuple[ProvenanceRange, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AudioArtifact:
    """An audio file owned by the media cache.

    Attributes:
        path: Absolute file location.
        tier: Lifetime tier of this file.
        size_bytes: File size at creation time.
        created_at: Creation timestamp (local time).
    """

    path: Path
    tier: Tier
    size_bytes: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """Size and age bounds for persisted audio.

    Attributes:
        max_total_bytes: Upper bound for the persisted tier total size.
        max_age_days: Persisted files older than this are evicted.
    """

    max_total_bytes: int
    max_age_days: int

    @classmethod
    def from_settings(cls, cache_max_size_mb: int, cache_auto_clean_days: int) -> CachePolicy:
        """Build a policy from user-facing megabyte/day settings."""

        return cls(
            max_total_bytes=cache_max_size_mb * 1024 * 1024,
            max_age_days=cache_auto_clean_days,
        )


@dataclass(frozen=True, slots=True)
class VisibilityState:
    """Display surface visibility flags."""

    visible: bool = False
    pinned: bool = False


@dataclass(frozen=True, slots=True)
class CaptureRegion:
    """Screen region handed to the host text recognizer, in physical pixels."""

    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class QueryRecord:
    """Persisted history entry for a successful text insight or vision capture."""

    input_text: str
    source: str
    detected_language: str | None
    analysis_result: str
    created_at: str = ""
    id: int | None = None


@dataclass(frozen=True, slots=True)
class PodcastRecord:
    """Persisted history entry for a successful cast."""

    input_content: str
    source: PodcastSource
    speed_mode: SpeedMode
    podcast_mode: PodcastMode
    audio_file_path: str
    duration_seconds: float | None = None
    created_at: str = ""
    id: int | None = None
