"""Shared typed data models for Veya.

This package contains dataclasses and enumerations used across pipeline,
provider, and storage modules to avoid cross-module coupling and circular imports.
"""

from .datatypes import (
    AudioArtifact,
    CachePolicy,
    CaptureRegion,
    EventKind,
    PipelineKind,
    PodcastMode,
    PodcastRecord,
    PodcastSource,
    Provenance,
    ProvenanceRange,
    QueryRecord,
    Section,
    SpeedMode,
    StreamEvent,
    Tier,
    VisibilityState,
)

__all__ = [
    "AudioArtifact",
    "CachePolicy",
    "CaptureRegion",
    "EventKind",
    "PipelineKind",
    "PodcastMode",
    "PodcastRecord",
    "PodcastSource",
    "Provenance",
    "ProvenanceRange",
    "QueryRecord",
    "Section",
    "SpeedMode",
    "StreamEvent",
    "Tier",
    "VisibilityState",
]
