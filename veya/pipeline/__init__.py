"""Pipeline orchestration components.

This package contains the invocation state machine, per-pipeline event
channels, the three pipelines, and the orchestrator facade.
"""

from .base import Invocation, PipelineRunner
from .cast_engine import CastEnginePipeline, CastOptions
from .channel import EventChannel
from .orchestrator import PipelineOrchestrator
from .text_insight import TextInsightPipeline
from .vision_capture import PrerecognizedText, TextRecognizer, VisionCapturePipeline

__all__ = [
    "CastEnginePipeline",
    "CastOptions",
    "EventChannel",
    "Invocation",
    "PipelineOrchestrator",
    "PipelineRunner",
    "PrerecognizedText",
    "TextInsightPipeline",
    "TextRecognizer",
    "VisionCapturePipeline",
]
