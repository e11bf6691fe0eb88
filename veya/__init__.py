"""Top-level package for Veya.

This package provides resilient streaming AI pipelines for language study:
text insight, vision capture with AI completion, and narrated podcast casts.
The main orchestration entry point is `PipelineOrchestrator`.
"""

from .pipeline.orchestrator import PipelineOrchestrator

__all__ = ["PipelineOrchestrator", "__version__"]

__version__ = "0.1.0"
