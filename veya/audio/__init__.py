"""Audio merge components for cast output."""

from .merger import AudioMerger

__all__ = ["AudioMerger"]
