"""Text processing components used by the pipelines.

This package provides language identification, provenance merging, section
demultiplexing of streamed analysis output, and cast script segmentation.
"""

from .language import UNDETERMINED, detect_language
from .provenance import MergedText, ProvenanceMerger, Segment, merge_segments
from .sections import SectionDemultiplexer
from .segments import ScriptSegmenter, split_script_segments

__all__ = [
    "UNDETERMINED",
    "detect_language",
    "MergedText",
    "ProvenanceMerger",
    "Segment",
    "merge_segments",
    "SectionDemultiplexer",
    "ScriptSegmenter",
    "split_script_segments",
]
