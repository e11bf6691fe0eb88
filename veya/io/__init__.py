"""Storage components for Veya.

This package contains the two-tier audio media cache and history record
persistence used by the orchestrator.
"""

from .media_cache import MediaCacheManager
from .records import JsonlRecordStore, RecordStore, WordFrequency, tokenize

__all__ = ["MediaCacheManager", "JsonlRecordStore", "RecordStore", "WordFrequency", "tokenize"]
