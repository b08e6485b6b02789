"""Persistent record stores for analysis results.

This package provides the record store the dedup service runs against:
- Redis: shared store for multi-instance deployments
- File: single JSON document for a single instance
- Memory: in-process store for development, tests and fallback

``create_record_store`` picks the configured backend and falls back when it
cannot be reached at start-up.
"""

from .base import RecordStore, StoreStats
from .factory import create_record_store, StoreBackendType
from .redis_store import RedisRecordStore
from .file_store import FileRecordStore
from .memory_store import MemoryRecordStore

__all__ = [
    "RecordStore",
    "StoreStats",
    "StoreBackendType",
    "create_record_store",
    "RedisRecordStore",
    "FileRecordStore",
    "MemoryRecordStore",
]
