"""Request deduplication and result caching for AI-backed analyses."""

from analysis_dedup.dedup import DedupService, DuplicateCheckResult, DuplicateDetector
from analysis_dedup.errors import (
    AuthorizationError,
    DedupError,
    NotFoundError,
    PersistenceError,
    StoreUnavailableError,
    ValidationError,
)
from analysis_dedup.models import AnalysisRecord, AnalysisRequest, AnalysisStatus, CachedResult

__version__ = "0.1.0"

__all__ = [
    "DedupService",
    "DuplicateCheckResult",
    "DuplicateDetector",
    "AnalysisRecord",
    "AnalysisRequest",
    "AnalysisStatus",
    "CachedResult",
    "DedupError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "StoreUnavailableError",
    "PersistenceError",
]
