"""Abstract base class for analysis record stores."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from analysis_dedup.models import AnalysisRecord
from analysis_dedup.params.similarity import parameters_overlap


class RecordStore(ABC):
    """Keyed store of analysis records with the lookups the engine needs.

    Implementations raise ``StoreUnavailableError`` when their backing I/O
    fails; they never swallow errors, the service decides how to degrade.
    """

    def __init__(self, name: str):
        self.name = name
        self.hits = 0
        self.misses = 0
        self.errors = 0

    @abstractmethod
    async def find_by_parameter_hash(self, user_id: str, parameter_hash: str) -> Optional[AnalysisRecord]:
        """Most recent record of ``user_id`` with ``parameter_hash``."""
        pass

    @abstractmethod
    async def find_candidates(
        self,
        user_id: str,
        tool_slug: str,
        canonical_params: Dict[str, Any],
        limit: int = 10,
    ) -> List[AnalysisRecord]:
        """Recent records of the user for the tool that overlap ``canonical_params``."""
        pass

    @abstractmethod
    async def get_by_id(self, record_id: str) -> Optional[AnalysisRecord]:
        """Record with ``record_id`` or ``None``."""
        pass

    @abstractmethod
    async def insert(self, record: AnalysisRecord) -> str:
        """Persist a new record and return its id."""
        pass

    @abstractmethod
    async def bump_access(self, record_id: str) -> None:
        """Increment the access count and refresh the last access time."""
        pass

    @abstractmethod
    async def delete_where(self, user_id: str, is_duplicate: bool = True,
                           created_before: Optional[datetime] = None) -> int:
        """Delete duplicate-flagged records of ``user_id`` created before the cutoff.

        Only ``is_duplicate=True`` is accepted: original records are never
        removed by retention cleanup. Returns how many records were removed.
        """
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str, is_duplicate: Optional[bool] = None) -> List[AnalysisRecord]:
        """All records of ``user_id``, newest first, optionally filtered by flag."""
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the store and release resources."""
        pass

    # Utility methods

    @staticmethod
    def _check_delete_filter(is_duplicate: bool) -> None:
        if is_duplicate is not True:
            raise ValueError("delete_where only removes duplicate-flagged records")

    @staticmethod
    def _matches_delete(record: AnalysisRecord, user_id: str,
                        created_before: Optional[datetime]) -> bool:
        if record.user_id != user_id or not record.is_duplicate:
            return False
        return created_before is None or record.created_at < created_before

    @staticmethod
    def _select_candidates(records: List[AnalysisRecord], canonical_params: Dict[str, Any],
                           limit: int) -> List[AnalysisRecord]:
        """Keep overlapping records from a newest-first list, up to ``limit``."""
        selected = []
        for record in records:
            if parameters_overlap(canonical_params, record.normalized_parameters):
                selected.append(record)
                if len(selected) >= limit:
                    break
        return selected

    def _record_hit(self) -> None:
        """Record lookup hit."""
        self.hits += 1

    def _record_miss(self) -> None:
        """Record lookup miss."""
        self.misses += 1

    def _record_error(self) -> None:
        """Record store error."""
        self.errors += 1


class StoreStats:
    """Record store statistics data structure."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self.errors = 0
        self.size = 0
        self.duplicates = 0
        self.oldest_entry = None
        self.newest_entry = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hit_rate_percent": self.hit_rate,
            "size": self.size,
            "duplicates": self.duplicates,
            "oldest_entry": (
                self.oldest_entry.isoformat() if self.oldest_entry else None
            ),
            "newest_entry": (
                self.newest_entry.isoformat() if self.newest_entry else None
            ),
        }

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate percentage."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0
