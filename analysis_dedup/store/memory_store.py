"""In-memory record store for development, tests and fallback."""

import asyncio
import copy
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from analysis_dedup.models import AnalysisRecord, utcnow
from .base import RecordStore, StoreStats


class MemoryRecordStore(RecordStore):
    """Dict-backed record store; records live as long as the process."""

    def __init__(self, name: str = "memory"):
        super().__init__(name)
        self.records: Dict[str, AnalysisRecord] = {}
        self._lock = asyncio.Lock()

    def _newest_first(self, user_id: str) -> List[AnalysisRecord]:
        records = [r for r in self.records.values() if r.user_id == user_id]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    async def find_by_parameter_hash(self, user_id: str, parameter_hash: str) -> Optional[AnalysisRecord]:
        """Get the newest record of the user with the hash."""
        async with self._lock:
            for record in self._newest_first(user_id):
                if record.parameter_hash == parameter_hash:
                    self._record_hit()
                    return copy.deepcopy(record)

            self._record_miss()
            return None

    async def find_candidates(self, user_id: str, tool_slug: str,
                              canonical_params: Dict[str, Any], limit: int = 10) -> List[AnalysisRecord]:
        """Get recent overlapping records of the user for the tool."""
        async with self._lock:
            same_tool = [r for r in self._newest_first(user_id) if r.tool_slug == tool_slug]
            return [copy.deepcopy(r) for r in self._select_candidates(same_tool, canonical_params, limit)]

    async def get_by_id(self, record_id: str) -> Optional[AnalysisRecord]:
        """Get record by id."""
        async with self._lock:
            record = self.records.get(record_id)
            if record is None:
                self._record_miss()
                return None
            self._record_hit()
            return copy.deepcopy(record)

    async def insert(self, record: AnalysisRecord) -> str:
        """Store a copy of the record."""
        async with self._lock:
            record_id = record.id or uuid.uuid4().hex
            stored = copy.deepcopy(record)
            stored.id = record_id
            self.records[record_id] = stored
            return record_id

    async def bump_access(self, record_id: str) -> None:
        """Increment access count of an existing record."""
        async with self._lock:
            record = self.records.get(record_id)
            if record is not None:
                record.access_count += 1
                record.last_accessed_at = utcnow()

    async def delete_where(self, user_id: str, is_duplicate: bool = True,
                           created_before: Optional[datetime] = None) -> int:
        """Delete old duplicate records of the user."""
        self._check_delete_filter(is_duplicate)
        async with self._lock:
            doomed = [
                record_id for record_id, record in self.records.items()
                if self._matches_delete(record, user_id, created_before)
            ]
            for record_id in doomed:
                del self.records[record_id]
            return len(doomed)

    async def list_for_user(self, user_id: str, is_duplicate: Optional[bool] = None) -> List[AnalysisRecord]:
        """List records of the user, newest first."""
        async with self._lock:
            return [
                copy.deepcopy(r) for r in self._newest_first(user_id)
                if is_duplicate is None or r.is_duplicate == is_duplicate
            ]

    def get_stats(self) -> Dict[str, Any]:
        """Get memory store statistics."""
        stats = StoreStats()
        stats.hits = self.hits
        stats.misses = self.misses
        stats.errors = self.errors
        stats.size = len(self.records)
        stats.duplicates = sum(1 for r in self.records.values() if r.is_duplicate)

        if self.records:
            created = [r.created_at for r in self.records.values()]
            stats.oldest_entry = min(created)
            stats.newest_entry = max(created)

        return {
            **stats.to_dict(),
            "backend": self.name,
        }

    async def close(self) -> None:
        """Close memory store (cleanup)."""
        async with self._lock:
            self.records.clear()
