"""File-based persistent record store."""

import asyncio
import json
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from analysis_dedup.errors import StoreUnavailableError
from analysis_dedup.models import AnalysisRecord, utcnow
from analysis_dedup.utils.logger import log_store_operation
from .base import RecordStore, StoreStats


class FileRecordStore(RecordStore):
    """Single-instance record store persisted as one JSON document.

    The document is loaded once at start-up and rewritten atomically after
    every mutation, so a crash never leaves a half-written file behind.
    """

    def __init__(self, file_path: str = ".dedup_cache/records.json", name: str = "file"):
        super().__init__(name)
        self.file_path = Path(file_path)
        self._lock = asyncio.Lock()

        # Load records on initialization
        self.records: Dict[str, Dict[str, Any]] = self._load_records()

    def _load_records(self) -> Dict[str, Dict[str, Any]]:
        """Load the record document from disk."""
        if not self.file_path.exists():
            return {}
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self._record_error()
            raise StoreUnavailableError(f"Cannot read {self.file_path}: {e}", backend=self.name) from e
        records = data.get("records", {}) if isinstance(data, dict) else {}
        return records if isinstance(records, dict) else {}

    def _save_records(self) -> None:
        """Write the record document to disk."""
        tmp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump({"records": self.records}, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.file_path)
        except (OSError, TypeError, ValueError) as e:
            self._record_error()
            raise StoreUnavailableError(f"Cannot write {self.file_path}: {e}", backend=self.name) from e

    def _newest_first(self, user_id: str) -> List[AnalysisRecord]:
        records = [
            AnalysisRecord.from_dict(data)
            for data in self.records.values()
            if data.get("user_id") == user_id
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    async def find_by_parameter_hash(self, user_id: str, parameter_hash: str) -> Optional[AnalysisRecord]:
        """Get the newest record of the user with the hash."""
        async with self._lock:
            for record in self._newest_first(user_id):
                if record.parameter_hash == parameter_hash:
                    self._record_hit()
                    return record

            self._record_miss()
            return None

    async def find_candidates(self, user_id: str, tool_slug: str,
                              canonical_params: Dict[str, Any], limit: int = 10) -> List[AnalysisRecord]:
        """Get recent overlapping records of the user for the tool."""
        async with self._lock:
            same_tool = [r for r in self._newest_first(user_id) if r.tool_slug == tool_slug]
            return self._select_candidates(same_tool, canonical_params, limit)

    async def get_by_id(self, record_id: str) -> Optional[AnalysisRecord]:
        """Get record by id."""
        async with self._lock:
            data = self.records.get(record_id)
            if data is None:
                self._record_miss()
                return None
            self._record_hit()
            return AnalysisRecord.from_dict(data)

    async def insert(self, record: AnalysisRecord) -> str:
        """Persist the record and rewrite the document."""
        async with self._lock:
            record_id = record.id or uuid.uuid4().hex
            data = record.to_dict()
            data["id"] = record_id
            previous = self.records.get(record_id)
            self.records[record_id] = data
            try:
                self._save_records()
            except StoreUnavailableError:
                if previous is None:
                    del self.records[record_id]
                else:
                    self.records[record_id] = previous
                raise
            log_store_operation("insert", self.name, record_id=record_id)
            return record_id

    async def bump_access(self, record_id: str) -> None:
        """Increment access count of an existing record."""
        async with self._lock:
            data = self.records.get(record_id)
            if data is None:
                return
            before = (data.get("access_count"), data.get("last_accessed_at"))
            data["access_count"] = int(data.get("access_count", 1)) + 1
            data["last_accessed_at"] = utcnow().isoformat()
            try:
                self._save_records()
            except StoreUnavailableError:
                data["access_count"], data["last_accessed_at"] = before
                raise

    async def delete_where(self, user_id: str, is_duplicate: bool = True,
                           created_before: Optional[datetime] = None) -> int:
        """Delete old duplicate records of the user."""
        self._check_delete_filter(is_duplicate)
        async with self._lock:
            doomed = [
                record_id for record_id, data in self.records.items()
                if self._matches_delete(AnalysisRecord.from_dict(data), user_id, created_before)
            ]
            if not doomed:
                return 0
            removed = {record_id: self.records.pop(record_id) for record_id in doomed}
            try:
                self._save_records()
            except StoreUnavailableError:
                self.records.update(removed)
                raise
            log_store_operation("delete_where", self.name, removed=len(doomed))
            return len(doomed)

    async def list_for_user(self, user_id: str, is_duplicate: Optional[bool] = None) -> List[AnalysisRecord]:
        """List records of the user, newest first."""
        async with self._lock:
            return [
                r for r in self._newest_first(user_id)
                if is_duplicate is None or r.is_duplicate == is_duplicate
            ]

    def get_stats(self) -> Dict[str, Any]:
        """Get file store statistics."""
        stats = StoreStats()
        stats.hits = self.hits
        stats.misses = self.misses
        stats.errors = self.errors
        stats.size = len(self.records)
        stats.duplicates = sum(1 for d in self.records.values() if d.get("is_duplicate"))

        if self.records:
            created = [AnalysisRecord.from_dict(d).created_at for d in self.records.values()]
            stats.oldest_entry = min(created)
            stats.newest_entry = max(created)

        disk_usage = self.file_path.stat().st_size if self.file_path.exists() else 0
        return {
            **stats.to_dict(),
            "backend": self.name,
            "file_path": str(self.file_path),
            "disk_usage_bytes": disk_usage,
        }

    async def close(self) -> None:
        """Close file store."""
        async with self._lock:
            if self.records:
                self._save_records()
