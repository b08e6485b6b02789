"""Dedup service: the entry point callers use around a generation backend.

Typical flow::

    service = DedupService(store)
    check = await service.check_for_duplicates(request)
    if check.is_duplicate:
        # offer: reuse (get_cached_result), regenerate (force_regenerate),
        # or modify the parameters and check again
        ...
    else:
        result, metadata = await generate(request.parameters)
        await service.save_analysis_result(request, result, metadata)

``get_or_generate`` wraps the "check, generate, save" sequence in a per-hash
advisory lock so concurrent identical requests generate only once.
"""

from __future__ import annotations

from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from analysis_dedup.config import Config, get_config
from analysis_dedup.dedup.detector import DuplicateDetector, build_default_strategies
from analysis_dedup.dedup.result import DuplicateCheckResult
from analysis_dedup.errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    StoreUnavailableError,
)
from analysis_dedup.models import (
    AnalysisRecord,
    AnalysisRequest,
    AnalysisStatus,
    CachedResult,
    utcnow,
)
from analysis_dedup.params.canonical import normalize_parameters
from analysis_dedup.params.hashing import generate_parameter_hash, short_hash
from analysis_dedup.params.validation import ensure_valid_parameters
from analysis_dedup.store.base import RecordStore
from analysis_dedup.utils.logger import log_debug, log_error, log_info, log_warning
from analysis_dedup.utils.thread_safe import KeyedLockRegistry, ThreadSafeCounter

Generator = Callable[[AnalysisRequest], Awaitable[Tuple[Any, Dict[str, Any]]]]


class DedupService:
    """Deduplicate analysis requests and manage their cached results.

    Args:
        store: Record store holding prior analyses.
        config: Engine configuration; defaults to ``get_config()``.
        detector: Detection chain; defaults to one built from ``config``.
    """

    def __init__(
        self,
        store: RecordStore,
        config: Optional[Config] = None,
        detector: Optional[DuplicateDetector] = None,
    ):
        self.store = store
        self.config = config or get_config()
        self.detector = detector or DuplicateDetector(build_default_strategies(self.config))
        self._generation_locks = KeyedLockRegistry()
        self.checks = ThreadSafeCounter()
        self.duplicates_found = ThreadSafeCounter()

    # ------------------------------------------------------------------
    # Hashing helpers
    # ------------------------------------------------------------------

    def _validate(self, request: AnalysisRequest) -> None:
        ensure_valid_parameters(request.parameters, max_bytes=self.config.max_parameter_bytes)

    def parameter_hash(self, request: AnalysisRequest) -> str:
        """Validate the request and return its scoped parameter hash."""
        self._validate(request)
        return generate_parameter_hash(request.parameters, request.tool_slug, request.scope_user)

    # ------------------------------------------------------------------
    # Read path (fails open)
    # ------------------------------------------------------------------

    async def check_for_duplicates(self, request: AnalysisRequest) -> DuplicateCheckResult:
        """Check whether an equivalent analysis already exists for the user.

        Raises:
            ValidationError: when the parameters cannot be hashed.
        """
        parameter_hash = self.parameter_hash(request)
        await self.checks.increment()

        if not self.config.detection_enabled:
            log_debug("Duplicate detection disabled", tool=request.tool_slug)
            return DuplicateCheckResult(is_duplicate=False, parameter_hash=parameter_hash)

        result = await self.detector.check(request, parameter_hash, self.store)
        if result.is_duplicate:
            await self.duplicates_found.increment()
            result.should_show_warning = True
        return result

    async def get_cached_result(self, record_id: str, user_id: str) -> CachedResult:
        """Return a prior analysis owned by ``user_id`` and count the access.

        Raises:
            NotFoundError: when no record has ``record_id``.
            AuthorizationError: when the record belongs to another user.
        """
        record = await self.store.get_by_id(record_id)
        if record is None:
            raise NotFoundError(record_id)
        if record.user_id != user_id:
            log_warning("Cached result requested by non-owner", analysis_id=record_id)
            raise AuthorizationError(record_id, user_id)

        await self.store.bump_access(record_id)
        return CachedResult(
            result=record.result,
            metadata=record.metadata,
            created_at=record.created_at,
            is_duplicate=record.is_duplicate,
            original_analysis_id=record.original_analysis_id,
        )

    # ------------------------------------------------------------------
    # Write path (fails closed)
    # ------------------------------------------------------------------

    async def save_analysis_result(
        self,
        request: AnalysisRequest,
        result: Any,
        metadata: Optional[Dict[str, Any]] = None,
        is_duplicate: bool = False,
        original_analysis_id: Optional[str] = None,
    ) -> str:
        """Persist a generated analysis and return the new record id.

        Raises:
            ValidationError: when the parameters cannot be hashed.
            PersistenceError: when the store could not persist the record.
        """
        parameter_hash = self.parameter_hash(request)
        metadata = dict(metadata or {})
        metadata.setdefault("user_agent", "Unknown")
        metadata.setdefault("ip_address", "Unknown")

        now = utcnow()
        record = AnalysisRecord(
            user_id=request.scope_user,
            tool_slug=request.tool_slug,
            tool_name=request.tool_name,
            analysis_type=request.analysis_type,
            input_data=request.parameters,
            normalized_parameters=normalize_parameters(request.parameters),
            parameter_hash=parameter_hash,
            result=result,
            metadata=metadata,
            status=AnalysisStatus.COMPLETED,
            is_anonymous=request.is_anonymous,
            is_duplicate=is_duplicate,
            original_analysis_id=original_analysis_id,
            regeneration_count=1 if is_duplicate else 0,
            access_count=1,
            created_at=now,
            last_accessed_at=now,
        )

        try:
            record_id = await self.store.insert(record)
        except StoreUnavailableError as e:
            log_error("Failed to save analysis result",
                      tool=request.tool_slug, store=self.store.name, error=str(e))
            raise PersistenceError(f"Failed to save analysis result: {e.message}") from e

        log_info("Analysis result saved",
                 analysis_id=record_id,
                 tool=request.tool_slug,
                 is_duplicate=is_duplicate,
                 parameter_hash=short_hash(parameter_hash))
        return record_id

    async def force_regenerate(
        self,
        request: AnalysisRequest,
        result: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Save a regenerated analysis outside of dedup bookkeeping."""
        return await self.save_analysis_result(request, result, metadata, is_duplicate=False)

    # ------------------------------------------------------------------
    # Concurrency guard
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def generation_lock(self, request: AnalysisRequest) -> AsyncIterator[str]:
        """Hold the advisory lock for the request's (user, hash) pair.

        Yields the parameter hash. Only guards callers in this process that
        share this service instance.
        """
        parameter_hash = self.parameter_hash(request)
        async with self._generation_locks.hold(f"{request.scope_user}:{parameter_hash}"):
            yield parameter_hash

    async def get_or_generate(
        self,
        request: AnalysisRequest,
        generate: Generator,
        force: bool = False,
    ) -> Tuple[str, DuplicateCheckResult]:
        """Serve a cached analysis or generate and save a fresh one.

        The check, the generation and the save run under
        :meth:`generation_lock`, so a second identical request waits for the
        first one and then finds its record.

        Args:
            request: The analysis request.
            generate: Async callable returning ``(result, metadata)``.
            force: Skip the duplicate check and always generate.

        Only an exact parameter-hash match is served from the store. A
        similar but non-identical prior analysis is reported through the
        returned check while a fresh result is generated and saved.

        Returns:
            ``(record_id, check)``. ``record_id`` points at a prior analysis
            only when ``check.existing_analysis`` has the same parameter hash.
        """
        async with self.generation_lock(request) as parameter_hash:
            if force:
                result, metadata = await generate(request)
                record_id = await self.force_regenerate(request, result, metadata)
                return record_id, DuplicateCheckResult(is_duplicate=False, parameter_hash=parameter_hash)

            check = await self.check_for_duplicates(request)
            existing = check.existing_analysis
            if check.is_duplicate and existing is not None and existing.parameter_hash == parameter_hash:
                return existing.id, check

            result, metadata = await generate(request)
            record_id = await self.save_analysis_result(request, result, metadata)
            return record_id, check

    # ------------------------------------------------------------------
    # Maintenance and reporting
    # ------------------------------------------------------------------

    async def get_duplicate_groups(self, user_id: str) -> List[List[AnalysisRecord]]:
        """Duplicate-flagged records of the user grouped by parameter hash."""
        try:
            duplicates = await self.store.list_for_user(user_id, is_duplicate=True)
        except StoreUnavailableError as e:
            log_error("Error getting duplicate groups", store=self.store.name, error=str(e))
            return []

        groups: Dict[str, List[AnalysisRecord]] = defaultdict(list)
        for record in duplicates:
            groups[record.parameter_hash].append(record)

        return [group for group in groups.values() if len(group) > 1]

    async def cleanup_duplicates(self, user_id: str, older_than_days: Optional[int] = None) -> int:
        """Delete the user's duplicate records older than ``older_than_days``.

        Original (non-duplicate) records are never removed.
        """
        days = self.config.cleanup_default_days if older_than_days is None else older_than_days
        cutoff = utcnow() - timedelta(days=days)

        try:
            removed = await self.store.delete_where(user_id, is_duplicate=True, created_before=cutoff)
        except StoreUnavailableError as e:
            log_error("Error cleaning up duplicates", store=self.store.name, error=str(e))
            return 0

        log_info("Duplicate cleanup finished", removed=removed, older_than_days=days)
        return removed

    async def get_user_analysis_stats(self, user_id: str) -> Dict[str, Any]:
        """Aggregate usage and estimated savings for the user."""
        try:
            records = await self.store.list_for_user(user_id)
        except StoreUnavailableError as e:
            log_error("Error getting user stats", store=self.store.name, error=str(e))
            records = []

        total = len(records)
        duplicates = sum(1 for r in records if r.is_duplicate)
        successful = sum(1 for r in records if r.status == AnalysisStatus.COMPLETED)
        total_tokens = sum(int(r.metadata.get("tokens_used") or 0) for r in records)
        total_cost = sum(float(r.metadata.get("cost") or 0.0) for r in records)

        groups: Dict[str, int] = defaultdict(int)
        for record in records:
            if record.is_duplicate:
                groups[record.parameter_hash] += 1

        return {
            "total_analyses": total,
            "duplicate_analyses": duplicates,
            "unique_analyses": total - duplicates,
            "successful_analyses": successful,
            "success_rate": round(successful / total * 100, 2) if total else 0.0,
            "unique_tools": len({r.tool_slug for r in records}),
            "total_tokens": total_tokens,
            "total_cost": round(total_cost, 6),
            "cache_hits": sum(max(r.access_count - 1, 0) for r in records),
            "tool_stats": self._tool_stats(records),
            "duplicate_groups": sum(1 for count in groups.values() if count > 1),
            "savings": {
                "tokens": duplicates * self.config.estimated_tokens_per_call,
                "cost": round(duplicates * self.config.estimated_cost_per_call, 6),
                "percentage": round(duplicates / total * 100, 1) if total else 0.0,
            },
        }

    @staticmethod
    def _tool_stats(records: List[AnalysisRecord]) -> List[Dict[str, Any]]:
        per_tool: Dict[str, Dict[str, Any]] = {}
        for record in records:
            entry = per_tool.setdefault(record.tool_slug, {
                "tool_slug": record.tool_slug,
                "tool_name": record.tool_name or record.tool_slug,
                "total_usage": 0,
                "completed": 0,
                "duplicates": 0,
                "last_used": record.created_at,
            })
            entry["total_usage"] += 1
            if record.status == AnalysisStatus.COMPLETED:
                entry["completed"] += 1
            if record.is_duplicate:
                entry["duplicates"] += 1
            entry["last_used"] = max(entry["last_used"], record.created_at)

        stats = []
        for entry in per_tool.values():
            completed = entry.pop("completed")
            entry["success_rate"] = round(completed / entry["total_usage"] * 100)
            stats.append(entry)
        return sorted(stats, key=lambda e: e["total_usage"], reverse=True)

    def get_detection_settings(self, user_id: str) -> Dict[str, Any]:
        """Duplicate detection settings that apply to ``user_id``.

        Every user currently gets the global configuration.
        """
        return {
            "enabled": self.config.detection_enabled,
            "similarity_threshold": self.config.warning_threshold,
            "show_warnings": self.config.show_warnings,
            "auto_use_cache": self.config.auto_use_cache,
        }
