"""Individual duplicate-detection strategies.

Each strategy implements the ``DedupStrategy`` protocol: an async ``check``
method that receives the request, its scoped parameter hash and the record
store, and returns a ``DuplicateCheckResult``. Strategies are ordered from
cheapest (one indexed lookup) to most expensive (a candidate scan with
pairwise comparison).

Store failures are logged and reported as "no duplicate": a failed lookup
must never block generation.
"""

from __future__ import annotations

import abc
from typing import Optional

from analysis_dedup.dedup.result import DuplicateCheckResult
from analysis_dedup.errors import StoreUnavailableError
from analysis_dedup.models import AnalysisRecord, AnalysisRequest
from analysis_dedup.params.canonical import normalize_parameters
from analysis_dedup.params.hashing import short_hash
from analysis_dedup.params.similarity import (
    DUPLICATE_THRESHOLD,
    SIMILAR_THRESHOLD,
    compare_parameters,
    find_parameter_differences,
)
from analysis_dedup.store.base import RecordStore
from analysis_dedup.utils.logger import log_debug, log_error, log_info

# ---------------------------------------------------------------------------
# Base protocol
# ---------------------------------------------------------------------------


class DedupStrategy(abc.ABC):
    """Abstract base for duplicate-detection strategies."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short machine-readable name for logs and results."""

    @abc.abstractmethod
    async def check(
        self,
        request: AnalysisRequest,
        parameter_hash: str,
        store: RecordStore,
    ) -> DuplicateCheckResult:
        """Run the strategy.

        Args:
            request: The incoming analysis request.
            parameter_hash: Scoped hash of ``request.parameters``.
            store: Record store to look prior analyses up in.

        Returns:
            A ``DuplicateCheckResult``. When ``is_duplicate`` is ``False``
            the detector moves on to the next strategy in the chain.
        """


# ---------------------------------------------------------------------------
# Strategy 1: Exact hash match (1 indexed lookup)
# ---------------------------------------------------------------------------


class ExactHashMatch(DedupStrategy):
    """Look the scoped parameter hash up in the user's records.

    A hit means the canonical parameters are identical, so the match is
    reported with similarity 1.0 and no differences. The matched record's
    access count is bumped.
    """

    @property
    def name(self) -> str:
        return "exact_hash_match"

    async def check(self, request: AnalysisRequest, parameter_hash: str,
                    store: RecordStore) -> DuplicateCheckResult:
        try:
            existing = await store.find_by_parameter_hash(request.scope_user, parameter_hash)
            if existing is None:
                return DuplicateCheckResult(is_duplicate=False, parameter_hash=parameter_hash)

            await store.bump_access(existing.id)
        except StoreUnavailableError as e:
            log_error("Error during exact hash lookup", store=store.name, error=str(e))
            return DuplicateCheckResult(is_duplicate=False, parameter_hash=parameter_hash)

        log_debug("Exact duplicate found by parameter hash",
                  parameter_hash=short_hash(parameter_hash), analysis_id=existing.id)
        return DuplicateCheckResult(
            is_duplicate=True,
            parameter_hash=parameter_hash,
            existing_analysis=existing,
            similarity=1.0,
            differences=[],
            should_show_warning=True,
            strategy_name=self.name,
        )


# ---------------------------------------------------------------------------
# Strategy 2: Similar candidate search (1 lookup + pairwise comparison)
# ---------------------------------------------------------------------------


class SimilarCandidateSearch(DedupStrategy):
    """Compare the request against the user's recent records for the tool.

    The store pre-filters a bounded candidate set; each candidate is scored
    with ``compare_parameters`` and the best one is reported when its
    similarity is above ``warning_threshold``. That threshold is looser than
    the duplicate classification threshold: it decides whether to warn the
    user, not whether to deduplicate silently.
    """

    def __init__(
        self,
        warning_threshold: float = SIMILAR_THRESHOLD,
        duplicate_threshold: float = DUPLICATE_THRESHOLD,
        candidate_limit: int = 10,
        max_differences: int = 5,
    ):
        self.warning_threshold = warning_threshold
        self.duplicate_threshold = duplicate_threshold
        self.candidate_limit = candidate_limit
        self.max_differences = max_differences

    @property
    def name(self) -> str:
        return "similar_candidate_search"

    async def check(self, request: AnalysisRequest, parameter_hash: str,
                    store: RecordStore) -> DuplicateCheckResult:
        canonical = normalize_parameters(request.parameters)
        try:
            candidates = await store.find_candidates(
                request.scope_user, request.tool_slug, canonical, limit=self.candidate_limit
            )
        except StoreUnavailableError as e:
            log_error("Error during similar candidate search", store=store.name, error=str(e))
            return DuplicateCheckResult(is_duplicate=False, parameter_hash=parameter_hash)

        best_match: Optional[AnalysisRecord] = None
        highest_similarity = 0.0
        for candidate in candidates:
            comparison = compare_parameters(
                request.parameters,
                candidate.input_data,
                request.tool_slug,
                candidate.tool_slug,
                request.scope_user,
                candidate.user_id,
                threshold=self.duplicate_threshold,
            )
            if comparison.similarity > highest_similarity:
                highest_similarity = comparison.similarity
                best_match = candidate

        log_debug("Candidate comparison finished",
                  candidates=len(candidates), best_similarity=highest_similarity)

        if best_match is None or highest_similarity <= self.warning_threshold:
            return DuplicateCheckResult(is_duplicate=False, parameter_hash=parameter_hash)

        differences = find_parameter_differences(request.parameters, best_match.input_data)
        log_info("Near-duplicate found by candidate search",
                 analysis_id=best_match.id, similarity=highest_similarity)
        return DuplicateCheckResult(
            is_duplicate=True,
            parameter_hash=parameter_hash,
            existing_analysis=best_match,
            similarity=highest_similarity,
            differences=differences[: self.max_differences],
            should_show_warning=True,
            strategy_name=self.name,
        )
