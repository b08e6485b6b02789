"""Orchestrator for the duplicate-detection chain.

The ``DuplicateDetector`` runs strategies in order from cheapest to most
expensive, short-circuiting on the first positive match.
"""

from __future__ import annotations

from typing import List, Optional

from analysis_dedup.config import Config
from analysis_dedup.dedup.result import DuplicateCheckResult
from analysis_dedup.dedup.strategies import (
    DedupStrategy,
    ExactHashMatch,
    SimilarCandidateSearch,
)
from analysis_dedup.models import AnalysisRequest
from analysis_dedup.params.hashing import short_hash
from analysis_dedup.store.base import RecordStore
from analysis_dedup.utils.logger import log_debug, log_duplicate_detection


def build_default_strategies(config: Optional[Config] = None) -> List[DedupStrategy]:
    """Build the default ordered chain of dedup strategies.

    The order matters, cheapest first:
      1. ExactHashMatch         (1 indexed lookup)
      2. SimilarCandidateSearch (1 bounded lookup + pairwise comparison)
    """
    if config is None:
        return [ExactHashMatch(), SimilarCandidateSearch()]
    return [
        ExactHashMatch(),
        SimilarCandidateSearch(
            warning_threshold=config.warning_threshold,
            duplicate_threshold=config.exact_match_threshold,
            candidate_limit=config.candidate_limit,
            max_differences=config.max_differences,
        ),
    ]


class DuplicateDetector:
    """Orchestrate duplicate detection through a chain of strategies.

    Args:
        strategies: Ordered list of strategies to run.  Defaults to
            ``build_default_strategies()`` if *None*.

    Usage::

        detector = DuplicateDetector()
        result = await detector.check(request, parameter_hash, store)
        if result.is_duplicate:
            # offer reuse / regenerate / modify
            ...
    """

    def __init__(self, strategies: Optional[List[DedupStrategy]] = None):
        self.strategies = (
            strategies if strategies is not None else build_default_strategies()
        )

    async def check(self, request: AnalysisRequest, parameter_hash: str,
                    store: RecordStore) -> DuplicateCheckResult:
        """Run each strategy in order; return on the first duplicate hit.

        Returns:
            ``DuplicateCheckResult``: either a positive match from the first
            strategy that identified a duplicate, or a negative result
            carrying the request's parameter hash.
        """
        log_debug(
            "Starting duplicate detection chain",
            strategy_count=len(self.strategies),
            tool=request.tool_slug,
        )

        for strategy in self.strategies:
            result = await strategy.check(request, parameter_hash, store)
            if result.is_duplicate:
                log_duplicate_detection(
                    result.similarity,
                    result.existing_analysis_id,
                    strategy=result.strategy_name,
                    parameter_hash=short_hash(parameter_hash),
                )
                return result

        log_debug("No duplicates found across all strategies")
        return DuplicateCheckResult(is_duplicate=False, parameter_hash=parameter_hash)
