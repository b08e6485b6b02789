"""Data classes for duplicate detection results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from analysis_dedup.models import AnalysisRecord


@dataclass
class DuplicateCheckResult:
    """Result of a duplicate detection check.

    Attributes:
        is_duplicate: Whether the request matches a prior analysis.
        parameter_hash: Scoped hash of the incoming request. Always set,
            even on a miss, so the caller can hand it straight to save.
        existing_analysis: The matched record, if any.
        similarity: Numeric similarity score (0.0-1.0).
        differences: Up to a handful of human-readable differences between
            the request and the matched record.
        should_show_warning: Whether the user should be offered the
            reuse / regenerate / modify choice. True whenever
            ``is_duplicate`` is.
        strategy_name: Name of the strategy that found the match
            (e.g. ``"exact_hash_match"``). ``None`` when nothing matched.
    """

    is_duplicate: bool
    parameter_hash: str = ""
    existing_analysis: Optional[AnalysisRecord] = None
    similarity: float = 0.0
    differences: List[str] = field(default_factory=list)
    should_show_warning: bool = False
    strategy_name: Optional[str] = None

    @property
    def existing_analysis_id(self) -> Optional[str]:
        return self.existing_analysis.id if self.existing_analysis else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for an API response."""
        return {
            "is_duplicate": self.is_duplicate,
            "existing_analysis_id": self.existing_analysis_id,
            "similarity": self.similarity,
            "differences": list(self.differences),
            "should_show_warning": self.should_show_warning,
            "parameter_hash": self.parameter_hash,
            "strategy": self.strategy_name,
        }
