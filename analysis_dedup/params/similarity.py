"""Similarity scoring and duplicate classification of parameter sets.

Similarity is an exact-match ratio over top-level keys: a key scores only
when both sides hold a canonically equal value. Nested values are compared
as a whole, not scored recursively.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from analysis_dedup.params.canonical import normalize_parameters
from analysis_dedup.params.hashing import canonical_json, generate_parameter_hash

DUPLICATE_THRESHOLD = 0.95
SIMILAR_THRESHOLD = 0.9


@dataclass
class ParameterComparison:
    """Outcome of comparing two parameter sets.

    Attributes:
        is_duplicate: Whether the two sets count as duplicates.
        similarity: Score in ``[0, 1]``.
        differences: Human-readable per-key differences.
        existing_analysis_id: Id of the record the comparison was made
            against, when known.
    """

    is_duplicate: bool
    similarity: float
    differences: List[str] = field(default_factory=list)
    existing_analysis_id: Optional[str] = None


def _values_equal(left: Any, right: Any) -> bool:
    return canonical_json(left) == canonical_json(right)


def _key_union(left: Dict[str, Any], right: Dict[str, Any]) -> List[str]:
    keys = list(left)
    keys.extend(key for key in right if key not in left)
    return keys


def calculate_similarity(params1: Mapping[str, Any], params2: Mapping[str, Any]) -> float:
    """Fraction of top-level keys whose canonical values match on both sides."""
    normalized1 = normalize_parameters(params1)
    normalized2 = normalize_parameters(params2)

    if not normalized1 and not normalized2:
        return 1.0
    if not normalized1 or not normalized2:
        return 0.0

    matches = 0
    comparisons = 0
    for key in _key_union(normalized1, normalized2):
        comparisons += 1
        if key in normalized1 and key in normalized2:
            if _values_equal(normalized1[key], normalized2[key]):
                matches += 1

    return matches / comparisons if comparisons > 0 else 0.0


def find_parameter_differences(params1: Mapping[str, Any], params2: Mapping[str, Any]) -> List[str]:
    """List per-key differences of ``params1`` relative to ``params2``."""
    normalized1 = normalize_parameters(params1)
    normalized2 = normalize_parameters(params2)
    differences: List[str] = []

    for key in _key_union(normalized1, normalized2):
        in1 = key in normalized1
        in2 = key in normalized2
        if not in1 and in2:
            differences.append(f"Missing parameter: {key}")
        elif in1 and not in2:
            differences.append(f"Extra parameter: {key}")
        elif not _values_equal(normalized1[key], normalized2[key]):
            differences.append(f"Different value for: {key}")

    return differences


def compare_parameters(
    params1: Mapping[str, Any],
    params2: Mapping[str, Any],
    tool_slug1: str,
    tool_slug2: str,
    user_id1: Optional[str] = None,
    user_id2: Optional[str] = None,
    threshold: float = DUPLICATE_THRESHOLD,
) -> ParameterComparison:
    """Classify two scoped parameter sets as duplicate or distinct.

    Equal scoped hashes short-circuit to an exact duplicate. Otherwise the
    pair is a duplicate only when similarity is strictly above ``threshold``.
    """
    hash1 = generate_parameter_hash(params1, tool_slug1, user_id1)
    hash2 = generate_parameter_hash(params2, tool_slug2, user_id2)

    if hash1 == hash2:
        return ParameterComparison(is_duplicate=True, similarity=1.0, differences=[])

    similarity = calculate_similarity(params1, params2)
    return ParameterComparison(
        is_duplicate=similarity > threshold,
        similarity=similarity,
        differences=find_parameter_differences(params1, params2),
    )


def is_similar_parameters(
    params1: Mapping[str, Any],
    params2: Mapping[str, Any],
    threshold: float = SIMILAR_THRESHOLD,
) -> bool:
    """Check whether two parameter sets reach the similarity ``threshold``."""
    return calculate_similarity(params1, params2) >= threshold


def parameters_overlap(canonical1: Mapping[str, Any], canonical2: Mapping[str, Any]) -> bool:
    """Cheap candidate pre-filter over already-canonical maps.

    True when both maps are empty or they share at least one equal
    top-level entry; anything else would score a similarity of 0.
    """
    if not canonical1 and not canonical2:
        return True
    for key, value in canonical1.items():
        if key in canonical2 and _values_equal(value, canonical2[key]):
            return True
    return False
