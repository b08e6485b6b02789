"""Parameter canonicalization, hashing and comparison.

Pure functions only: nothing in this package performs I/O.
"""

from analysis_dedup.params.canonical import normalize_parameters, normalize_value
from analysis_dedup.params.hashing import canonical_json, generate_parameter_hash, short_hash
from analysis_dedup.params.similarity import (
    ParameterComparison,
    calculate_similarity,
    compare_parameters,
    find_parameter_differences,
    is_similar_parameters,
    parameters_overlap,
)
from analysis_dedup.params.summary import extract_key_parameters, get_parameter_summary
from analysis_dedup.params.validation import ensure_valid_parameters, validate_parameters

__all__ = [
    "normalize_parameters",
    "normalize_value",
    "canonical_json",
    "generate_parameter_hash",
    "short_hash",
    "ParameterComparison",
    "calculate_similarity",
    "compare_parameters",
    "find_parameter_differences",
    "is_similar_parameters",
    "parameters_overlap",
    "extract_key_parameters",
    "get_parameter_summary",
    "ensure_valid_parameters",
    "validate_parameters",
]
