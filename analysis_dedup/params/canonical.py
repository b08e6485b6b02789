"""Canonical form of analysis parameters.

Two parameter trees that only differ in whitespace, text casing, decimal
precision beyond two places, array ordering, or absent values normalize to
the same tree. Canonical trees are what gets hashed and compared.
"""
from __future__ import annotations

import json
import math
from typing import Any, Dict, Mapping

# Rank of each canonical type inside a sorted array.
_RANK_BOOL = 0
_RANK_NUMBER = 1
_RANK_STRING = 2
_RANK_LIST = 3
_RANK_MAP = 4


def _round_number(value):
    if isinstance(value, int) or not math.isfinite(value):
        return value
    scaled = value * 100
    if not math.isfinite(scaled):
        # Magnitudes this large carry no fractional digits.
        return int(value)
    rounded = math.floor(scaled + 0.5) / 100
    if rounded.is_integer():
        return int(rounded)
    return rounded


def _sort_key(value: Any):
    if isinstance(value, bool):
        return (_RANK_BOOL, value)
    if isinstance(value, (int, float)):
        return (_RANK_NUMBER, value)
    if isinstance(value, str):
        return (_RANK_STRING, value)
    encoded = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    if isinstance(value, list):
        return (_RANK_LIST, encoded)
    return (_RANK_MAP, encoded)


def _normalize_sequence(values) -> list:
    items = [normalize_value(item) for item in values]
    return sorted((item for item in items if item is not None), key=_sort_key)


def normalize_value(value: Any) -> Any:
    """Normalize a single value; returns ``None`` when it should be dropped.

    Empty containers are returned as-is so array elements keep them; only
    :func:`normalize_parameters` drops empty entries from maps.
    """
    if value is None:
        return None

    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed.lower() if trimmed else None

    # bool before numbers: bool is an int subclass
    if isinstance(value, bool):
        return value

    if isinstance(value, (int, float)):
        return _round_number(value)

    if isinstance(value, (list, tuple, set, frozenset)):
        return _normalize_sequence(value)

    if isinstance(value, Mapping):
        return normalize_parameters(value)

    return value


def normalize_parameters(parameters: Any) -> Dict[str, Any]:
    """Normalize a parameter map for consistent hashing and comparison.

    Args:
        parameters: Arbitrary JSON-like mapping. Anything else yields ``{}``.

    Returns:
        A new dict holding only non-empty, normalized entries.
    """
    if not isinstance(parameters, Mapping):
        return {}

    normalized: Dict[str, Any] = {}
    for key, value in parameters.items():
        result = normalize_value(value)
        if result is None:
            continue
        if isinstance(result, (list, dict)) and not result:
            continue
        normalized[str(key)] = result

    return normalized
