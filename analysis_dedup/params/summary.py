"""Display helpers for parameter sets."""
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Mapping

from analysis_dedup.params.canonical import normalize_parameters

_SUMMARY_KEYS = 3
_SUMMARY_VALUE_LENGTH = 20


def get_parameter_summary(parameters: Mapping[str, Any]) -> str:
    """One-line summary of the first few canonical parameters."""
    normalized = normalize_parameters(parameters)
    keys = list(normalized)

    if not keys:
        return "No parameters"

    parts = []
    for key in keys[:_SUMMARY_KEYS]:
        value = normalized[key]
        if isinstance(value, str) and len(value) > _SUMMARY_VALUE_LENGTH:
            parts.append(f"{key}: {value[:_SUMMARY_VALUE_LENGTH]}...")
        else:
            parts.append(f"{key}: {json.dumps(value, ensure_ascii=False)}")
    summary = ", ".join(parts)

    if len(keys) > _SUMMARY_KEYS:
        return f"{summary} (+{len(keys) - _SUMMARY_KEYS} more)"
    return summary


def extract_key_parameters(parameters: Mapping[str, Any], key_fields: Iterable[str]) -> Dict[str, Any]:
    """Pick ``key_fields`` out of ``parameters``, skipping absent ones."""
    return {
        field: parameters[field]
        for field in key_fields
        if parameters.get(field) is not None
    }
