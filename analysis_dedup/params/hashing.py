"""Scoped content hashes of canonical parameters."""
from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping, Optional

from analysis_dedup.params.canonical import normalize_parameters

ANONYMOUS_SCOPE = "anonymous"


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys at every level and no insignificant whitespace."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def generate_parameter_hash(
    parameters: Mapping[str, Any],
    tool_slug: str,
    user_id: Optional[str] = None,
) -> str:
    """Return the SHA-256 hex digest of the parameters scoped to a tool and user.

    The tool slug and user id are part of the digest input, so identical
    parameters never share a hash across tools or users.
    """
    normalized = normalize_parameters(parameters)
    scope_string = f"{tool_slug}:{user_id or ANONYMOUS_SCOPE}:{canonical_json(normalized)}"
    return hashlib.sha256(scope_string.encode("utf-8")).hexdigest()


def short_hash(parameter_hash: str) -> str:
    """Shorten a parameter hash for log context."""
    return (parameter_hash or "")[:12]
