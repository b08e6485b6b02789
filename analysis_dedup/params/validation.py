"""Validation of raw parameters before they are hashed or stored."""
from __future__ import annotations

import json
from typing import Any, List, Mapping

from analysis_dedup.errors import ValidationError

MAX_PARAMETER_BYTES = 1_000_000


def validate_parameters(parameters: Any, max_bytes: int = MAX_PARAMETER_BYTES) -> List[str]:
    """Return a list of problems with ``parameters``; empty when valid."""
    errors: List[str] = []

    if not isinstance(parameters, Mapping):
        errors.append("Parameters must be an object")
        return errors

    try:
        encoded = json.dumps(parameters, allow_nan=False)
    except ValueError as e:
        if "ircular" in str(e):
            errors.append("Parameters contain circular references")
        else:
            errors.append("Parameters contain non-finite numbers")
        return errors
    except TypeError as e:
        errors.append(f"Parameters contain non-serializable values: {e}")
        return errors
    except RecursionError:
        errors.append("Parameters are nested too deeply")
        return errors

    size = len(encoded.encode("utf-8"))
    if size > max_bytes:
        errors.append(f"Parameters are too large ({size} bytes, max {max_bytes})")

    return errors


def ensure_valid_parameters(parameters: Any, max_bytes: int = MAX_PARAMETER_BYTES) -> None:
    """Raise ``ValidationError`` unless ``parameters`` can be hashed and stored."""
    errors = validate_parameters(parameters, max_bytes=max_bytes)
    if errors:
        raise ValidationError(errors)
