"""Secure logging utilities for the dedup engine.

Provides sanitized logging that removes sensitive information like tokens,
emails, and API keys before outputting to logs. Analysis parameters are
user-supplied free text, so anything echoed into log context goes through
the same redaction.
"""
import json
import logging
import re
from typing import Any, Dict, Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger('analysis-dedup')

# Applied in order. Pure hex strings (record ids, parameter hashes) are left
# readable; long alphanumeric runs with other letters are treated as secrets.
_REDACTIONS = [
    (re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}'), '<email>'),
    (re.compile(r'sk-[a-zA-Z0-9]{20,}'), '<api-key>'),
    (re.compile(r'ghp_[a-zA-Z0-9]{36}'), '<github-token>'),
    (re.compile(r'\b(?=[a-zA-Z0-9]*[g-zG-Z])[a-zA-Z0-9]{32,}\b'), '<token>'),
    (re.compile(r'(?:https?|rediss?)://[^\s"]+'), '<url>'),
    (re.compile(r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}', re.IGNORECASE), '<uuid>'),
]


def configure_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """Apply level and format settings to the package logger."""
    logger.setLevel(level.upper())
    if fmt:
        formatter = logging.Formatter(fmt, datefmt='%Y-%m-%d %H:%M:%S')
        for handler in logging.getLogger().handlers:
            handler.setFormatter(formatter)


def sanitize_text(text: str) -> str:
    """Remove sensitive information from text.

    Args:
        text: Input text that may contain sensitive data

    Returns:
        Sanitized text with sensitive patterns replaced
    """
    if not text:
        return text
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def safe_json(obj: Any, max_length: int = 1000) -> str:
    """Serialize log context to sanitized JSON, truncated to ``max_length``."""
    try:
        json_str = json.dumps(obj, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError, RecursionError):
        return "<unable to serialize>"

    sanitized = sanitize_text(json_str)
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "... [truncated]"
    return sanitized


def _emit(level: int, message: str, context: Dict[str, Any]) -> None:
    if context:
        message = f"{message} | Context: {safe_json(context)}"
    logger.log(level, message)


def log_info(message: str, **kwargs) -> None:
    """Log info message with optional sanitized context."""
    _emit(logging.INFO, message, kwargs)


def log_warning(message: str, **kwargs) -> None:
    """Log warning message with optional sanitized context."""
    _emit(logging.WARNING, message, kwargs)


def log_error(message: str, **kwargs) -> None:
    """Log error message with optional sanitized context."""
    _emit(logging.ERROR, message, kwargs)


def log_debug(message: str, **kwargs) -> None:
    """Log debug message with optional sanitized context."""
    _emit(logging.DEBUG, message, kwargs)


def log_duplicate_detection(similarity: float, existing_id: Optional[str], **kwargs) -> None:
    """Log a positive duplicate check.

    Args:
        similarity: Similarity score of the match
        existing_id: Id of the matched analysis record
        **kwargs: Additional context, e.g. the strategy that matched
    """
    log_info("Duplicate analysis detected",
             similarity=round(similarity, 4),
             existing_analysis=existing_id,
             **kwargs)


def log_store_operation(operation: str, backend: str, **kwargs) -> None:
    """Log record store operations at debug level."""
    log_debug(f"Store operation: {operation}", backend=backend, **kwargs)
