"""Duplicate detection and result reuse for analysis requests.

Detection runs as a chain-of-responsibility, ordered from cheapest to most
expensive strategy; ``DedupService`` wraps it with the save, reuse,
regenerate and retention operations.
"""

from analysis_dedup.dedup.result import DuplicateCheckResult
from analysis_dedup.dedup.detector import DuplicateDetector
from analysis_dedup.dedup.service import DedupService

__all__ = ["DuplicateCheckResult", "DuplicateDetector", "DedupService"]
