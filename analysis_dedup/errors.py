"""Exception hierarchy for the dedup engine.

Reads against the record store fail open (``StoreUnavailableError`` is
caught by the detection chain), writes fail closed (``PersistenceError``
always reaches the caller).
"""

from typing import List, Optional


class DedupError(Exception):
    """Base class for all dedup engine errors."""

    def __init__(self, message: str = "Dedup engine error"):
        self.message = message
        super().__init__(self.message)


class ValidationError(DedupError):
    """Raised when request parameters cannot be hashed or stored."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid parameters: " + "; ".join(self.errors))


class NotFoundError(DedupError):
    """Raised when an analysis record does not exist."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Analysis not found: {record_id}")


class AuthorizationError(DedupError):
    """Raised when a user asks for a record owned by someone else."""

    def __init__(self, record_id: str, user_id: str):
        self.record_id = record_id
        self.user_id = user_id
        super().__init__(f"Access denied to analysis {record_id}")


class StoreError(DedupError):
    """Base class for record store failures."""


class StoreUnavailableError(StoreError):
    """Raised by a record store when its backing I/O fails."""

    def __init__(self, message: str = "Record store unavailable", backend: Optional[str] = None):
        self.backend = backend
        super().__init__(message)


class PersistenceError(DedupError):
    """Raised when an analysis result could not be persisted."""

    def __init__(self, message: str = "Failed to save analysis result"):
        super().__init__(message)
