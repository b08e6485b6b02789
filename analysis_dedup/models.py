"""Data classes for analysis requests and persisted analysis records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from analysis_dedup.params.hashing import ANONYMOUS_SCOPE


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AnalysisStatus(Enum):
    """Lifecycle status of an analysis record."""

    COMPLETED = "completed"
    FAILED = "failed"
    PROCESSING = "processing"


@dataclass(frozen=True)
class AnalysisRequest:
    """A single request for an analysis, built per call.

    Attributes:
        user_id: Owner of the request; scopes hashing and lookups.
        tool_slug: Identifier of the generation routine.
        tool_name: Display label of the tool.
        analysis_type: Classification tag of the analysis.
        parameters: Free-form parameter tree; the semantic payload.
        is_anonymous: Whether the request was made without an account.
    """

    user_id: Optional[str]
    tool_slug: str
    tool_name: str = ""
    analysis_type: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    is_anonymous: bool = False

    @property
    def scope_user(self) -> str:
        """User component of the hash scope."""
        return self.user_id or ANONYMOUS_SCOPE


@dataclass
class AnalysisRecord:
    """The persisted unit of a generated analysis.

    Only ``access_count`` and ``last_accessed_at`` change after creation.
    """

    user_id: str
    tool_slug: str
    tool_name: str
    analysis_type: str
    input_data: Dict[str, Any]
    normalized_parameters: Dict[str, Any]
    parameter_hash: str
    result: Any
    metadata: Dict[str, Any] = field(default_factory=dict)
    status: AnalysisStatus = AnalysisStatus.COMPLETED
    is_anonymous: bool = False
    is_duplicate: bool = False
    original_analysis_id: Optional[str] = None
    regeneration_count: int = 0
    access_count: int = 1
    created_at: datetime = field(default_factory=utcnow)
    last_accessed_at: datetime = field(default_factory=utcnow)
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation used by the persistent stores."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "tool_slug": self.tool_slug,
            "tool_name": self.tool_name,
            "analysis_type": self.analysis_type,
            "input_data": self.input_data,
            "normalized_parameters": self.normalized_parameters,
            "parameter_hash": self.parameter_hash,
            "result": self.result,
            "metadata": self.metadata,
            "status": self.status.value,
            "is_anonymous": self.is_anonymous,
            "is_duplicate": self.is_duplicate,
            "original_analysis_id": self.original_analysis_id,
            "regeneration_count": self.regeneration_count,
            "access_count": self.access_count,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisRecord":
        """Rebuild a record from :meth:`to_dict` output."""
        return cls(
            id=data.get("id"),
            user_id=data["user_id"],
            tool_slug=data["tool_slug"],
            tool_name=data.get("tool_name", ""),
            analysis_type=data.get("analysis_type", ""),
            input_data=data.get("input_data") or {},
            normalized_parameters=data.get("normalized_parameters") or {},
            parameter_hash=data["parameter_hash"],
            result=data.get("result"),
            metadata=data.get("metadata") or {},
            status=AnalysisStatus(data.get("status", AnalysisStatus.COMPLETED.value)),
            is_anonymous=bool(data.get("is_anonymous", False)),
            is_duplicate=bool(data.get("is_duplicate", False)),
            original_analysis_id=data.get("original_analysis_id"),
            regeneration_count=int(data.get("regeneration_count", 0)),
            access_count=int(data.get("access_count", 1)),
            created_at=_parse_datetime(data["created_at"]),
            last_accessed_at=_parse_datetime(data.get("last_accessed_at") or data["created_at"]),
        )


@dataclass
class CachedResult:
    """Payload handed back when a user reuses a prior analysis."""

    result: Any
    metadata: Dict[str, Any]
    created_at: datetime
    is_duplicate: bool
    original_analysis_id: Optional[str] = None
