"""Pytest configuration and fixtures for analysis-dedup tests."""

import pytest
import pytest_asyncio
from datetime import timedelta
from typing import Any, Dict

# Add the project root to the Python path
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from analysis_dedup.config import Config
from analysis_dedup.dedup.service import DedupService
from analysis_dedup.models import AnalysisRecord, AnalysisRequest, utcnow
from analysis_dedup.params.canonical import normalize_parameters
from analysis_dedup.params.hashing import generate_parameter_hash
from analysis_dedup.store.memory_store import MemoryRecordStore


@pytest.fixture
def test_config():
    """Configuration with defaults, isolated from any local .env file."""
    return Config(_env_file=None)


@pytest.fixture
def swot_parameters() -> Dict[str, Any]:
    """Sample SWOT parameters."""
    return {"companyName": "Acme Inc", "industry": "Tech"}


@pytest.fixture
def swot_request(swot_parameters):
    """Sample SWOT analysis request."""
    return AnalysisRequest(
        user_id="u1",
        tool_slug="swot",
        tool_name="SWOT Analysis",
        analysis_type="swot",
        parameters=swot_parameters,
    )


@pytest.fixture
def sample_result():
    """Sample generated analysis payload."""
    return {
        "strengths": ["Brand"],
        "weaknesses": ["Scale"],
        "opportunities": ["Export"],
        "threats": ["Competition"],
    }


@pytest.fixture
def sample_metadata():
    """Sample generation metadata."""
    return {"processing_time": 1200, "tokens_used": 640, "model": "gemini", "cost": 0.00064}


@pytest_asyncio.fixture
async def memory_store():
    """Empty in-memory record store."""
    store = MemoryRecordStore(name="test_memory")
    yield store
    await store.close()


@pytest.fixture
def service(memory_store, test_config):
    """Dedup service over an in-memory store."""
    return DedupService(memory_store, test_config)


def make_record(
    parameters: Dict[str, Any],
    user_id: str = "u1",
    tool_slug: str = "swot",
    is_duplicate: bool = False,
    age_days: float = 0,
    **overrides,
) -> AnalysisRecord:
    """Build an analysis record the way the service would persist it."""
    created = utcnow() - timedelta(days=age_days)
    fields = dict(
        user_id=user_id,
        tool_slug=tool_slug,
        tool_name=tool_slug.upper(),
        analysis_type=tool_slug,
        input_data=parameters,
        normalized_parameters=normalize_parameters(parameters),
        parameter_hash=generate_parameter_hash(parameters, tool_slug, user_id),
        result={"summary": "ok"},
        metadata={"tokens_used": 100, "cost": 0.0001},
        is_duplicate=is_duplicate,
        regeneration_count=1 if is_duplicate else 0,
        created_at=created,
        last_accessed_at=created,
    )
    fields.update(overrides)
    return AnalysisRecord(**fields)


@pytest.fixture
def record_factory():
    """Expose ``make_record`` to tests."""
    return make_record
