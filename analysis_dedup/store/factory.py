"""Record store selection with start-up fallback."""

from enum import Enum
from typing import Any, Dict, List, Optional

from analysis_dedup.errors import StoreUnavailableError
from analysis_dedup.utils.logger import log_info, log_warning, log_error
from .base import RecordStore
from .redis_store import RedisRecordStore, REDIS_AVAILABLE
from .file_store import FileRecordStore
from .memory_store import MemoryRecordStore


class StoreBackendType(Enum):
    """Record store backend types."""

    REDIS = "redis"
    FILE = "file"
    MEMORY = "memory"


# Backends tried, in order, when the configured one cannot be used.
_FALLBACK_CHAIN = {
    StoreBackendType.REDIS.value: [StoreBackendType.FILE.value, StoreBackendType.MEMORY.value],
    StoreBackendType.FILE.value: [StoreBackendType.MEMORY.value],
    StoreBackendType.MEMORY.value: [],
}


async def _create_backend(backend_type: str, settings: Dict[str, Any]) -> Optional[RecordStore]:
    """Create a record store of the given type, or ``None`` if unusable."""
    try:
        if backend_type == StoreBackendType.REDIS.value:
            if not REDIS_AVAILABLE:
                log_warning("Redis not available, redis package not installed")
                return None

            redis_url = settings.get("redis_url", "redis://localhost:6379")
            store = RedisRecordStore(
                redis_url=redis_url,
                key_prefix=settings.get("key_prefix", "analysis-dedup:"),
            )

            # Test connection
            if await store._ensure_connected():
                log_info("Redis record store created successfully")
                return store

            log_warning("Redis connection failed")
            await store.close()
            return None

        elif backend_type == StoreBackendType.FILE.value:
            file_path = settings.get("file_path", ".dedup_cache/records.json")
            store = FileRecordStore(file_path=file_path)
            log_info("File record store created successfully", file_path=file_path)
            return store

        elif backend_type == StoreBackendType.MEMORY.value:
            log_info("Memory record store created successfully")
            return MemoryRecordStore()

        log_error("Unknown record store backend type", backend_type=backend_type)
        return None

    except StoreUnavailableError as e:
        log_error(
            "Failed to create record store",
            backend_type=backend_type,
            error=str(e),
        )
        return None


async def create_record_store(settings: Dict[str, Any]) -> RecordStore:
    """Build the configured record store, falling back when it is unusable.

    Args:
        settings: Store section of the configuration, see
            ``Config.store_settings()``.

    Raises:
        StoreUnavailableError: if no backend in the fallback chain works.
    """
    backend_type = settings.get("backend", StoreBackendType.MEMORY.value).lower()
    log_info("Initializing record store", backend_type=backend_type)

    attempts: List[str] = [backend_type] + _FALLBACK_CHAIN.get(backend_type, [])
    for attempt in attempts:
        store = await _create_backend(attempt, settings)
        if store is None:
            continue
        if attempt != backend_type:
            log_warning(
                "Using fallback record store",
                backend=store.name,
                primary_failed=backend_type,
            )
        return store

    raise StoreUnavailableError(f"No record store backend available (tried {attempts})")
