"""Redis-based shared record store.

Layout, all keys under ``key_prefix``:

* ``record:<id>``                     hash: ``data`` JSON, ``access_count``, ``last_accessed_at``
* ``user:<user>``                     zset of record ids scored by creation time
* ``user:<user>:tool:<slug>``         same, per tool
* ``user:<user>:hash:<hash>``         same, per parameter hash
* ``user:<user>:duplicates``          same, duplicate-flagged records only
"""

import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from analysis_dedup.errors import StoreUnavailableError
from analysis_dedup.models import AnalysisRecord, utcnow
from analysis_dedup.utils.logger import log_store_operation
from .base import RecordStore, StoreStats

try:
    import redis.asyncio as aioredis
    from redis.exceptions import RedisError
    REDIS_AVAILABLE = True
except ImportError:
    REDIS_AVAILABLE = False

# Candidate scan window per requested candidate.
_CANDIDATE_SCAN_FACTOR = 5


class RedisRecordStore(RecordStore):
    """Redis-backed record store shared by every engine instance."""

    def __init__(self, redis_url: str = "redis://localhost:6379",
                 key_prefix: str = "analysis-dedup:", name: str = "redis"):
        super().__init__(name)

        if not REDIS_AVAILABLE:
            raise ImportError("redis is required for the Redis record store")

        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.redis = None
        self._connected = False

    async def _ensure_connected(self) -> bool:
        """Ensure Redis connection is established."""
        if self._connected and self.redis:
            try:
                await self.redis.ping()
                return True
            except (RedisError, OSError):
                self._connected = False

        try:
            self.redis = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            await self.redis.ping()
            self._connected = True
            return True

        except (RedisError, OSError):
            self._connected = False
            self._record_error()
            return False

    async def _client(self):
        if not await self._ensure_connected():
            raise StoreUnavailableError(f"Redis not reachable at {self.redis_url}", backend=self.name)
        return self.redis

    def _unavailable(self, operation: str, error: Exception) -> StoreUnavailableError:
        self._record_error()
        return StoreUnavailableError(f"Redis {operation} failed: {error}", backend=self.name)

    # Key helpers. Components are percent-encoded so a ":" inside a user id
    # or tool slug cannot alias another index key.

    @staticmethod
    def _part(value: str) -> str:
        return quote(str(value), safe="")

    def _record_key(self, record_id: str) -> str:
        return f"{self.key_prefix}record:{self._part(record_id)}"

    def _user_key(self, user_id: str) -> str:
        return f"{self.key_prefix}user:{self._part(user_id)}"

    def _tool_key(self, user_id: str, tool_slug: str) -> str:
        return f"{self._user_key(user_id)}:tool:{self._part(tool_slug)}"

    def _hash_key(self, user_id: str, parameter_hash: str) -> str:
        return f"{self._user_key(user_id)}:hash:{self._part(parameter_hash)}"

    def _duplicates_key(self, user_id: str) -> str:
        return f"{self._user_key(user_id)}:duplicates"

    @staticmethod
    def _decode(fields: Dict[str, str]) -> Optional[AnalysisRecord]:
        if not fields or "data" not in fields:
            return None
        data = json.loads(fields["data"])
        data["access_count"] = int(fields.get("access_count", data.get("access_count", 1)))
        data["last_accessed_at"] = fields.get("last_accessed_at", data.get("last_accessed_at"))
        return AnalysisRecord.from_dict(data)

    async def _load_many(self, client, record_ids: List[str]) -> List[AnalysisRecord]:
        if not record_ids:
            return []
        pipe = client.pipeline(transaction=False)
        for record_id in record_ids:
            pipe.hgetall(self._record_key(record_id))
        rows = await pipe.execute()
        return [record for record in (self._decode(row) for row in rows) if record is not None]

    # Store operations

    async def find_by_parameter_hash(self, user_id: str, parameter_hash: str) -> Optional[AnalysisRecord]:
        """Get the newest record of the user with the hash."""
        client = await self._client()
        try:
            ids = await client.zrevrange(self._hash_key(user_id, parameter_hash), 0, 0)
            records = await self._load_many(client, ids)
        except (RedisError, OSError) as e:
            raise self._unavailable("find_by_parameter_hash", e) from e
        records = [r for r in records if r.user_id == user_id]

        if records:
            self._record_hit()
            return records[0]
        self._record_miss()
        return None

    async def find_candidates(self, user_id: str, tool_slug: str,
                              canonical_params: Dict[str, Any], limit: int = 10) -> List[AnalysisRecord]:
        """Get recent overlapping records of the user for the tool."""
        client = await self._client()
        window = max(limit, 1) * _CANDIDATE_SCAN_FACTOR
        try:
            ids = await client.zrevrange(self._tool_key(user_id, tool_slug), 0, window - 1)
            records = await self._load_many(client, ids)
        except (RedisError, OSError) as e:
            raise self._unavailable("find_candidates", e) from e
        records = [r for r in records if r.user_id == user_id and r.tool_slug == tool_slug]
        return self._select_candidates(records, canonical_params, limit)

    async def get_by_id(self, record_id: str) -> Optional[AnalysisRecord]:
        """Get record by id."""
        client = await self._client()
        try:
            fields = await client.hgetall(self._record_key(record_id))
        except (RedisError, OSError) as e:
            raise self._unavailable("get_by_id", e) from e

        record = self._decode(fields)
        if record is None:
            self._record_miss()
        else:
            self._record_hit()
        return record

    async def insert(self, record: AnalysisRecord) -> str:
        """Write the record and its index entries in one transaction."""
        client = await self._client()
        record_id = record.id or uuid.uuid4().hex
        data = record.to_dict()
        data["id"] = record_id
        score = record.created_at.timestamp()

        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.hset(self._record_key(record_id), mapping={
                    "data": json.dumps(data, ensure_ascii=False),
                    "access_count": record.access_count,
                    "last_accessed_at": record.last_accessed_at.isoformat(),
                })
                pipe.zadd(self._user_key(record.user_id), {record_id: score})
                pipe.zadd(self._tool_key(record.user_id, record.tool_slug), {record_id: score})
                pipe.zadd(self._hash_key(record.user_id, record.parameter_hash), {record_id: score})
                if record.is_duplicate:
                    pipe.zadd(self._duplicates_key(record.user_id), {record_id: score})
                await pipe.execute()
        except (RedisError, OSError) as e:
            raise self._unavailable("insert", e) from e

        log_store_operation("insert", self.name, record_id=record_id)
        return record_id

    async def bump_access(self, record_id: str) -> None:
        """Atomically increment the access count of an existing record."""
        client = await self._client()
        key = self._record_key(record_id)
        try:
            if not await client.exists(key):
                return
            async with client.pipeline(transaction=True) as pipe:
                pipe.hincrby(key, "access_count", 1)
                pipe.hset(key, "last_accessed_at", utcnow().isoformat())
                await pipe.execute()
        except (RedisError, OSError) as e:
            raise self._unavailable("bump_access", e) from e

    async def delete_where(self, user_id: str, is_duplicate: bool = True,
                           created_before: Optional[datetime] = None) -> int:
        """Delete old duplicate records of the user and their index entries."""
        self._check_delete_filter(is_duplicate)
        client = await self._client()
        upper = f"({created_before.timestamp()}" if created_before else "+inf"

        try:
            ids = await client.zrangebyscore(self._duplicates_key(user_id), "-inf", upper)
            records = await self._load_many(client, ids)
            doomed = [r for r in records if self._matches_delete(r, user_id, created_before)]
            if not doomed:
                return 0

            async with client.pipeline(transaction=True) as pipe:
                for record in doomed:
                    pipe.delete(self._record_key(record.id))
                    pipe.zrem(self._user_key(user_id), record.id)
                    pipe.zrem(self._tool_key(user_id, record.tool_slug), record.id)
                    pipe.zrem(self._hash_key(user_id, record.parameter_hash), record.id)
                    pipe.zrem(self._duplicates_key(user_id), record.id)
                await pipe.execute()
        except (RedisError, OSError) as e:
            raise self._unavailable("delete_where", e) from e

        log_store_operation("delete_where", self.name, removed=len(doomed))
        return len(doomed)

    async def list_for_user(self, user_id: str, is_duplicate: Optional[bool] = None) -> List[AnalysisRecord]:
        """List records of the user, newest first."""
        client = await self._client()
        index = self._duplicates_key(user_id) if is_duplicate else self._user_key(user_id)
        try:
            ids = await client.zrevrange(index, 0, -1)
            records = await self._load_many(client, ids)
        except (RedisError, OSError) as e:
            raise self._unavailable("list_for_user", e) from e
        records = [r for r in records if r.user_id == user_id]

        if is_duplicate is False:
            return [r for r in records if not r.is_duplicate]
        return records

    def get_stats(self) -> Dict[str, Any]:
        """Get Redis store statistics."""
        stats = StoreStats()
        stats.hits = self.hits
        stats.misses = self.misses
        stats.errors = self.errors

        # Size needs a key scan, which is too expensive for a stats call
        return {
            **stats.to_dict(),
            "backend": self.name,
            "redis_url": self.redis_url,
            "connected": self._connected,
            "key_prefix": self.key_prefix,
        }

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis:
            try:
                await self.redis.aclose()
            except (RedisError, OSError):
                self._record_error()
            finally:
                self.redis = None
                self._connected = False

    async def clear(self) -> int:
        """Delete every key under the prefix and return how many were removed."""
        client = await self._client()
        removed = 0
        try:
            async for key in client.scan_iter(match=f"{self.key_prefix}*", count=100):
                removed += await client.delete(key)
        except (RedisError, OSError) as e:
            raise self._unavailable("clear", e) from e
        return removed
