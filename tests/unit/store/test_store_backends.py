"""Unit tests for record store backends."""

import pytest
import pytest_asyncio
import json
import os
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from analysis_dedup.errors import StoreUnavailableError
from analysis_dedup.models import AnalysisStatus, utcnow
from analysis_dedup.params.canonical import normalize_parameters
from analysis_dedup.store.factory import StoreBackendType, create_record_store
from analysis_dedup.store.file_store import FileRecordStore
from analysis_dedup.store.memory_store import MemoryRecordStore
from analysis_dedup.store.redis_store import RedisRecordStore, REDIS_AVAILABLE


@pytest_asyncio.fixture(params=["memory", "file"])
async def store(request, tmp_path):
    """Each local backend, empty."""
    if request.param == "memory":
        backend = MemoryRecordStore(name="test_memory")
    else:
        backend = FileRecordStore(file_path=str(tmp_path / "records.json"), name="test_file")
    yield backend
    await backend.close()


class TestRecordStoreContract:
    """Behaviour every backend must share."""

    @pytest.mark.asyncio
    async def test_insert_and_get_by_id(self, store, record_factory):
        record = record_factory({"companyName": "Acme"})

        record_id = await store.insert(record)
        assert record_id

        loaded = await store.get_by_id(record_id)
        assert loaded.id == record_id
        assert loaded.user_id == "u1"
        assert loaded.tool_slug == "swot"
        assert loaded.input_data == {"companyName": "Acme"}
        assert loaded.normalized_parameters == {"companyName": "acme"}
        assert loaded.parameter_hash == record.parameter_hash
        assert loaded.status == AnalysisStatus.COMPLETED
        assert loaded.access_count == 1
        assert loaded.created_at == record.created_at

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get_by_id("nope") is None
        assert store.misses == 1

    @pytest.mark.asyncio
    async def test_find_by_parameter_hash_returns_newest(self, store, record_factory):
        await store.insert(record_factory({"companyName": "Acme"}, age_days=2, result={"v": "old"}))
        newest_id = await store.insert(record_factory({"companyName": "Acme"}, result={"v": "new"}))

        found = await store.find_by_parameter_hash("u1", record_factory({"companyName": "Acme"}).parameter_hash)
        assert found.id == newest_id
        assert found.result == {"v": "new"}
        assert store.hits == 1

    @pytest.mark.asyncio
    async def test_find_by_parameter_hash_is_scoped_to_user(self, store, record_factory):
        record = record_factory({"companyName": "Acme"})
        await store.insert(record)

        assert await store.find_by_parameter_hash("u2", record.parameter_hash) is None
        assert await store.find_by_parameter_hash("u1", "0" * 64) is None

    @pytest.mark.asyncio
    async def test_find_candidates_filters(self, store, record_factory):
        match_id = await store.insert(record_factory({"a": 1, "b": 2}))
        await store.insert(record_factory({"a": 9}))
        await store.insert(record_factory({"a": 1}, tool_slug="pestel"))
        await store.insert(record_factory({"a": 1}, user_id="u2"))

        candidates = await store.find_candidates("u1", "swot", normalize_parameters({"a": 1, "b": 3}))
        assert [c.id for c in candidates] == [match_id]

    @pytest.mark.asyncio
    async def test_find_candidates_limit_newest_first(self, store, record_factory):
        ids = []
        for age in range(5):
            ids.append(await store.insert(record_factory({"a": 1, "n": age}, age_days=age)))

        candidates = await store.find_candidates("u1", "swot", {"a": 1}, limit=3)
        assert [c.id for c in candidates] == ids[:3]

    @pytest.mark.asyncio
    async def test_bump_access(self, store, record_factory):
        record = record_factory({"a": 1}, age_days=1)
        record_id = await store.insert(record)

        await store.bump_access(record_id)
        await store.bump_access(record_id)

        loaded = await store.get_by_id(record_id)
        assert loaded.access_count == 3
        assert loaded.last_accessed_at > record.last_accessed_at

    @pytest.mark.asyncio
    async def test_bump_access_missing_is_noop(self, store):
        await store.bump_access("nope")

    @pytest.mark.asyncio
    async def test_delete_where_only_removes_old_duplicates(self, store, record_factory):
        old_dup = await store.insert(record_factory({"a": 1}, is_duplicate=True, age_days=40))
        new_dup = await store.insert(record_factory({"a": 1}, is_duplicate=True, age_days=1))
        old_original = await store.insert(record_factory({"a": 1}, age_days=40))
        other_user = await store.insert(record_factory({"a": 1}, user_id="u2", is_duplicate=True, age_days=40))

        removed = await store.delete_where("u1", is_duplicate=True, created_before=utcnow() - timedelta(days=30))

        assert removed == 1
        assert await store.get_by_id(old_dup) is None
        for record_id in (new_dup, old_original, other_user):
            assert await store.get_by_id(record_id) is not None

    @pytest.mark.asyncio
    async def test_delete_where_refuses_originals(self, store, record_factory):
        record_id = await store.insert(record_factory({"a": 1}, age_days=40))

        with pytest.raises(ValueError):
            await store.delete_where("u1", is_duplicate=False)

        assert await store.get_by_id(record_id) is not None

    @pytest.mark.asyncio
    async def test_list_for_user(self, store, record_factory):
        older = await store.insert(record_factory({"a": 1}, age_days=3))
        dup = await store.insert(record_factory({"a": 1}, is_duplicate=True, age_days=1))
        await store.insert(record_factory({"a": 1}, user_id="u2"))

        assert [r.id for r in await store.list_for_user("u1")] == [dup, older]
        assert [r.id for r in await store.list_for_user("u1", is_duplicate=True)] == [dup]
        assert [r.id for r in await store.list_for_user("u1", is_duplicate=False)] == [older]
        assert await store.list_for_user("nobody") == []

    @pytest.mark.asyncio
    async def test_stats(self, store, record_factory):
        await store.insert(record_factory({"a": 1}))
        await store.insert(record_factory({"a": 2}, is_duplicate=True))
        await store.get_by_id("nope")

        stats = store.get_stats()
        assert stats["size"] == 2
        assert stats["duplicates"] == 1
        assert stats["misses"] == 1
        assert stats["backend"] == store.name
        assert stats["oldest_entry"] is not None


class TestMemoryRecordStore:
    """Memory-specific behaviour."""

    @pytest.mark.asyncio
    async def test_returns_copies(self, memory_store, record_factory):
        record_id = await memory_store.insert(record_factory({"a": 1}))

        loaded = await memory_store.get_by_id(record_id)
        loaded.access_count = 99

        assert (await memory_store.get_by_id(record_id)).access_count == 1

    @pytest.mark.asyncio
    async def test_insert_copies_nested_values(self, memory_store, record_factory):
        parameters = {"competitors": ["Initech"], "meta": {"region": "eu"}}
        record = record_factory(parameters)
        record_id = await memory_store.insert(record)

        parameters["competitors"].append("Globex")
        parameters["meta"]["region"] = "us"
        record.result["summary"] = "changed"

        stored = await memory_store.get_by_id(record_id)
        assert stored.input_data == {"competitors": ["Initech"], "meta": {"region": "eu"}}
        assert stored.result == {"summary": "ok"}

    @pytest.mark.asyncio
    async def test_returned_nested_values_are_copies(self, memory_store, record_factory):
        record_id = await memory_store.insert(record_factory({"competitors": ["Initech"]}))

        loaded = await memory_store.get_by_id(record_id)
        loaded.input_data["competitors"].append("Globex")
        loaded.metadata["tokens_used"] = 0

        stored = await memory_store.get_by_id(record_id)
        assert stored.input_data == {"competitors": ["Initech"]}
        assert stored.metadata["tokens_used"] == 100

    @pytest.mark.asyncio
    async def test_close_clears(self, memory_store, record_factory):
        await memory_store.insert(record_factory({"a": 1}))
        await memory_store.close()
        assert memory_store.get_stats()["size"] == 0


class TestFileRecordStore:
    """File-specific behaviour."""

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path, record_factory):
        path = str(tmp_path / "records.json")
        first = FileRecordStore(file_path=path)
        record_id = await first.insert(record_factory({"companyName": "Acme"}))
        await first.bump_access(record_id)

        second = FileRecordStore(file_path=path)
        loaded = await second.get_by_id(record_id)

        assert loaded is not None
        assert loaded.input_data == {"companyName": "Acme"}
        assert loaded.access_count == 2

    @pytest.mark.asyncio
    async def test_document_layout(self, tmp_path, record_factory):
        path = tmp_path / "nested" / "records.json"
        store = FileRecordStore(file_path=str(path))
        record_id = await store.insert(record_factory({"a": 1}))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert list(data["records"]) == [record_id]
        assert data["records"][record_id]["status"] == "completed"
        assert not os.path.exists(str(path) + ".tmp")

    def test_corrupt_file_is_unavailable(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StoreUnavailableError):
            FileRecordStore(file_path=str(path))

    @pytest.mark.asyncio
    async def test_failed_write_rolls_back(self, tmp_path, record_factory):
        blocker = tmp_path / "blocker"
        blocker.write_text("x", encoding="utf-8")
        store = FileRecordStore(file_path=str(blocker / "records.json"))

        with pytest.raises(StoreUnavailableError):
            await store.insert(record_factory({"a": 1}))

        assert store.get_stats()["size"] == 0
        assert store.errors == 1

    @pytest.mark.asyncio
    async def test_failed_access_bump_rolls_back(self, tmp_path, record_factory, monkeypatch):
        path = tmp_path / "records.json"
        store = FileRecordStore(file_path=str(path))
        record_id = await store.insert(record_factory({"a": 1}))
        before = store.records[record_id]["last_accessed_at"]

        def disk_full():
            raise StoreUnavailableError("disk full", backend=store.name)

        monkeypatch.setattr(store, "_save_records", disk_full)

        with pytest.raises(StoreUnavailableError):
            await store.bump_access(record_id)

        assert (await store.get_by_id(record_id)).access_count == 1
        assert store.records[record_id]["last_accessed_at"] == before

    @pytest.mark.asyncio
    async def test_failed_delete_rolls_back(self, tmp_path, record_factory, monkeypatch):
        store = FileRecordStore(file_path=str(tmp_path / "records.json"))
        await store.insert(record_factory({"a": 1}, age_days=40))
        old_dup = await store.insert(record_factory({"a": 1}, is_duplicate=True, age_days=40))

        def disk_full():
            raise StoreUnavailableError("disk full", backend=store.name)

        monkeypatch.setattr(store, "_save_records", disk_full)

        with pytest.raises(StoreUnavailableError):
            await store.delete_where("u1", created_before=utcnow() - timedelta(days=30))

        assert store.get_stats()["size"] == 2
        assert (await store.get_by_id(old_dup)) is not None
        assert [r.id for r in await store.list_for_user("u1", is_duplicate=True)] == [old_dup]

    @pytest.mark.asyncio
    async def test_stats_include_disk_usage(self, tmp_path, record_factory):
        store = FileRecordStore(file_path=str(tmp_path / "records.json"))
        await store.insert(record_factory({"a": 1}))

        stats = store.get_stats()
        assert stats["disk_usage_bytes"] > 0
        assert stats["file_path"].endswith("records.json")


class TestStoreFactory:
    """Test backend selection and fallback."""

    @pytest.mark.asyncio
    async def test_memory_backend(self):
        store = await create_record_store({"backend": "memory"})
        assert isinstance(store, MemoryRecordStore)

    @pytest.mark.asyncio
    async def test_file_backend(self, tmp_path):
        store = await create_record_store({"backend": "file", "file_path": str(tmp_path / "r.json")})
        assert isinstance(store, FileRecordStore)

    @pytest.mark.asyncio
    async def test_corrupt_file_falls_back_to_memory(self, tmp_path):
        path = tmp_path / "r.json"
        path.write_text("{broken", encoding="utf-8")

        store = await create_record_store({"backend": StoreBackendType.FILE.value, "file_path": str(path)})
        assert isinstance(store, MemoryRecordStore)

    @pytest.mark.asyncio
    async def test_unreachable_redis_falls_back(self, tmp_path):
        store = await create_record_store({
            "backend": "redis",
            "redis_url": "redis://127.0.0.1:1",
            "file_path": str(tmp_path / "r.json"),
        })
        assert isinstance(store, FileRecordStore)

    @pytest.mark.asyncio
    async def test_unknown_backend(self):
        with pytest.raises(StoreUnavailableError):
            await create_record_store({"backend": "postgres"})


@pytest.mark.skipif(not REDIS_AVAILABLE, reason="redis package not installed")
class TestRedisKeyLayout:
    """Redis key naming and index filtering; no server needed."""

    @pytest.fixture
    def redis_store(self):
        return RedisRecordStore(key_prefix="p:")

    def test_plain_keys(self, redis_store):
        assert redis_store._user_key("u1") == "p:user:u1"
        assert redis_store._tool_key("u1", "swot") == "p:user:u1:tool:swot"
        assert redis_store._hash_key("u1", "abc") == "p:user:u1:hash:abc"
        assert redis_store._duplicates_key("u1") == "p:user:u1:duplicates"

    def test_separator_in_user_id_cannot_alias_another_index(self, redis_store):
        assert redis_store._user_key("a:tool:x") != redis_store._tool_key("a", "x")
        assert redis_store._user_key("a:duplicates") != redis_store._duplicates_key("a")
        assert redis_store._tool_key("a:hash:h", "x") != redis_store._tool_key("a", "x")
        assert redis_store._user_key("a:tool:x") == "p:user:a%3Atool%3Ax"

    @pytest.mark.asyncio
    async def test_index_reads_drop_other_users(self, redis_store, record_factory, monkeypatch):
        foreign = record_factory({"a": 1}, user_id="a", id="r1")
        client = MagicMock()
        client.zrevrange = AsyncMock(return_value=["r1"])
        monkeypatch.setattr(redis_store, "_client", AsyncMock(return_value=client))
        monkeypatch.setattr(redis_store, "_load_many", AsyncMock(return_value=[foreign]))

        assert await redis_store.list_for_user("a:tool:swot") == []
        assert await redis_store.find_by_parameter_hash("a:tool:swot", foreign.parameter_hash) is None
        assert await redis_store.find_candidates("a:tool:swot", "swot", {"a": 1}) == []
        assert [r.id for r in await redis_store.list_for_user("a")] == ["r1"]


@pytest.mark.integration
@pytest.mark.skipif(not REDIS_AVAILABLE, reason="redis package not installed")
class TestRedisRecordStore:
    """Redis backend against a live server; skipped when none is reachable."""

    @pytest_asyncio.fixture
    async def redis_store(self):
        store = RedisRecordStore(
            redis_url=os.getenv("DEDUP_TEST_REDIS_URL", "redis://localhost:6379"),
            key_prefix=f"analysis-dedup-test-{uuid.uuid4().hex[:8]}:",
        )
        if not await store._ensure_connected():
            await store.close()
            pytest.skip("Redis server not reachable")
        yield store
        await store.clear()
        await store.close()

    @pytest.mark.asyncio
    async def test_roundtrip_and_lookups(self, redis_store, record_factory):
        record = record_factory({"companyName": "Acme"})
        record_id = await redis_store.insert(record)

        assert (await redis_store.get_by_id(record_id)).input_data == {"companyName": "Acme"}
        found = await redis_store.find_by_parameter_hash("u1", record.parameter_hash)
        assert found.id == record_id

        candidates = await redis_store.find_candidates("u1", "swot", {"companyName": "acme"})
        assert [c.id for c in candidates] == [record_id]

    @pytest.mark.asyncio
    async def test_bump_access_and_cleanup(self, redis_store, record_factory):
        original = await redis_store.insert(record_factory({"a": 1}, age_days=40))
        old_dup = await redis_store.insert(record_factory({"a": 1}, is_duplicate=True, age_days=40))

        await redis_store.bump_access(original)
        assert (await redis_store.get_by_id(original)).access_count == 2

        removed = await redis_store.delete_where("u1", created_before=utcnow() - timedelta(days=30))
        assert removed == 1
        assert await redis_store.get_by_id(old_dup) is None
        assert [r.id for r in await redis_store.list_for_user("u1")] == [original]
