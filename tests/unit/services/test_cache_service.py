"""Unit tests for the tiered lookup orchestrator."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from placecache.core.exceptions import OriginError, OriginRateLimited, StoreUnavailable
from placecache.models.requests import PlaceQuery
from placecache.models.responses import Provenance
from placecache.services.cache_service import PlaceCacheService
from placecache.utils.cache import KeyValueStore
from placecache.utils.memory_manager import MemoryStore

KEY = "attractions:hotels:pakistan"


class CountingFetch:
    """Origin fetch double returning a fixed dataset."""

    def __init__(self, data=None, error=None):
        self.data = data or []
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.data)


class PageWriteFailingStore(KeyValueStore):
    """Every single-key SET fails; reads and batches work."""

    async def set_json(self, key, value, ttl=None):
        raise StoreUnavailable("SET", key, ConnectionError("read only replica"))


class TestGetPage:
    @pytest.mark.asyncio
    async def test_origin_then_page_cache_then_chunk_store(self, service, records):
        fetch = CountingFetch(records(45))

        first = await service.get_page(KEY, 1, 20, fetch)
        again = await service.get_page(KEY, 1, 20, fetch)
        other = await service.get_page(KEY, 2, 20, fetch)

        assert first.provenance is Provenance.ORIGIN
        assert again.provenance is Provenance.PAGE_CACHE
        assert other.provenance is Provenance.CHUNK_STORE
        assert fetch.calls == 1
        assert first.items == again.items == records(45)[0:20]
        assert other.items == records(45)[20:40]

    @pytest.mark.asyncio
    async def test_chunk_store_hit_backfills_page_cache(self, service, records):
        await service.chunk_store.put_dataset(KEY, records(45))
        fetch = CountingFetch()

        first = await service.get_page(KEY, 3, 20, fetch)
        second = await service.get_page(KEY, 3, 20, fetch)

        assert first.provenance is Provenance.CHUNK_STORE
        assert second.provenance is Provenance.PAGE_CACHE
        assert len(second.items) == 5
        assert second.pagination.has_next_page is False
        assert fetch.calls == 0

    @pytest.mark.asyncio
    async def test_legacy_blob_is_migrated(self, service, memory_store, records):
        data = records(45)
        await memory_store.set_json(KEY, data)
        fetch = CountingFetch()

        result = await service.get_page(KEY, 2, 20, fetch)

        assert result.provenance is Provenance.LEGACY_MIGRATED
        assert result.items == data[20:40]
        assert await service.migration.read_legacy(KEY) is None
        assert (await service.chunk_store.get_metadata(KEY)).total_items == 45
        nxt = await service.get_page(KEY, 1, 20, fetch)
        assert nxt.provenance is Provenance.CHUNK_STORE
        assert fetch.calls == 0

    @pytest.mark.asyncio
    async def test_same_page_from_every_tier(self, settings, records):
        data = records(45)
        expected = data[20:40]

        async def page_from(prepare):
            store = KeyValueStore(MemoryStore(), backend="memory")
            service = PlaceCacheService(store, settings)
            await prepare(service, store)
            return await service.get_page(KEY, 2, 20, CountingFetch(data))

        async def nothing(service, store):
            pass

        async def chunked(service, store):
            await service.chunk_store.put_dataset(KEY, data)

        async def legacy(service, store):
            await store.set_json(KEY, data)

        async def paged(service, store):
            await service.get_page(KEY, 2, 20, CountingFetch(data))

        results = [await page_from(p) for p in (nothing, chunked, legacy, paged)]

        assert [r.provenance for r in results] == [
            Provenance.ORIGIN, Provenance.CHUNK_STORE, Provenance.LEGACY_MIGRATED, Provenance.PAGE_CACHE,
        ]
        assert all(r.items == expected for r in results)
        assert all(r.pagination == results[0].pagination for r in results)

    @pytest.mark.asyncio
    async def test_origin_with_continuation(self, service, origin_factory, places):
        origin, recorder = origin_factory([
            httpx.Response(200, json={"places": places(20), "nextPageToken": "tok"}),
            httpx.Response(200, json={"places": places(15, start=20)}),
        ])
        query = PlaceQuery(text_query="hotels in Pakistan")

        result = await service.get_page(KEY, 2, 20, lambda: origin.fetch_all(query))

        assert result.provenance is Provenance.ORIGIN
        assert recorder.sleeps == [2.5]
        assert [r["id"] for r in result.items] == [f"place-{i}" for i in range(20, 35)]
        metadata = await service.chunk_store.get_metadata(KEY)
        assert metadata.total_items == 35
        assert metadata.chunk_count == 2

    @pytest.mark.asyncio
    async def test_store_unreachable_still_serves_from_origin(self, unreachable_store, settings, records):
        service = PlaceCacheService(unreachable_store, settings)
        fetch = CountingFetch(records(45))

        result = await service.get_page(KEY, 3, 20, fetch)

        assert result.provenance is Provenance.ORIGIN
        assert result.items == records(45)[40:45]
        assert result.pagination.has_next_page is False
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_page_cache_write_failure_does_not_fail_request(self, settings, records):
        store = PageWriteFailingStore(MemoryStore(), backend="memory")
        service = PlaceCacheService(store, settings)
        fetch = CountingFetch(records(10))

        first = await service.get_page(KEY, 1, 20, fetch)
        second = await service.get_page(KEY, 1, 20, fetch)

        assert first.provenance is Provenance.ORIGIN
        assert second.provenance is Provenance.CHUNK_STORE

    @pytest.mark.asyncio
    async def test_rate_limit_propagates_and_nothing_is_cached(self, service, memory_store):
        fetch = CountingFetch(error=OriginRateLimited(retry_after=10))

        with pytest.raises(OriginRateLimited):
            await service.get_page(KEY, 1, 20, fetch)
        assert await memory_store.scan_keys("*") == []

    @pytest.mark.asyncio
    async def test_origin_error_propagates(self, service):
        with pytest.raises(OriginError) as exc_info:
            await service.get_page(KEY, 1, 20, CountingFetch(error=OriginError(500, "backend error")))
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_serves_chunks_in_earlier_metadata_format(self, service, memory_store, records):
        data = records(45)
        await memory_store.set_json(
            f"{KEY}:meta",
            {"totalItems": 45, "chunks": 1, "chunkSize": 50, "lastUpdated": "2024-05-01T10:00:00.000Z"},
        )
        await memory_store.set_json(f"{KEY}:chunk:0", data)
        fetch = CountingFetch()

        result = await service.get_page(KEY, 2, 20, fetch)

        assert result.provenance is Provenance.CHUNK_STORE
        assert result.items == data[20:40]
        assert fetch.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "meta",
        [
            {"totalItems": 45, "chunks": 3, "chunkSize": 50, "lastUpdated": "2024-05-01T10:00:00.000Z"},
            {"totalItems": 45, "chunkSize": 50},
            ["not", "metadata"],
        ],
    )
    async def test_unusable_metadata_is_rewritten_after_one_origin_fetch(self, service, memory_store, records, meta):
        await memory_store.set_json(f"{KEY}:meta", meta)
        fetch = CountingFetch(records(45))

        results = [await service.get_page(KEY, page, 20, fetch) for page in (1, 2, 3)]

        assert [r.provenance for r in results] == [Provenance.ORIGIN, Provenance.CHUNK_STORE, Provenance.CHUNK_STORE]
        assert fetch.calls == 1
        assert results[2].items == records(45)[40:45]
        metadata = await service.chunk_store.get_metadata(KEY)
        assert (metadata.total_items, metadata.chunk_count, metadata.chunk_size) == (45, 3, 20)

    @pytest.mark.asyncio
    async def test_empty_result_is_cached(self, service):
        fetch = CountingFetch([])

        first = await service.get_page(KEY, 1, 20, fetch)
        second = await service.get_page(KEY, 2, 20, fetch)

        assert first.items == []
        assert first.pagination.total_items == 0
        assert second.provenance is Provenance.CHUNK_STORE
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_page_beyond_range(self, service, records):
        result = await service.get_page(KEY, 9, 20, CountingFetch(records(45)))

        assert result.items == []
        assert result.pagination.has_next_page is False
        assert result.pagination.has_prev_page is True

    @pytest.mark.asyncio
    async def test_invalid_page_rejected(self, service):
        with pytest.raises(ValueError):
            await service.get_page(KEY, 0, 20, CountingFetch())


class TestOriginCoalescing:
    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_fetch(self, service, records):
        release = asyncio.Event()
        calls = 0

        async def slow_fetch():
            nonlocal calls
            calls += 1
            await release.wait()
            return records(45)

        tasks = [asyncio.create_task(service.get_page(KEY, page, 20, slow_fetch)) for page in (1, 2, 3, 1)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert calls == 1
        assert [len(r.items) for r in results] == [20, 20, 5, 20]
        assert service._in_flight == {}

    @pytest.mark.asyncio
    async def test_shared_failure_reaches_every_caller(self, service):
        fetch = CountingFetch(error=OriginRateLimited())

        results = await asyncio.gather(
            service.get_page(KEY, 1, 20, fetch),
            service.get_page(KEY, 2, 20, fetch),
            return_exceptions=True,
        )

        assert all(isinstance(r, OriginRateLimited) for r in results)
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_disabled_coalescing_fetches_per_caller(self, memory_store, settings, records):
        service = PlaceCacheService(memory_store, settings.model_copy(update={"coalesce_origin_fetches": False}))
        release = asyncio.Event()
        calls = 0

        async def slow_fetch():
            nonlocal calls
            calls += 1
            await release.wait()
            return records(5)

        tasks = [asyncio.create_task(service.get_page(KEY, 1, 20, slow_fetch)) for _ in range(3)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(*tasks)

        assert calls == 3


class TestAdministration:
    @pytest.mark.asyncio
    async def test_stats_and_invalidate(self, service, memory_store, records):
        await service.get_page(KEY, 1, 20, CountingFetch(records(45)))
        await memory_store.set_json("attractions:restaurants:pakistan", records(3))
        await memory_store.set_json("destinations:northern:lakes:meta", {})

        stats = await service.stats("attractions:")

        assert stats.total_keys == 6
        assert stats.key_breakdown == {"metadata": 1, "chunks": 3, "paginated": 1, "full": 1}
        assert stats.backend == "memory"

        cleared = await service.invalidate("attractions:hotels")

        assert cleared == 5
        assert (await service.stats()).total_keys == 2

    @pytest.mark.asyncio
    async def test_refresh_replaces_dataset_and_drops_pages(self, service, records):
        await service.get_page(KEY, 1, 20, CountingFetch(records(45)))

        total = await service.refresh(KEY, CountingFetch(records(10)))
        result = await service.get_page(KEY, 1, 20, CountingFetch())

        assert total == 10
        assert result.provenance is Provenance.CHUNK_STORE
        assert result.pagination.total_items == 10

    @pytest.mark.asyncio
    async def test_find_record_in_cache(self, service, records):
        await service.chunk_store.put_dataset(KEY, records(45))

        async def fetch_record(record_id):
            raise AssertionError("origin should not be called")

        assert await service.find_record(KEY, "rec-33", fetch_record) == {"id": "rec-33", "name": "Record 33"}

    @pytest.mark.asyncio
    async def test_find_record_falls_back_to_origin(self, service, memory_store, records):
        await memory_store.set_json(KEY, records(3))
        looked_up = []

        async def fetch_record(record_id):
            looked_up.append(record_id)
            return {"id": record_id}

        assert await service.find_record(KEY, "rec-2") == {"id": "rec-2", "name": "Record 2"}
        assert await service.find_record(KEY, "zzz", fetch_record) == {"id": "zzz"}
        assert await service.find_record(KEY, "zzz") is None
        assert looked_up == ["zzz"]

    @pytest.mark.asyncio
    async def test_load_dataset_prefers_cached_chunks(self, service, records):
        await service.chunk_store.put_dataset(KEY, records(45))
        fetch = CountingFetch()

        assert await service.load_dataset(KEY, fetch) == records(45)
        assert fetch.calls == 0
