# placecache/services/cache_service.py
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from placecache.core.config import Settings
from placecache.core.exceptions import StoreUnavailable
from placecache.models.responses import CacheStats, PageEntry, PageResponse, Provenance, Record
from placecache.services.chunk_store import ChunkStore
from placecache.services.migration import MigrationAdapter
from placecache.services.page_cache import PageCache
from placecache.services.paginator import ChunkReader, paginate, validate_page_request
from placecache.utils.cache import KeyValueStore
from placecache.utils.cache_utils import DatasetKeys

logger = logging.getLogger(__name__)

# Produces the full, trimmed dataset from the origin
OriginFetch = Callable[[], Awaitable[List[Record]]]
RecordFetch = Callable[[str], Awaitable[Optional[Record]]]


class PlaceCacheService:
    """Tiered page lookup: page cache -> chunk store -> legacy blob -> origin"""

    def __init__(self, store: KeyValueStore, settings: Settings):
        self.store = store
        self.settings = settings
        self.chunk_store = ChunkStore(store, settings.chunk_size, settings.dataset_ttl)
        self.reader = ChunkReader(self.chunk_store)
        self.page_cache = PageCache(store, settings.page_cache_ttl)
        self.migration = MigrationAdapter(self.chunk_store)
        self._in_flight: Dict[str, "asyncio.Future[List[Record]]"] = {}

    async def _tier(self, tier: str, dataset_key: str, lookup: Awaitable[Any]) -> Optional[Any]:
        """Run a cache-tier lookup; a store failure counts as a miss"""
        try:
            return await lookup
        except StoreUnavailable as e:
            logger.warning(f"[DEGRADED] {tier} unavailable for {dataset_key}, falling through: {e}")
            return None

    async def get_page(
        self,
        dataset_key: str,
        page: int,
        page_size: int,
        fetch: OriginFetch,
    ) -> PageResponse:
        """
        Get one page of a dataset from the fastest tier that has it

        Flow:
        1. Page cache hit -> return
        2. Chunk store hit -> backfill page cache, return
        3. Legacy blob hit -> migrate to chunks, page in memory, backfill
        4. Origin fetch -> store chunked, page in memory, backfill
        Origin errors propagate; store errors only skip a tier.
        """
        validate_page_request(page, page_size)
        started = time.perf_counter()

        # 1. Page cache
        entry = await self._tier("page cache", dataset_key, self.page_cache.get(dataset_key, page, page_size))
        if entry is not None:
            return self._respond(dataset_key, entry, Provenance.PAGE_CACHE, started)

        # 2. Chunk store
        entry = await self._tier("chunk store", dataset_key, self.reader.read_page(dataset_key, page, page_size))
        if entry is not None:
            await self.page_cache.put(dataset_key, page, page_size, entry)
            return self._respond(dataset_key, entry, Provenance.CHUNK_STORE, started)

        # 3. Legacy whole-dataset blob
        records = await self._tier("legacy blob", dataset_key, self.migration.read_legacy(dataset_key))
        if records is not None:
            logger.info(f"[CACHE HIT] Legacy dataset found for {dataset_key}, converting")
            await self.migration.migrate(dataset_key, records)
            entry = paginate(records, page, page_size)
            await self.page_cache.put(dataset_key, page, page_size, entry)
            return self._respond(dataset_key, entry, Provenance.LEGACY_MIGRATED, started)

        # 4. Origin
        logger.info(f"[CACHE MISS] No cached data for {dataset_key}, fetching from origin")
        records = await self._fetch_origin(dataset_key, fetch)
        entry = paginate(records, page, page_size)
        await self.page_cache.put(dataset_key, page, page_size, entry)
        return self._respond(dataset_key, entry, Provenance.ORIGIN, started)

    def _respond(self, dataset_key: str, entry: PageEntry, provenance: Provenance, started: float) -> PageResponse:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"[PERFORMANCE] {dataset_key} page {entry.pagination.current_page} "
            f"served in {elapsed_ms:.1f}ms (source: {provenance.value})"
        )
        return PageResponse(items=entry.items, pagination=entry.pagination, provenance=provenance)

    async def _fetch_origin(self, dataset_key: str, fetch: OriginFetch) -> List[Record]:
        """Fetch and store a dataset, sharing one fetch between concurrent callers"""
        if not self.settings.coalesce_origin_fetches:
            return await self._fetch_and_store(dataset_key, fetch)

        pending = self._in_flight.get(dataset_key)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch_and_store(dataset_key, fetch))
            self._in_flight[dataset_key] = pending

            def _done(future, key=dataset_key):
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]

            pending.add_done_callback(_done)
        else:
            logger.info(f"Joining in-flight origin fetch for {dataset_key}")

        # One caller giving up must not cancel the fetch for the others
        return await asyncio.shield(pending)

    async def _fetch_and_store(self, dataset_key: str, fetch: OriginFetch) -> List[Record]:
        records = await fetch()
        if not records:
            logger.info(f"Origin returned no records for {dataset_key}, caching empty dataset")
        try:
            await self.chunk_store.put_dataset(dataset_key, records)
        except StoreUnavailable as e:
            logger.error(f"[DEGRADED] Could not store {dataset_key} after origin fetch: {e}")
        return records

    async def load_dataset(self, dataset_key: str, fetch: OriginFetch) -> List[Record]:
        """Whole dataset from chunks, legacy blob or origin (in that order)"""
        records = await self._tier("chunk store", dataset_key, self._read_all_chunks(dataset_key))
        if records is not None:
            return records

        records = await self._tier("legacy blob", dataset_key, self.migration.read_legacy(dataset_key))
        if records is not None:
            await self.migration.migrate(dataset_key, records)
            return records

        return await self._fetch_origin(dataset_key, fetch)

    async def _read_all_chunks(self, dataset_key: str) -> Optional[List[Record]]:
        metadata = await self.chunk_store.get_metadata(dataset_key)
        if metadata is None:
            return None

        chunks = await asyncio.gather(*(
            self.chunk_store.get_chunk(dataset_key, index)
            for index in range(metadata.chunk_count)
        ))
        if any(chunk is None for chunk in chunks):
            logger.warning(f"Incomplete chunk set for {dataset_key}, treating dataset as absent")
            return None
        return [record for chunk in chunks for record in chunk]

    async def refresh(self, dataset_key: str, fetch: OriginFetch) -> int:
        """Re-fetch a dataset from the origin, replacing it and its cached pages"""
        records = await self._fetch_origin(dataset_key, fetch)
        try:
            await self.store.delete_pattern(f"{dataset_key}:page*")
        except StoreUnavailable as e:
            logger.error(f"[DEGRADED] Could not drop cached pages for {dataset_key}: {e}")
        return len(records)

    async def find_record(
        self,
        dataset_key: str,
        record_id: str,
        fetch_record: Optional[RecordFetch] = None,
    ) -> Optional[Record]:
        """Find a record by id in the cached dataset, else ask the origin"""
        records = await self._tier("chunk store", dataset_key, self._read_all_chunks(dataset_key))
        if records is None:
            records = await self._tier("legacy blob", dataset_key, self.migration.read_legacy(dataset_key))

        for record in records or []:
            if record.get("id") == record_id:
                return record

        if fetch_record is None:
            return None
        logger.info(f"Record {record_id} not cached under {dataset_key}, fetching from origin")
        return await fetch_record(record_id)

    async def invalidate(self, prefix: str) -> int:
        """Clear every key under a dataset-key prefix; returns keys cleared"""
        pattern = DatasetKeys.pattern(prefix)
        cleared = await self.store.delete_pattern(pattern)
        logger.info(f"[CACHE CLEAR] Cleared {cleared} cache keys for {pattern}")
        return cleared

    async def stats(self, prefix: Optional[str] = None) -> CacheStats:
        """Key counts by kind under a dataset-key prefix"""
        keys = await self.store.scan_keys(DatasetKeys.pattern(prefix))
        return CacheStats(
            total_keys=len(keys),
            key_breakdown=DatasetKeys.breakdown(keys),
            sample_keys=sorted(keys)[:10],
            backend=self.store.backend,
        )
