"""
Chunked dataset storage.

A dataset is written as fixed-size chunk keys plus one metadata key, always
in a single transaction so metadata never describes chunks that are not there.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from placecache.core.exceptions import StoreUnavailable
from placecache.models.responses import ChunkMetadata, Record
from placecache.utils.cache import KeyValueStore
from placecache.utils.cache_utils import DatasetKeys

logger = logging.getLogger(__name__)


def split_into_chunks(records: Sequence[Record], chunk_size: int) -> List[List[Record]]:
    """Chunk i holds records[i*chunk_size:(i+1)*chunk_size]"""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return [list(records[i:i + chunk_size]) for i in range(0, len(records), chunk_size)]


class ChunkStore:
    """Durable chunked representation of whole datasets"""

    def __init__(self, store: KeyValueStore, default_chunk_size: int = 50, ttl: Optional[int] = None):
        self.store = store
        self.default_chunk_size = default_chunk_size
        self.ttl = ttl

    async def put_dataset(
        self,
        dataset_key: str,
        records: Sequence[Record],
        chunk_size: Optional[int] = None,
        ttl: Optional[int] = None,
        delete_keys: Iterable[str] = (),
    ) -> ChunkMetadata:
        """
        Replace a dataset wholesale.

        Chunks left over from a previous, larger version are removed in the
        same transaction. ``delete_keys`` lets callers drop extra keys (the
        legacy blob) atomically with the write.
        """
        chunk_size = chunk_size or self.default_chunk_size
        chunks = split_into_chunks(records, chunk_size)
        metadata = ChunkMetadata.for_records(len(records), chunk_size)

        sets: Dict[str, object] = {DatasetKeys.meta_key(dataset_key): metadata.to_store()}
        for index, chunk in enumerate(chunks):
            sets[DatasetKeys.chunk_key(dataset_key, index)] = chunk

        stale = await self._stale_chunk_keys(dataset_key, len(chunks))
        await self.store.write_batch(
            sets,
            deletes=[*stale, *delete_keys],
            ttl=ttl if ttl is not None else self.ttl,
        )

        logger.info(
            f"Stored {metadata.total_items} items in {metadata.chunk_count} chunks for {dataset_key}"
        )
        return metadata

    async def _stale_chunk_keys(self, dataset_key: str, new_count: int) -> List[str]:
        try:
            previous = await self.get_metadata(dataset_key)
        except StoreUnavailable as e:
            if e.operation != "DECODE":
                raise
            # Unreadable metadata says nothing about its chunks; find them directly
            logger.warning(f"Replacing undecodable metadata for {dataset_key}: {e}")
            return await self._scan_chunk_keys(dataset_key, new_count)

        if previous is None or previous.chunk_count <= new_count:
            return []
        return [
            DatasetKeys.chunk_key(dataset_key, i)
            for i in range(new_count, previous.chunk_count)
        ]

    async def _scan_chunk_keys(self, dataset_key: str, new_count: int) -> List[str]:
        """Existing chunk keys with an index at or past new_count"""
        keys = await self.store.scan_keys(DatasetKeys.chunk_pattern(dataset_key))
        stale = []
        for key in keys:
            index = key.rsplit(":", 1)[-1]
            if index.isdigit() and int(index) >= new_count:
                stale.append(key)
        return sorted(stale)

    async def get_metadata(self, dataset_key: str) -> Optional[ChunkMetadata]:
        raw = await self.store.get_json(DatasetKeys.meta_key(dataset_key))
        if raw is None:
            return None
        try:
            return ChunkMetadata.model_validate(raw)
        except ValidationError as e:
            raise StoreUnavailable("DECODE", DatasetKeys.meta_key(dataset_key), e) from e

    async def get_chunk(self, dataset_key: str, index: int) -> Optional[List[Record]]:
        return await self.store.get_json(DatasetKeys.chunk_key(dataset_key, index))

    async def delete_dataset(self, dataset_key: str) -> int:
        """Remove metadata and every chunk; returns keys removed"""
        metadata = await self.get_metadata(dataset_key)
        keys = [DatasetKeys.meta_key(dataset_key)]
        if metadata is not None:
            keys.extend(DatasetKeys.chunk_key(dataset_key, i) for i in range(metadata.chunk_count))
        removed = await self.store.delete(*keys)
        logger.info(f"Deleted chunked dataset {dataset_key} ({removed} keys)")
        return removed
