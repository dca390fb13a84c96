"""
Conversion of legacy whole-dataset blobs into the chunked representation.
"""

import logging
from typing import List, Optional

from placecache.core.exceptions import StoreUnavailable
from placecache.models.responses import Record
from placecache.services.chunk_store import ChunkStore
from placecache.utils.cache_utils import DatasetKeys

logger = logging.getLogger(__name__)


class MigrationAdapter:
    """Rewrites ``<dataset>`` blobs as ``<dataset>:meta`` + ``<dataset>:chunk:<i>``"""

    def __init__(self, chunk_store: ChunkStore):
        self.chunk_store = chunk_store
        self.store = chunk_store.store

    async def read_legacy(self, dataset_key: str) -> Optional[List[Record]]:
        """Return the legacy blob's records, None when there is no blob"""
        key = DatasetKeys.legacy_key(dataset_key)
        value = await self.store.get_json(key)
        if value is None:
            return None
        if not isinstance(value, list):
            raise StoreUnavailable("DECODE", key, TypeError(f"expected a list, got {type(value).__name__}"))
        return value

    async def migrate(self, dataset_key: str, records: List[Record]) -> bool:
        """
        Store records chunked, then drop the legacy blob.

        The blob deletion rides in the same transaction as the chunk write,
        so it only disappears once the chunked copy is durable. On failure
        the blob stays untouched and False is returned. Running this again
        after a success finds no blob to remove.
        """
        logger.info(f"[CONVERSION] Converting {dataset_key} to chunked storage ({len(records)} items)")
        try:
            await self.chunk_store.put_dataset(
                dataset_key,
                records,
                delete_keys=[DatasetKeys.legacy_key(dataset_key)],
            )
        except StoreUnavailable as e:
            logger.error(f"[CONVERSION ERROR] Failed to convert {dataset_key}, legacy blob kept: {e}")
            return False

        logger.info(f"[CONVERSION] Successfully converted {dataset_key} to chunked storage")
        return True
