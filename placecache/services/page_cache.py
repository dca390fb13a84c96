import logging
from typing import Optional

from pydantic import ValidationError

from placecache.core.exceptions import StoreUnavailable
from placecache.models.responses import PageEntry
from placecache.utils.cache import KeyValueStore
from placecache.utils.cache_utils import DatasetKeys

logger = logging.getLogger(__name__)


class PageCache:
    """Precomputed page responses keyed by (dataset, page, page size)"""

    def __init__(self, store: KeyValueStore, ttl: int = 3600):
        self.store = store
        self.ttl = ttl

    async def get(self, dataset_key: str, page: int, page_size: int) -> Optional[PageEntry]:
        key = DatasetKeys.page_key(dataset_key, page, page_size)
        raw = await self.store.get_json(key)
        if raw is None:
            return None
        try:
            return PageEntry.model_validate(raw)
        except ValidationError as e:
            raise StoreUnavailable("DECODE", key, e) from e

    async def put(
        self,
        dataset_key: str,
        page: int,
        page_size: int,
        entry: PageEntry,
        ttl: Optional[int] = None,
    ) -> bool:
        """
        Best-effort write. Failures are logged as a degraded event and
        reported through the return value, never raised.
        """
        key = DatasetKeys.page_key(dataset_key, page, page_size)
        try:
            await self.store.set_json(key, entry.to_store(), ttl=ttl or self.ttl)
        except StoreUnavailable as e:
            logger.error(f"[DEGRADED] Failed to store page cache entry {key}: {e}")
            return False
        logger.debug(f"Stored page cache entry {key}")
        return True
