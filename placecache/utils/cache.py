import json
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional, Any, Iterable, List, Mapping

import redis.asyncio as redis
from redis.exceptions import RedisError

from placecache.core.exceptions import StoreUnavailable
from placecache.core.timeouts import TIMEOUTS
from placecache.utils.memory_manager import MemoryStore

logger = logging.getLogger(__name__)

# Failures that mean "the store is not answering"
STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


@asynccontextmanager
async def _store_call(operation: str, key: Optional[str] = None):
    try:
        yield
    except STORE_ERRORS as e:
        raise StoreUnavailable(operation, key, e) from e


class KeyValueStore:
    """JSON key-value access on top of Redis (or the in-process MemoryStore)"""

    def __init__(self, client: Any, backend: str = "redis"):
        self.client = client
        self.backend = backend

    async def get_json(self, key: str) -> Optional[Any]:
        """Get and decode a value, None when the key is absent"""
        async with _store_call("GET", key):
            raw = await self.client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            raise StoreUnavailable("DECODE", key, e) from e

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None):
        """Encode and store a value; ttl=None stores it without expiry"""
        payload = json.dumps(value)
        async with _store_call("SET", key):
            await self.client.set(key, payload, ex=ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        async with _store_call("DEL", keys[0]):
            return int(await self.client.delete(*keys))

    async def write_batch(
        self,
        sets: Mapping[str, Any],
        deletes: Iterable[str] = (),
        ttl: Optional[int] = None,
    ):
        """
        Apply every SET and DEL in one MULTI/EXEC transaction.

        Either all commands land or none do, so related keys never diverge.
        """
        payloads = {key: json.dumps(value) for key, value in sets.items()}
        deletes = list(deletes)
        first_key = next(iter(payloads), deletes[0] if deletes else None)

        async with _store_call("MULTI", first_key):
            async with self.client.pipeline(transaction=True) as pipe:
                for key, payload in payloads.items():
                    pipe.set(key, payload, ex=ttl)
                if deletes:
                    pipe.delete(*deletes)
                await pipe.execute()

    async def scan_keys(self, pattern: str) -> List[str]:
        """Enumerate keys matching a glob pattern (SCAN, never KEYS)"""
        keys = []
        async with _store_call("SCAN", pattern):
            async for key in self.client.scan_iter(match=pattern, count=500):
                keys.append(key.decode("utf-8") if isinstance(key, bytes) else key)
        return keys

    async def delete_pattern(self, pattern: str) -> int:
        """Clear all keys matching pattern, returns the number removed"""
        keys = await self.scan_keys(pattern)
        if not keys:
            return 0

        async with _store_call("DEL", pattern):
            async with self.client.pipeline(transaction=True) as pipe:
                # Batches keep single DEL commands small on large datasets
                for start in range(0, len(keys), 500):
                    pipe.delete(*keys[start:start + 500])
                results = await pipe.execute()
        return sum(int(r) for r in results)

    async def ping(self) -> bool:
        async with _store_call("PING"):
            return bool(await self.client.ping())

    async def close(self):
        try:
            await self.client.aclose()
        except STORE_ERRORS as e:
            logger.warning(f"Error closing {self.backend} store: {e}")


class StoreHandle:
    """
    Lazily created, shared KeyValueStore.

    The client is built at most once; concurrent first callers wait on the
    same lock instead of racing to connect.
    """

    def __init__(self, settings):
        self.settings = settings
        self._store: Optional[KeyValueStore] = None
        self._lock = asyncio.Lock()

    async def get(self) -> KeyValueStore:
        if self._store is not None:
            return self._store

        async with self._lock:
            if self._store is None:
                self._store = self._connect()
        return self._store

    def _connect(self) -> KeyValueStore:
        if self.settings.redis_url:
            client = redis.from_url(
                self.settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=TIMEOUTS.store_connect,
                socket_timeout=TIMEOUTS.store_socket,
                health_check_interval=10,
            )
            logger.info(f"Redis store configured: {self.settings.redis_url}")
            return KeyValueStore(client, backend="redis")

        logger.warning("No redis_url configured, using in-process memory store")
        return KeyValueStore(
            MemoryStore(max_items=self.settings.memory_store_max_items),
            backend="memory",
        )

    async def close(self):
        async with self._lock:
            if self._store is not None:
                await self._store.close()
                self._store = None
                logger.info("Store connection closed")
