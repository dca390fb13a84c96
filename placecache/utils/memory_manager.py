import asyncio
import fnmatch
import sys
import time
import logging
from collections import OrderedDict
from typing import Any, AsyncIterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class MemoryPipeline:
    """Queued commands applied to a MemoryStore in one step"""

    def __init__(self, store: "MemoryStore"):
        self._store = store
        self._commands: List[Tuple[str, tuple, dict]] = []

    def set(self, key: str, value: str, ex: Optional[int] = None) -> "MemoryPipeline":
        self._commands.append(("set", (key, value), {"ex": ex}))
        return self

    def delete(self, *keys: str) -> "MemoryPipeline":
        self._commands.append(("delete", keys, {}))
        return self

    async def execute(self) -> List[Any]:
        commands, self._commands = self._commands, []
        async with self._store._lock:
            return [
                getattr(self._store, f"_{name}_locked")(*args, **kwargs)
                for name, args, kwargs in commands
            ]

    async def __aenter__(self) -> "MemoryPipeline":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._commands = []


class MemoryStore:
    """
    Bounded in-process LRU store speaking the subset of the Redis command set
    placecache needs (GET, SET with EX, DEL, SCAN, MULTI/EXEC pipelines).

    Used when no Redis URL is configured. Entries expire individually; the
    least recently used entry is evicted once max_items is reached.
    """

    def __init__(self, max_items: int = 5000):
        self.cache: "OrderedDict[str, Tuple[str, Optional[float]]]" = OrderedDict()
        self.max_items = max_items
        self.current_size_bytes = 0
        self.evicted_keys = 0
        self._lock = asyncio.Lock()

    def _get_size(self, obj: Any) -> int:
        """Estimate memory size of object"""
        try:
            return sys.getsizeof(obj)
        except TypeError:
            return 256

    def _expired(self, key: str) -> bool:
        _, expires_at = self.cache[key]
        return expires_at is not None and time.monotonic() >= expires_at

    def _pop(self, key: str) -> None:
        value, _ = self.cache.pop(key)
        self.current_size_bytes -= self._get_size(value)

    def _get_locked(self, key: str) -> Optional[str]:
        if key not in self.cache:
            return None
        if self._expired(key):
            self._pop(key)
            return None
        self.cache.move_to_end(key)
        return self.cache[key][0]

    def _set_locked(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        if key in self.cache:
            self._pop(key)

        while len(self.cache) >= self.max_items and self.cache:
            oldest_key = next(iter(self.cache))
            self._pop(oldest_key)
            self.evicted_keys += 1
            logger.debug(f"Evicted store key: {oldest_key}")

        expires_at = time.monotonic() + ex if ex else None
        self.cache[key] = (value, expires_at)
        self.current_size_bytes += self._get_size(value)
        return True

    def _delete_locked(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if key in self.cache:
                expired = self._expired(key)
                self._pop(key)
                if not expired:
                    removed += 1
        return removed

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._get_locked(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        async with self._lock:
            return self._set_locked(key, value, ex=ex)

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            return self._delete_locked(*keys)

    async def ttl(self, key: str) -> int:
        """Seconds left, -1 for no expiry, -2 for a missing key (Redis semantics)"""
        async with self._lock:
            if self._get_locked(key) is None:
                return -2
            _, expires_at = self.cache[key]
            if expires_at is None:
                return -1
            return max(0, int(expires_at - time.monotonic()))

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None) -> AsyncIterator[str]:
        async with self._lock:
            keys = [k for k in list(self.cache.keys()) if self._get_locked(k) is not None]
        for key in keys:
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def pipeline(self, transaction: bool = True) -> MemoryPipeline:
        return MemoryPipeline(self)

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        async with self._lock:
            self.cache.clear()
            self.current_size_bytes = 0

    def get_stats(self) -> dict:
        """Get store statistics"""
        return {
            "items_count": len(self.cache),
            "size_bytes": self.current_size_bytes,
            "size_mb": self.current_size_bytes / 1024 / 1024,
            "max_items": self.max_items,
            "evicted_keys": self.evicted_keys,
        }
