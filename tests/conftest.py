"""Shared fixtures for unit tests."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from placecache.core.config import Settings
from placecache.services.cache_service import PlaceCacheService
from placecache.services.origin import PlacesOriginClient
from placecache.utils.cache import KeyValueStore
from placecache.utils.memory_manager import MemoryStore


class UnreachableRedis:
    """Redis client double whose every command fails to connect."""

    def __getattr__(self, name: str) -> Callable[..., Any]:
        def fail(*args: Any, **kwargs: Any) -> Any:
            raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

        return fail


def make_places(count: int, start: int = 0) -> list[dict]:
    """Raw search results as the origin returns them."""
    return [
        {
            "id": f"place-{i}",
            "displayName": {"text": f"Place {i}", "languageCode": "en"},
            "formattedAddress": f"{i} Main Road",
            "rating": 4.0,
            "photos": [{"name": f"places/place-{i}/photos/p", "widthPx": 800, "heightPx": 600, "authorAttributions": []}],
            "reviews": [{"text": "not stored"}],
        }
        for i in range(start, start + count)
    ]


def make_records(count: int) -> list[dict]:
    return [{"id": f"rec-{i}", "name": f"Record {i}"} for i in range(count)]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        redis_url=None,
        google_places_api_key="test-key",
        chunk_size=20,
        page_cache_ttl=3600,
        continuation_delay=2.5,
    )


@pytest.fixture
def memory_store() -> KeyValueStore:
    return KeyValueStore(MemoryStore(max_items=1000), backend="memory")


@pytest.fixture
def unreachable_store() -> KeyValueStore:
    return KeyValueStore(UnreachableRedis(), backend="redis")


@pytest.fixture
def service(memory_store: KeyValueStore, settings: Settings) -> PlaceCacheService:
    return PlaceCacheService(memory_store, settings)


@pytest.fixture
def records() -> Callable[[int], list[dict]]:
    return make_records


@pytest.fixture
def places() -> Callable[..., list[dict]]:
    return make_places


class OriginRecorder:
    """Collects requests and sleeps made by an origin client under test."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    def bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests if request.content]


@pytest.fixture
def origin_factory(settings: Settings):
    """Build a PlacesOriginClient answering from a list of canned responses."""

    def build(responses: list[Any], client_settings: Settings | None = None):
        recorder = OriginRecorder()
        queue = list(responses)

        def handler(request: httpx.Request) -> httpx.Response:
            recorder.requests.append(request)
            response = queue.pop(0)
            if isinstance(response, Exception):
                raise response
            return response

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        origin = PlacesOriginClient(client_settings or settings, client=client, sleep=recorder.sleep)
        return origin, recorder

    return build
