"""
Dependency injection functions for FastAPI routes
"""

import logging
from typing import Optional

from placecache.core.config import get_settings
from placecache.services.cache_service import PlaceCacheService
from placecache.services.origin import PlacesOriginClient
from placecache.utils.cache import StoreHandle

logger = logging.getLogger(__name__)

# ===========================
# Global singleton instances
# ===========================

_store_handle: Optional[StoreHandle] = None

_origin_client: Optional[PlacesOriginClient] = None

_cache_service: Optional[PlaceCacheService] = None


# ===========================
# Dependency injection functions
# ===========================

def get_store_handle() -> StoreHandle:
    """Get the single store handle (connects lazily on first use)"""
    global _store_handle
    if _store_handle is None:
        _store_handle = StoreHandle(get_settings())
    return _store_handle

def get_origin_client() -> PlacesOriginClient:
    """Get the shared origin client"""
    global _origin_client
    if _origin_client is None:
        _origin_client = PlacesOriginClient(get_settings())
    return _origin_client

async def get_cache_service() -> PlaceCacheService:
    """Get cache service singleton"""
    global _cache_service

    if _cache_service is None:
        store = await get_store_handle().get()
        _cache_service = PlaceCacheService(store, get_settings())

    return _cache_service

async def shutdown():
    """Close the origin client and store connection"""
    global _store_handle, _origin_client, _cache_service

    if _origin_client is not None:
        await _origin_client.aclose()
        _origin_client = None
    if _store_handle is not None:
        await _store_handle.close()
        _store_handle = None
    _cache_service = None
