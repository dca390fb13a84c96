"""
Health check and info routes
"""

from typing import Annotated
from datetime import datetime
from fastapi import APIRouter, Depends

from placecache.core.config import get_settings
from placecache.core.exceptions import StoreUnavailable
from placecache.utils.cache import StoreHandle
from placecache.api.dependencies import get_store_handle
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def root():
    """API information"""
    settings = get_settings()
    return {
        "service": settings.app_name,
        "version": settings.version,
        "status": "ready",
        "features": [
            "attractions", "northern_destinations", "place_lookup",
            "cache_invalidation", "cache_stats"
        ]
    }

@router.get("/health")
async def health_check(
    store_handle: Annotated[StoreHandle, Depends(get_store_handle)]
):
    """Health check endpoint"""
    store = await store_handle.get()
    store_healthy = False
    try:
        store_healthy = await store.ping()
    except StoreUnavailable as e:
        logger.warning(f"Store health check failed: {e}")

    return {
        # Store outages degrade caching only, requests still reach the origin
        "status": "healthy" if store_healthy else "degraded",
        "store_backend": store.backend,
        "store_healthy": store_healthy,
        "origin_configured": bool(get_settings().google_places_api_key),
        "timestamp": datetime.now().isoformat()
    }
