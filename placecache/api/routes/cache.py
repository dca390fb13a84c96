"""
Cache administration routes
"""

from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query
import logging

from placecache.models.responses import BaseResponse
from placecache.services.cache_service import PlaceCacheService
from placecache.api.dependencies import get_cache_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache")


@router.get("/stats")
async def get_cache_stats(
    cache_service: Annotated[PlaceCacheService, Depends(get_cache_service)],
    prefix: Optional[str] = Query(None, description="Dataset-key prefix, e.g. attractions:hotels")
):
    """Key counts by kind (metadata, chunks, paginated, full)"""
    stats = await cache_service.stats(prefix)
    return BaseResponse(status="success", message="Cache stats retrieved", data=stats.to_store())

@router.delete("/{prefix:path}")
async def clear_cache(
    prefix: str,
    cache_service: Annotated[PlaceCacheService, Depends(get_cache_service)]
):
    """Clear every key under a dataset-key prefix ("all" clears everything)"""
    cleared = await cache_service.invalidate("*" if prefix == "all" else prefix)
    message = f"Cleared {prefix} cache" if cleared else f"No cache keys found for {prefix}"
    return BaseResponse(status="success", message=message, data={"clearedKeys": cleared})
