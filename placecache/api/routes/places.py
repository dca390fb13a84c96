"""
Attraction and destination routes backed by the tiered place cache
"""

from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from placecache.core.config import get_settings
from placecache.models.responses import BaseResponse
from placecache.services.cache_service import PlaceCacheService
from placecache.services.catalog import (
    ALL_CATEGORIES,
    attraction_dataset,
    combined_destinations_fetch,
    combined_destinations_key,
    destination_dataset,
)
from placecache.services.origin import PlacesOriginClient
from placecache.api.dependencies import get_cache_service, get_origin_client

logger = logging.getLogger(__name__)

router = APIRouter()


def _page_size(limit: Optional[int]) -> int:
    settings = get_settings()
    limit = limit or settings.default_page_size
    if limit > settings.max_page_size:
        raise HTTPException(status_code=422, detail=f"limit must be <= {settings.max_page_size}")
    return limit


# ===========================
# Attractions
# ===========================

@router.get("/attractions/{kind}")
async def get_attractions(
    kind: str,
    cache_service: Annotated[PlaceCacheService, Depends(get_cache_service)],
    origin: Annotated[PlacesOriginClient, Depends(get_origin_client)],
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1)
):
    """Paginated hotels, restaurants or amusement parks"""
    try:
        spec = attraction_dataset(kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await cache_service.get_page(spec.dataset_key, page, _page_size(limit), spec.origin_fetch(origin))
    return BaseResponse(
        status="success",
        message=f"{kind} fetched from {result.provenance.value}",
        data=result.to_store()
    )

@router.get("/attractions/{kind}/{place_id}")
async def get_attraction(
    kind: str,
    place_id: str,
    cache_service: Annotated[PlaceCacheService, Depends(get_cache_service)],
    origin: Annotated[PlacesOriginClient, Depends(get_origin_client)]
):
    """Single place, from the cached dataset when present"""
    try:
        spec = attraction_dataset(kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    place = await cache_service.find_record(spec.dataset_key, place_id, origin.fetch_place)
    if place is None:
        raise HTTPException(status_code=404, detail=f"Place {place_id} not found")
    return BaseResponse(status="success", message="Place fetched successfully", data=place)

@router.post("/attractions/{kind}/refresh")
async def refresh_attractions(
    kind: str,
    cache_service: Annotated[PlaceCacheService, Depends(get_cache_service)],
    origin: Annotated[PlacesOriginClient, Depends(get_origin_client)]
):
    """Re-fetch a dataset from the origin and replace the cached copy"""
    try:
        spec = attraction_dataset(kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    total = await cache_service.refresh(spec.dataset_key, spec.origin_fetch(origin))
    return BaseResponse(status="success", message=f"Refreshed {kind}", data={"totalItems": total})


# ===========================
# Northern destinations
# ===========================

@router.get("/destinations/northern")
async def get_northern_destinations(
    cache_service: Annotated[PlaceCacheService, Depends(get_cache_service)],
    origin: Annotated[PlacesOriginClient, Depends(get_origin_client)],
    category: str = Query(ALL_CATEGORIES),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1)
):
    """Northern destinations for one category, or every category combined"""
    if category == ALL_CATEGORIES:
        dataset_key = combined_destinations_key()
        fetch = combined_destinations_fetch(cache_service, origin)
    else:
        try:
            spec = destination_dataset(category)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        dataset_key = spec.dataset_key
        fetch = spec.origin_fetch(origin)

    result = await cache_service.get_page(dataset_key, page, _page_size(limit), fetch)
    return BaseResponse(
        status="success",
        message=f"{category} destinations fetched from {result.provenance.value}",
        data=result.to_store()
    )
