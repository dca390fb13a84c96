import math
from enum import Enum
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, Any, Dict, List
from datetime import datetime, timezone

# Opaque place record; only "id" is relied upon
Record = Dict[str, Any]


class Provenance(str, Enum):
    """Tier that answered a page request"""
    PAGE_CACHE = "page-cache"
    CHUNK_STORE = "chunk-store"
    LEGACY_MIGRATED = "legacy-migrated"
    ORIGIN = "origin"


class CamelModel(BaseModel):
    """Stored and served with camelCase keys, constructed with either"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PaginationInfo(CamelModel):
    """Pagination numbers for one page of a dataset"""
    total_items: int = Field(..., ge=0)
    items_per_page: int = Field(..., gt=0)
    current_page: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=0)
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, total_items: int, page: int, page_size: int) -> "PaginationInfo":
        total_pages = math.ceil(total_items / page_size)
        return cls(
            total_items=total_items,
            items_per_page=page_size,
            current_page=page,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class ChunkMetadata(CamelModel):
    """Describes how a dataset is split across chunk keys"""
    total_items: int = Field(..., ge=0)
    # Older writers stored the count under "chunks"
    chunk_count: int = Field(
        ...,
        ge=0,
        alias="chunkCount",
        validation_alias=AliasChoices("chunkCount", "chunks", "chunk_count"),
    )
    chunk_size: int = Field(..., gt=0)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_records(cls, total_items: int, chunk_size: int) -> "ChunkMetadata":
        return cls(
            total_items=total_items,
            chunk_count=math.ceil(total_items / chunk_size),
            chunk_size=chunk_size,
        )


class PageEntry(CamelModel):
    """Precomputed response for one (dataset, page, page size)"""
    items: List[Record] = Field(default_factory=list)
    pagination: PaginationInfo


class PageResponse(PageEntry):
    """Page handed back to callers together with the tier that served it"""
    provenance: Provenance


class CacheStats(CamelModel):
    """Key counts under a dataset-key prefix"""
    total_keys: int
    key_breakdown: Dict[str, int]
    sample_keys: List[str] = Field(default_factory=list)
    backend: str


class BaseResponse(BaseModel):
    """Base response model"""
    status: str = Field(..., description="Status: success or error")
    message: str = Field(..., description="Human-readable message")
    data: Optional[Any] = Field(None, description="Response data")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
