from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List, Optional

# Field selection sent to the search endpoint; trimmed again by essential_fields()
DEFAULT_FIELD_MASK: List[str] = [
    "places.id",
    "places.displayName",
    "places.formattedAddress",
    "places.location",
    "places.rating",
    "places.userRatingCount",
    "places.photos.name",
    "places.photos.widthPx",
    "places.photos.heightPx",
    "places.editorialSummary",
    "places.primaryTypeDisplayName",
    "places.types",
    "places.googleMapsUri",
    "places.websiteUri",
    "places.priceLevel",
    "places.currentOpeningHours",
    "places.internationalPhoneNumber",
    "nextPageToken",
]

# Upstream rejects continuation tokens used sooner than this
MIN_CONTINUATION_DELAY = 2.0


class Settings(BaseSettings):
    """Application settings using Pydantic BaseSettings for validation"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Place Cache API"
    version: str = "1.0.0"
    log_level: str = "INFO"

    # Store
    redis_url: Optional[str] = None  # Falls back to the in-process store
    memory_store_max_items: int = 5000

    # Chunked datasets
    chunk_size: int = Field(50, gt=0)
    dataset_ttl: Optional[int] = None  # None means "until refreshed"

    # Page cache
    page_cache_ttl: int = Field(3600, gt=0)
    default_page_size: int = Field(20, gt=0)
    max_page_size: int = Field(100, gt=0)

    # Origin (Google Places text search)
    google_places_api_key: Optional[str] = None
    places_search_url: str = "https://places.googleapis.com/v1/places:searchText"
    places_details_url: str = "https://places.googleapis.com/v1"
    places_language_code: str = "en"
    places_max_result_count: int = Field(20, gt=0, le=20)
    places_max_pages: int = Field(2, ge=1)
    places_field_mask: List[str] = DEFAULT_FIELD_MASK
    continuation_delay: float = Field(2.5, ge=MIN_CONTINUATION_DELAY)

    # Share one origin fetch between concurrent misses on the same dataset
    coalesce_origin_fetches: bool = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
