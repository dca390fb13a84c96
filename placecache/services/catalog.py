"""
Named datasets served by the API and the origin queries that populate them.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from placecache.core.exceptions import OriginError, OriginRateLimited
from placecache.models.requests import LatLng, LocationRectangle, PlaceQuery
from placecache.models.responses import Record
from placecache.services.cache_service import OriginFetch, PlaceCacheService
from placecache.services.origin import PlacesOriginClient
from placecache.utils.cache_utils import DatasetKeys

logger = logging.getLogger(__name__)

NORTHERN_PAKISTAN = LocationRectangle(
    low=LatLng(latitude=30.0, longitude=70.0),
    high=LatLng(latitude=37.5, longitude=77.5),
)

# Name keywords per destination category; natural features always match
CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "mountains": ("mountain", "peak", "hill", "mount"),
    "valleys": ("valley", "vale", "glen"),
    "lakes": ("lake", "reservoir", "pond", "water"),
    "glaciers": ("glacier", "ice", "snow field"),
    "waterfalls": ("waterfall", "falls", "cascade"),
    "caves": ("cave", "cavern", "grotto"),
}

ATTRACTION_KINDS = ("hotels", "restaurants", "amusement-parks")
ALL_CATEGORIES = "all"


def matches_category(place: Record, keywords: Tuple[str, ...]) -> bool:
    if "natural_feature" in (place.get("types") or []):
        return True
    display_name = place.get("displayName") or {}
    name = (display_name.get("text") if isinstance(display_name, dict) else str(display_name)) or ""
    name = name.lower()
    return any(keyword in name for keyword in keywords)


@dataclass(frozen=True)
class DatasetSpec:
    """One independently cached dataset and the search that fills it"""
    name: str
    dataset_key: str
    query: PlaceQuery
    keywords: Tuple[str, ...] = field(default_factory=tuple)

    def filter(self, records: List[Record]) -> List[Record]:
        if not self.keywords:
            return records
        kept = [record for record in records if matches_category(record, self.keywords)]
        logger.info(f"[FILTER] Filtered from {len(records)} to {len(kept)} places for {self.name}")
        return kept

    def origin_fetch(self, origin: PlacesOriginClient) -> OriginFetch:
        async def fetch() -> List[Record]:
            return self.filter(await origin.fetch_all(self.query))
        return fetch


def attraction_dataset(kind: str, region: str = "pakistan") -> DatasetSpec:
    if kind not in ATTRACTION_KINDS:
        raise ValueError(f"Unknown attraction type '{kind}'. Use one of: {', '.join(ATTRACTION_KINDS)}")
    label = kind.replace("-", " ")
    return DatasetSpec(
        name=kind,
        dataset_key=DatasetKeys.dataset_key("attractions", kind, region),
        query=PlaceQuery(text_query=f"{label} in {region.title()}"),
    )


def destination_dataset(category: str) -> DatasetSpec:
    if category not in CATEGORY_KEYWORDS:
        raise ValueError(
            f"Unknown destination category '{category}'. "
            f"Use one of: {', '.join([ALL_CATEGORIES, *CATEGORY_KEYWORDS])}"
        )
    return DatasetSpec(
        name=category,
        dataset_key=DatasetKeys.dataset_key("destinations", "northern", category),
        query=PlaceQuery(text_query=f"{category} in northern Pakistan", location=NORTHERN_PAKISTAN),
        keywords=CATEGORY_KEYWORDS[category],
    )


def combined_destinations_key() -> str:
    return DatasetKeys.dataset_key("destinations", "northern", ALL_CATEGORIES)


def combined_destinations_fetch(
    service: PlaceCacheService,
    origin: PlacesOriginClient,
    rng: Optional[random.Random] = None,
) -> OriginFetch:
    """
    Union of every destination category, deduplicated by id.

    Each category goes through the service's own tiers so already cached
    categories are not re-fetched. A failing category is skipped; rate
    limits and an all-categories failure propagate.
    """
    shuffle = (rng or random).shuffle

    async def fetch() -> List[Record]:
        combined: List[Record] = []
        seen = set()
        last_error: Optional[OriginError] = None

        for category in CATEGORY_KEYWORDS:
            spec = destination_dataset(category)
            try:
                records = await service.load_dataset(spec.dataset_key, spec.origin_fetch(origin))
            except OriginRateLimited:
                raise
            except OriginError as e:
                logger.error(f"[ERROR] Failed to fetch {category}, skipping: {e}")
                last_error = e
                continue

            for record in records:
                record_id = record.get("id")
                if record_id and record_id not in seen:
                    seen.add(record_id)
                    combined.append(record)
            logger.info(f"[COMBINE] Added {category}, {len(combined)} destinations so far")

        if not combined and last_error is not None:
            raise last_error

        # Cosmetic ordering only
        shuffle(combined)
        return combined

    return fetch
