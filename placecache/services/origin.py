"""
Client for the upstream place search API (Google Places text search).

Follows nextPageToken continuations, waiting the delay the API requires
before each follow-up request, and trims results to the fields we store.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from placecache.core.config import Settings
from placecache.core.exceptions import ConfigurationError, OriginError, OriginRateLimited
from placecache.core.timeouts import TIMEOUTS
from placecache.models.requests import PlaceQuery
from placecache.models.responses import Record

logger = logging.getLogger(__name__)

ESSENTIAL_FIELDS = (
    "id",
    "displayName",
    "formattedAddress",
    "location",
    "rating",
    "userRatingCount",
    "editorialSummary",
    "primaryTypeDisplayName",
    "types",
    "priceLevel",
    "websiteUri",
    "googleMapsUri",
    "currentOpeningHours",
    "internationalPhoneNumber",
)
PHOTO_FIELDS = ("name", "widthPx", "heightPx")

DETAIL_FIELD_MASK = ",".join(ESSENTIAL_FIELDS + ("photos",))


def essential_fields(place: Dict[str, Any]) -> Record:
    """Project a raw place onto the fields worth caching"""
    record = {field: place[field] for field in ESSENTIAL_FIELDS if field in place}
    record["photos"] = [
        {field: photo.get(field) for field in PHOTO_FIELDS}
        for photo in place.get("photos") or []
    ]
    return record


def _error_payload(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {"message": response.text[:200]}
    error = data.get("error") if isinstance(data, dict) else None
    return error if isinstance(error, dict) else {}


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class PlacesOriginClient:
    """Async client for the paginated search API"""

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings
        self.client = client or httpx.AsyncClient(timeout=TIMEOUTS.origin_request)
        self._sleep = sleep

    def _headers(self, field_mask: str) -> Dict[str, str]:
        api_key = self.settings.google_places_api_key
        if not api_key:
            raise ConfigurationError("google_places_api_key", "Google Places API key is not configured")
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": api_key,
            "X-Goog-FieldMask": field_mask,
        }

    def _raise_for_status(self, response: httpx.Response, context: str):
        if response.is_success:
            return

        error = _error_payload(response)
        message = error.get("message") or response.reason_phrase or "Unknown error"
        logger.error(f"[API ERROR] {context} returned {response.status_code}: {message}")

        if response.status_code == 429:
            raise OriginRateLimited(
                "Google Places API rate limit exceeded, please try again later",
                details=[error or "Rate limit exceeded"],
                retry_after=_retry_after(response),
            )
        raise OriginError(response.status_code, message, details=[error] if error else [])

    async def _post_search(self, body: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = await self.client.post(self.settings.places_search_url, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[FETCH ERROR] Search request failed: {e}")
            raise OriginError(503, f"Origin unreachable: {e}") from e

        self._raise_for_status(response, "Search")
        try:
            return response.json()
        except ValueError as e:
            raise OriginError(502, "Origin returned a non-JSON body") from e

    async def fetch_all(self, query: PlaceQuery) -> List[Record]:
        """
        Fetch every page for a query and return trimmed records.

        Errors on the first request propagate. A failing continuation
        request ends pagination and keeps the records gathered so far.
        """
        headers = self._headers(",".join(self.settings.places_field_mask))
        body = query.to_body(self.settings.places_language_code, self.settings.places_max_result_count)

        logger.info(f"[API REQUEST] Searching for: {query.text_query}")
        data = await self._post_search(body, headers)
        places = list(data.get("places") or [])
        token = data.get("nextPageToken")
        pages = 1
        logger.info(f"[PAGINATION] First page returned {len(places)} places")

        while token and pages < self.settings.places_max_pages:
            # A token used before the delay elapses yields an invalid/empty page
            await self._sleep(self.settings.continuation_delay)
            try:
                data = await self._post_search({**body, "pageToken": token}, headers)
            except OriginError as e:
                logger.error(f"[PAGINATION ERROR] Continuation page {pages + 1} failed, keeping {len(places)} places: {e}")
                break

            page_places = data.get("places") or []
            places.extend(page_places)
            token = data.get("nextPageToken")
            pages += 1
            logger.info(f"[PAGINATION] Page {pages} returned {len(page_places)} places")

        records = [essential_fields(place) for place in places if place.get("id")]
        dropped = len(places) - len(records)
        if dropped:
            logger.warning(f"Dropped {dropped} places without an id")
        logger.info(f"[API SUCCESS] Found {len(records)} places for '{query.text_query}' in {pages} page(s)")
        return records

    async def fetch_place(self, place_id: str) -> Record:
        """Look up a single place by id"""
        headers = self._headers(DETAIL_FIELD_MASK)
        headers.pop("Content-Type")
        resource = place_id if place_id.startswith("places/") else f"places/{place_id}"
        url = f"{self.settings.places_details_url.rstrip('/')}/{resource}"

        try:
            response = await self.client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[FETCH ERROR] Details request failed: {e}")
            raise OriginError(503, f"Origin unreachable: {e}") from e

        self._raise_for_status(response, "Place details")
        return essential_fields(response.json())

    async def aclose(self):
        await self.client.aclose()
