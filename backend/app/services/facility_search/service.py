"""Facility search façade.

Public entry point for nearby bathhouse search. Combines the cache store,
the search aggregator and the classifier:

1. Misconfigured API key -> mock facilities (keeps the app usable offline)
2. Cache hit -> cached list, no network and no progress callbacks
3. Cache miss -> progressive aggregation, result cached for 24 hours
4. Unexpected aggregation failure -> mock facilities
5. Unreadable cache entry -> dropped and treated as a miss

This service never raises for "nothing found" or "API misconfigured".
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from app.models import Coordinates, PlaceDetails, PlaceRecord, PriceLevel
from app.services.aggregator import ProgressCallback, SearchAggregator
from app.services.cache import (
    CacheStore,
    build_image_key,
    build_place_details_key,
    build_search_key,
)
from app.services.places import PlacesAPIError, PlacesSearchClient

logger = logging.getLogger(__name__)

RESULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_SEARCH_RADIUS = 10000
MOCK_SEARCH_RADIUS = 5000
DEFAULT_PHOTO_WIDTH = 400
MIN_API_KEY_LENGTH = 30
PLACEHOLDER_API_KEYS = frozenset({
    "your_actual_api_key_here",
    "your_api_key_here",
    "your_google_places_api_key",
    "changeme",
})


@dataclass
class ApiKeyValidation:
    """Outcome of checking the configured places API key."""
    is_valid: bool
    masked_key: str
    issues: list[str] = field(default_factory=list)


def validate_api_key(api_key: Optional[str]) -> ApiKeyValidation:
    """Check that an API key is present, not a placeholder and long enough."""
    key = (api_key or "").strip()
    issues = []

    if not key:
        issues.append("API key is empty or undefined")
    elif key.lower() in PLACEHOLDER_API_KEYS:
        issues.append("API key is still a placeholder")
    elif len(key) < MIN_API_KEY_LENGTH:
        issues.append("API key is too short")

    masked = f"{key[:8]}...{key[-4:]}" if key else "NONE"
    return ApiKeyValidation(is_valid=not issues, masked_key=masked, issues=issues)


def build_mock_places(location: Coordinates) -> list[PlaceRecord]:
    """Three synthetic facilities placed around ``location``."""
    def offset(d_lat: float, d_lng: float) -> Coordinates:
        return Coordinates(lat=location.lat + d_lat, lng=location.lng + d_lng)

    return [
        PlaceRecord(
            place_id="mock_1",
            name="大江戸温泉物語",
            formatted_address="東京都江東区青海2-6-3",
            location=offset(0.01, 0.01),
            rating=4.2,
            user_ratings_total=1250,
            price_level=PriceLevel.EXPENSIVE,
            types=("spa", "tourist_attraction"),
            vicinity="青海",
        ),
        PlaceRecord(
            place_id="mock_2",
            name="湯乃泉 草加健康センター",
            formatted_address="埼玉県草加市稲荷3-1-20",
            location=offset(-0.02, 0.015),
            rating=4.5,
            user_ratings_total=890,
            price_level=PriceLevel.MODERATE,
            types=("spa", "health"),
            vicinity="草加市",
        ),
        PlaceRecord(
            place_id="mock_3",
            name="桜湯",
            formatted_address="東京都台東区谷中3-10-5",
            location=offset(0.005, -0.01),
            rating=4.0,
            user_ratings_total=420,
            price_level=PriceLevel.INEXPENSIVE,
            types=("spa",),
            vicinity="谷中",
        ),
    ]


def _dump(places: list[PlaceRecord]) -> list[dict]:
    return [place.model_dump(mode="json") for place in places]


_places_adapter = TypeAdapter(list[PlaceRecord])
_details_adapter = TypeAdapter(PlaceDetails)


class FacilitySearchService:
    """Nearby bathhouse search with caching and mock fallback.

    Attributes:
        _cache: Cache store shared with the rest of the application.
        _client: Places search capability, also used for details lookups.
        _aggregator: Multi-query search pipeline.
    """

    def __init__(
        self,
        cache: CacheStore,
        client: PlacesSearchClient,
        api_key: Optional[str],
        aggregator: Optional[SearchAggregator] = None,
        result_ttl: float = RESULT_TTL_SECONDS,
    ) -> None:
        self._cache = cache
        self._client = client
        self._api_key = api_key
        self._aggregator = aggregator or SearchAggregator(client)
        self._result_ttl = result_ttl

    def validate_api_key(self) -> ApiKeyValidation:
        return validate_api_key(self._api_key)

    async def search_nearby(
        self,
        location: Coordinates,
        radius: int = DEFAULT_SEARCH_RADIUS,
        keyword: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[PlaceRecord]:
        """Search for bathhouses near ``location``.

        Args:
            location: Search center.
            radius: Search radius in meters.
            keyword: Optional extra text query.
            on_progress: Receives growing result lists while searching.
                Not called on cache hits or mock fallback.

        Returns:
            Bathhouse-related places, possibly empty, or mock data when
            the API is unusable.
        """
        keyword = (keyword or "").strip() or None
        validation = self.validate_api_key()
        if not validation.is_valid:
            logger.warning(f"[SEARCH] Places API key issues: {validation.issues}")
            logger.warning(f"[SEARCH] API key preview: {validation.masked_key}; using mock data")
            return await self.get_mock_places(location)

        search_key = build_search_key(location.lat, location.lng, radius, keyword)
        cached = await self._read_cached(search_key, _places_adapter)
        if cached is not None:
            logger.info(f"[SEARCH] Cache hit for {search_key}")
            return cached

        logger.info(
            f"[SEARCH] Searching ({location.lat}, {location.lng}) radius={radius}m "
            f"key={validation.masked_key}"
        )
        try:
            places = await self._aggregator.aggregate(location, radius, keyword, on_progress)
        except Exception:
            logger.exception("[SEARCH] Error searching nearby bathhouses, falling back to mock data")
            return await self.get_mock_places(location)

        await self._cache.set(search_key, _dump(places), self._result_ttl)
        return places

    async def get_mock_places(self, location: Coordinates) -> list[PlaceRecord]:
        """Return the mock dataset for ``location``, cached like real results."""
        search_key = build_search_key(location.lat, location.lng, MOCK_SEARCH_RADIUS)
        cached = await self._read_cached(search_key, _places_adapter)
        if cached is not None:
            return cached

        places = build_mock_places(location)
        await self._cache.set(search_key, _dump(places), self._result_ttl)
        return places

    async def get_place_details(self, place_id: str) -> PlaceDetails | None:
        """Look up one place, using the cache when possible.

        Returns None when the API key is unusable or the lookup fails.
        """
        if not place_id:
            raise ValueError("place_id cannot be empty")

        validation = self.validate_api_key()
        if not validation.is_valid:
            logger.warning(f"[SEARCH] Places API key not configured: {validation.issues}")
            return None

        cache_key = build_place_details_key(place_id)
        cached = await self._read_cached(cache_key, _details_adapter)
        if cached is not None:
            return cached

        try:
            place = await self._client.get_place(place_id)
        except (PlacesAPIError, httpx.HTTPError) as e:
            logger.error(f"[SEARCH] Error getting place details for {place_id}: {e}")
            return None

        await self._cache.set(cache_key, place.model_dump(mode="json"), self._result_ttl)
        return place

    async def get_photo_url(
        self, photo_name: str, max_width: int = DEFAULT_PHOTO_WIDTH
    ) -> str | None:
        """Resolve a place photo to a URL the app can load directly.

        The resolved URL carries no API key. It is cached for a day under
        the photo's media URL.

        Returns None when the API key is unusable, the photo name is empty
        or the lookup fails.
        """
        if not photo_name or not self.validate_api_key().is_valid:
            return None

        cache_key = build_image_key(self._client.photo_media_url(photo_name, max_width))
        cached = await self._cache.get(cache_key)
        if isinstance(cached, str):
            return cached

        try:
            url = await self._client.resolve_photo(photo_name, max_width)
        except (PlacesAPIError, httpx.HTTPError) as e:
            logger.error(f"[SEARCH] Error resolving photo {photo_name}: {e}")
            return None

        await self._cache.set(cache_key, url, self._result_ttl)
        return url

    async def _read_cached(self, key: str, adapter: TypeAdapter):
        """Read and validate a cached value.

        An entry that no longer validates (stale shape, hand-edited or
        damaged storage) is dropped and reported as a miss.
        """
        cached = await self._cache.get(key)
        if cached is None:
            return None
        try:
            return adapter.validate_python(cached)
        except ValidationError as e:
            logger.warning(f"[SEARCH] Dropping unreadable cache entry {key}: {e.error_count()} errors")
            await self._cache.remove(key)
            return None
