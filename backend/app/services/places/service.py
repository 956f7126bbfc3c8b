"""Google Places API (New) client for bathhouse search.

Two query modes are used by the search aggregator:
- Nearby search: places of a category within a restriction circle
- Text search: free-text query biased toward a circle

Details lookups return the richer ``PlaceDetails`` (photos, opening hours,
contact info, reviews). Photos are resolved through the photo media
endpoint.

Responses are normalized into ``PlaceRecord`` objects. Classification is
not done here; callers decide which records are relevant.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import httpx
from pydantic import ValidationError

from app.models import (
    Coordinates,
    OpeningHours,
    PlaceDetails,
    PlacePhoto,
    PlaceRecord,
    PlaceReview,
    PriceLevel,
)

logger = logging.getLogger(__name__)

FIELD_MASK = ",".join([
    "places.id",
    "places.displayName",
    "places.formattedAddress",
    "places.shortFormattedAddress",
    "places.location",
    "places.rating",
    "places.userRatingCount",
    "places.priceLevel",
    "places.types",
])

DETAILS_FIELD_MASK = ",".join(
    [field.removeprefix("places.") for field in FIELD_MASK.split(",")]
    + [
        "photos",
        "regularOpeningHours",
        "currentOpeningHours",
        "nationalPhoneNumber",
        "internationalPhoneNumber",
        "websiteUri",
        "reviews",
    ]
)

MAX_PHOTO_WIDTH = 4800

# Places API (New) reports price levels as enum strings.
PRICE_LEVEL_NAMES = {
    "PRICE_LEVEL_INEXPENSIVE": PriceLevel.INEXPENSIVE,
    "PRICE_LEVEL_MODERATE": PriceLevel.MODERATE,
    "PRICE_LEVEL_EXPENSIVE": PriceLevel.EXPENSIVE,
    "PRICE_LEVEL_VERY_EXPENSIVE": PriceLevel.VERY_EXPENSIVE,
}


class PlacesAPIError(Exception):
    """Raised when the places API returns an error or an unusable body."""

    def __init__(self, status: str, message: str | None = None) -> None:
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}")


def parse_price_level(value: Any) -> Optional[PriceLevel]:
    """Map an API price level (enum name or 1-4 integer) to ``PriceLevel``."""
    if value is None:
        return None
    if isinstance(value, str):
        return PRICE_LEVEL_NAMES.get(value)
    try:
        return PriceLevel(int(value))
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> str:
    # Localized fields arrive either as plain strings or {"text": ...}.
    if isinstance(value, dict):
        return str(value.get("text") or "")
    return str(value) if value else ""


def _record_fields(raw: dict) -> dict | None:
    place_id = raw.get("id") or raw.get("place_id")
    location = raw.get("location")
    if not place_id or not isinstance(location or {}, dict):
        return None
    location = location or {}

    address = raw.get("formattedAddress")
    if not isinstance(address, str):
        address = ""
    types = raw.get("types")
    return {
        "place_id": str(place_id),
        "name": _text(raw.get("displayName")) or _text(raw.get("name")) or "Unknown",
        "formatted_address": address,
        "location": {
            "lat": location.get("latitude", 0),
            "lng": location.get("longitude", 0),
        },
        "rating": raw.get("rating") or None,
        "user_ratings_total": raw.get("userRatingCount") or None,
        "price_level": parse_price_level(raw.get("priceLevel")),
        "types": tuple(t for t in types if isinstance(t, str)) if isinstance(types, list) else (),
        "vicinity": raw.get("shortFormattedAddress") or address.split(",")[0],
    }


def normalize_place(raw: dict) -> PlaceRecord | None:
    """Convert one raw Places API record into a ``PlaceRecord``.

    Returns None for records without an id or with unusable fields.
    """
    fields = _record_fields(raw)
    if fields is None:
        logger.info(f"[PLACES] Skipping place without id or location: {raw.get('id')}")
        return None
    try:
        return PlaceRecord.model_validate(fields)
    except ValidationError as e:
        logger.info(f"[PLACES] Skipping malformed place {fields['place_id']}: {e.error_count()} errors")
        return None


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _dicts(value: Any) -> list[dict]:
    return [item for item in _list(value) if isinstance(item, dict)]


def normalize_details(raw: dict) -> PlaceDetails | None:
    """Convert a details response into ``PlaceDetails``.

    Malformed photos and reviews are skipped one by one; a malformed core
    record makes the whole result None.
    """
    fields = _record_fields(raw)
    if fields is None:
        return None

    photos = []
    for photo in _dicts(raw.get("photos")):
        try:
            photos.append(PlacePhoto(
                name=photo.get("name") or "",
                width_px=photo.get("widthPx"),
                height_px=photo.get("heightPx"),
                attributions=tuple(
                    _text(author.get("displayName"))
                    for author in _dicts(photo.get("authorAttributions"))
                ),
            ))
        except ValidationError:
            continue

    reviews = []
    for review in _dicts(raw.get("reviews")):
        author = review.get("authorAttribution")
        try:
            reviews.append(PlaceReview(
                author_name=_text(author.get("displayName")) if isinstance(author, dict) else "",
                rating=review.get("rating"),
                text=_text(review.get("text") or review.get("originalText")),
                relative_time_description=review.get("relativePublishTimeDescription") or "",
                publish_time=review.get("publishTime"),
            ))
        except ValidationError:
            continue

    hours = raw.get("currentOpeningHours") or raw.get("regularOpeningHours")
    opening_hours = None
    if isinstance(hours, dict):
        opening_hours = OpeningHours(
            open_now=hours.get("openNow") if isinstance(hours.get("openNow"), bool) else None,
            weekday_descriptions=tuple(
                str(line) for line in _list(hours.get("weekdayDescriptions"))
            ),
        )

    try:
        return PlaceDetails.model_validate({
            **fields,
            "photos": tuple(photos),
            "opening_hours": opening_hours,
            "phone": raw.get("nationalPhoneNumber"),
            "international_phone": raw.get("internationalPhoneNumber"),
            "website": raw.get("websiteUri"),
            "reviews": tuple(reviews),
        })
    except ValidationError as e:
        logger.info(f"[PLACES] Malformed place details {fields['place_id']}: {e.error_count()} errors")
        return None


def normalize_response(payload: Any) -> list[PlaceRecord]:
    """Normalize a search response body into place records."""
    if not isinstance(payload, dict):
        raise PlacesAPIError("MALFORMED_RESPONSE", "response body is not an object")
    raw_places = payload.get("places")
    if raw_places is None:
        return []
    if not isinstance(raw_places, list):
        raise PlacesAPIError("MALFORMED_RESPONSE", "'places' is not a list")

    places = []
    for raw in raw_places:
        if isinstance(raw, dict):
            place = normalize_place(raw)
            if place is not None:
                places.append(place)
    return places


def _circle(location: Coordinates, radius: float) -> dict:
    return {
        "circle": {
            "center": {"latitude": location.lat, "longitude": location.lng},
            "radius": float(radius),
        }
    }


class PlacesSearchClient(ABC):
    """Abstract base class for the external places search capability."""

    @abstractmethod
    async def search_nearby(
        self,
        location: Coordinates,
        radius: int,
        included_types: Sequence[str] = ("spa",),
    ) -> list[PlaceRecord]:
        """Find places of the given types inside a circle."""
        pass

    @abstractmethod
    async def search_text(
        self, location: Coordinates, query: str, radius: int
    ) -> list[PlaceRecord]:
        """Free-text search biased toward a circle."""
        pass

    @abstractmethod
    async def get_place(self, place_id: str) -> PlaceDetails:
        """Fetch one place by id, with details fields."""
        pass

    @abstractmethod
    def photo_media_url(self, photo_name: str, max_width: int) -> str:
        """Build the photo media URL for a photo resource name."""
        pass

    @abstractmethod
    async def resolve_photo(self, photo_name: str, max_width: int) -> str:
        """Resolve a photo resource name to a keyless image URL."""
        pass

    async def close(self) -> None:
        pass


class GooglePlacesClient(PlacesSearchClient):
    """Places API (New) implementation over a shared httpx client.

    Attributes:
        _client: Lazily created ``httpx.AsyncClient``.
    """

    DEFAULT_BASE_URL = "https://places.googleapis.com/v1"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 5.0,
        max_results: int = 10,
        language_code: str = "ja",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_results = max_results
        self._language_code = language_code
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={
                    "Content-Type": "application/json",
                    "X-Goog-Api-Key": self._api_key,
                },
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        field_mask: str | None,
        body: dict | None = None,
        params: dict | None = None,
    ) -> Any:
        client = self._get_client()
        response = await client.request(
            method,
            f"{self._base_url}/{path}",
            json=body,
            params=params,
            headers={"X-Goog-FieldMask": field_mask} if field_mask else None,
        )
        if response.status_code == 403:
            logger.error(
                "[PLACES] PERMISSION_DENIED - check that Places API (New) is enabled, "
                "the key restrictions and billing"
            )
        if response.is_error:
            raise PlacesAPIError(str(response.status_code), response.text[:500])
        try:
            return response.json()
        except ValueError as e:
            raise PlacesAPIError("MALFORMED_RESPONSE", str(e)) from e

    async def search_nearby(
        self,
        location: Coordinates,
        radius: int,
        included_types: Sequence[str] = ("spa",),
    ) -> list[PlaceRecord]:
        body = {
            "includedTypes": list(included_types),
            "maxResultCount": self._max_results,
            "locationRestriction": _circle(location, radius),
            "languageCode": self._language_code,
        }
        payload = await self._request("POST", "places:searchNearby", FIELD_MASK, body)
        places = normalize_response(payload)
        logger.debug(f"[PLACES] Nearby search returned {len(places)} places")
        return places

    async def search_text(
        self, location: Coordinates, query: str, radius: int
    ) -> list[PlaceRecord]:
        body = {
            "textQuery": query,
            "locationBias": _circle(location, radius),
            "languageCode": self._language_code,
            "maxResultCount": self._max_results,
        }
        payload = await self._request("POST", "places:searchText", FIELD_MASK, body)
        places = normalize_response(payload)
        logger.debug(f"[PLACES] Text search '{query}' returned {len(places)} places")
        return places

    async def get_place(self, place_id: str) -> PlaceDetails:
        if not place_id:
            raise ValueError("place_id cannot be empty")

        payload = await self._request(
            "GET",
            f"places/{place_id}",
            DETAILS_FIELD_MASK,
            params={"languageCode": self._language_code},
        )
        place = normalize_details(payload) if isinstance(payload, dict) else None
        if place is None:
            raise PlacesAPIError("MALFORMED_RESPONSE", f"Invalid place data: {place_id}")
        return place

    def photo_media_url(self, photo_name: str, max_width: int = 400) -> str:
        width = max(1, min(int(max_width), MAX_PHOTO_WIDTH))
        return f"{self._base_url}/{photo_name}/media?maxWidthPx={width}"

    async def resolve_photo(self, photo_name: str, max_width: int = 400) -> str:
        """Ask the media endpoint for the photo URL instead of the image bytes."""
        if not photo_name:
            raise ValueError("photo_name cannot be empty")

        width = max(1, min(int(max_width), MAX_PHOTO_WIDTH))
        payload = await self._request(
            "GET",
            f"{photo_name}/media",
            None,
            params={"maxWidthPx": width, "skipHttpRedirect": "true"},
        )
        photo_uri = payload.get("photoUri") if isinstance(payload, dict) else None
        if not isinstance(photo_uri, str) or not photo_uri:
            raise PlacesAPIError("MALFORMED_RESPONSE", f"No photoUri for {photo_name}")
        return photo_uri
