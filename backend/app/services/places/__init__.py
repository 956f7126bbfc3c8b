"""Places search client module."""

from .service import (
    GooglePlacesClient,
    PlacesAPIError,
    PlacesSearchClient,
    normalize_details,
    normalize_place,
    normalize_response,
    parse_price_level,
)

__all__ = [
    "GooglePlacesClient",
    "PlacesAPIError",
    "PlacesSearchClient",
    "normalize_details",
    "normalize_place",
    "normalize_response",
    "parse_price_level",
]
