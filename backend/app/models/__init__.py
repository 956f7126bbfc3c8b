"""Sento Log data models."""

from .core import (
    CacheEntry,
    CacheMetrics,
    CacheSettings,
    Coordinates,
    OpeningHours,
    PlaceDetails,
    PlacePhoto,
    PlaceRecord,
    PlaceReview,
    PriceLevel,
    format_price_level,
    is_open_now,
)
from .errors import AppError, ErrorCode

__all__ = [
    "AppError",
    "CacheEntry",
    "CacheMetrics",
    "CacheSettings",
    "Coordinates",
    "ErrorCode",
    "OpeningHours",
    "PlaceDetails",
    "PlacePhoto",
    "PlaceRecord",
    "PlaceReview",
    "PriceLevel",
    "format_price_level",
    "is_open_now",
]
