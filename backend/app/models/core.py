"""Core data models for Sento Log.

This module contains the Pydantic models shared by the facility search
services: coordinates, normalized place records and the cache bookkeeping
records (entries, metrics, settings).
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class Coordinates(BaseModel):
    """Geographic coordinates with validation.

    Latitude must be between -90 and 90 degrees.
    Longitude must be between -180 and 180 degrees.
    """

    lat: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    lng: float = Field(..., ge=-180, le=180, description="Longitude in degrees")


class PriceLevel(int, Enum):
    """Price level indicators for facilities, matching Google Places values."""

    INEXPENSIVE = 1
    MODERATE = 2
    EXPENSIVE = 3
    VERY_EXPENSIVE = 4

    @property
    def label(self) -> str:
        """Approximate admission range shown to users."""
        return PRICE_LEVEL_LABELS[self]


PRICE_LEVEL_LABELS = {
    PriceLevel.INEXPENSIVE: "¥500-¥800",
    PriceLevel.MODERATE: "¥800-¥1,500",
    PriceLevel.EXPENSIVE: "¥1,500-¥3,000",
    PriceLevel.VERY_EXPENSIVE: "¥3,000以上",
}

UNKNOWN_PRICE_LABEL = "料金不明"


def format_price_level(price_level: Optional[int]) -> str:
    """Format a price level for display, falling back to "unknown"."""
    try:
        return PriceLevel(price_level).label
    except ValueError:
        return UNKNOWN_PRICE_LABEL


class PlaceRecord(BaseModel):
    """A bathhouse-or-similar facility returned by the places search.

    Records are immutable once built from an API response; identity is
    ``place_id``.
    """

    model_config = ConfigDict(frozen=True)

    place_id: str = Field(..., min_length=1, description="Places unique identifier")
    name: str = Field(..., description="Display name of the facility")
    formatted_address: str = Field(default="", description="Formatted address")
    location: Coordinates = Field(..., description="Geographic location")
    rating: Optional[float] = Field(None, ge=0, le=5, description="Average rating")
    user_ratings_total: Optional[int] = Field(
        None, ge=0, description="Number of user ratings"
    )
    price_level: Optional[PriceLevel] = Field(None, description="Price level 1-4")
    types: tuple[str, ...] = Field(
        default_factory=tuple, description="Place type categories"
    )
    vicinity: str = Field(default="", description="Short locality for list rows")

    @property
    def price_label(self) -> str:
        return format_price_level(self.price_level)


class PlacePhoto(BaseModel):
    """Reference to a place photo.

    ``name`` is the photo resource name (``places/{id}/photos/{ref}``) that
    the photo media endpoint expects.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    width_px: Optional[int] = Field(None, ge=0)
    height_px: Optional[int] = Field(None, ge=0)
    attributions: tuple[str, ...] = Field(default_factory=tuple)


class OpeningHours(BaseModel):
    """Opening hours as reported by the places API."""

    model_config = ConfigDict(frozen=True)

    open_now: Optional[bool] = None
    weekday_descriptions: tuple[str, ...] = Field(default_factory=tuple)


class PlaceReview(BaseModel):
    """A single user review."""

    model_config = ConfigDict(frozen=True)

    author_name: str = ""
    rating: Optional[float] = Field(None, ge=0, le=5)
    text: str = ""
    relative_time_description: str = ""
    publish_time: Optional[str] = None


class PlaceDetails(PlaceRecord):
    """A place record plus the fields only a details lookup returns."""

    photos: tuple[PlacePhoto, ...] = Field(default_factory=tuple)
    opening_hours: Optional[OpeningHours] = None
    phone: Optional[str] = Field(None, description="National format phone number")
    international_phone: Optional[str] = None
    website: Optional[str] = None
    reviews: tuple[PlaceReview, ...] = Field(default_factory=tuple)

    @computed_field
    @property
    def open_now(self) -> bool:
        return is_open_now(self.opening_hours)


def is_open_now(opening_hours: Optional[OpeningHours]) -> bool:
    """Return True only when the place is known to be open right now."""
    if opening_hours is None:
        return False
    return bool(opening_hours.open_now)


class CacheEntry(BaseModel):
    """A cached blob tagged with its creation and expiry timestamps.

    Timestamps are epoch seconds. An entry whose ``expires_at`` has passed
    is logically absent even before a cleanup sweep removes it.
    """

    data: Any
    created_at: float
    expires_at: float

    @model_validator(mode="after")
    def _check_expiry(self) -> "CacheEntry":
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class CacheMetrics(BaseModel):
    """Process-wide cache counters."""

    hits: int = 0
    misses: int = 0
    total_size: int = Field(default=0, description="Estimated size in bytes")
    last_cleanup: float = Field(default=0.0, description="Epoch seconds of last sweep")


class CacheSettings(BaseModel):
    """Tunable cache behavior.

    Durations are in seconds; ``max_size_mb`` is the eviction ceiling.
    """

    max_size_mb: float = Field(default=100, gt=0)
    default_ttl: float = Field(default=7 * 24 * 60 * 60, gt=0)
    cleanup_interval: float = Field(default=24 * 60 * 60, gt=0)
    auto_cleanup: bool = True

    @property
    def max_size_bytes(self) -> float:
        return self.max_size_mb * 1024 * 1024
