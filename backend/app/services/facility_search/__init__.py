"""Facility search façade module."""

from .service import (
    ApiKeyValidation,
    FacilitySearchService,
    build_mock_places,
    validate_api_key,
)

__all__ = [
    "ApiKeyValidation",
    "FacilitySearchService",
    "build_mock_places",
    "validate_api_key",
]
