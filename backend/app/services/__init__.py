"""Sento Log Services.

Service layer components:
- Cache: TTL cache store with size-bounded eviction and durable snapshots
- Classifier: keyword/type heuristic deciding what counts as a bathhouse
- Places: Google Places API (New) client
- Aggregator: progressive multi-query search with deduplication
- Facility Search: cached nearby search with mock fallback
"""

from .cache import (
    CacheStore,
    CacheStorage,
    InMemoryStorage,
    JsonFileStorage,
    RedisStorage,
    create_storage,
)
from .classifier import FacilityClassifier, KeywordRules, is_bathhouse_related
from .places import GooglePlacesClient, PlacesAPIError, PlacesSearchClient
from .aggregator import SearchAggregator
from .facility_search import FacilitySearchService, validate_api_key

__all__ = [
    # Cache
    "CacheStore",
    "CacheStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "RedisStorage",
    "create_storage",
    # Classifier
    "FacilityClassifier",
    "KeywordRules",
    "is_bathhouse_related",
    # Places
    "GooglePlacesClient",
    "PlacesAPIError",
    "PlacesSearchClient",
    # Aggregator
    "SearchAggregator",
    # Facility search
    "FacilitySearchService",
    "validate_api_key",
]
