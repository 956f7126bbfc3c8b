"""Cache service module.

Provides the TTL cache store, its durable storage backends and the pure
key-building helpers used by facility search.
"""

from .service import (
    CacheStore,
    build_image_key,
    build_location_key,
    build_place_details_key,
    build_place_key,
    build_search_key,
    estimate_size,
    generate_key,
)
from .storage import (
    CacheStorage,
    InMemoryStorage,
    JsonFileStorage,
    RedisStorage,
    create_storage,
)

__all__ = [
    "CacheStore",
    "CacheStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "RedisStorage",
    "build_image_key",
    "build_location_key",
    "build_place_details_key",
    "build_place_key",
    "build_search_key",
    "create_storage",
    "estimate_size",
    "generate_key",
]
