"""Environment configuration.

Values come from the process environment, optionally seeded from a ``.env``
file. Everything has a development-friendly default so the backend starts
without any configuration (facility search then serves mock data).

Configuration can be overridden via environment variables:
- GOOGLE_PLACES_API_KEY=...
- CACHE_BACKEND=redis
- PLACES_QUERY_TIMEOUT=3.5
- etc.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for the facility search backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    google_places_api_key: str = ""
    places_api_base_url: str = "https://places.googleapis.com/v1"
    places_query_timeout: float = Field(default=5.0, gt=0)
    places_max_results: int = Field(default=10, ge=1, le=20)
    places_language_code: str = "ja"
    text_search_radius: int = Field(default=10000, ge=1, le=50000)

    cache_backend: Literal["file", "redis", "memory"] = "file"
    cache_dir: str = ".cache/sento-log"
    redis_url: str = "redis://localhost:6379"
    cache_max_size_mb: float = Field(default=100, gt=0)
    cache_auto_cleanup: bool = True

    classifier_rules_path: Optional[str] = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("cache_backend", mode="before")
    @classmethod
    def _lower_backend(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("classifier_rules_path", mode="before")
    @classmethod
    def _empty_path_is_none(cls, value):
        return value or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process.

    Tests that change the environment call ``get_settings.cache_clear()``.
    """
    return Settings()
