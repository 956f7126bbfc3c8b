"""Sento Log FastAPI Application.

Main entry point for the facility search backend. The lifespan handler is
the composition root: it builds the cache store, places client and search
services once and hangs them on ``app.state``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.api import router
from app.config import Settings, get_settings
from app.models import CacheSettings, ErrorCode
from app.services import (
    CacheStore,
    FacilityClassifier,
    FacilitySearchService,
    GooglePlacesClient,
    KeywordRules,
    SearchAggregator,
    create_storage,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)


async def build_services(app: FastAPI, settings: Settings) -> None:
    """Create the application's services and attach them to ``app.state``."""
    storage = create_storage(settings.cache_backend, settings.cache_dir, settings.redis_url)
    cache = CacheStore(
        storage,
        CacheSettings(
            max_size_mb=settings.cache_max_size_mb,
            auto_cleanup=settings.cache_auto_cleanup,
        ),
    )
    await cache.load()
    cache.start()

    rules = (
        KeywordRules.from_file(settings.classifier_rules_path)
        if settings.classifier_rules_path
        else KeywordRules()
    )
    client = GooglePlacesClient(
        api_key=settings.google_places_api_key,
        base_url=settings.places_api_base_url,
        timeout=settings.places_query_timeout,
        max_results=settings.places_max_results,
        language_code=settings.places_language_code,
    )
    aggregator = SearchAggregator(
        client,
        FacilityClassifier(rules),
        query_timeout=settings.places_query_timeout,
        text_search_radius=settings.text_search_radius,
    )

    app.state.storage = storage
    app.state.cache = cache
    app.state.places_client = client
    app.state.facility_search = FacilitySearchService(
        cache, client, settings.google_places_api_key, aggregator
    )


async def shutdown_services(app: FastAPI) -> None:
    """Flush the cache and release network resources."""
    await app.state.cache.close()
    await app.state.places_client.close()
    await app.state.storage.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await build_services(app, settings)
    logger.info(f"Cache backend: {settings.cache_backend}")
    yield
    # Shutdown
    await shutdown_services(app)


app = FastAPI(
    title="Sento Log API",
    description="Nearby bathhouse search for the Sento Log journaling app",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:8081",
        "http://localhost:19006",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    """Handle Pydantic validation errors."""
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.VALIDATION_ERROR.value,
                "message": str(exc),
                "user_message": "Invalid request format. Please check your input.",
            },
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors."""
    logger.exception("Unhandled error")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.API_ERROR.value,
                "message": str(exc),
                "user_message": "Something went wrong. Please try again.",
            },
        },
    )


# Include API routes
app.include_router(router, prefix="/api")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
