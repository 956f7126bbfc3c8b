"""API routes for Sento Log facility search.

- Nearby search returns the final list in one response
- The streaming variant emits NDJSON lines as search phases complete, so
  the map can show pins before every query has finished
- Details and photo endpoints back the facility detail screen
- Cache endpoints expose metrics and settings for the settings screen
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from app.models import (
    AppError,
    CacheMetrics,
    CacheSettings,
    Coordinates,
    ErrorCode,
    PlaceDetails,
    PlaceRecord,
)
from app.services.cache import CacheStore
from app.services.facility_search import FacilitySearchService

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Dependencies ───


def get_facility_search(request: Request) -> FacilitySearchService:
    return request.app.state.facility_search


def get_cache_store(request: Request) -> CacheStore:
    return request.app.state.cache


class NearbyQuery(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    radius: int = Field(10000, ge=1, le=50000)
    keyword: Optional[str] = Field(None, max_length=100)

    @property
    def location(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


def nearby_query(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: int = Query(10000, ge=1, le=50000),
    keyword: Optional[str] = Query(None, max_length=100),
) -> NearbyQuery:
    return NearbyQuery(lat=lat, lng=lng, radius=radius, keyword=keyword or None)


# ─── Response models ───


class NearbyFacilitiesResponse(BaseModel):
    success: bool
    count: int = 0
    places: list[PlaceRecord] = Field(default_factory=list)


class PlaceDetailsResponse(BaseModel):
    success: bool
    place: Optional[PlaceDetails] = None
    error: Optional[AppError] = None


class PhotoUrlResponse(BaseModel):
    success: bool
    url: Optional[str] = None
    error: Optional[AppError] = None


class CacheSettingsUpdate(BaseModel):
    max_size_mb: Optional[float] = Field(None, gt=0)
    default_ttl: Optional[float] = Field(None, gt=0)
    cleanup_interval: Optional[float] = Field(None, gt=0)
    auto_cleanup: Optional[bool] = None


# ─── Facility search ───


@router.get("/facilities/nearby", response_model=NearbyFacilitiesResponse)
async def search_nearby_facilities(
    query: NearbyQuery = Depends(nearby_query),
    service: FacilitySearchService = Depends(get_facility_search),
) -> NearbyFacilitiesResponse:
    """Search bathhouses around a coordinate."""
    places = await service.search_nearby(query.location, query.radius, query.keyword)
    return NearbyFacilitiesResponse(success=True, count=len(places), places=places)


def _ndjson(kind: str, places: list[PlaceRecord]) -> str:
    line = {
        "type": kind,
        "count": len(places),
        "places": [place.model_dump(mode="json") for place in places],
    }
    return json.dumps(line, ensure_ascii=False) + "\n"


@router.get("/facilities/nearby/stream")
async def stream_nearby_facilities(
    query: NearbyQuery = Depends(nearby_query),
    service: FacilitySearchService = Depends(get_facility_search),
) -> StreamingResponse:
    """Stream progressive search results as newline-delimited JSON.

    Emits one ``progress`` line per search phase that found new places,
    then a single ``result`` line with the final list.
    """
    batches: asyncio.Queue[list[PlaceRecord]] = asyncio.Queue()

    async def lines() -> AsyncIterator[str]:
        search = asyncio.create_task(
            service.search_nearby(
                query.location, query.radius, query.keyword, on_progress=batches.put_nowait
            )
        )
        try:
            while not search.done() or not batches.empty():
                getter = asyncio.ensure_future(batches.get())
                done, _ = await asyncio.wait(
                    {getter, search}, return_when=asyncio.FIRST_COMPLETED
                )
                if getter in done:
                    yield _ndjson("progress", getter.result())
                else:
                    getter.cancel()
            yield _ndjson("result", await search)
        finally:
            if not search.done():
                search.cancel()

    return StreamingResponse(lines(), media_type="application/x-ndjson")


@router.get("/places/photo", response_model=PhotoUrlResponse)
async def get_place_photo(
    name: str = Query(..., min_length=1, max_length=300),
    max_width: int = Query(400, ge=64, le=1600),
    service: FacilitySearchService = Depends(get_facility_search),
):
    """Resolve a photo resource name to a loadable image URL."""
    url = await service.get_photo_url(name, max_width)
    if url is None:
        response = PhotoUrlResponse(
            success=False,
            error=AppError(
                code=ErrorCode.NOT_FOUND,
                message=f"Photo not available: {name}",
                user_message="This photo could not be loaded.",
            ),
        )
        return JSONResponse(status_code=404, content=response.model_dump(mode="json"))
    return PhotoUrlResponse(success=True, url=url)


@router.get("/places/{place_id}", response_model=PlaceDetailsResponse)
async def get_place_details(
    place_id: str,
    service: FacilitySearchService = Depends(get_facility_search),
):
    """Get details for a single facility."""
    place = await service.get_place_details(place_id)
    if place is None:
        response = PlaceDetailsResponse(
            success=False,
            error=AppError(
                code=ErrorCode.NOT_FOUND,
                message=f"Place not available: {place_id}",
                user_message="This facility could not be loaded. Please try again later.",
            ),
        )
        return JSONResponse(status_code=404, content=response.model_dump(mode="json"))
    return PlaceDetailsResponse(success=True, place=place)


# ─── Cache management ───


@router.get("/cache/metrics", response_model=CacheMetrics)
async def get_cache_metrics(cache: CacheStore = Depends(get_cache_store)) -> CacheMetrics:
    return cache.get_metrics()


@router.get("/cache/settings", response_model=CacheSettings)
async def get_cache_settings(cache: CacheStore = Depends(get_cache_store)) -> CacheSettings:
    return cache.get_settings()


@router.patch("/cache/settings", response_model=CacheSettings)
async def update_cache_settings(
    update: CacheSettingsUpdate,
    cache: CacheStore = Depends(get_cache_store),
) -> CacheSettings:
    """Change cache settings. Omitted fields keep their current value."""
    return await cache.update_settings(**update.model_dump(exclude_none=True))


@router.post("/cache/cleanup", response_model=CacheMetrics)
async def run_cache_cleanup(cache: CacheStore = Depends(get_cache_store)) -> CacheMetrics:
    await cache.cleanup()
    return cache.get_metrics()


@router.delete("/cache", response_model=CacheMetrics)
async def clear_cache(cache: CacheStore = Depends(get_cache_store)) -> CacheMetrics:
    await cache.clear()
    return cache.get_metrics()
