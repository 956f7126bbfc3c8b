"""Shared fixtures for unit tests."""

import asyncio
from typing import Sequence

import pytest

from app.models import Coordinates, PlaceDetails, PlaceRecord
from app.services.places import PlacesAPIError, PlacesSearchClient


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePlacesClient(PlacesSearchClient):
    """In-memory places capability.

    ``text`` maps a query to its results or to an exception to raise;
    ``delays`` maps ``"nearby"`` or a query to a sleep before answering;
    ``photos`` maps a photo name to its resolved URL.
    """

    def __init__(
        self,
        nearby: Sequence[PlaceRecord] | Exception = (),
        text: dict | None = None,
        delays: dict | None = None,
        details: dict | None = None,
        photos: dict | None = None,
    ) -> None:
        self.nearby = nearby
        self.text = text or {}
        self.delays = delays or {}
        self.details = details or {}
        self.photos = photos or {}
        self.calls: list[tuple[str, str]] = []

    async def _respond(self, label: str, result):
        delay = self.delays.get(label)
        if delay:
            await asyncio.sleep(delay)
        if isinstance(result, Exception):
            raise result
        return list(result)

    async def search_nearby(self, location, radius, included_types=("spa",)):
        self.calls.append(("nearby", str(radius)))
        return await self._respond("nearby", self.nearby)

    async def search_text(self, location, query, radius):
        self.calls.append(("text", query))
        return await self._respond(query, self.text.get(query, []))

    async def get_place(self, place_id):
        self.calls.append(("details", place_id))
        if place_id not in self.details:
            raise PlacesAPIError("404", f"Place not found: {place_id}")
        place = self.details[place_id]
        if isinstance(place, PlaceDetails):
            return place
        return PlaceDetails.model_validate(place.model_dump())

    def photo_media_url(self, photo_name, max_width=400):
        return f"https://places.test/v1/{photo_name}/media?maxWidthPx={max_width}"

    async def resolve_photo(self, photo_name, max_width=400):
        self.calls.append(("photo", photo_name))
        if photo_name not in self.photos:
            raise PlacesAPIError("404", f"Photo not found: {photo_name}")
        return self.photos[photo_name]


def build_place(
    place_id: str,
    name: str,
    address: str = "",
    types: Sequence[str] = (),
) -> PlaceRecord:
    return PlaceRecord(
        place_id=place_id,
        name=name,
        formatted_address=address,
        location=Coordinates(lat=35.68, lng=139.76),
        types=tuple(types),
    )


@pytest.fixture
def make_place():
    return build_place


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client_cls():
    return FakePlacesClient
