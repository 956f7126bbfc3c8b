"""Unit tests for the facility search façade."""

import pytest

from app.models import Coordinates, PriceLevel
from app.services.aggregator import SearchAggregator
from app.services.cache import (
    CacheStore,
    InMemoryStorage,
    build_image_key,
    build_place_details_key,
    build_search_key,
)
from app.services.facility_search import (
    FacilitySearchService,
    build_mock_places,
    validate_api_key,
)

TOKYO = Coordinates(lat=35.6812, lng=139.7671)
VALID_API_KEY = "AIzaSyTestKey" + "x" * 30


class ExplodingAggregator(SearchAggregator):
    """Aggregator whose pipeline fails outright."""

    async def aggregate(self, location, radius, keyword=None, on_progress=None):
        raise RuntimeError("unexpected bug")


class TestValidateApiKey:
    """Tests for API key validation."""

    def test_valid_key(self) -> None:
        result = validate_api_key(VALID_API_KEY)
        assert result.is_valid is True
        assert result.issues == []
        assert result.masked_key == f"{VALID_API_KEY[:8]}...{VALID_API_KEY[-4:]}"

    def test_empty_key(self) -> None:
        result = validate_api_key("")
        assert result.is_valid is False
        assert result.masked_key == "NONE"
        assert len(result.issues) == 1

    def test_none_key(self) -> None:
        assert validate_api_key(None).is_valid is False

    def test_placeholder_key(self) -> None:
        result = validate_api_key("your_actual_api_key_here")
        assert result.is_valid is False
        assert "placeholder" in result.issues[0]

    def test_short_key(self) -> None:
        result = validate_api_key("AIza123")
        assert result.is_valid is False
        assert "too short" in result.issues[0]


class TestMockPlaces:
    """Tests for the mock dataset."""

    def test_three_facilities_offset_from_location(self) -> None:
        places = build_mock_places(TOKYO)
        assert [p.place_id for p in places] == ["mock_1", "mock_2", "mock_3"]
        assert places[0].location.lat == pytest.approx(TOKYO.lat + 0.01)
        assert places[1].location.lng == pytest.approx(TOKYO.lng + 0.015)
        assert places[2].price_level == PriceLevel.INEXPENSIVE
        assert [p.vicinity for p in places] == ["青海", "草加市", "谷中"]


class TestFacilitySearchService:
    """Tests for search_nearby."""

    def _service(self, client, api_key=VALID_API_KEY, aggregator=None, clock=None):
        cache = CacheStore(InMemoryStorage(), clock=clock) if clock else CacheStore(InMemoryStorage())
        return FacilitySearchService(cache, client, api_key, aggregator), cache

    @pytest.mark.asyncio
    @pytest.mark.parametrize("api_key", ["", "your_actual_api_key_here", "short"])
    async def test_bad_credential_returns_mock_without_queries(self, api_key, fake_client_cls) -> None:
        client = fake_client_cls()
        service, _ = self._service(client, api_key=api_key)

        places = await service.search_nearby(TOKYO, 10000)

        assert [p.place_id for p in places] == ["mock_1", "mock_2", "mock_3"]
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_mock_data_is_cached(self, fake_client_cls) -> None:
        service, cache = self._service(fake_client_cls(), api_key="")
        await service.search_nearby(TOKYO)

        cached = await cache.get(build_search_key(TOKYO.lat, TOKYO.lng, 5000))
        assert [item["place_id"] for item in cached] == ["mock_1", "mock_2", "mock_3"]

    @pytest.mark.asyncio
    async def test_cache_miss_searches_and_stores(self, make_place, fake_client_cls) -> None:
        client = fake_client_cls(nearby=[make_place("a", "桜湯")])
        service, cache = self._service(client)

        places = await service.search_nearby(TOKYO, 3000, "サウナ")

        assert [p.place_id for p in places] == ["a"]
        cached = await cache.get(build_search_key(TOKYO.lat, TOKYO.lng, 3000, "サウナ"))
        assert [item["place_id"] for item in cached] == ["a"]

    @pytest.mark.asyncio
    async def test_cache_hit_skips_network_and_progress(self, make_place, fake_client_cls) -> None:
        client = fake_client_cls(nearby=[make_place("a", "桜湯")])
        service, _ = self._service(client)
        await service.search_nearby(TOKYO, 3000)
        calls_after_first = len(client.calls)

        progress = []
        places = await service.search_nearby(TOKYO, 3000, on_progress=progress.append)

        assert [p.place_id for p in places] == ["a"]
        assert places[0].name == "桜湯"
        assert len(client.calls) == calls_after_first
        assert progress == []

    @pytest.mark.asyncio
    async def test_progress_forwarded_on_miss(self, make_place, fake_client_cls) -> None:
        client = fake_client_cls(
            nearby=[make_place("a", "桜湯")],
            text={"銭湯": [make_place("b", "松の湯")]},
        )
        service, _ = self._service(client)
        progress = []

        places = await service.search_nearby(TOKYO, 3000, on_progress=progress.append)

        assert [len(batch) for batch in progress] == [1, 2]
        assert progress[-1] == places

    @pytest.mark.asyncio
    async def test_empty_result_is_cached_not_mocked(self, fake_client_cls) -> None:
        service, cache = self._service(fake_client_cls())
        places = await service.search_nearby(TOKYO, 3000)
        assert places == []
        assert await cache.get(build_search_key(TOKYO.lat, TOKYO.lng, 3000)) == []

    @pytest.mark.asyncio
    async def test_results_expire_after_a_day(self, make_place, fake_client_cls, fake_clock) -> None:
        client = fake_client_cls(nearby=[make_place("a", "桜湯")])
        service, _ = self._service(client, clock=fake_clock)
        await service.search_nearby(TOKYO, 3000)
        first_calls = len(client.calls)

        fake_clock.advance(23 * 60 * 60)
        await service.search_nearby(TOKYO, 3000)
        assert len(client.calls) == first_calls

        fake_clock.advance(2 * 60 * 60)
        await service.search_nearby(TOKYO, 3000)
        assert len(client.calls) == first_calls * 2

    @pytest.mark.asyncio
    async def test_total_failure_falls_back_to_mock(self, fake_client_cls) -> None:
        client = fake_client_cls()
        service, cache = self._service(client, aggregator=ExplodingAggregator(client))

        places = await service.search_nearby(TOKYO, 3000)

        assert [p.place_id for p in places] == ["mock_1", "mock_2", "mock_3"]
        assert await cache.get(build_search_key(TOKYO.lat, TOKYO.lng, 3000)) is None


class TestFacilitySearchServicePlaceDetails:
    """Tests for get_place_details."""

    def _service(self, client, api_key=VALID_API_KEY):
        cache = CacheStore(InMemoryStorage())
        return FacilitySearchService(cache, client, api_key), cache

    @pytest.mark.asyncio
    async def test_details_fetched_and_cached(self, make_place, fake_client_cls) -> None:
        client = fake_client_cls(details={"abc": make_place("abc", "桜湯")})
        service, cache = self._service(client)

        place = await service.get_place_details("abc")
        again = await service.get_place_details("abc")

        assert place.name == "桜湯"
        assert again == place
        assert client.calls == [("details", "abc")]
        assert await cache.get(build_place_details_key("abc")) is not None

    @pytest.mark.asyncio
    async def test_details_none_when_not_found(self, fake_client_cls) -> None:
        service, _ = self._service(fake_client_cls())
        assert await service.get_place_details("missing") is None

    @pytest.mark.asyncio
    async def test_details_none_with_bad_credential(self, fake_client_cls) -> None:
        client = fake_client_cls()
        service, _ = self._service(client, api_key="")
        assert await service.get_place_details("abc") is None
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_details_empty_place_id(self, fake_client_cls) -> None:
        service, _ = self._service(fake_client_cls())
        with pytest.raises(ValueError, match="place_id cannot be empty"):
            await service.get_place_details("")


class TestFacilitySearchServiceCorruptCache:
    """Tests for cached values that no longer validate."""

    @pytest.mark.asyncio
    async def test_unreadable_search_entry_is_a_miss(self, make_place, fake_client_cls) -> None:
        client = fake_client_cls(nearby=[make_place("a", "桜湯")])
        cache = CacheStore(InMemoryStorage())
        service = FacilitySearchService(cache, client, VALID_API_KEY)
        search_key = build_search_key(TOKYO.lat, TOKYO.lng, 3000)
        await cache.set(search_key, [{"oops": 1}])

        places = await service.search_nearby(TOKYO, 3000)

        assert [p.place_id for p in places] == ["a"]
        assert client.calls[0] == ("nearby", "3000")
        assert [item["place_id"] for item in await cache.get(search_key)] == ["a"]

    @pytest.mark.asyncio
    async def test_non_list_search_entry_is_a_miss(self, fake_client_cls) -> None:
        cache = CacheStore(InMemoryStorage())
        service = FacilitySearchService(cache, fake_client_cls(), VALID_API_KEY)
        await cache.set(build_search_key(TOKYO.lat, TOKYO.lng, 3000), {"places": "nope"})

        assert await service.search_nearby(TOKYO, 3000) == []

    @pytest.mark.asyncio
    async def test_unreadable_mock_entry_rebuilt(self, fake_client_cls) -> None:
        cache = CacheStore(InMemoryStorage())
        service = FacilitySearchService(cache, fake_client_cls(), "")
        mock_key = build_search_key(TOKYO.lat, TOKYO.lng, 5000)
        await cache.set(mock_key, [{"place_id": "mock_1"}])

        places = await service.search_nearby(TOKYO)

        assert [p.place_id for p in places] == ["mock_1", "mock_2", "mock_3"]
        assert len(await cache.get(mock_key)) == 3

    @pytest.mark.asyncio
    async def test_unreadable_details_entry_refetched(self, make_place, fake_client_cls) -> None:
        client = fake_client_cls(details={"abc": make_place("abc", "桜湯")})
        cache = CacheStore(InMemoryStorage())
        service = FacilitySearchService(cache, client, VALID_API_KEY)
        await cache.set(build_place_details_key("abc"), {"name": 3})

        place = await service.get_place_details("abc")

        assert place.name == "桜湯"
        assert client.calls == [("details", "abc")]


class TestFacilitySearchServicePhotos:
    """Tests for get_photo_url."""

    PHOTO = "places/abc/photos/p1"
    PHOTO_URL = "https://lh3.googleusercontent.com/p/p1=w400"

    @pytest.mark.asyncio
    async def test_photo_resolved_and_cached(self, fake_client_cls) -> None:
        client = fake_client_cls(photos={self.PHOTO: self.PHOTO_URL})
        cache = CacheStore(InMemoryStorage())
        service = FacilitySearchService(cache, client, VALID_API_KEY)

        assert await service.get_photo_url(self.PHOTO) == self.PHOTO_URL
        assert await service.get_photo_url(self.PHOTO) == self.PHOTO_URL

        assert client.calls == [("photo", self.PHOTO)]
        image_key = build_image_key(client.photo_media_url(self.PHOTO, 400))
        assert await cache.get(image_key) == self.PHOTO_URL

    @pytest.mark.asyncio
    async def test_photo_none_on_failure(self, fake_client_cls) -> None:
        service = FacilitySearchService(CacheStore(InMemoryStorage()), fake_client_cls(), VALID_API_KEY)
        assert await service.get_photo_url("places/abc/photos/missing") is None

    @pytest.mark.asyncio
    async def test_photo_none_without_name_or_key(self, fake_client_cls) -> None:
        client = fake_client_cls(photos={self.PHOTO: self.PHOTO_URL})
        service = FacilitySearchService(CacheStore(InMemoryStorage()), client, "")
        assert await service.get_photo_url(self.PHOTO) is None

        service = FacilitySearchService(CacheStore(InMemoryStorage()), client, VALID_API_KEY)
        assert await service.get_photo_url("") is None
        assert client.calls == []
