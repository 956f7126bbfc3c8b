"""Progressive multi-query search aggregation.

A single places query misses many bathhouses (small sento are rarely
tagged "spa"), so one search fans out into several queries:

1. Phase 1: nearby category search, reported as soon as it lands
2. Phase 2: the most important text queries, one after another,
   reporting after each one that adds places
3. Phase 3: the remaining text queries concurrently, reported once
   after all of them settle

Results are deduplicated by ``place_id`` (first occurrence wins) and
filtered through the classifier. Reported lists only ever grow; places
already shown are never dropped or reordered.

Each query runs under its own timeout, and any failing query simply
contributes nothing.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Sequence, Union

from app.models import Coordinates, PlaceRecord
from app.services.classifier import FacilityClassifier
from app.services.places import PlacesSearchClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[list[PlaceRecord]], Union[None, Awaitable[None]]]

PRIORITY_TEXT_QUERIES = ("銭湯", "温泉", "サウナ")
REMAINING_TEXT_QUERIES = ("スパ", "湯", "風呂")


class _MergedResults:
    """Insertion-ordered, first-wins union of place batches."""

    def __init__(self) -> None:
        self._places: dict[str, PlaceRecord] = {}

    def add(self, places: Sequence[PlaceRecord]) -> int:
        """Merge a batch and return how many new places it contributed."""
        added = 0
        for place in places:
            if place.place_id not in self._places:
                self._places[place.place_id] = place
                added += 1
        return added

    def snapshot(self) -> list[PlaceRecord]:
        return list(self._places.values())

    def __len__(self) -> int:
        return len(self._places)


class SearchAggregator:
    """Fans a nearby search out into several queries and merges the results.

    Attributes:
        _client: External places search capability.
        _classifier: Predicate deciding which places are bathhouse related.
    """

    def __init__(
        self,
        client: PlacesSearchClient,
        classifier: Optional[Callable[[PlaceRecord], bool]] = None,
        priority_queries: Sequence[str] = PRIORITY_TEXT_QUERIES,
        remaining_queries: Sequence[str] = REMAINING_TEXT_QUERIES,
        query_timeout: float = 5.0,
        text_search_radius: Optional[int] = 10000,
        included_types: Sequence[str] = ("spa",),
    ) -> None:
        self._client = client
        self._classifier = classifier or FacilityClassifier()
        self._priority_queries = tuple(priority_queries)
        self._remaining_queries = tuple(remaining_queries)
        self._query_timeout = query_timeout
        self._text_search_radius = text_search_radius
        self._included_types = tuple(included_types)

    async def aggregate(
        self,
        location: Coordinates,
        radius: int,
        keyword: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[PlaceRecord]:
        """Run all phases and return the merged, classified places.

        Args:
            location: Search center.
            radius: Nearby search radius in meters.
            keyword: Optional caller keyword, searched first in phase 2.
            on_progress: Called with the cumulative list whenever a phase
                adds places. The last call always matches the return value.

        Returns:
            Deduplicated bathhouse-related places in discovery order.
        """
        keyword = (keyword or "").strip() or None
        merged = _MergedResults()
        text_radius = self._text_search_radius or radius
        api_calls = 0

        # Phase 1: nearby category search
        logger.info("[SEARCH] Phase 1: nearby search")
        nearby = await self._run_query(
            "nearby",
            self._client.search_nearby(location, radius, self._included_types),
        )
        if nearby is not None:
            api_calls += 1
            if merged.add(nearby):
                logger.info(f"[SEARCH] Phase 1 done: {len(merged)} places (API calls: {api_calls})")
                await self._report(on_progress, merged)

        # Phase 2: priority text queries, one at a time
        for query in self._phase2_queries(keyword):
            logger.info(f"[SEARCH] Phase 2: '{query}'")
            places = await self._run_query(
                query, self._client.search_text(location, query, text_radius)
            )
            if places is None:
                continue
            api_calls += 1
            if merged.add(places):
                logger.info(f"[SEARCH] '{query}' done: {len(merged)} places total (API calls: {api_calls})")
                await self._report(on_progress, merged)

        # Phase 3: remaining text queries, all at once
        remaining = [q for q in self._remaining_queries if q != keyword]
        if remaining:
            logger.info(f"[SEARCH] Phase 3: {len(remaining)} queries in parallel")
            results = await asyncio.gather(
                *[
                    self._run_query(q, self._client.search_text(location, q, text_radius))
                    for q in remaining
                ]
            )
            added = 0
            for query, places in zip(remaining, results):
                if places is None:
                    continue
                api_calls += 1
                added += merged.add(places)
                logger.info(f"[SEARCH] '{query}' done: {len(places)} places")
            if added:
                await self._report(on_progress, merged)

        logger.info(f"[SEARCH] Final result: {len(merged)} places (total API calls: {api_calls})")
        return merged.snapshot()

    def _phase2_queries(self, keyword: Optional[str]) -> list[str]:
        queries = list(self._priority_queries)
        if keyword and keyword not in queries:
            queries.insert(0, keyword)
        return queries

    async def _run_query(
        self, label: str, query: Awaitable[list[PlaceRecord]]
    ) -> Optional[list[PlaceRecord]]:
        """Await one query with a timeout and classify its results.

        Returns None if the query failed or timed out.
        """
        try:
            places = await asyncio.wait_for(query, timeout=self._query_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[SEARCH] '{label}' timed out after {self._query_timeout}s")
            return None
        except Exception as e:
            logger.warning(f"[SEARCH] '{label}' failed: {e}")
            return None

        relevant = [place for place in places if self._classifier(place)]
        logger.debug(f"[SEARCH] '{label}' kept {len(relevant)}/{len(places)} after filtering")
        return relevant

    async def _report(
        self, on_progress: Optional[ProgressCallback], merged: _MergedResults
    ) -> None:
        if on_progress is None:
            return
        try:
            result = on_progress(merged.snapshot())
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("[SEARCH] Progress callback raised")
