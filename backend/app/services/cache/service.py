"""Cache store implementation.

An in-memory key/value cache with TTL expiry, a soft size ceiling and
hit/miss metrics, mirrored to a durable ``CacheStorage`` backend so entries
survive a restart.

The in-memory map is the source of truth for the lifetime of the process.
Persistence runs as fire-and-forget background tasks: ``set`` and friends
never wait for the storage write and never raise because of it.

Storage layout:
- ``cache_data``: JSON map of cache key to entry
- ``cache_settings``: JSON ``CacheSettings``
- ``cache_metrics``: JSON ``CacheMetrics`` (best effort)
"""

import asyncio
import contextlib
import json
import logging
import time
from typing import Any, Callable

from pydantic import TypeAdapter, ValidationError

from app.models import CacheEntry, CacheMetrics, CacheSettings

from .storage import CacheStorage

logger = logging.getLogger(__name__)

CACHE_DATA_KEY = "cache_data"
CACHE_SETTINGS_KEY = "cache_settings"
CACHE_METRICS_KEY = "cache_metrics"

_snapshot_adapter = TypeAdapter(dict[str, CacheEntry])


def estimate_size(entry: CacheEntry) -> int:
    """Approximate the stored size of an entry in bytes.

    Uses the JSON length doubled, which mirrors a wide-character encoding.
    Exactness does not matter, only that the same entry always gets the
    same estimate.
    """
    return len(json.dumps(entry.model_dump(), ensure_ascii=False)) * 2


class CacheStore:
    """TTL cache with size-bounded eviction and durable snapshots.

    Construct one per application (see ``app.main``) and pass it to the
    services that need it.

    Attributes:
        _entries: Cached entries keyed by cache key.
        _sizes: Size estimate of each entry, kept in step with ``_entries``.
        _storage: Durable backend receiving snapshots.
    """

    def __init__(
        self,
        storage: CacheStorage,
        settings: CacheSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._settings = settings or CacheSettings()
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._sizes: dict[str, int] = {}
        self._metrics = CacheMetrics(last_cleanup=clock())
        self._pending_writes: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task | None = None
        self._started = False

    # ─── Lifecycle ───

    async def load(self) -> None:
        """Restore settings, entries and metrics from storage.

        A missing or corrupted snapshot leaves the corresponding state at
        its defaults; nothing here raises.
        """
        raw_settings = await self._read_storage(CACHE_SETTINGS_KEY)
        if raw_settings:
            try:
                merged = {**self._settings.model_dump(), **json.loads(raw_settings)}
                self._settings = CacheSettings.model_validate(merged)
            except (ValueError, TypeError) as e:
                logger.error(f"[CACHE] Ignoring corrupted cache settings: {e}")

        raw_data = await self._read_storage(CACHE_DATA_KEY)
        if raw_data:
            try:
                entries = _snapshot_adapter.validate_json(raw_data)
            except ValidationError as e:
                logger.error(f"[CACHE] Corrupted cache snapshot, starting empty: {e}")
                entries = {}
            self._entries = entries
            self._sizes = {key: estimate_size(entry) for key, entry in entries.items()}

        raw_metrics = await self._read_storage(CACHE_METRICS_KEY)
        if raw_metrics:
            try:
                self._metrics = CacheMetrics.model_validate_json(raw_metrics)
            except ValidationError as e:
                logger.warning(f"[CACHE] Ignoring corrupted cache metrics: {e}")

        self._update_metrics()
        logger.info(f"[CACHE] Loaded {len(self._entries)} entries ({self._metrics.total_size} bytes)")

    def start(self) -> None:
        """Start the periodic cleanup task if auto cleanup is enabled.

        After ``start`` the task follows the ``auto_cleanup`` setting:
        ``update_settings`` stops or restarts it.
        """
        self._started = True
        running = self._cleanup_task is not None and not self._cleanup_task.done()
        if self._settings.auto_cleanup and not running:
            self._cleanup_task = asyncio.create_task(self._auto_cleanup_loop())

    async def close(self) -> None:
        """Stop background cleanup and flush everything to storage."""
        self._started = False
        await self._stop_cleanup()
        await self.flush()

    async def _stop_cleanup(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    async def flush(self) -> None:
        """Wait for pending snapshot writes, then write a final snapshot."""
        if self._pending_writes:
            await asyncio.gather(*self._pending_writes, return_exceptions=True)
        await self._persist()
        await self._persist_metrics()

    async def _auto_cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.cleanup_interval)
            if not self._settings.auto_cleanup:
                break
            try:
                await self.cleanup()
            except Exception:
                logger.exception("[CACHE] Scheduled cleanup failed")

    # ─── Cache operations ───

    async def get(self, key: str) -> Any | None:
        """Retrieve cached data by key.

        Args:
            key: The cache key to look up.

        Returns:
            The cached data if present and not expired, None otherwise.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._metrics.misses += 1
            return None

        if entry.is_expired(self._clock()):
            self._delete(key)
            self._update_metrics()
            self._metrics.misses += 1
            return None

        self._metrics.hits += 1
        return entry.data

    async def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        """Store data under key, replacing any existing entry.

        Args:
            key: The cache key to store under.
            data: JSON-serializable value to cache.
            ttl: Time-to-live in seconds. Uses the default TTL if None.

        Raises:
            ValueError: If ``ttl`` is not positive.
        """
        if ttl is None:
            ttl = self._settings.default_ttl
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")

        now = self._clock()
        entry = CacheEntry(data=data, created_at=now, expires_at=now + ttl)
        self._entries[key] = entry
        self._sizes[key] = estimate_size(entry)
        self._update_metrics()

        if self._settings.auto_cleanup and self._should_cleanup():
            await self.cleanup()

        self._schedule_persist()

    async def remove(self, key: str) -> None:
        """Delete the entry for key. No error if absent."""
        if self._delete(key):
            self._update_metrics()
        self._schedule_persist()

    async def clear(self) -> None:
        """Drop every entry and reset metrics."""
        self._entries.clear()
        self._sizes.clear()
        self._metrics = CacheMetrics(last_cleanup=self._clock())
        self._schedule_persist()
        logger.info("[CACHE] Cleared")

    async def cleanup(self) -> None:
        """Sweep expired entries, then evict oldest entries over the ceiling."""
        now = self._clock()
        expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired_keys:
            self._delete(key)

        evicted = 0
        ceiling = self._settings.max_size_bytes
        if self._current_size() > ceiling:
            oldest_first = sorted(self._entries.items(), key=lambda item: item[1].created_at)
            for key, _ in oldest_first:
                if self._current_size() <= ceiling:
                    break
                self._delete(key)
                evicted += 1

        self._metrics.last_cleanup = now
        self._update_metrics()
        if expired_keys or evicted:
            logger.info(f"[CACHE] Cleanup removed {len(expired_keys)} expired, evicted {evicted}")
        self._schedule_persist()

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    # ─── Metrics & settings ───

    def get_metrics(self) -> CacheMetrics:
        return self._metrics.model_copy()

    def get_settings(self) -> CacheSettings:
        return self._settings.model_copy()

    async def update_settings(self, **changes: Any) -> CacheSettings:
        """Merge changes into the current settings and persist them.

        Raises:
            pydantic.ValidationError: If a changed value is invalid.
        """
        self._settings = CacheSettings.model_validate(
            {**self._settings.model_dump(), **changes}
        )
        if not self._settings.auto_cleanup:
            await self._stop_cleanup()
        elif self._started:
            self.start()
        await self._write_storage(CACHE_SETTINGS_KEY, self._settings.model_dump_json())
        return self.get_settings()

    # ─── Internals ───

    def _delete(self, key: str) -> bool:
        self._sizes.pop(key, None)
        return self._entries.pop(key, None) is not None

    def _current_size(self) -> int:
        return sum(self._sizes.values())

    def _update_metrics(self) -> None:
        self._metrics.total_size = self._current_size()

    def _should_cleanup(self) -> bool:
        size_exceeded = self._current_size() > self._settings.max_size_bytes
        interval_elapsed = (
            self._clock() - self._metrics.last_cleanup > self._settings.cleanup_interval
        )
        return size_exceeded or interval_elapsed

    def _schedule_persist(self) -> None:
        """Launch a snapshot write without waiting for it."""
        try:
            task = asyncio.get_running_loop().create_task(self._persist())
        except RuntimeError:
            logger.debug("[CACHE] No running event loop, snapshot deferred to flush()")
            return
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _persist(self) -> None:
        # The snapshot is taken inside the lock, so whichever write runs
        # last always carries the newest state.
        async with self._write_lock:
            snapshot = json.dumps(
                {key: entry.model_dump() for key, entry in self._entries.items()},
                ensure_ascii=False,
            )
            await self._write_storage(CACHE_DATA_KEY, snapshot)

    async def _persist_metrics(self) -> None:
        await self._write_storage(CACHE_METRICS_KEY, self._metrics.model_dump_json())

    async def _read_storage(self, key: str) -> str | None:
        try:
            return await self._storage.get_item(key)
        except Exception as e:
            logger.error(f"[CACHE] Error reading {key} from storage: {e}")
            return None

    async def _write_storage(self, key: str, value: str) -> None:
        try:
            await self._storage.set_item(key, value)
        except Exception as e:
            logger.error(f"[CACHE] Error saving {key} to storage: {e}")


def generate_key(prefix: str, *parts: Any) -> str:
    """Join a prefix and parts into a colon-separated key.

    Example:
        >>> generate_key("visit", "2024", "abc")
        'visit:2024:abc'
    """
    return ":".join([prefix, *(str(part) for part in parts)])


def build_search_key(lat: float, lng: float, radius: int, keyword: str | None = None) -> str:
    """Generate the cache key for a nearby search result set.

    Coordinates are used exactly as given, not rounded, so repeated calls
    only hit the cache when they pass identical values.

    Example:
        >>> build_search_key(35.6812, 139.7671, 5000)
        'places_search:35.6812,139.7671,5000,'
    """
    return f"places_search:{lat},{lng},{radius},{keyword or ''}"


def build_place_details_key(place_id: str) -> str:
    """Generate the cache key for a single place's details."""
    return f"place_details:{place_id}"


def build_location_key(lat: float, lng: float, radius: int) -> str:
    """Generate a location key with coordinates fixed to six decimals."""
    return f"location:{lat:.6f}:{lng:.6f}:{radius}"


def build_place_key(place_id: str) -> str:
    """Generate the key for a place record stored outside a search result."""
    return generate_key("place", place_id)


def build_image_key(url: str) -> str:
    """Generate the key for a cached facility image, keyed by its URL."""
    return generate_key("image", url)
