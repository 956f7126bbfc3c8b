"""Durable key-value backends for cache snapshots.

The cache store keeps its entries in memory and mirrors them to one of
these backends so they survive a restart. All backends expose the same
small string API (``get_item``/``set_item``/``remove_item``); values are
JSON documents produced by the cache store.
"""

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CacheStorage(ABC):
    """Abstract base class for snapshot storage backends."""

    @abstractmethod
    async def get_item(self, key: str) -> str | None:
        """Read the stored document for ``key``.

        Args:
            key: Storage key (e.g. ``cache_data``).

        Returns:
            The stored string, or None if nothing is stored.
        """
        pass

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous document."""
        pass

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Delete the document stored under ``key``; no error if absent."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass


class InMemoryStorage(CacheStorage):
    """Process-local storage. Nothing survives a restart."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    async def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage(CacheStorage):
    """Stores each key as ``<directory>/<key>.json``.

    Writes go to a temporary file in the same directory and are then moved
    into place, so a crash mid-write never leaves a truncated snapshot.
    File I/O runs in a worker thread to keep the event loop responsive.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def _read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def get_item(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)


class RedisStorage(CacheStorage):
    """Redis-backed snapshot storage.

    Keys are namespaced with ``prefix`` so several deployments can share a
    Redis instance.

    Attributes:
        _client: The Redis async client instance.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        prefix: str = "sento_log",
    ) -> None:
        self._redis_url = redis_url
        self._prefix = prefix
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Establish connection to Redis."""
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _ensure_connected(self) -> redis.Redis:
        if self._client is None:
            await self.connect()
        return self._client  # type: ignore

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get_item(self, key: str) -> str | None:
        client = await self._ensure_connected()
        return await client.get(self._key(key))

    async def set_item(self, key: str, value: str) -> None:
        client = await self._ensure_connected()
        await client.set(self._key(key), value)

    async def remove_item(self, key: str) -> None:
        client = await self._ensure_connected()
        await client.delete(self._key(key))


def create_storage(
    backend: str,
    cache_dir: str = ".cache/sento-log",
    redis_url: str = "redis://localhost:6379",
) -> CacheStorage:
    """Build the storage backend named by configuration.

    Args:
        backend: One of ``file``, ``redis`` or ``memory``.
        cache_dir: Directory used by the file backend.
        redis_url: Connection URL used by the Redis backend.

    Raises:
        ValueError: If ``backend`` is not recognized.
    """
    if backend == "file":
        return JsonFileStorage(cache_dir)
    if backend == "redis":
        return RedisStorage(redis_url)
    if backend == "memory":
        return InMemoryStorage()
    raise ValueError(f"Unknown cache backend: {backend}")
