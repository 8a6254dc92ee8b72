"""Secret caching layer for reducing backend calls.

``SecretCache`` is a process-local TTL/LRU map of path to payload.
``CachedSecretStore`` puts it in front of any ``SecretStore``: reads are
served from the cache within the TTL, and every write invalidates the
written path before returning. No cross-process coherency is attempted;
a stale read inside the TTL window is acceptable.
"""

import asyncio
import contextlib
import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from tenantdb.secrets.config import CacheConfig
from tenantdb.secrets.exceptions import SecretNotFoundError
from tenantdb.secrets.protocol import SecretStore
from tenantdb.secrets.types import DatabaseCredentials

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class CachedSecret:
    """A cached secret entry.

    Attributes:
        data: The cached payload
        cached_at: When the entry was cached
        expires_at: When the entry expires
        access_count: Number of times accessed from cache
    """

    data: dict[str, str]
    cached_at: datetime
    expires_at: datetime
    access_count: int = 0


@dataclass
class CacheStats:
    """Statistics about cache performance.

    Attributes:
        hits: Number of cache hits
        misses: Number of cache misses
        evictions: Number of entries evicted
        expirations: Number of entries expired
        invalidations: Number of entries removed by writes
        entries: Current number of entries
    """

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    invalidations: int = 0
    entries: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


class SecretCache:
    """In-memory TTL cache with LRU eviction when full."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
        cleanup_interval_seconds: int = 60,
    ):
        self.config = config or CacheConfig()
        self._clock = clock
        self._cleanup_interval = cleanup_interval_seconds
        self._cache: OrderedDict[str, CachedSecret] = OrderedDict()
        self._stats = CacheStats()
        self._cleanup_task: asyncio.Task[None] | None = None

    @property
    def stats(self) -> CacheStats:
        """Get current cache statistics."""
        self._stats.entries = len(self._cache)
        return self._stats

    async def start(self) -> None:
        """Start the periodic cleanup task."""
        if self.config.enabled and self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.debug("Secret cache cleanup task started")

    async def stop(self) -> None:
        """Stop the periodic cleanup task."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None
            logger.debug("Secret cache cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            self.cleanup_expired()

    def contains(self, path: str) -> bool:
        """Whether a live entry exists, without touching stats or LRU order."""
        cached = self._cache.get(path)
        return cached is not None and cached.expires_at > self._clock()

    def get(self, path: str) -> dict[str, str] | None:
        """Get a copy of a cached payload, or None on miss or expiry."""
        if not self.config.enabled:
            return None

        cached = self._cache.get(path)
        if cached is None:
            self._stats.misses += 1
            return None

        if cached.expires_at <= self._clock():
            self._cache.pop(path, None)
            self._stats.misses += 1
            self._stats.expirations += 1
            return None

        self._stats.hits += 1
        cached.access_count += 1
        self._cache.move_to_end(path)
        return dict(cached.data)

    def set(self, path: str, data: dict[str, str], ttl_seconds: int | None = None) -> None:
        """Store a payload, evicting the least recently used entries when full."""
        if not self.config.enabled:
            return

        ttl = ttl_seconds or self.config.default_ttl_seconds
        now = self._clock()

        self._cache.pop(path, None)
        while len(self._cache) >= self.config.max_entries:
            oldest_key, _ = self._cache.popitem(last=False)
            self._stats.evictions += 1
            logger.debug("Evicted cache entry: %s", oldest_key)

        self._cache[path] = CachedSecret(
            data=dict(data),
            cached_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )

    def invalidate(self, path: str) -> bool:
        """Invalidate a cached entry.

        Returns:
            True if an entry was removed
        """
        if self._cache.pop(path, None) is not None:
            self._stats.invalidations += 1
            return True
        return False

    def invalidate_prefix(self, prefix: str) -> int:
        """Invalidate all entries under a path prefix."""
        to_remove = [key for key in self._cache if key.startswith(prefix)]
        for key in to_remove:
            del self._cache[key]
        self._stats.invalidations += len(to_remove)
        return len(to_remove)

    def clear(self) -> int:
        """Clear all cached entries."""
        count = len(self._cache)
        self._cache.clear()
        return count

    def cleanup_expired(self) -> int:
        """Remove all expired entries."""
        now = self._clock()
        expired = [path for path, cached in self._cache.items() if cached.expires_at <= now]
        for path in expired:
            del self._cache[path]
        self._stats.expirations += len(expired)
        return len(expired)


class CachedSecretStore:
    """Caching decorator over a ``SecretStore``.

    Example:
        store = CachedSecretStore(VaultSecretStore(config), SecretCache())
        creds = await store.get_credentials_by_path("database/shared/shared/catalog/write")
    """

    def __init__(self, inner: SecretStore, cache: SecretCache | None = None):
        self.inner = inner
        self.cache = cache or SecretCache()

    async def read_secret(self, path: str) -> dict[str, str]:
        cached = self.cache.get(path)
        if cached is not None:
            return cached

        data = await self.inner.read_secret(path)
        self.cache.set(path, data)
        return dict(data)

    async def get_credentials_by_path(self, path: str) -> DatabaseCredentials:
        data = await self.read_secret(path)
        return DatabaseCredentials.from_secret_data(path, data)

    async def store_credentials(self, path: str, credentials: DatabaseCredentials) -> None:
        try:
            await self.inner.store_credentials(path, credentials)
        finally:
            self.cache.invalidate(path)

    async def get_secret(self, path: str, key: str) -> str | None:
        try:
            data = await self.read_secret(path)
        except SecretNotFoundError:
            return None
        return data.get(key)

    async def store_secret(self, path: str, data: dict[str, str]) -> None:
        try:
            await self.inner.store_secret(path, data)
        finally:
            self.cache.invalidate(path)

    async def credentials_exist(self, path: str) -> bool:
        if self.cache.contains(path):
            return True
        return await self.inner.credentials_exist(path)

    async def health_check(self) -> bool:
        return await self.inner.health_check()

    async def close(self) -> None:
        await self.cache.stop()
        self.cache.clear()
        await self.inner.close()
