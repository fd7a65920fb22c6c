"""
Main cache orchestration: shared store, subscribers and in-flight fetches.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from config.settings import settings

from .client import CacheClient
from .coalescer import RequestCoordinator
from .core import CacheInspection, CacheOptions, Fetcher
from .errors import CacheError
from .retry import RetryPolicy, Sleep, attempt_fetch
from .revalidation import RevalidationSource
from .store import CacheStore
from .subscribers import SubscriberRegistry

logger = logging.getLogger("cache.manager")


class CacheManager:
    """
    Process-wide cache context with:
    - One entry store with lazy expiry
    - Subscriber fan-out on every write
    - Request coalescing for concurrent fetches of the same key
    - Retry with exponential backoff for every fetch

    A default instance is shared through get_cache_manager(); tests
    build their own to stay isolated.
    """

    def __init__(
        self,
        default_options: Optional[CacheOptions] = None,
        source: Optional[RevalidationSource] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize the cache manager.

        Args:
            default_options: Options for clients created without their own
            source: Revalidation events shared by clients created here
            clock: Timestamp source for entries, in seconds
            sleep: Backoff sleeper used between retries
        """
        self.registry = SubscriberRegistry()
        self.store = CacheStore(self.registry, clock=clock)
        self.coordinator = RequestCoordinator()
        self.default_options = default_options or CacheOptions()
        self.source = source
        self.sleep = sleep

        # Stats tracking
        self._stats = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
            "revalidations": 0,
            "failures": 0,
        }

    def client(
        self,
        key: str,
        fetcher: Fetcher,
        options: Optional[CacheOptions] = None,
        source: Optional[RevalidationSource] = None,
        **overrides: Any,
    ) -> CacheClient:
        """
        Create a consumer for a key.

        Args:
            key: Cache key
            fetcher: Coroutine function resolving to a FetchResponse
            options: Base options, defaults to the manager's
            source: Revalidation events, defaults to the manager's
            **overrides: Individual CacheOptions fields to replace
        """
        opts = (options or self.default_options).with_overrides(**overrides)
        return CacheClient(self, key, fetcher, opts, source=source or self.source)

    async def fetch(self, key: str, fetcher: Fetcher, options: Optional[CacheOptions] = None) -> Any:
        """
        Fetch a key through the coordinator, retrying, and store the result.

        Concurrent calls for the same key share one fetch; the options of
        the caller that started it apply.

        Raises:
            RetryExhaustedError: Every attempt failed
        """
        options = options or self.default_options

        async def fetch_and_store() -> Any:
            policy = RetryPolicy.from_options(options, sleep=self.sleep)
            data = await policy.execute(lambda: attempt_fetch(fetcher, options.fetch_timeout))
            self.store.write(key, data, options.cache_time)
            return data

        return await self.coordinator.fetch_once(key, fetch_and_store)

    async def prefetch(self, key: str, fetcher: Fetcher, cache_time: Optional[float] = None) -> bool:
        """
        Populate the cache without a consumer. Single attempt, failures
        are swallowed.

        Returns:
            True if the cache was populated
        """
        options = self.default_options.with_overrides(retry=False)
        if cache_time is not None:
            options = options.with_overrides(cache_time=cache_time)
        try:
            await self.fetch(key, fetcher, options)
        except CacheError as e:
            logger.debug(f"Prefetch failed: {key} - {e}")
            return False
        return True

    def invalidate(self, key: str) -> bool:
        """
        Invalidate a specific cache entry.

        Returns:
            True if entry was found and removed
        """
        removed = self.store.evict(key)
        if removed:
            logger.info(f"Invalidated cache: {key}")
        return removed

    def invalidate_by_prefix(self, prefix: Optional[str] = None) -> int:
        """
        Invalidate all cache entries whose key starts with prefix.

        Args:
            prefix: Key prefix; None or "" clears every entry

        Returns:
            Number of entries invalidated
        """
        count = self.store.evict_prefix(prefix)
        if count:
            logger.info(f"Invalidated {count} entries matching '{prefix or '*'}'")
        return count

    def inspect(self) -> CacheInspection:
        """Read-only snapshot of cached and in-flight keys."""
        keys = self.store.keys()
        return CacheInspection(
            size=len(keys),
            keys=keys,
            pending=self.coordinator.pending_keys(),
        )

    def record(self, stat: str) -> None:
        self._stats[stat] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total_hits = self._stats["hits_fresh"] + self._stats["hits_stale"]
        total_requests = total_hits + self._stats["misses"]
        hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

        return {
            "entries": len(self.store),
            **self._stats,
            "hit_rate_percent": round(hit_rate, 1),
            "coalescer": self.coordinator.get_stats(),
            "subscribed_keys": len(self.registry),
        }


# Global cache manager instance
_cache_manager: Optional[CacheManager] = None


def get_cache_manager() -> CacheManager:
    """Get or create the global cache manager."""
    global _cache_manager
    if _cache_manager is None:
        _cache_manager = CacheManager(default_options=CacheOptions.from_settings(settings))
    return _cache_manager


async def prefetch(key: str, fetcher: Fetcher, cache_time: Optional[float] = None) -> bool:
    """Prefetch into the global cache."""
    return await get_cache_manager().prefetch(key, fetcher, cache_time)


def invalidate_by_prefix(prefix: Optional[str] = None) -> int:
    """Invalidate entries of the global cache."""
    return get_cache_manager().invalidate_by_prefix(prefix)


def inspect() -> CacheInspection:
    """Snapshot of the global cache."""
    return get_cache_manager().inspect()
