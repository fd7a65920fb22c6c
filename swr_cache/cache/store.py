"""
Keyed entry storage with lazy expiry.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from .core import CacheEntry
from .subscribers import SubscriberRegistry

logger = logging.getLogger("cache.store")


class CacheStore:
    """
    Holds at most one entry per key.

    - read() drops entries past their expiry
    - write() and evict() notify the key's subscribers
    - is_stale() only looks at the write time, never at expiry
    """

    def __init__(
        self,
        registry: Optional[SubscriberRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the store.

        Args:
            registry: Subscribers notified on write/evict
            clock: Source of timestamps, in seconds
        """
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self.registry = registry if registry is not None else SubscriberRegistry()
        self.clock = clock

    def read(self, key: str) -> Optional[CacheEntry]:
        """
        Get the entry for a key, or None if absent or expired.

        Expired entries are removed without notifying subscribers.
        """
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                logger.debug(f"CACHE EXPIRED: {key} [age={entry.age(now):.1f}s]")
                return None
            return entry

    def write(self, key: str, data: Any, cache_time: float) -> CacheEntry:
        """Replace the entry for a key and notify its subscribers."""
        now = self.clock()
        entry = CacheEntry(data=data, written_at=now, expires_at=now + cache_time)
        with self._lock:
            self._entries[key] = entry
        self.registry.notify(key, entry)
        return entry

    def evict(self, key: str) -> bool:
        """
        Remove the entry for a key and notify its subscribers.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        self.registry.notify(key, None)
        return removed

    def evict_prefix(self, prefix: Optional[str] = None) -> int:
        """
        Evict every key starting with prefix, or every key if no prefix.

        Returns:
            Number of entries evicted
        """
        with self._lock:
            to_delete = [k for k in self._entries if not prefix or k.startswith(prefix)]
        return sum(1 for key in to_delete if self.evict(key))

    def is_stale(self, key: str, stale_time: float) -> bool:
        """True if there is no entry or it is older than stale_time."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return True
        return entry.age(self.clock()) > stale_time

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
