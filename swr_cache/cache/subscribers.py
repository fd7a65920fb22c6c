"""
Per-key change notification.

Consumers register a callback for a key and receive the new entry (or
None after an eviction) every time the store changes that key.
"""
import logging
import threading
from typing import Callable, Dict, Optional

from .core import CacheEntry

logger = logging.getLogger("cache.subscribers")

Subscriber = Callable[[str, Optional[CacheEntry]], None]
Disposer = Callable[[], None]


class SubscriberRegistry:
    """
    Maps each key to an ordered set of callbacks.

    Notification is synchronous: every subscriber for the key has been
    called before notify() returns.
    """

    def __init__(self):
        # dict keys double as an insertion-ordered set
        self._subscribers: Dict[str, Dict[Subscriber, None]] = {}
        self._lock = threading.RLock()

    def subscribe(self, key: str, callback: Subscriber) -> Disposer:
        """
        Register a callback for a key.

        Returns:
            A disposer that removes the callback. Safe to call twice.
        """
        with self._lock:
            self._subscribers.setdefault(key, {})[callback] = None

        def dispose() -> None:
            with self._lock:
                callbacks = self._subscribers.get(key)
                if callbacks is None:
                    return
                callbacks.pop(callback, None)
                if not callbacks:
                    del self._subscribers[key]

        return dispose

    def notify(self, key: str, entry: Optional[CacheEntry]) -> None:
        """Call every subscriber of a key, in registration order."""
        with self._lock:
            callbacks = list(self._subscribers.get(key, ()))

        for callback in callbacks:
            try:
                callback(key, entry)
            except Exception as e:
                logger.warning(f"Subscriber failed for {key}: {e}", exc_info=True)

    def subscriber_count(self, key: str) -> int:
        with self._lock:
            return len(self._subscribers.get(key, ()))

    def __len__(self) -> int:
        """Number of keys with at least one subscriber."""
        with self._lock:
            return len(self._subscribers)
