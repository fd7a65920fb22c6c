"""
Stale-while-revalidate cache with request coalescing, retry with
backoff and event-driven background revalidation.
"""
from .core import (
    CacheEntry,
    CacheInspection,
    CacheOptions,
    CacheSnapshot,
    CacheState,
    FetchResponse,
    Fetcher,
)
from .errors import CacheError, LogicalError, RetryExhaustedError, TransportError
from .subscribers import SubscriberRegistry
from .store import CacheStore
from .coalescer import RequestCoordinator
from .retry import RetryPolicy, attempt_fetch
from .revalidation import (
    ManualRevalidationSource,
    RevalidationEvent,
    RevalidationScheduler,
    RevalidationSource,
)
from .client import CacheClient
from .manager import (
    CacheManager,
    get_cache_manager,
    inspect,
    invalidate_by_prefix,
    prefetch,
)

__all__ = [
    # Core types
    "CacheEntry",
    "CacheInspection",
    "CacheOptions",
    "CacheSnapshot",
    "CacheState",
    "FetchResponse",
    "Fetcher",
    # Errors
    "CacheError",
    "LogicalError",
    "RetryExhaustedError",
    "TransportError",
    # Building blocks
    "SubscriberRegistry",
    "CacheStore",
    "RequestCoordinator",
    "RetryPolicy",
    "attempt_fetch",
    # Revalidation
    "ManualRevalidationSource",
    "RevalidationEvent",
    "RevalidationScheduler",
    "RevalidationSource",
    # Consumers
    "CacheClient",
    "CacheManager",
    "get_cache_manager",
    "inspect",
    "invalidate_by_prefix",
    "prefetch",
]
