"""
Core cache data structures.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CacheState(Enum):
    """Lifecycle of a cache consumer."""
    EMPTY = "empty"            # No data, not loading
    LOADING = "loading"        # No data yet, fetch in flight
    READY = "ready"            # Has data, not validating
    VALIDATING = "validating"  # Has data, background refresh in flight
    ERROR = "error"            # Last fetch failed, previous data retained


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached value with its write and expiry timestamps.

    Timestamps come from the owning store's clock, so they are only
    comparable with values read from that same clock.
    """
    data: Any
    written_at: float
    expires_at: float

    def age(self, now: float) -> float:
        """Seconds since the entry was written."""
        return now - self.written_at

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class FetchResponse(BaseModel):
    """
    Envelope every fetcher resolves to.

    Successful iff the status code is 2xx and a payload is present.
    """
    status_code: int = Field(alias="statusCode")
    message: Optional[str] = None
    payload: Optional[Any] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300 and self.payload is not None

    @property
    def error_message(self) -> str:
        """Message reported by the server, or a generated fallback."""
        return self.message or f"Request failed with status {self.status_code}"


Fetcher = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class CacheOptions:
    """
    Per-key cache behaviour. Durations are in seconds.

    Attributes:
        stale_time: Age after which a trigger event refreshes the entry
        cache_time: Age after which the entry is evicted on next read
        revalidate_on_focus: Refresh stale entries when focus is regained
        revalidate_on_reconnect: Refresh when connectivity is restored
        revalidate_interval: Polling period, 0 disables polling
        retry: False, True (3 retries) or a max retry count
        retry_delay: Base backoff delay, doubled on every retry
        enabled: Gate automatic fetching entirely
        initial_data: Seed value used before the first fetch resolves
        fetch_timeout: Hard timeout per attempt, None disables it
        on_success: Called with the data after a successful fetch
        on_error: Called with the error after a terminal failure
        component_name: Context label included in log records
    """
    stale_time: float = 5 * 60
    cache_time: float = 30 * 60
    revalidate_on_focus: bool = True
    revalidate_on_reconnect: bool = True
    revalidate_interval: float = 0
    retry: Union[bool, int] = 3
    retry_delay: float = 1.0
    enabled: bool = True
    initial_data: Any = None
    fetch_timeout: Optional[float] = 30.0
    on_success: Optional[Callable[[Any], None]] = field(default=None, compare=False)
    on_error: Optional[Callable[[Exception], None]] = field(default=None, compare=False)
    component_name: str = "CacheClient"

    def __post_init__(self):
        for name in ("stale_time", "cache_time", "revalidate_interval", "retry_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.fetch_timeout is not None and self.fetch_timeout <= 0:
            raise ValueError(f"fetch_timeout must be > 0, got {self.fetch_timeout}")
        if not isinstance(self.retry, bool) and self.retry < 0:
            raise ValueError(f"retry must be False, True or >= 0, got {self.retry}")

    @property
    def max_retries(self) -> int:
        """Number of retries after the first attempt."""
        if isinstance(self.retry, bool):
            return 3 if self.retry else 0
        return int(self.retry)

    def with_overrides(self, **overrides: Any) -> "CacheOptions":
        return replace(self, **overrides) if overrides else self

    @classmethod
    def from_settings(cls, settings: Any) -> "CacheOptions":
        """Build default options from the application settings."""
        return cls(
            stale_time=settings.cache_stale_time_seconds,
            cache_time=settings.cache_time_seconds,
            revalidate_on_focus=settings.cache_revalidate_on_focus,
            revalidate_on_reconnect=settings.cache_revalidate_on_reconnect,
            revalidate_interval=settings.cache_revalidate_interval_seconds,
            retry=settings.cache_retry,
            retry_delay=settings.cache_retry_delay_seconds,
            fetch_timeout=settings.cache_fetch_timeout_seconds,
        )


@dataclass(frozen=True)
class CacheSnapshot:
    """Point-in-time view of a consumer's state."""
    data: Any
    error: Optional[Exception]
    state: CacheState
    is_from_cache: bool

    @property
    def is_loading(self) -> bool:
        return self.state is CacheState.LOADING

    @property
    def is_validating(self) -> bool:
        return self.state in (CacheState.LOADING, CacheState.VALIDATING)


@dataclass(frozen=True)
class CacheInspection:
    """
    Read-only diagnostics snapshot of a cache manager.
    """
    size: int
    keys: List[str]
    pending: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "size": self.size,
            "keys": list(self.keys),
            "pending": list(self.pending),
        }
