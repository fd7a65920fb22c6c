"""
Bounded retries with exponential backoff, and fetch outcome classification.
"""
import asyncio
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .core import CacheOptions, FetchResponse, Fetcher
from .errors import CacheError, LogicalError, RetryExhaustedError, TransportError

Sleep = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """
    Retries a failing attempt up to max_retries times.

    Attempt n (starting at 0) that fails waits base_delay * 2**n before
    the next one. Every failure is retried the same way; there is no
    jitter and no distinction between error types.
    """

    def __init__(self, max_retries: int = 3, base_delay: float = 1.0, sleep: Sleep = asyncio.sleep):
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep

    @classmethod
    def from_options(cls, options: CacheOptions, sleep: Sleep = asyncio.sleep) -> "RetryPolicy":
        return cls(max_retries=options.max_retries, base_delay=options.retry_delay, sleep=sleep)

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry following the given (0-based) attempt."""
        return self.base_delay * (2 ** attempt)

    async def execute(self, attempt_fn: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run attempt_fn until it succeeds or retries are exhausted.

        Raises:
            RetryExhaustedError: Chained from the last attempt's error
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2),
            retry=retry_if_exception_type(Exception),
            sleep=self._sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await attempt_fn()
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise RetryExhaustedError(last_error, attempts=e.last_attempt.attempt_number) from last_error


async def attempt_fetch(fetcher: Fetcher, timeout: Optional[float] = None) -> Any:
    """
    Run a fetcher once and return its payload.

    Args:
        fetcher: Coroutine function resolving to a FetchResponse or a
            mapping shaped like one
        timeout: Hard timeout in seconds, None for no limit

    Raises:
        TransportError: The fetcher raised or timed out
        LogicalError: The response was not 2xx or had no payload
    """
    try:
        raw = await asyncio.wait_for(fetcher(), timeout)
    except asyncio.TimeoutError as e:
        raise TransportError(f"Fetch timed out after {timeout}s") from e
    except CacheError:
        raise
    except Exception as e:
        raise TransportError(str(e) or type(e).__name__) from e

    response = _coerce_response(raw)
    if not response.ok:
        raise LogicalError(response.error_message, status_code=response.status_code)
    return response.payload


def _coerce_response(raw: Any) -> FetchResponse:
    if isinstance(raw, FetchResponse):
        return raw
    if isinstance(raw, Mapping):
        try:
            return FetchResponse.model_validate(raw)
        except ValueError as e:
            raise TransportError(f"Malformed fetch response: {e}") from e
    raise TransportError(f"Fetcher returned {type(raw).__name__}, expected a response")
