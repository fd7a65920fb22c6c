"""
Shared fixtures: controllable clock, instant backoff and fake fetchers.
"""
import asyncio
from typing import Any, List

import pytest

from swr_cache.cache import CacheManager, CacheOptions, FetchResponse


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Backoff sleeper that records delays instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeFetcher:
    """
    Fetcher returning a fixed payload, optionally failing first.

    Args:
        payload: Payload of successful responses
        failures: Number of leading calls that raise
        fail: Raise on every call while True
    """

    def __init__(self, payload: Any = None, failures: int = 0, fail: bool = False, status_code: int = 200):
        self.payload = {"id": 1, "name": "Test"} if payload is None else payload
        self.failures = failures
        self.fail = fail
        self.status_code = status_code
        self.calls = 0

    async def __call__(self) -> FetchResponse:
        self.calls += 1
        # Suspend once, like a real transport call
        await asyncio.sleep(0)
        if self.fail or self.calls <= self.failures:
            raise ConnectionError("Fetch failed")
        return FetchResponse(status_code=self.status_code, payload=self.payload)


class GatedFetcher(FakeFetcher):
    """Fetcher that blocks until released."""

    def __init__(self, payload: Any = None):
        super().__init__(payload)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self) -> FetchResponse:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return FetchResponse(status_code=200, payload=self.payload)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def options():
    return CacheOptions(stale_time=60, cache_time=600, retry=3, retry_delay=0.1)


@pytest.fixture
def manager(clock, sleep, options):
    """Isolated cache manager driven by the fake clock."""
    return CacheManager(default_options=options, clock=clock, sleep=sleep)


@pytest.fixture
def fetcher():
    return FakeFetcher()


