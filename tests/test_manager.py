"""
Tests for process-wide cache utilities: prefetch, bulk invalidation,
inspection and the default instance.
"""
import asyncio

import pytest

import swr_cache.cache.manager as manager_module
from swr_cache.cache import (
    CacheManager,
    CacheOptions,
    FetchResponse,
    get_cache_manager,
    inspect,
    invalidate_by_prefix,
    prefetch,
)
from config.settings import settings
from conftest import FakeFetcher, GatedFetcher


class TestFetch:

    @pytest.mark.asyncio
    async def test_fetch_runs_fetcher_and_stores_payload(self, manager):
        fetcher = FakeFetcher({"id": 1})

        data = await manager.fetch("p1", fetcher)

        assert data == {"id": 1}
        assert fetcher.calls == 1
        assert manager.store.read("p1").data == {"id": 1}

    @pytest.mark.asyncio
    async def test_fetch_retries_then_stores(self, manager, sleep):
        fetcher = FakeFetcher({"id": 2}, failures=2)

        assert await manager.fetch("p1", fetcher) == {"id": 2}
        assert fetcher.calls == 3
        assert sleep.delays == [0.1, 0.2]
        assert manager.store.read("p1").data == {"id": 2}


class TestPrefetch:

    @pytest.mark.asyncio
    async def test_populates_cache_for_later_consumers(self, manager):
        fetcher = FakeFetcher({"id": 1})
        assert await manager.prefetch("p1", fetcher) is True

        client = manager.client("p1", fetcher)
        assert await client.get() == {"id": 1}
        assert client.is_from_cache is True
        assert fetcher.calls == 1

    @pytest.mark.asyncio
    async def test_failures_are_swallowed_without_retry(self, manager, sleep):
        fetcher = FakeFetcher(fail=True)
        assert await manager.prefetch("p1", fetcher) is False
        assert fetcher.calls == 1
        assert sleep.delays == []
        assert "p1" not in manager.store

    @pytest.mark.asyncio
    async def test_logical_failure_is_swallowed(self, manager):
        async def not_found():
            return FetchResponse(status_code=404, message="Not found")

        assert await manager.prefetch("p1", not_found) is False

    @pytest.mark.asyncio
    async def test_custom_cache_time(self, manager, clock):
        await manager.prefetch("p1", FakeFetcher(), cache_time=5)
        clock.advance(6)
        assert manager.store.read("p1") is None


class TestInvalidation:

    @pytest.fixture
    def populated(self, manager):
        for key in ("product:1", "product:2", "quote:1"):
            manager.store.write(key, {"key": key}, cache_time=60)
        return manager

    def test_by_prefix(self, populated):
        assert populated.invalidate_by_prefix("product:") == 2
        assert populated.inspect().keys == ["quote:1"]

    def test_without_prefix_clears_all(self, populated):
        assert populated.invalidate_by_prefix() == 3
        assert populated.inspect().size == 0

    def test_no_match(self, populated):
        assert populated.invalidate_by_prefix("order:") == 0
        assert populated.inspect().size == 3

    def test_single_key(self, populated):
        assert populated.invalidate("quote:1") is True
        assert populated.invalidate("quote:1") is False


class TestInspect:

    @pytest.mark.asyncio
    async def test_reports_keys_size_and_pending(self, manager):
        manager.store.write("p1", 1, cache_time=60)
        fetcher = GatedFetcher()
        task = asyncio.ensure_future(manager.client("p2", fetcher).get())
        await fetcher.started.wait()

        snapshot = manager.inspect()
        assert snapshot.size == 1
        assert snapshot.keys == ["p1"]
        assert snapshot.pending == ["p2"]

        fetcher.release.set()
        await task
        assert manager.inspect().to_dict() == {"size": 2, "keys": ["p1", "p2"], "pending": []}

    def test_snapshot_is_detached(self, manager):
        manager.store.write("p1", 1, cache_time=60)
        snapshot = manager.inspect()
        manager.invalidate_by_prefix()
        assert snapshot.keys == ["p1"]

    @pytest.mark.asyncio
    async def test_stats(self, manager, clock):
        fetcher = FakeFetcher()
        client = manager.client("p1", fetcher, stale_time=1.0)
        await client.get()
        await client.get()
        clock.advance(2)
        await client.get()
        await client.wait_for_revalidation()

        stats = manager.get_stats()
        assert stats["misses"] == 1
        assert stats["hits_fresh"] == 1
        assert stats["hits_stale"] == 1
        assert stats["revalidations"] == 1
        assert stats["entries"] == 1
        assert stats["hit_rate_percent"] == pytest.approx(66.7)


class TestIsolation:

    @pytest.mark.asyncio
    async def test_instances_do_not_share_state(self):
        first, second = CacheManager(), CacheManager()
        await first.prefetch("p1", FakeFetcher())
        assert first.inspect().size == 1
        assert second.inspect().size == 0


class TestDefaultManager:

    @pytest.fixture
    def isolated_default(self, monkeypatch):
        fresh = CacheManager()
        monkeypatch.setattr(manager_module, "_cache_manager", fresh)
        return fresh

    def test_lazily_created_from_settings(self, monkeypatch):
        monkeypatch.setattr(manager_module, "_cache_manager", None)
        default = get_cache_manager()
        assert get_cache_manager() is default
        assert default.default_options == CacheOptions.from_settings(settings)
        assert default.default_options.stale_time == settings.cache_stale_time_seconds

    @pytest.mark.asyncio
    async def test_module_level_helpers(self, isolated_default):
        assert await prefetch("product:1", FakeFetcher()) is True
        assert await prefetch("quote:1", FakeFetcher()) is True
        assert inspect().size == 2

        assert invalidate_by_prefix("product:") == 1
        assert inspect().keys == ["quote:1"]
        assert isolated_default.inspect().keys == ["quote:1"]


class TestCacheOptions:

    def test_defaults(self):
        options = CacheOptions()
        assert options.stale_time == 300
        assert options.cache_time == 1800
        assert options.revalidate_on_focus is True
        assert options.revalidate_on_reconnect is True
        assert options.revalidate_interval == 0
        assert options.max_retries == 3
        assert options.retry_delay == 1.0
        assert options.enabled is True
        assert options.initial_data is None

    @pytest.mark.parametrize("field", ["stale_time", "cache_time", "revalidate_interval", "retry_delay"])
    def test_negative_durations_rejected(self, field):
        with pytest.raises(ValueError):
            CacheOptions(**{field: -1})

    def test_overrides_are_validated(self):
        with pytest.raises(ValueError):
            CacheOptions().with_overrides(retry=-2)

    def test_client_overrides_do_not_leak(self, manager, fetcher):
        client = manager.client("p1", fetcher, stale_time=1)
        assert client.options.stale_time == 1
        assert manager.default_options.stale_time == 60
