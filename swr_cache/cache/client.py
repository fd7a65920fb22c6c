"""
Per-consumer entry point: read-through get, refetch and invalidate.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional, Set

from .core import CacheEntry, CacheOptions, CacheSnapshot, CacheState, Fetcher
from .errors import CacheError
from .revalidation import RevalidationScheduler, RevalidationSource

if TYPE_CHECKING:
    from .manager import CacheManager

logger = logging.getLogger("cache.client")


class CacheClient:
    """
    One consumer of one cache key.

    State machine:
        EMPTY --get (miss)--> LOADING --success--> READY
        READY --trigger--> VALIDATING --success--> READY
        LOADING/VALIDATING --failure--> ERROR (data retained)
        ERROR --refetch, success--> READY
        any --invalidate--> EMPTY

    Fetch failures never raise out of get() or refetch(); they land in
    `error` and `state`. A failed refresh never clears `data`.

    Usage:
        async with manager.client("products:p1", fetch_product) as client:
            render(client.data)
            source.focus_regained()
    """

    def __init__(
        self,
        manager: "CacheManager",
        key: str,
        fetcher: Fetcher,
        options: CacheOptions,
        source: Optional[RevalidationSource] = None,
    ):
        self.manager = manager
        self.key = key
        self.fetcher = fetcher
        self.options = options

        entry = manager.store.read(key)
        self._data: Any = entry.data if entry is not None else options.initial_data
        self._is_from_cache = entry is not None
        self._error: Optional[Exception] = None
        self._state = CacheState.EMPTY if self._data is None else CacheState.READY

        self._in_flight = 0
        # Bumped on deactivate and invalidate; fetches started earlier stop touching state
        self._generation = 0
        self._unsubscribe = None
        self._background: Set["asyncio.Task[None]"] = set()
        self._scheduler = RevalidationScheduler(
            source,
            options,
            is_stale=lambda: manager.store.is_stale(key, options.stale_time),
            refresh=self.revalidate,
        )

    # ----- observable state -----

    @property
    def data(self) -> Any:
        return self._data

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def is_from_cache(self) -> bool:
        return self._is_from_cache

    @property
    def is_loading(self) -> bool:
        return self._state is CacheState.LOADING

    @property
    def is_validating(self) -> bool:
        return self._in_flight > 0

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def snapshot(self) -> CacheSnapshot:
        return CacheSnapshot(
            data=self._data,
            error=self._error,
            state=self._state,
            is_from_cache=self._is_from_cache,
        )

    # ----- lifecycle -----

    def activate(self) -> None:
        """
        Subscribe to cache writes for the key and start revalidation
        triggers. Must be called from a running event loop.
        """
        if self._unsubscribe is None:
            self._unsubscribe = self.manager.registry.subscribe(self.key, self._on_change)
        if self.options.enabled:
            self._scheduler.start()

    def deactivate(self) -> None:
        """
        Unsubscribe and stop triggers.

        In-flight fetches keep running and still populate the cache, but
        no longer update this client.
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._scheduler.stop()
        self._generation += 1
        if self._in_flight:
            self._in_flight = 0
            self._state = CacheState.EMPTY if self._data is None else CacheState.READY

    async def __aenter__(self) -> "CacheClient":
        self.activate()
        await self.get()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.deactivate()

    # ----- operations -----

    async def get(self) -> Any:
        """
        Read through the cache.

        Fresh hits return immediately. Stale hits return immediately and
        schedule a background refresh. Misses wait for a fetch.
        """
        entry = self.manager.store.read(self.key)
        if entry is not None:
            self._data = entry.data
            self._is_from_cache = True
            if self._in_flight == 0:
                self._error = None
                self._state = CacheState.READY
            if not self.options.enabled:
                return self._data

            if self.manager.store.is_stale(self.key, self.options.stale_time):
                logger.debug(f"CACHE HIT (stale, revalidating): {self.key}")
                self.manager.record("hits_stale")
                self.revalidate()
            else:
                logger.debug(f"CACHE HIT (fresh): {self.key}")
                self.manager.record("hits_fresh")
            return self._data

        if not self.options.enabled:
            return self._data

        logger.debug(f"CACHE MISS: {self.key}")
        self.manager.record("misses")
        await self._complete(self._begin(), background=False)
        return self._data

    async def refetch(self) -> Any:
        """Fetch in the foreground, ignoring staleness."""
        await self._complete(self._begin(), background=False)
        return self._data

    def revalidate(self) -> "asyncio.Task[None]":
        """Schedule a background refresh and return its task."""
        generation = self._begin()
        task = asyncio.ensure_future(self._complete(generation, background=True))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_revalidation(self) -> None:
        """Wait until every background refresh of this client settles."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def invalidate(self) -> None:
        """
        Evict the key and reset to EMPTY without fetching.

        Fetches already in flight still write the cache but no longer
        update this client's state directly.
        """
        self._generation += 1
        self._in_flight = 0
        self.manager.store.evict(self.key)
        self._data = None
        self._error = None
        self._is_from_cache = False
        self._state = CacheState.EMPTY
        logger.info(f"Invalidated cache: {self.key}")

    # ----- internals -----

    def _begin(self) -> int:
        self._in_flight += 1
        self._error = None
        self._state = CacheState.LOADING if self._data is None else CacheState.VALIDATING
        return self._generation

    async def _complete(self, generation: int, background: bool) -> None:
        try:
            data = await self.manager.fetch(self.key, self.fetcher, self.options)
        except CacheError as e:
            self.manager.record("failures")
            logger.error(
                f"Fetch failed: {self.key} [component={self.options.component_name}, "
                f"background={background}] - {e}"
            )
            if generation != self._generation:
                return
            self._in_flight -= 1
            self._error = e
            self._state = CacheState.ERROR
            self._run_callback(self.options.on_error, e)
            return

        if background:
            self.manager.record("revalidations")
        logger.debug(f"Data fetched successfully: {self.key} [component={self.options.component_name}]")
        if generation != self._generation:
            return
        self._in_flight -= 1
        self._data = data
        self._error = None
        self._is_from_cache = False
        self._state = CacheState.READY if self._in_flight == 0 else CacheState.VALIDATING
        self._run_callback(self.options.on_success, data)

    def _run_callback(self, callback: Optional[Callable[[Any], None]], value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception as e:
            logger.warning(
                f"Callback failed for {self.key} "
                f"[component={self.options.component_name}]: {e}",
                exc_info=True,
            )

    def _on_change(self, key: str, entry: Optional[CacheEntry]) -> None:
        # Evictions by other consumers leave the data this client holds
        if entry is None:
            return
        self._data = entry.data
        self._is_from_cache = True
        if self._in_flight == 0:
            self._error = None
            self._state = CacheState.READY
