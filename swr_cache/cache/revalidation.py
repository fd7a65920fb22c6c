"""
Background revalidation triggers: focus, reconnect and polling.
"""
import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, Optional

from .core import CacheOptions
from .retry import Sleep

logger = logging.getLogger("cache.revalidation")


class RevalidationEvent(Enum):
    """Events that may cause a background refresh."""
    FOCUS_REGAINED = "focus-regained"
    CONNECTIVITY_RESTORED = "connectivity-restored"
    INTERVAL_ELAPSED = "interval-elapsed"


Listener = Callable[[RevalidationEvent], None]


class RevalidationSource:
    """
    Fans revalidation events out to listeners.

    Hosts wire their own focus/online signals to emit(); tests emit
    events directly.
    """

    def __init__(self):
        self._listeners: Dict[Listener, None] = {}

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners[listener] = None

        def dispose() -> None:
            self._listeners.pop(listener, None)

        return dispose

    def emit(self, event: RevalidationEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Revalidation listener failed for {event.value}: {e}", exc_info=True)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class ManualRevalidationSource(RevalidationSource):
    """Headless source with named helpers for each event kind."""

    def focus_regained(self) -> None:
        self.emit(RevalidationEvent.FOCUS_REGAINED)

    def connectivity_restored(self) -> None:
        self.emit(RevalidationEvent.CONNECTIVITY_RESTORED)

    def interval_elapsed(self) -> None:
        self.emit(RevalidationEvent.INTERVAL_ELAPSED)


class RevalidationScheduler:
    """
    Decides, per consumer, when an event should refresh its key.

    - focus: only if enabled and the entry is stale
    - reconnect: if enabled, regardless of staleness
    - interval: while active, if the interval is non-zero
    """

    def __init__(
        self,
        source: Optional[RevalidationSource],
        options: CacheOptions,
        is_stale: Callable[[], bool],
        refresh: Callable[[], object],
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Args:
            source: Event source, None disables focus/reconnect triggers
            options: Trigger switches and polling interval
            is_stale: Staleness check for the consumer's key
            refresh: Schedules the shared background refresh
            sleep: Timer primitive for polling
        """
        self.source = source
        self.options = options
        self._is_stale = is_stale
        self._refresh = refresh
        self._sleep = sleep
        self._dispose: Optional[Callable[[], None]] = None
        self._timer: Optional["asyncio.Task[None]"] = None

    @property
    def active(self) -> bool:
        return self._dispose is not None or self._timer is not None

    def start(self) -> None:
        """Subscribe to the source and start polling. Idempotent."""
        if self.source is not None and self._dispose is None:
            self._dispose = self.source.subscribe(self.handle)
        if self.options.revalidate_interval > 0 and self._timer is None:
            self._timer = asyncio.ensure_future(self._poll())

    def stop(self) -> None:
        if self._dispose is not None:
            self._dispose()
            self._dispose = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def handle(self, event: RevalidationEvent) -> bool:
        """
        React to an event.

        Returns:
            True if a refresh was scheduled
        """
        if not self.should_refresh(event):
            return False
        logger.debug(f"Revalidating on {event.value}")
        self._refresh()
        return True

    def should_refresh(self, event: RevalidationEvent) -> bool:
        if event is RevalidationEvent.FOCUS_REGAINED:
            return self.options.revalidate_on_focus and self._is_stale()
        if event is RevalidationEvent.CONNECTIVITY_RESTORED:
            return self.options.revalidate_on_reconnect
        if event is RevalidationEvent.INTERVAL_ELAPSED:
            return self.options.revalidate_interval > 0
        return False

    async def _poll(self) -> None:
        while True:
            await self._sleep(self.options.revalidate_interval)
            self.handle(RevalidationEvent.INTERVAL_ELAPSED)
