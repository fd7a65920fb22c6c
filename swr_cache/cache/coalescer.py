"""
Request coalescing to prevent duplicate upstream fetches.

When multiple concurrent callers ask for the same key, only one
fetch runs and all callers share its result or its error.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List

logger = logging.getLogger("cache.coalescer")


class RequestCoordinator:
    """
    Ensures concurrent fetches for the same cache key share one task.

    Pattern:
    - First caller for a key starts the fetch as a task
    - Subsequent callers await the same task
    - The task removes itself from the pending map before it settles,
      whether it succeeded or failed
    - Waiters are shielded: cancelling one never cancels the fetch

    Usage:
        coordinator = RequestCoordinator()
        result = await coordinator.fetch_once(
            "products:p1",
            lambda: load_product("p1"),
        )
    """

    def __init__(self):
        self._pending: Dict[str, "asyncio.Task[Any]"] = {}

    async def fetch_once(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Either join an existing in-flight fetch or start a new one.

        Args:
            key: Unique key for this fetch
            fetch_fn: Coroutine function to call if nothing is in flight

        Returns:
            The fetched data (shared among all concurrent callers)

        Raises:
            Exception: Any error from fetch_fn is propagated to every caller
        """
        task = self._pending.get(key)
        if task is None:
            logger.debug(f"Initiating fetch for {key}")
            task = asyncio.ensure_future(self._run(key, fetch_fn))
            task.add_done_callback(_consume_exception)
            self._pending[key] = task
        else:
            logger.debug(f"Coalescing request for {key}")

        return await asyncio.shield(task)

    async def _run(self, key: str, fetch_fn: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await fetch_fn()
        finally:
            if self._pending.get(key) is asyncio.current_task():
                del self._pending[key]

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def pending_keys(self) -> List[str]:
        return list(self._pending)

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight fetches."""
        return len(self._pending)

    def get_stats(self) -> Dict[str, Any]:
        """Get coordinator statistics."""
        return {
            "active_requests": len(self._pending),
            "active_keys": list(self._pending),
        }


def _consume_exception(task: "asyncio.Task[Any]") -> None:
    # Every waiter may have been cancelled; mark the error as retrieved.
    if not task.cancelled():
        task.exception()
