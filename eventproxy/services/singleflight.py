"""
SingleFlight - coalesces concurrent refreshes of the same cache key.

When several requests miss the cache for the same month at once, only one
upstream refresh runs and every caller awaits its result. The refresh runs as
its own task and is shielded from caller cancellation, so a client that
disconnects does not abort work whose result will still be cached.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class SingleFlight:
    """
    Deduplicates concurrent async calls by key.

    Usage:
        flight = SingleFlight()

        events = await flight.run(
            key="events_2024_2",
            fn=lambda: refresh_month(2024, 2),
        )
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._lock = asyncio.Lock()
        self._debug = debug
        self._stats = SingleFlightStats()

    async def run(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run ``fn`` unless a call for ``key`` is already in flight.

        Args:
            key: Unique identifier for this call
            fn: Async function to execute if no call is in flight

        Returns:
            Result of the (possibly shared) call; failures are re-raised to
            every waiter
        """
        async with self._lock:
            task = self._in_flight.get(key)
            if task is not None:
                self._stats.coalesced += 1
                self._log(f"JOIN: Waiting for in-flight call: {key}")
            else:
                self._stats.total += 1
                self._log(f"NEW: Starting call: {key}")
                task = asyncio.create_task(self._execute_and_cleanup(key, fn))
                self._in_flight[key] = task

        return await asyncio.shield(task)

    async def _execute_and_cleanup(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute the call and drop it from the in-flight map when done."""
        try:
            return await fn()
        finally:
            async with self._lock:
                self._in_flight.pop(key, None)
                self._log(f"DONE: Call completed: {key}")

    async def drain(self, timeout: float | None = None) -> int:
        """
        Wait for in-flight calls to settle.

        Returns the number of calls still running when ``timeout`` elapsed.
        """
        tasks = list(self._in_flight.values())
        if not tasks:
            return 0

        logger.info(f"Waiting for {len(tasks)} in-flight refreshes to finish")
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} refreshes still running after drain")
        return len(pending)

    def get_in_flight_keys(self) -> list[str]:
        """Get keys of all in-flight calls."""
        return list(self._in_flight.keys())

    def get_stats(self) -> "SingleFlightStats":
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[SingleFlight] {message}")


class SingleFlightStats:
    """Statistics for call coalescing."""

    def __init__(self):
        self.total: int = 0  # Calls actually executed
        self.coalesced: int = 0  # Calls that joined an in-flight one
        self.in_flight: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_calls": self.total,
            "coalesced": self.coalesced,
            "in_flight": self.in_flight,
        }
