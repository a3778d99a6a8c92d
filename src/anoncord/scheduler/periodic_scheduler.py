"""Generic scheduler for periodic background refreshes.

Runs a user-supplied coroutine on a fixed interval (moderator registry refresh,
block list reload). Handles lifecycle (start/shutdown) and standard error
handling so one failed iteration never stops the loop.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from anoncord.util.logger import get_logger

logger = get_logger("periodic_scheduler")


class PeriodicScheduler:
    """
    Reusable scheduler for periodic refresh operations.

    Args:
        name: Human-readable name for logging (e.g., "moderators", "blocklist").
        coro_factory: Async callable invoked once per interval.
        get_interval: Callable returning the interval in seconds (called at start).
    """

    def __init__(
        self,
        name: str,
        coro_factory: Callable[[], Awaitable[Any]],
        get_interval: Callable[[], float],
    ) -> None:
        self._name = name
        self._coro_factory = coro_factory
        self._get_interval = get_interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> None:
        try:
            await self._coro_factory()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[%s] Unexpected error during refresh: %s", self._name, exc)

    async def _run_loop(self, interval: float) -> None:
        """Infinite loop: refresh, sleep, repeat."""
        logger.info("[%s] Starting periodic refresh (interval=%.1fs)", self._name, interval)
        try:
            while True:
                await self.run_once()
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("[%s] Periodic refresh cancelled", self._name)
            raise

    def start(self) -> None:
        """Start the background task if not already running."""
        if self.running:
            logger.warning("[%s] Refresh task already running", self._name)
            return
        interval = self._get_interval()
        self._task = asyncio.create_task(self._run_loop(interval), name=f"anoncord-{self._name}-refresh")

    async def shutdown(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[%s] Scheduler shutdown complete", self._name)
