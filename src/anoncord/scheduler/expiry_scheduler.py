"""
Timer that expires pending submissions once their lifetime is up.

Uses a min-heap of (run_at, job_id, submission_id) entries and one background
runner task. Cancelled jobs stay in the heap and are skipped when they reach
the top.
"""
import asyncio
import heapq
from typing import Awaitable, Callable, Dict

from anoncord.util.logger import get_logger

logger = get_logger("expiry_scheduler")


class ExpiryScheduler:
    """
    Central scheduler for submission expiry.

    Args:
        on_expire: Coroutine called with the submission ID when its timer elapses.

    Attributes:
        heap (list): Min-heap of (run_at, job_id, submission_id) tuples.
        pending_keys (Dict): Maps submission_id to its live job_id.
        cancelled_ids (set): Job IDs that were cancelled or superseded.
        runner_task (asyncio.Task | None): Background task processing the schedule.
        condition (asyncio.Condition): Wakes the runner when the schedule changes.
    """

    def __init__(self, on_expire: Callable[[str], Awaitable[object]]) -> None:
        self.on_expire = on_expire
        self.heap: list[tuple[float, int, str]] = []
        self.pending_keys: Dict[str, int] = {}
        self.cancelled_ids: set[int] = set()
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self.condition: asyncio.Condition = asyncio.Condition()

    def ensure_runner(self) -> None:
        loop = asyncio.get_running_loop()
        if self.runner_task is None or self.runner_task.done():
            self.runner_task = loop.create_task(self.run(), name="anoncord-expiry-scheduler")

    async def schedule(self, submission_id: str, delay_seconds: float) -> None:
        """
        Schedule expiry of ``submission_id`` after ``delay_seconds``.

        Non-positive delays expire immediately. Scheduling the same submission
        again replaces its previous timer.
        """
        if delay_seconds <= 0:
            await self.execute(submission_id)
            return

        loop = asyncio.get_running_loop()
        run_at = loop.time() + delay_seconds

        async with self.condition:
            self.ensure_runner()
            if submission_id in self.pending_keys:
                self.cancelled_ids.add(self.pending_keys[submission_id])

            self.counter += 1
            job_id = self.counter
            heapq.heappush(self.heap, (run_at, job_id, submission_id))
            self.pending_keys[submission_id] = job_id
            self.condition.notify_all()

    async def cancel(self, submission_id: str) -> bool:
        """Cancel the timer for ``submission_id``. Returns False if none was pending."""
        async with self.condition:
            job_id = self.pending_keys.pop(submission_id, None)
            if job_id is None:
                return False

            self.cancelled_ids.add(job_id)
            self.condition.notify_all()
            return True

    async def shutdown(self) -> None:
        """Stop the runner and drop every pending timer. Safe to call multiple times."""
        async with self.condition:
            if self.runner_task:
                self.runner_task.cancel()
            self.heap.clear()
            self.pending_keys.clear()
            self.cancelled_ids.clear()
            self.condition.notify_all()

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None
        logger.info("[EXPIRY] Scheduler shutdown complete")

    async def run(self) -> None:
        """Background loop that fires timers as they come due."""
        loop = asyncio.get_running_loop()
        while True:
            async with self.condition:
                while self.heap and self.heap[0][1] in self.cancelled_ids:
                    _, job_id, _ = heapq.heappop(self.heap)
                    self.cancelled_ids.discard(job_id)

                if not self.heap:
                    await self.condition.wait()
                    continue

                run_at, _, _ = self.heap[0]
                delay = run_at - loop.time()

                if delay > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                    continue

                _, job_id, submission_id = heapq.heappop(self.heap)
                if self.pending_keys.get(submission_id) == job_id:
                    del self.pending_keys[submission_id]

            await self.execute(submission_id)

    async def execute(self, submission_id: str) -> None:
        try:
            await self.on_expire(submission_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[EXPIRY] Failed to expire submission %s: %s", submission_id, exc)
