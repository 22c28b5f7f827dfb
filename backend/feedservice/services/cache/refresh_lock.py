"""
Per-key single-flight coordinator.

The first caller for a key starts the work as a task; callers arriving while it is in
flight await the same task and get the same result or exception. The entry is dropped
when the task settles, so the next call runs fresh instead of replaying an old result.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _retrieve_exception(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; mark the outcome as observed
    if not task.cancelled():
        task.exception()


class RefreshLock:
    """Map of key -> in-flight task. The mutex guards only insertion/removal, never the work."""

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task] = {}
        self._mutex = asyncio.Lock()

    async def run(self, key: str, work: Callable[[], Awaitable[T]]) -> T:
        async with self._mutex:
            task = self._in_flight.get(key)
            if task is None:
                task = asyncio.create_task(self._run_and_release(key, work), name=f"refresh:{key}")
                task.add_done_callback(_retrieve_exception)
                self._in_flight[key] = task
                logger.debug("Refresh started for %s", key)
            else:
                logger.debug("Joining in-flight refresh for %s", key)
        # A cancelled caller must not cancel the section other waiters depend on
        return await asyncio.shield(task)

    async def _run_and_release(self, key: str, work: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await work()
        finally:
            async with self._mutex:
                self._in_flight.pop(key, None)

