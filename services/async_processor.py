# services/async_processor.py
"""Background workflow runner on the application's event loop"""
import asyncio
import logging
from typing import Coroutine, Set

from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


class AsyncWorkflowProcessor:
    """
    Fire-and-forget task submission for workflow executions.

    Tasks run on the running loop, so database engines and locks are shared
    with the request handlers. Call shutdown() on app exit.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit_task(self, coro: Coroutine, name: str = "workflow") -> asyncio.Task:
        """Schedule the coroutine; failures are logged, never raised to the caller."""
        async def run():
            try:
                await coro
            except asyncio.CancelledError:
                logger.warning(f"Background task {name} cancelled")
                raise
            except Exception as e:
                logger.exception(f"Background task {name} failed: {e}")

        task = asyncio.create_task(run(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Wait for running tasks, then cancel whatever is left."""
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} background task(s) to finish")
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"Cancelled {len(pending)} background task(s) at shutdown")


# Global instance
async_processor = AsyncWorkflowProcessor()
