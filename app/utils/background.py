import asyncio
from typing import Awaitable, Set
from loguru import logger


class BackgroundTasks:
    """
    Fire-and-forget runner for work that must not delay the reply
    (staff notifications, session clears).
    Failures are logged and never reach the caller.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task '{task.get_name()}' was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Background task '{task.get_name()}' failed: {exc}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every task spawned so far (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
