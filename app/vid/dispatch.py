"""Fire-and-forget background tasks.

Notifications and caller callbacks run after the HTTP handler that started
them has already responded. The dispatcher keeps a strong reference to each
task until it finishes (the event loop only holds weak ones) and logs any
exception it ends with, so a failure never reaches the spawning handler.
"""

import asyncio
import logging
from typing import Coroutine, Optional, Set

log = logging.getLogger(__name__)


class BackgroundDispatcher:
    """Tracks detached asyncio tasks spawned by request handlers."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        """Schedule coro on the running loop without awaiting it.

        Args:
            coro: Coroutine to run.
            name: Task name used in log messages.

        Returns:
            The created task.
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            log.warning(f"Background task '{task.get_name()}' was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                f"Background task '{task.get_name()}' failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self) -> None:
        """Wait until every task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)


# Module-level singleton
_dispatcher: Optional[BackgroundDispatcher] = None


def get_dispatcher() -> BackgroundDispatcher:
    """Get or create the background dispatcher singleton."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = BackgroundDispatcher()
    return _dispatcher


def reset_dispatcher() -> None:
    """Reset the background dispatcher singleton (for testing)."""
    global _dispatcher
    _dispatcher = None
