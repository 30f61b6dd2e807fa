"""Fire-and-forget dispatch for post-commit side effects."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable

import structlog

logger = structlog.get_logger(__name__)


class BackgroundDispatcher:
    """Runs side-effect coroutines as detached tasks.

    Failures are logged and never reach the caller. Task references are held
    until completion so they are not garbage collected mid-flight.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, coro: Awaitable[object], *, name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, name))
        return task

    def _finished(self, task: asyncio.Task, name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("side_effect_cancelled", side_effect=name)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("side_effect_failed", side_effect=name, error=str(exc))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight side effect (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
