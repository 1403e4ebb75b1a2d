"""
quorum.services.dispatch — Fire-and-forget side effects
========================================================

A primary action (vote, accept, answer, comment) commits first; its side
effects (reputation adjustments, notification delivery, cleanup) are
spawned here as independent ``asyncio`` tasks.  A failing side effect is
logged at the task boundary and never reaches the caller.

The dispatcher keeps a strong reference to every pending task so the event
loop cannot garbage-collect it mid-flight, and :meth:`drain` lets shutdown
(and tests) wait for everything in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class TaskDispatcher:
    """Tracks background side-effect tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
        """Schedule *coro* on the running loop and return immediately."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed",
                task.get_name(),
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every spawned task (and any task they spawn) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
