"""Periodic background sweep of expired cache entries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """Runs ``sweep`` every ``interval`` seconds on the running event loop.

    The task is a plain background task: it is cancelled with its loop and
    never holds the process open on its own.
    """

    def __init__(self, sweep: Callable[[], Awaitable[int]]) -> None:
        self._sweep = sweep
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval: float) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(interval), name="pixelserve-cache-cleanup")

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                removed = await self._sweep()
            except Exception as e:
                logger.warning("Cache cleanup failed: %s", e)
                continue
            if removed > 0:
                logger.info("Cache cleanup: removed %d expired entries", removed)
