"""Cancellable periodic background task."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from dashsync.duration import to_seconds
from dashsync.types import Duration

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs an async callback every ``interval`` until stopped.

    The first run happens immediately when ``run_immediately`` is set,
    otherwise after one interval. Exceptions from the callback are logged
    and the schedule continues.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        interval: Duration,
        *,
        name: str | None = None,
        run_immediately: bool = True,
    ) -> None:
        self._callback = callback
        self._interval = to_seconds(interval)
        if self._interval <= 0:
            raise ValueError("interval must be positive")
        self._name = name or getattr(callback, "__qualname__", "periodic")
        self._run_immediately = run_immediately
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the schedule on the running loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self._name)

    async def stop(self) -> None:
        """Cancel the schedule and wait for it to finish."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self._interval)
        while True:
            try:
                await self._callback()
            except Exception:
                logger.exception("Periodic task %s failed", self._name)
            await asyncio.sleep(self._interval)
