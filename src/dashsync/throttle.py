"""Client-side request pacing."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Waits shorter than this are treated as none
_MIN_WAIT = 0.001


class RequestThrottle:
    """Sliding-window limiter for outgoing requests.

    Enforces a per-second cap, a per-minute cap and an even minimum spacing
    of ``1 / max_per_second`` between dispatches. Waiters are served in
    arrival order.
    """

    def __init__(
        self,
        *,
        max_per_second: int = 10,
        max_per_minute: int = 60,
        clock: Callable[[], float] | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        if max_per_second <= 0 or max_per_minute <= 0:
            raise ValueError("request limits must be positive")
        self._max_per_second = max_per_second
        self._max_per_minute = max_per_minute
        self._min_spacing = 1.0 / max_per_second
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._sent: deque[float] = deque()
        self._last_sent: float | None = None
        self._lock = asyncio.Lock()

    def delay(self) -> float:
        """Seconds to wait before the next request may be sent."""
        now = self._clock()
        while self._sent and now - self._sent[0] >= 60:
            self._sent.popleft()

        waits = [0.0]
        if self._last_sent is not None:
            waits.append(self._min_spacing - (now - self._last_sent))
        recent = [t for t in self._sent if now - t < 1]
        if len(recent) >= self._max_per_second:
            waits.append(1 - (now - recent[0]))
        if len(self._sent) >= self._max_per_minute:
            waits.append(60 - (now - self._sent[0]))
        return max(waits)

    async def acquire(self) -> None:
        """Wait until a request may be sent, then record it."""
        async with self._lock:
            wait = self.delay()
            while wait > _MIN_WAIT:
                logger.debug("Throttling request for %.3fs", wait)
                await self._sleep(wait)
                wait = self.delay()
            now = self._clock()
            self._sent.append(now)
            self._last_sent = now
