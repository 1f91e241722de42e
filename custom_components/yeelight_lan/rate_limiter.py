"""Sliding-window request throttling for one fixture session."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable

from .const import MAX_REQUESTS_PER_WINDOW, RATE_LIMIT_WINDOW

_LOGGER = logging.getLogger(__name__)


class RateLimiter:
    """Delay callers so at most max_requests are admitted per window.

    Requests are never dropped. Waiting callers are admitted in the order
    they arrived.
    """

    def __init__(
        self,
        max_requests: int = MAX_REQUESTS_PER_WINDOW,
        window: float = RATE_LIMIT_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the limiter."""
        self._max_requests = max_requests
        self._window = window
        self._clock = clock
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def in_window(self) -> int:
        """Return the number of admissions inside the trailing window."""
        self._evict(self._clock())
        return len(self._timestamps)

    def _evict(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self._window:
            self._timestamps.popleft()

    async def admit(self) -> None:
        """Wait until a request may go out, then record it."""
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._timestamps) < self._max_requests:
                    self._timestamps.append(now)
                    return

                wait = self._timestamps[0] + self._window - now
                _LOGGER.debug("Rate limit reached, waiting %.2fs", wait)
                await asyncio.sleep(max(wait, 0))
