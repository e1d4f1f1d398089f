"""
Minimum-spacing rate limiter for Broadstreet API calls.

Broadstreet enforces one global quota per access token, regardless of which
collection is being read. A single RateLimiter instance is therefore shared
by every request in a sync run (and across consecutive runs): each call to
acquire() returns no sooner than `interval` seconds after the previous
permit was granted.

Waiting is an asyncio.sleep, so other tasks (e.g. the SSE stream writer)
keep running while a fetch is held back.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Grants one permit per `interval` seconds, process-wide."""

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep=asyncio.sleep,
    ):
        """
        Args:
            interval: Minimum seconds between two permits.
            clock: Monotonic time source (injectable for tests).
            sleep: Coroutine function used to wait (injectable for tests).
        """
        self.interval = max(0.0, float(interval))
        self._clock = clock
        self._sleep = sleep
        self._lock: Optional[asyncio.Lock] = None
        self.last_acquired_at: Optional[float] = None

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so the limiter can be built outside a running loop.
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def acquire(self) -> float:
        """Wait until the next request may be issued.

        Returns:
            Seconds spent waiting (0.0 if no wait was needed).
        """
        async with self._get_lock():
            waited = 0.0
            if self.last_acquired_at is not None:
                # Loop: the event loop may wake a timer up to one clock tick early.
                remaining = self.interval - (self._clock() - self.last_acquired_at)
                while remaining > 0:
                    logger.debug("Rate limit: waiting %.2fs", remaining)
                    await self._sleep(remaining)
                    waited += remaining
                    remaining = self.interval - (self._clock() - self.last_acquired_at)
            self.last_acquired_at = self._clock()
            return waited
