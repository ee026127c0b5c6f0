"""Politeness throttle enforcing a minimum interval between fetch starts."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class StartThrottle:
    """
    Space out task starts by at least min_interval seconds.

    Unlike a token bucket there is no burst allowance: every acquire waits
    until min_interval has passed since the previous start.
    """

    def __init__(
        self,
        min_interval: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = max(0.0, min_interval)
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_start: Optional[float] = None

    async def acquire(self) -> None:
        async with self._lock:
            if self._last_start is not None and self.min_interval > 0:
                elapsed = self._clock() - self._last_start
                wait_needed = self.min_interval - elapsed
                if wait_needed > 0:
                    logger.debug(f"Throttling next fetch start by {wait_needed:.2f}s")
                    await self._sleep(wait_needed)
            self._last_start = self._clock()
