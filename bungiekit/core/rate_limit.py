"""
Client-side rate limiting for BungieKit.

The API throttles aggressive clients (ErrorCode 51 / ThrottleSeconds), so
requests are spread out locally with a sliding window over one second and
one minute.
"""

import asyncio
import logging
import threading
import time
from collections import deque
from typing import Callable

logger = logging.getLogger("bungiekit.rate_limit")


class RateLimiter:
    """Sliding window rate limiter over a 1s and a 60s window.

    A limit of 0 disables that window.
    """

    def __init__(
        self,
        requests_per_second: int,
        requests_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rps_limit = requests_per_second
        self.rpm_limit = requests_per_minute
        self.second_window: deque[float] = deque()
        self.minute_window: deque[float] = deque()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._sync_lock = threading.Lock()  # For sync property access

    def _prune(self, now: float) -> None:
        while self.second_window and self.second_window[0] <= now - 1:
            self.second_window.popleft()
        while self.minute_window and self.minute_window[0] <= now - 60:
            self.minute_window.popleft()

    def _wait_time(self, now: float) -> float:
        """Seconds until both windows have capacity (0 when free now)."""
        wait = 0.0
        if self.rps_limit and len(self.second_window) >= self.rps_limit:
            wait = max(wait, self.second_window[0] + 1 - now)
        if self.rpm_limit and len(self.minute_window) >= self.rpm_limit:
            wait = max(wait, self.minute_window[0] + 60 - now)
        return wait

    def _record(self, now: float) -> None:
        self.second_window.append(now)
        self.minute_window.append(now)

    async def acquire(self) -> None:
        """Acquire permission to make a request, sleeping if necessary."""
        async with self._lock:
            while True:
                with self._sync_lock:
                    now = self._clock()
                    self._prune(now)
                    wait_time = self._wait_time(now)
                    if wait_time <= 0:
                        self._record(now)
                        return
                logger.debug(f"Rate limit reached: waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)

    def try_acquire(self) -> bool:
        """Record a request if both windows have capacity, without waiting."""
        with self._sync_lock:
            now = self._clock()
            self._prune(now)
            if self._wait_time(now) > 0:
                return False
            self._record(now)
            return True

    @property
    def remaining_second(self) -> int:
        """Remaining requests in the current second."""
        with self._sync_lock:
            self._prune(self._clock())
            if not self.rps_limit:
                return 0
            return max(0, self.rps_limit - len(self.second_window))

    @property
    def remaining_minute(self) -> int:
        """Remaining requests in the current minute."""
        with self._sync_lock:
            self._prune(self._clock())
            if not self.rpm_limit:
                return 0
            return max(0, self.rpm_limit - len(self.minute_window))
