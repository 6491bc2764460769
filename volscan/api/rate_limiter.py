"""
Async token bucket that paces requests against the provider budget.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from volscan.utils.logger import get_logger

logger = get_logger(__name__)


class TokenBucket:
    """
    Token bucket refilled continuously at ``rate`` tokens per second.

    ``acquire()`` waits until a token is available; waiters are served one
    at a time under a lock, so concurrent callers share the budget fairly.

    Args:
        rate: Tokens added per second
        capacity: Maximum burst size
        clock: Monotonic clock (injectable for tests)
        sleep: Coroutine used to wait (injectable for tests)
    """

    def __init__(
        self,
        rate: float,
        capacity: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = capacity
        self._updated_at = clock()
        self._lock = asyncio.Lock()
        self._waits = 0

    @classmethod
    def per_minute(cls, requests_per_minute: int, burst: int = 1) -> "TokenBucket":
        return cls(rate=requests_per_minute / 60.0, capacity=burst)

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    @property
    def wait_count(self) -> int:
        """How many acquisitions had to wait."""
        return self._waits

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated_at
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
            self._updated_at = now

    async def acquire(self, tokens: float = 1.0) -> None:
        if tokens > self.capacity:
            raise ValueError("cannot acquire more tokens than the bucket holds")

        async with self._lock:
            self._refill()
            while self._tokens < tokens:
                delay = (tokens - self._tokens) / self.rate
                self._waits += 1
                logger.debug("rate_limit_wait", delay_s=round(delay, 3))
                await self._sleep(delay)
                self._refill()
            self._tokens -= tokens
