"""
Token-bucket rate limiter for model calls.
"""

import threading
import time
from typing import Callable

from jobtrack.core.logging import get_logger

log = get_logger(__name__)


class RateLimiter:
    """
    Blocking token bucket.

    Callers take one permit per model request. With ``burst=1`` requests are
    spaced evenly at ``rate_per_minute``; a larger burst allows short bursts
    once the bucket has refilled.
    """

    def __init__(
        self,
        rate_per_minute: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate_per_minute <= 0:
            raise ValueError("rate_per_minute must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self.rate_per_second = rate_per_minute / 60.0
        self.capacity = float(burst)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._updated = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(now - self._updated, 0.0)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate_per_second)
        self._updated = now

    def acquire(self) -> float:
        """
        Take one permit, sleeping until one is available.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    if waited:
                        log.debug("rate_limiter_waited", seconds=round(waited, 2))
                    return waited

                wait = (1.0 - self._tokens) / self.rate_per_second
                self._sleep(wait)
                waited += wait


class NoopLimiter:
    """Limiter that never waits (rate limiting disabled)."""

    def acquire(self) -> float:
        return 0.0
