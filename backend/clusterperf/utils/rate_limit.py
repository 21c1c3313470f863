"""
Rate limiting for quote provider calls.

A token bucket sized to the provider's quota. Every provider request takes one
token; when the bucket is empty the caller waits for the next refill, which
paces sequential ticker fetches without a hard-coded sleep.
"""

from typing import Optional

from loguru import logger

from clusterperf.utils.clock import system_clock
from clusterperf.utils.errors import RateLimitError


class RateLimiter:
    """
    Token bucket rate limiter.

    Holds at most ``requests`` tokens and refills at ``requests / period`` tokens
    per second. Time comes from the injected clock, so tests can drive it.
    """

    def __init__(self, requests: int = 1, period: float = 0.5, clock=None):
        """
        Initialize rate limiter.

        Args:
            requests: Number of requests allowed per period (bucket capacity)
            period: Time period in seconds
            clock: Object providing monotonic() and sleep(); defaults to the system clock
        """
        if requests < 1 or period <= 0:
            raise ValueError("requests must be >= 1 and period must be > 0")
        self.requests = requests
        self.period = period
        self.clock = clock or system_clock
        self._refill_rate = requests / period
        self._tokens = float(requests)
        self._last_refill: Optional[float] = None

    def _refill(self) -> None:
        now = self.clock.monotonic()
        if self._last_refill is not None:
            elapsed = max(0.0, now - self._last_refill)
            self._tokens = min(float(self.requests), self._tokens + elapsed * self._refill_rate)
        self._last_refill = now

    def try_acquire(self) -> bool:
        """Take a token if one is available, without waiting."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def acquire(self, max_wait: Optional[float] = None) -> float:
        """
        Take a token, waiting for a refill if the bucket is empty.

        Args:
            max_wait: Give up instead of waiting longer than this many seconds

        Returns:
            Seconds spent waiting

        Raises:
            RateLimitError: If the required wait exceeds max_wait
        """
        if self.try_acquire():
            return 0.0

        wait_time = (1 - self._tokens) / self._refill_rate
        if max_wait is not None and wait_time > max_wait:
            raise RateLimitError(
                f"Rate limit exceeded: next token in {wait_time:.2f}s",
                retry_after=wait_time,
            )

        logger.debug(f"Rate limit: waiting {wait_time:.2f}s for provider token")
        self.clock.sleep(wait_time)
        self._refill()
        self._tokens = max(0.0, self._tokens - 1)
        return wait_time

    def reset(self) -> None:
        """Refill the bucket completely."""
        self._tokens = float(self.requests)
        self._last_refill = None
