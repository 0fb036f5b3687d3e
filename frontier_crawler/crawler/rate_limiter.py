"""
Global rate limiting for crawler workers.

Every worker calls ``acquire()`` once per fetched URL. The frontier itself
holds no rate state, so ``URLFrontier.take()`` never blocks.
"""

import asyncio
import logging
import time
from typing import Optional, Protocol

from ..utils.config import ConfigError


class RateLimiter(Protocol):
    """Caps the aggregate number of operations per second across all workers."""

    async def acquire(self) -> None:
        ...


class IntervalRateLimiter:
    """
    Spaces grants evenly, one every ``1 / rate`` seconds.

    Callers reserve the next free slot and then sleep until it arrives,
    so no lock is held while waiting.
    """

    def __init__(self, rate: int):
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.interval = 1.0 / rate
        self._next_slot = 0.0

    async def acquire(self) -> None:
        now = time.monotonic()
        slot = max(now, self._next_slot)
        self._next_slot = slot + self.interval

        delay = slot - now
        if delay > 0:
            await asyncio.sleep(delay)


class TokenBucketRateLimiter:
    """
    Token bucket allowing bursts of up to ``capacity`` operations,
    refilled at ``rate`` tokens per second.
    """

    def __init__(self, rate: int, capacity: Optional[int] = None):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity is not None and capacity <= 0:
            raise ValueError("capacity must be positive")

        self.rate = rate
        self.capacity = capacity or rate
        self._tokens = float(self.capacity)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self):
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last_refill = now

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await asyncio.sleep((1 - self._tokens) / self.rate)


def create_rate_limiter(kind: str, rate: int) -> RateLimiter:
    """Create a rate limiter of the given kind ('interval' or 'token_bucket')."""
    if kind == 'interval':
        limiter = IntervalRateLimiter(rate)
    elif kind == 'token_bucket':
        limiter = TokenBucketRateLimiter(rate)
    else:
        raise ConfigError(f"Unknown rate limiter: {kind}")

    logging.getLogger(__name__).debug(f"Using {type(limiter).__name__} at {rate} ops/s")
    return limiter
