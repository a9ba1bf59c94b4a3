"""Request pacing for the venue trading API: a token bucket plus 429 backoff."""

from __future__ import annotations

import asyncio
import time
from threading import Lock
from typing import Callable

# Venues meter bet placement far below their market-data endpoints.
DEFAULT_RATE_PER_SEC = 2.0
MAX_BACKOFF_SEC = 60.0


class TokenBucket:
    """Refills ``rate`` tokens per second up to ``burst``.

    The provider gate already serializes calls, so the bucket only spaces them
    out; a burst of one keeps placement, status and balance calls evenly paced.
    """

    def __init__(
        self,
        rate: float = DEFAULT_RATE_PER_SEC,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be > 0")
        self.rate = rate
        self.burst = max(1, burst)
        self.tokens = float(self.burst)
        self._clock = clock
        self.last = clock()
        self._lock = Lock()

    def _refill(self) -> None:
        now = self._clock()
        self.tokens = min(self.burst, self.tokens + (now - self.last) * self.rate)
        self.last = now

    def consume(self, n: int = 1) -> bool:
        """Take n tokens if available."""
        with self._lock:
            self._refill()
            if self.tokens >= n:
                self.tokens -= n
                return True
            return False

    def delay_for(self, n: int = 1) -> float:
        """Seconds until n tokens will be available (0 when they already are)."""
        with self._lock:
            self._refill()
            return max(0.0, (n - self.tokens) / self.rate)

    async def wait_for_token(self, n: int = 1) -> None:
        while not self.consume(n):
            await asyncio.sleep(self.delay_for(n))


def backoff_on_429(
    retries: int,
    base_delay: float = 1.0,
    retry_after: str | None = None,
    cap: float = MAX_BACKOFF_SEC,
) -> float:
    """Delay before retrying a request the venue answered with 429.

    A Retry-After header in seconds wins; an HTTP-date one is ignored and the
    delay doubles per retry instead. Either way it never exceeds cap.
    """
    if retry_after is not None and retry_after.strip().replace(".", "", 1).isdigit():
        return min(cap, float(retry_after))
    return min(cap, base_delay * (2 ** retries))
