"""
Per-provider token bucket throttling for outbound API calls.

Each provider gets one shared RateLimiter. Buckets refill lazily: tokens are
topped up from the elapsed wall-clock time whenever acquire() is called.

There is no queue. Concurrent callers that both have to wait each sleep for
their own deficit and re-check afterwards, so under contention a caller may
wait slightly longer than strictly necessary. The bucket may dip below zero
in that case; later callers then wait for it to refill.
"""
import asyncio
import time
from typing import Awaitable, Callable, Dict, Tuple


class RateLimiter:
    """Token bucket with a fixed capacity and a refill rate in tokens/second."""

    def __init__(
        self,
        max_tokens: float,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            max_tokens: Bucket capacity; the bucket starts full.
            refill_rate: Tokens added per second.
            clock: Monotonic time source in seconds (injectable for tests).
            sleep: Coroutine used to suspend the caller (injectable for tests).
        """
        if max_tokens <= 0 or refill_rate <= 0:
            raise ValueError("max_tokens and refill_rate must be positive")
        self.max_tokens = float(max_tokens)
        self.refill_rate = float(refill_rate)
        self._clock = clock
        self._sleep = sleep
        self.tokens = float(max_tokens)
        self._last_refill = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self._last_refill = now

    async def acquire(self, cost: float = 1) -> None:
        """Take `cost` tokens, sleeping first if the bucket is short."""
        self._refill()
        if self.tokens >= cost:
            self.tokens -= cost
            return

        wait_seconds = (cost - self.tokens) / self.refill_rate
        await self._sleep(wait_seconds)
        self._refill()
        self.tokens -= cost


# ── Provider buckets ──────────────────────────────────────────────────────────

# (capacity, tokens per second), tuned to each provider's published quota
PROVIDER_LIMITS: Dict[str, Tuple[float, float]] = {
    "monday": (60, 10),
    "hubspot": (100, 10),  # 100 requests / 10 s burst
    "xero": (60, 1),  # 60 calls / minute
    "slack": (20, 1),  # tier 3 methods, ~50 / minute
    "calendar": (100, 10),
    "gmail": (50, 5),  # 250 quota units / s at 5 units per call
    "sheets": (60, 1),  # 60 reads / minute
}
DEFAULT_LIMIT: Tuple[float, float] = (60, 1)

_limiters: Dict[str, RateLimiter] = {}


def get_rate_limiter(provider: str) -> RateLimiter:
    """Return the process-wide limiter for a provider, creating it on first use."""
    limiter = _limiters.get(provider)
    if limiter is None:
        capacity, rate = PROVIDER_LIMITS.get(provider, DEFAULT_LIMIT)
        limiter = RateLimiter(capacity, rate)
        _limiters[provider] = limiter
    return limiter
