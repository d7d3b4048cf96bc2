"""Tests for the token bucket rate limiter."""
import pytest

from agencysync.sync.rate_limiter import (
    DEFAULT_LIMIT,
    PROVIDER_LIMITS,
    RateLimiter,
    get_rate_limiter,
)


class FakeClock:
    """Manual clock; sleeping advances it."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(name="clock")
def clock_fixture():
    return FakeClock()


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_full_bucket_does_not_wait(self, clock):
        limiter = RateLimiter(3, 1, clock=clock, sleep=clock.sleep)
        for _ in range(3):
            await limiter.acquire()
        assert clock.sleeps == []
        assert limiter.tokens == pytest.approx(0)

    @pytest.mark.asyncio
    async def test_empty_bucket_waits_for_deficit(self, clock):
        limiter = RateLimiter(2, 4, clock=clock, sleep=clock.sleep)
        await limiter.acquire()
        await limiter.acquire()
        await limiter.acquire()
        # One token short at 4 tokens/s
        assert clock.sleeps == [pytest.approx(0.25)]

    @pytest.mark.asyncio
    async def test_refills_from_elapsed_time(self, clock):
        limiter = RateLimiter(10, 2, clock=clock, sleep=clock.sleep)
        for _ in range(10):
            await limiter.acquire()
        clock.now += 3  # +6 tokens
        for _ in range(6):
            await limiter.acquire()
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_refill_capped_at_capacity(self, clock):
        limiter = RateLimiter(5, 1, clock=clock, sleep=clock.sleep)
        clock.now += 100
        await limiter.acquire()
        assert limiter.tokens == pytest.approx(4)

    @pytest.mark.asyncio
    async def test_cost_greater_than_one(self, clock):
        limiter = RateLimiter(5, 1, clock=clock, sleep=clock.sleep)
        await limiter.acquire(cost=5)
        await limiter.acquire(cost=2)
        assert clock.sleeps == [pytest.approx(2)]

    def test_rejects_non_positive_settings(self):
        with pytest.raises(ValueError):
            RateLimiter(0, 1)
        with pytest.raises(ValueError):
            RateLimiter(1, 0)


class TestGetRateLimiter:
    def test_same_instance_per_provider(self):
        assert get_rate_limiter("xero") is get_rate_limiter("xero")

    def test_provider_capacities(self):
        for provider, (capacity, rate) in PROVIDER_LIMITS.items():
            limiter = get_rate_limiter(provider)
            assert (limiter.max_tokens, limiter.refill_rate) == (capacity, rate)

    def test_known_limits(self):
        assert PROVIDER_LIMITS["monday"] == (60, 10)
        assert PROVIDER_LIMITS["slack"] == (20, 1)

    def test_unknown_provider_gets_default(self):
        limiter = get_rate_limiter("pipedrive")
        assert (limiter.max_tokens, limiter.refill_rate) == DEFAULT_LIMIT
        assert get_rate_limiter("pipedrive") is limiter
