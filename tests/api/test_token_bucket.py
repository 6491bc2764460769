"""Tests for the async token bucket."""

import asyncio

import pytest

from volscan.api.rate_limiter import TokenBucket


class FakeClock:
    """Manual clock; ``sleep`` advances it instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestTokenBucket:

    async def test_first_acquire_is_free(self, clock):
        bucket = TokenBucket(rate=0.5, capacity=1, clock=clock, sleep=clock.sleep)
        await bucket.acquire()
        assert clock.sleeps == []
        assert bucket.wait_count == 0

    async def test_second_acquire_waits_for_refill(self, clock):
        bucket = TokenBucket(rate=0.5, capacity=1, clock=clock, sleep=clock.sleep)
        await bucket.acquire()
        await bucket.acquire()
        assert clock.sleeps == [pytest.approx(2.0)]
        assert bucket.wait_count == 1

    async def test_burst_capacity(self, clock):
        bucket = TokenBucket(rate=1, capacity=3, clock=clock, sleep=clock.sleep)
        for _ in range(3):
            await bucket.acquire()
        assert clock.sleeps == []
        assert bucket.tokens == pytest.approx(0.0)

    async def test_refill_capped_at_capacity(self, clock):
        bucket = TokenBucket(rate=1, capacity=2, clock=clock, sleep=clock.sleep)
        clock.now += 100
        assert bucket.tokens == 2

    async def test_concurrent_callers_share_budget(self, clock):
        bucket = TokenBucket(rate=1, capacity=1, clock=clock, sleep=clock.sleep)
        await asyncio.gather(*(bucket.acquire() for _ in range(4)))
        # one free token, then three one-second refills
        assert clock.now == pytest.approx(3.0)

    def test_per_minute(self):
        bucket = TokenBucket.per_minute(30)
        assert bucket.rate == pytest.approx(0.5)
        assert bucket.capacity == 1

    async def test_rejects_oversized_request(self, clock):
        bucket = TokenBucket(rate=1, capacity=1, clock=clock, sleep=clock.sleep)
        with pytest.raises(ValueError):
            await bucket.acquire(2)

    def test_rejects_bad_rate(self):
        with pytest.raises(ValueError):
            TokenBucket(rate=0)
