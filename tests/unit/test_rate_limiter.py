"""Tests for the minimum-spacing RateLimiter."""
import pytest

from admirror.broadstreet.rate_limiter import RateLimiter


class FakeClock:
    """Monotonic clock that only moves when sleep() is awaited."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_first_acquire_does_not_wait(self):
        clock = FakeClock()
        limiter = RateLimiter(5.0, clock=clock, sleep=clock.sleep)
        waited = await limiter.acquire()
        assert waited == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_second_acquire_waits_full_interval(self):
        clock = FakeClock()
        limiter = RateLimiter(5.0, clock=clock, sleep=clock.sleep)
        await limiter.acquire()
        waited = await limiter.acquire()
        assert waited == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_waits_only_the_remaining_time(self):
        clock = FakeClock()
        limiter = RateLimiter(5.0, clock=clock, sleep=clock.sleep)
        await limiter.acquire()
        clock.now += 3.0
        waited = await limiter.acquire()
        assert waited == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_no_wait_after_interval_elapsed(self):
        clock = FakeClock()
        limiter = RateLimiter(5.0, clock=clock, sleep=clock.sleep)
        await limiter.acquire()
        clock.now += 12.0
        assert await limiter.acquire() == 0.0

    @pytest.mark.asyncio
    async def test_permits_are_spaced_by_interval(self):
        clock = FakeClock()
        limiter = RateLimiter(5.0, clock=clock, sleep=clock.sleep)
        granted = []
        for _ in range(4):
            await limiter.acquire()
            granted.append(clock())
        gaps = [b - a for a, b in zip(granted, granted[1:])]
        assert all(gap >= 5.0 for gap in gaps)

    @pytest.mark.asyncio
    async def test_early_wakeup_sleeps_again(self):
        """A sleep that returns short of the deadline is followed by another."""
        clock = FakeClock()

        async def short_sleep(seconds: float) -> None:
            # First wakeup comes one second early, later ones on time.
            early = 1.0 if not clock.sleeps else 0.0
            clock.sleeps.append(seconds)
            clock.now += seconds - early

        limiter = RateLimiter(4.0, clock=clock, sleep=short_sleep)
        await limiter.acquire()
        start = clock()
        await limiter.acquire()
        assert clock() - start >= 4.0 - 1e-9
        assert len(clock.sleeps) > 1

    @pytest.mark.asyncio
    async def test_zero_interval_never_sleeps(self):
        clock = FakeClock()
        limiter = RateLimiter(0, clock=clock, sleep=clock.sleep)
        for _ in range(3):
            await limiter.acquire()
        assert clock.sleeps == []

    def test_negative_interval_clamped(self):
        assert RateLimiter(-1).interval == 0.0
