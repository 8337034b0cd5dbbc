"""
Unit tests for the fixed-window RateLimiter.
"""

import asyncio

import pytest

from manga_gateway.ratelimit import RateLimiter, RateLimitTimeout


class TestRateLimiter:
    """Test cases for RateLimiter.acquire."""

    @pytest.fixture
    def limiter(self, clock):
        return RateLimiter(limit=40, window_seconds=60, clock=clock, sleep=clock.sleep)

    @pytest.mark.asyncio
    async def test_grants_up_to_limit_then_waits_for_window(self, limiter, clock):
        """41 concurrent callers: 40 at once, the last after the window."""
        start = clock.now
        grants = []

        async def worker():
            await limiter.acquire()
            grants.append(clock.now)

        await asyncio.gather(*(worker() for _ in range(41)))

        assert grants[:40] == [start] * 40
        assert grants[40] >= start + 60
        assert grants[40] == pytest.approx(start + 60 + limiter.buffer_seconds)
        assert clock.sleeps == [pytest.approx(60 + limiter.buffer_seconds)]

    @pytest.mark.asyncio
    async def test_empty_window_grants_immediately(self, limiter, clock):
        for _ in range(40):
            await limiter.acquire()

        clock.now += 60
        await limiter.acquire()

        assert clock.sleeps == []
        assert limiter.in_window == 1

    @pytest.mark.asyncio
    async def test_recomputes_wait_after_waking(self, clock):
        limiter = RateLimiter(limit=2, window_seconds=60, clock=clock, sleep=clock.sleep)
        start = clock.now

        await limiter.acquire()
        clock.now += 30
        await limiter.acquire()

        await limiter.acquire()
        assert clock.now == pytest.approx(start + 60.05)

        await limiter.acquire()
        assert clock.now == pytest.approx(start + 90.05)
        assert clock.sleeps == [pytest.approx(30.05), pytest.approx(30.0)]

    @pytest.mark.asyncio
    async def test_entries_expire_exactly_at_window_edge(self, clock):
        limiter = RateLimiter(limit=1, window_seconds=60, clock=clock, sleep=clock.sleep)

        await limiter.acquire()
        clock.now += 60
        await limiter.acquire()

        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_max_wait_raises_timeout(self, clock):
        limiter = RateLimiter(
            limit=1, window_seconds=60, max_wait_seconds=10, clock=clock, sleep=clock.sleep
        )
        await limiter.acquire()

        with pytest.raises(RateLimitTimeout) as exc_info:
            await limiter.acquire()

        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.waited == 0
        assert exc_info.value.needed == pytest.approx(60.05)
        assert exc_info.value.max_wait == 10
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_cancelled_waiter_takes_no_permit(self, clock):
        async def never(_seconds):
            await asyncio.Event().wait()

        limiter = RateLimiter(limit=1, window_seconds=60, clock=clock, sleep=never)
        await limiter.acquire()

        waiter = asyncio.create_task(limiter.acquire())
        await asyncio.sleep(0)
        waiter.cancel()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert limiter.in_window == 1

    @pytest.mark.asyncio
    async def test_reset_clears_window(self, limiter, clock):
        for _ in range(40):
            await limiter.acquire()

        limiter.reset()
        await limiter.acquire()

        assert clock.sleeps == []

    @pytest.mark.parametrize("kwargs", [{"limit": 0}, {"window_seconds": 0}])
    def test_rejects_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            RateLimiter(**kwargs)
