# tests/test_rate_limiter.py

"""Tests for the sliding-window request budget."""

import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from gamedeals.api.rate_limiter import SlidingWindowRateLimiter
from gamedeals.models.errors import RateLimited


class FakeClock:
    """Monotonic clock that only moves when a sleep is requested."""

    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


class TestSlidingWindowRateLimiter(unittest.IsolatedAsyncioTestCase):
    """Budget accounting under a controlled clock."""

    def setUp(self) -> None:
        self.clock = FakeClock()
        # Swap the module references only; the event loop keeps the real ones
        time_patch = patch(
            "gamedeals.api.rate_limiter.time",
            SimpleNamespace(monotonic=self.clock.monotonic),
        )
        sleep_patch = patch(
            "gamedeals.api.rate_limiter.asyncio",
            SimpleNamespace(Lock=asyncio.Lock, sleep=self.clock.sleep),
        )
        time_patch.start()
        sleep_patch.start()
        self.addCleanup(time_patch.stop)
        self.addCleanup(sleep_patch.stop)

    def test_invalid_budget_rejected(self) -> None:
        with self.assertRaises(ValueError):
            SlidingWindowRateLimiter(max_requests=0, window_seconds=1.0)
        with self.assertRaises(ValueError):
            SlidingWindowRateLimiter(max_requests=5, window_seconds=0)

    async def test_acquire_within_budget(self) -> None:
        limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=1.0)
        for _ in range(3):
            await limiter.acquire(allow_wait=False)
        self.assertEqual(limiter.remaining, 0)
        self.assertEqual(self.clock.sleeps, [])

    async def test_reject_policy_raises_when_exhausted(self) -> None:
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=1.0)
        await limiter.acquire(allow_wait=False)
        self.clock.now += 0.25
        await limiter.acquire(allow_wait=False)

        with self.assertRaises(RateLimited) as ctx:
            await limiter.acquire(allow_wait=False)
        self.assertAlmostEqual(ctx.exception.retry_after or 0.0, 0.75)
        self.assertFalse(ctx.exception.upstream)

    async def test_wait_policy_sleeps_until_window_slides(self) -> None:
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=1.0)
        await limiter.acquire()
        await limiter.acquire()
        await limiter.acquire()
        self.assertEqual(len(self.clock.sleeps), 1)
        self.assertAlmostEqual(self.clock.sleeps[0], 1.0)

    async def test_never_exceeds_budget_in_any_window(self) -> None:
        """Sliding the window one acquisition at a time stays within N."""
        limiter = SlidingWindowRateLimiter(max_requests=5, window_seconds=1.0)
        stamps: list[float] = []
        for _ in range(20):
            await limiter.acquire()
            stamps.append(self.clock.now)
        for i, start in enumerate(stamps):
            in_window = [t for t in stamps[i:] if t - start < 1.0]
            self.assertLessEqual(len(in_window), 5)

    async def test_budget_recovers_after_window(self) -> None:
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=1.0)
        await limiter.acquire(allow_wait=False)
        self.clock.now += 1.0
        await limiter.acquire(allow_wait=False)
        self.assertEqual(self.clock.sleeps, [])

    async def test_penalize_blocks_budget(self) -> None:
        limiter = SlidingWindowRateLimiter(max_requests=10, window_seconds=1.0)
        limiter.penalize(3.0)
        with self.assertRaises(RateLimited) as ctx:
            await limiter.acquire(allow_wait=False)
        self.assertAlmostEqual(ctx.exception.retry_after or 0.0, 3.0)

        await limiter.acquire()
        self.assertEqual(self.clock.sleeps, [3.0])

    async def test_concurrent_acquires_are_serialised(self) -> None:
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=1.0)
        await asyncio.gather(*(limiter.acquire() for _ in range(4)))
        # Two fit immediately, the next two wait for the window to slide
        self.assertEqual(len(self.clock.sleeps), 1)
        self.assertEqual(limiter.remaining, 0)


if __name__ == "__main__":
    unittest.main()
