# gamedeals/api/rate_limiter.py

"""Sliding-window request budget shared by every outbound call."""

import asyncio
import logging
import time
from collections import deque

from gamedeals.config.settings import Settings
from gamedeals.models.errors import RateLimited

logger = logging.getLogger("gamedeals.ratelimit")


class SlidingWindowRateLimiter:
    """Allow at most ``max_requests`` acquisitions per rolling window.

    Concurrent fetch tasks serialise on an :class:`asyncio.Lock`, so the
    timestamp log can never be corrupted by interleaved acquisitions.
    Waiting happens while holding the lock: callers are served in
    arrival order and a cancelled waiter releases it immediately.
    """

    def __init__(
        self,
        max_requests: int | None = None,
        window_seconds: float | None = None,
    ) -> None:
        self.max_requests = (
            max_requests
            if max_requests is not None
            else Settings.RATE_LIMIT_MAX_REQUESTS
        )
        self.window_seconds = (
            window_seconds
            if window_seconds is not None
            else Settings.RATE_LIMIT_WINDOW_SECONDS
        )
        if self.max_requests < 1 or self.window_seconds <= 0:
            raise ValueError("Rate limit budget must be positive")
        self._stamps: deque[float] = deque()
        self._lock = asyncio.Lock()
        self._upstream_until: float = 0.0

    def _prune(self, now: float) -> None:
        """Forget acquisitions that have left the window."""
        while self._stamps and now - self._stamps[0] >= self.window_seconds:
            self._stamps.popleft()

    def _wait_time(self, now: float) -> float:
        """Seconds until one unit of budget is available (0 if now)."""
        waits = [self._upstream_until - now]
        if len(self._stamps) >= self.max_requests:
            waits.append(self._stamps[0] + self.window_seconds - now)
        return max(0.0, *waits)

    @property
    def remaining(self) -> int:
        """Units of budget available right now."""
        self._prune(time.monotonic())
        return max(0, self.max_requests - len(self._stamps))

    async def acquire(self, allow_wait: bool = True) -> None:
        """Consume one unit of budget.

        With ``allow_wait`` the call sleeps until budget frees up;
        otherwise it raises :class:`RateLimited` straight away.
        """
        async with self._lock:
            while True:
                now = time.monotonic()
                self._prune(now)
                delay = self._wait_time(now)
                if delay <= 0:
                    self._stamps.append(now)
                    return
                if not allow_wait:
                    logger.info(
                        "Request budget exhausted, rejecting (%.2fs to wait)",
                        delay,
                    )
                    raise RateLimited(
                        f"Request budget exhausted, retry in {delay:.1f}s",
                        retry_after=delay,
                    )
                logger.debug("Request budget exhausted, waiting %.2fs", delay)
                await asyncio.sleep(delay)

    def penalize(self, seconds: float) -> None:
        """Block the budget for *seconds* after an upstream 429."""
        until = time.monotonic() + max(0.0, seconds)
        if until > self._upstream_until:
            self._upstream_until = until
            logger.warning(
                "Upstream rate limit hit, pausing requests for %.1fs", seconds
            )
