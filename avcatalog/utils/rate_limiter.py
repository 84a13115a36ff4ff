"""Request pacing for crawlers and API clients."""

import asyncio
import random
import time
from collections import deque
from typing import Dict, Optional

from loguru import logger

from ..errors import RateLimitError

# Per-source pacing presets: seconds between requests plus random jitter
RATE_LIMIT_PRESETS: Dict[str, Dict[str, float]] = {
    "duga": {"min_delay": 1.0, "jitter": 0.5},
    "sokmil": {"min_delay": 1.0, "jitter": 0.5},
    "b10f": {"min_delay": 0.2, "jitter": 0.1},
    "mgs": {"min_delay": 2.0, "jitter": 1.0},
    "fc2": {"min_delay": 3.0, "jitter": 1.5},
    "dti": {"min_delay": 2.0, "jitter": 1.0},
    "default": {"min_delay": 1.5, "jitter": 0.5},
}


class RateLimiter:
    """Fixed delay plus jitter between requests, with a concurrency cap.

    Usage::

        async with limiter:
            await client.get(url)
    """

    def __init__(self, min_delay: float = 1.5, jitter: float = 0.5, max_concurrent: int = 1):
        self.min_delay = min_delay
        self.jitter = jitter
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._lock = asyncio.Lock()
        self._last_request: Optional[float] = None

    async def wait(self):
        """Sleep until the next request is allowed."""
        async with self._lock:
            now = time.monotonic()
            if self._last_request is not None:
                target = self.min_delay + random.uniform(0, self.jitter)
                remaining = target - (now - self._last_request)
                if remaining > 0:
                    await asyncio.sleep(remaining)
            self._last_request = time.monotonic()

    async def __aenter__(self):
        await self._semaphore.acquire()
        try:
            await self.wait()
        except BaseException:
            self._semaphore.release()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._semaphore.release()
        return False


class SlidingWindowLimiter:
    """Refuses requests beyond max_requests per window_seconds."""

    def __init__(self, max_requests: int = 60, window_seconds: float = 60.0):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._timestamps: deque = deque()

    def check(self):
        """Record a request, raising RateLimitError when the window is full."""
        now = time.monotonic()
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

        if len(self._timestamps) >= self.max_requests:
            raise RateLimitError(
                f"API rate limit exceeded ({self.max_requests} requests per "
                f"{int(self.window_seconds)} seconds)"
            )
        self._timestamps.append(now)

    @property
    def remaining(self) -> int:
        now = time.monotonic()
        active = [t for t in self._timestamps if now - t < self.window_seconds]
        return max(self.max_requests - len(active), 0)


def get_rate_limiter(
    source: str,
    overrides: Optional[Dict[str, Dict[str, float]]] = None,
    max_concurrent: int = 1,
) -> RateLimiter:
    """Build a RateLimiter for a source from the presets and config overrides."""
    preset = dict(RATE_LIMIT_PRESETS.get(source, RATE_LIMIT_PRESETS["default"]))
    if overrides and source in overrides:
        preset.update(overrides[source])

    logger.debug(f"Rate limiter for {source}: {preset['min_delay']}s + {preset['jitter']}s jitter")
    return RateLimiter(
        min_delay=preset["min_delay"],
        jitter=preset["jitter"],
        max_concurrent=max_concurrent,
    )
