"""Client-side call limits.

RateLimiter is a sliding-window admission check: at most ``max`` calls are
admitted per ``window`` seconds, and a refused call learns how long until the
oldest admitted call leaves the window.

Throttle spaces consecutive calls at least ``interval`` seconds apart. One
process-wide instance guards every bibliographic network call.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Optional

from storylines.core import constants
from storylines.core.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    retry_after: Optional[float] = None


class RateLimiter:
    """Sliding-window limiter.

    Args:
        max: Calls admitted per window
        window: Window length in seconds
        scope: Name reported in RateLimitExceeded
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        max: int = 10,
        window: float = 60.0,
        scope: str = "calls",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max = max
        self.window = window
        self.scope = scope
        self._clock = clock
        self._timestamps: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window:
            self._timestamps.popleft()

    def check(self) -> RateLimitResult:
        """Admit and record a call, or refuse it with a retry hint in seconds."""
        now = self._clock()
        self._prune(now)

        if len(self._timestamps) >= self.max:
            retry_after = self.window - (now - self._timestamps[0])
            return RateLimitResult(allowed=False, retry_after=retry_after)

        self._timestamps.append(now)
        return RateLimitResult(allowed=True)

    def acquire(self) -> None:
        """Like check() but raises RateLimitExceeded on refusal."""
        result = self.check()
        if not result.allowed:
            logger.warning("Rate limit reached for %s, retry in %.1fs", self.scope, result.retry_after)
            raise RateLimitExceeded(self.scope, result.retry_after)

    @property
    def remaining(self) -> int:
        self._prune(self._clock())
        return max(0, self.max - len(self._timestamps))

    def reset(self) -> None:
        self._timestamps.clear()


class Throttle:
    """Minimum spacing between calls, serialized through an asyncio.Lock."""

    def __init__(
        self,
        interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def interval(self) -> float:
        return constants.THROTTLE_INTERVAL if self._interval is None else self._interval

    @interval.setter
    def interval(self, value: Optional[float]) -> None:
        self._interval = value

    async def wait(self) -> None:
        """Block until at least ``interval`` seconds have passed since the last call."""
        async with self._lock:
            if self._last is not None:
                elapsed = self._clock() - self._last
                remaining = self.interval - elapsed
                if remaining > 0:
                    logger.debug("Throttling for %.3fs", remaining)
                    await self._sleep(remaining)
            self._last = self._clock()

    def reset(self) -> None:
        self._last = None


# Shared instance
library_throttle = Throttle()
