"""
tsrag - Rate Limiter
=====================
Async sliding-window limiter keeping embedding calls under the Gemini
requests-per-minute quota during ingestion.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypedDict

from tsrag.config.settings import settings
from tsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

# Slack added to every computed wait
_WAIT_MARGIN_SECONDS = 0.1


class RateLimiterStats(TypedDict):
    requests_in_window: int
    remaining_requests: int
    max_requests: int


class RateLimiter:
    """
    Allow at most *max_requests* calls to ``wait`` per *window_seconds*.

    Parameters
    ----------
    max_requests
        Requests allowed per window.  Defaults to ``settings.RATE_LIMIT_RPM``.
    window_seconds
        Window length.
    clock, sleep
        Monotonic clock and async sleep; injectable for tests.
    """

    __slots__ = ("_max_requests", "_window", "_clock", "_sleep", "_requests")

    def __init__(self, max_requests: int | None = None, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._max_requests = max_requests if max_requests is not None else settings.RATE_LIMIT_RPM
        if self._max_requests < 1:
            raise ValueError(f"max_requests must be ≥ 1, got {self._max_requests}")
        self._window = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._requests: deque[float] = deque()


    async def wait(self) -> None:
        """Block until one more request fits in the window, then record it."""
        self._evict(self._clock())

        if len(self._requests) >= self._max_requests:
            wait_seconds = self._window - (self._clock() - self._requests[0]) + _WAIT_MARGIN_SECONDS
            logger.info("[INGEST] Rate limit reached, waiting %.1fs.", wait_seconds)
            await self._sleep(wait_seconds)
            self._evict(self._clock())

        self._requests.append(self._clock())


    def stats(self) -> RateLimiterStats:
        self._evict(self._clock())
        recent = len(self._requests)
        return {"requests_in_window": recent, "remaining_requests": self._max_requests - recent, "max_requests": self._max_requests}


    def reset(self) -> None:
        self._requests.clear()


    def _evict(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self._window:
            self._requests.popleft()
