"""
RPC Rate Limiter.

Trailing-window admission control for outbound chain calls. Callers are
never rejected: when a scope's window is full they are suspended for a
fixed backoff and re-checked until a slot frees up.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from memberchain.config.constants import RATE_SCOPE_GLOBAL


class RateLimiter:
    """
    Per-scope sliding window rate limiter.

    Each scope keeps its own deque of admission timestamps, so limits for
    different purposes never affect each other. Window state is checked and
    updated under a per-scope asyncio.Lock; the backoff sleep happens
    outside the lock.

    Usage:
        limiter = RateLimiter(max_requests=30, window_seconds=60)

        await limiter.admit()            # global scope
        await limiter.admit("events")    # separate scope

        async with limiter:              # global scope
            ...
    """

    def __init__(
        self,
        max_requests: int = 30,
        window_seconds: float = 60.0,
        backoff_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            max_requests: Admissions allowed per window
            window_seconds: Trailing window size
            backoff_seconds: Sleep before re-checking a full window
            clock: Monotonic time source
            sleep: Async sleep function
        """
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0 or backoff_seconds <= 0:
            raise ValueError("window_seconds and backoff_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.backoff_seconds = backoff_seconds
        self._clock = clock
        self._sleep = sleep

        self._windows: dict[str, deque[float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

        self._admitted_count = 0
        self._delayed_count = 0

    async def admit(self, scope: str = RATE_SCOPE_GLOBAL) -> float:
        """
        Wait for a free slot in scope and take it.

        Args:
            scope: Logical limiter scope

        Returns:
            Total seconds spent in backoff
        """
        lock = self._locks.setdefault(scope, asyncio.Lock())
        waited = 0.0

        while True:
            async with lock:
                now = self._clock()
                window = self._windows.setdefault(scope, deque())
                self._purge(window, now)

                if len(window) < self.max_requests:
                    window.append(now)
                    self._admitted_count += 1
                    if waited:
                        logger.debug(
                            f"[RateLimiter] '{scope}' admitted after {waited:.1f}s backoff"
                        )
                    return waited

            if not waited:
                self._delayed_count += 1
                logger.warning(
                    f"[RateLimiter] '{scope}' at capacity "
                    f"({self.max_requests}/{self.window_seconds:.0f}s), "
                    f"backing off {self.backoff_seconds}s"
                )

            await self._sleep(self.backoff_seconds)
            waited += self.backoff_seconds

    async def __aenter__(self) -> "RateLimiter":
        await self.admit()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    def cleanup(self) -> int:
        """
        Purge expired timestamps and drop idle scopes.

        Returns:
            Number of scopes removed
        """
        now = self._clock()
        removed = 0

        for scope in list(self._windows):
            window = self._windows[scope]
            self._purge(window, now)
            lock = self._locks.get(scope)
            if not window and (lock is None or not lock.locked()):
                del self._windows[scope]
                self._locks.pop(scope, None)
                removed += 1

        if removed:
            logger.debug(f"[RateLimiter] Cleaned up {removed} idle scopes")
        return removed

    def current_usage(self, scope: str = RATE_SCOPE_GLOBAL) -> int:
        """Number of admissions in scope's current window."""
        window = self._windows.get(scope)
        if not window:
            return 0
        self._purge(window, self._clock())
        return len(window)

    def get_stats(self) -> dict[str, Any]:
        """
        Get limiter statistics.

        Returns:
            Dict with limits, counters and per-scope usage
        """
        return {
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "backoff_seconds": self.backoff_seconds,
            "admitted": self._admitted_count,
            "delayed": self._delayed_count,
            "scopes": {
                scope: self.current_usage(scope) for scope in list(self._windows)
            },
        }

    def _purge(self, window: deque[float], now: float) -> None:
        """Drop timestamps outside (now - window, now]."""
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()
