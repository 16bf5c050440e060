"""
Unit tests for the sliding window RPC rate limiter.

Tests cover:
- Admission within the window limit
- Delay (never rejection) once the window is full
- Concurrent callers on one scope
- Scope independence
- Cleanup of idle scopes
"""

import asyncio

import pytest

from memberchain.services.blockchain.rate_limiter import RateLimiter


def make_limiter(clock, max_requests=3, window_seconds=10.0, backoff_seconds=2.0):
    return RateLimiter(
        max_requests=max_requests,
        window_seconds=window_seconds,
        backoff_seconds=backoff_seconds,
        clock=clock,
        sleep=clock.sleep,
    )


class TestAdmission:
    """Test admission within and beyond the window."""

    @pytest.mark.asyncio
    async def test_admits_up_to_limit_without_waiting(self, clock):
        """First max_requests calls are admitted immediately."""
        limiter = make_limiter(clock)

        waits = [await limiter.admit() for _ in range(3)]

        assert waits == [0.0, 0.0, 0.0]
        assert clock.sleeps == []
        assert limiter.current_usage() == 3

    @pytest.mark.asyncio
    async def test_next_call_is_delayed_not_rejected(self, clock):
        """Call max+1 waits until the oldest timestamp leaves the window."""
        limiter = make_limiter(clock)
        for _ in range(3):
            await limiter.admit()

        waited = await limiter.admit()

        # Backoff of 2s repeated until 10s have passed since the first admission
        assert waited == 10.0
        assert clock.sleeps == [2.0] * 5
        assert limiter.get_stats()["delayed"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_the_window(self, clock):
        """Callers racing on one scope never exceed max_requests together."""
        usage = []

        async def yielding_sleep(seconds):
            await clock.sleep(seconds)
            usage.append(limiter.current_usage("events"))
            await asyncio.sleep(0)

        limiter = RateLimiter(
            max_requests=3,
            window_seconds=10.0,
            backoff_seconds=2.0,
            clock=clock,
            sleep=yielding_sleep,
        )

        waits = await asyncio.gather(*(limiter.admit("events") for _ in range(4)))

        assert sorted(waits) == [0.0, 0.0, 0.0, 10.0]
        assert waits.count(0.0) == 3
        assert all(count <= 3 for count in usage)
        assert limiter.get_stats()["delayed"] == 1

    @pytest.mark.asyncio
    async def test_window_slides(self, clock):
        """Timestamps older than the window no longer count."""
        limiter = make_limiter(clock)
        for _ in range(3):
            await limiter.admit()

        clock.advance(10.0)

        assert limiter.current_usage() == 0
        assert await limiter.admit() == 0.0

    @pytest.mark.asyncio
    async def test_context_manager_uses_global_scope(self, clock):
        """async with admits one call in the global scope."""
        limiter = make_limiter(clock)

        async with limiter:
            pass

        assert limiter.current_usage("global") == 1


class TestScopes:
    """Test per-scope windows."""

    @pytest.mark.asyncio
    async def test_scopes_are_independent(self, clock):
        """A full scope does not delay another scope."""
        limiter = make_limiter(clock, max_requests=1)
        await limiter.admit("events")

        waited = await limiter.admit("global")

        assert waited == 0.0
        assert limiter.current_usage("events") == 1
        assert limiter.current_usage("global") == 1

    @pytest.mark.asyncio
    async def test_cleanup_drops_idle_scopes(self, clock):
        """Scopes with no timestamps left are removed."""
        limiter = make_limiter(clock)
        await limiter.admit("events")
        await limiter.admit("global")

        clock.advance(11.0)
        removed = limiter.cleanup()

        assert removed == 2
        assert limiter.get_stats()["scopes"] == {}


class TestValidation:
    """Test constructor validation."""

    def test_rejects_non_positive_limit(self, clock):
        with pytest.raises(ValueError):
            make_limiter(clock, max_requests=0)

    def test_rejects_non_positive_window(self, clock):
        with pytest.raises(ValueError):
            make_limiter(clock, window_seconds=0)
