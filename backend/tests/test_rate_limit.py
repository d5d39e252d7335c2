"""Tests for the sliding-window login limiter."""

from __future__ import annotations

import asyncio

import pytest

from fishstock.auth.rate_limit import SlidingWindowRateLimiter


@pytest.mark.asyncio
async def test_blocks_after_max_attempts(limiter):
    for _ in range(5):
        assert await limiter.allow("10.0.0.1") is True
    assert await limiter.allow("10.0.0.1") is False
    assert await limiter.retry_after("10.0.0.1") == pytest.approx(300.0)


@pytest.mark.asyncio
async def test_window_slides(limiter, monotonic):
    for _ in range(5):
        await limiter.allow("10.0.0.1")
        monotonic.advance(10)
    # Attempts at t=0,10,20,30,40; now t=50.
    assert await limiter.allow("10.0.0.1") is False
    assert await limiter.retry_after("10.0.0.1") == pytest.approx(250.0)

    monotonic.advance(250)
    assert await limiter.allow("10.0.0.1") is True
    assert await limiter.allow("10.0.0.1") is False


@pytest.mark.asyncio
async def test_keys_are_independent(limiter):
    for _ in range(5):
        await limiter.allow("10.0.0.1")
    assert await limiter.allow("10.0.0.1") is False
    assert await limiter.allow("10.0.0.2") is True
    assert await limiter.retry_after("10.0.0.2") == 0.0


@pytest.mark.asyncio
async def test_reset_forgets_attempts(limiter):
    for _ in range(5):
        await limiter.allow("10.0.0.1")
    await limiter.reset("10.0.0.1")
    assert await limiter.allow("10.0.0.1") is True


@pytest.mark.asyncio
async def test_concurrent_attempts_never_exceed_limit(limiter):
    results = await asyncio.gather(*(limiter.allow("10.0.0.1") for _ in range(50)))
    assert results.count(True) == 5


def test_rejects_nonsense_configuration():
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(0, 60)
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(5, 0)
