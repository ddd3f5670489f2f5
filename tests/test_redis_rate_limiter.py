"""Tests for the Redis-backed sliding window rate limiter."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import fakeredis
import pytest
from redis.client import Pipeline
from redis.exceptions import ResponseError

from conversion_service.security.redis_rate_limiter import RedisSlidingWindowRateLimiter


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


def _without_lua(limiter: RedisSlidingWindowRateLimiter) -> RedisSlidingWindowRateLimiter:
    def refuse(*args, **kwargs):
        raise ResponseError("unknown command 'evalsha'")

    limiter._admit_script = refuse  # type: ignore[attr-defined]
    limiter._sweep_script = refuse  # type: ignore[attr-defined]
    return limiter


@pytest.fixture(params=["lua", "fallback"])
def make_limiter(request, redis_client):
    def factory(**kwargs) -> RedisSlidingWindowRateLimiter:
        limiter = RedisSlidingWindowRateLimiter(redis_client, key_prefix="test", **kwargs)
        return _without_lua(limiter) if request.param == "fallback" else limiter

    return factory


def test_redis_rate_limiter_allows_within_threshold(make_limiter):
    limiter = make_limiter(max_requests=3, window_ms=60_000)
    remaining = [limiter.admit("203.0.113.7", now=0).remaining for _ in range(3)]
    assert remaining == [2, 1, 0]


def test_redis_rate_limiter_blocks_excess(make_limiter):
    limiter = make_limiter(max_requests=2, window_ms=60_000)
    key = "203.0.113.7"
    assert limiter.admit(key, now=0).allowed
    assert limiter.admit(key, now=0).allowed
    rejected = limiter.admit(key, now=0)
    assert not rejected.allowed
    assert rejected.retry_after_seconds == 60
    assert rejected.remaining == 0


def test_redis_rate_limiter_expires_entries(make_limiter):
    limiter = make_limiter(max_requests=1, window_ms=60_000)
    key = "203.0.113.7"
    assert limiter.admit(key, now=5_000).allowed
    assert not limiter.admit(key, now=64_999).allowed
    assert limiter.admit(key, now=65_000).allowed


def test_redis_clients_are_independent(make_limiter):
    limiter = make_limiter(max_requests=1, window_ms=60_000)
    assert limiter.admit("10.0.0.1", now=0).allowed
    assert limiter.admit("10.0.0.2", now=0).allowed
    assert not limiter.admit("10.0.0.1", now=0).allowed


def test_redis_stats_reset_and_sweep(make_limiter):
    limiter = make_limiter(max_requests=5, window_ms=60_000)
    limiter.admit("old", now=0)
    limiter.admit("fresh", now=54_000)
    limiter.admit("fresh", now=57_000)

    stats = limiter.stats(now=72_000)
    assert stats.active_clients == 1
    assert stats.total_recent_requests == 2
    assert stats.tracked_keys == 2

    assert limiter.sweep(now=72_000) == 1
    assert limiter.stats(now=72_000).tracked_keys == 1

    assert limiter.reset_client("fresh") is True
    assert limiter.reset_client("fresh") is False
    assert limiter.admit("fresh", now=78_000).remaining == 4

    limiter.admit("other", now=78_000)
    assert limiter.reset_all() == 2
    assert limiter.stats(now=78_000).tracked_keys == 0


def test_redis_disabled_limiter_bypasses_storage(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_ms=1000, enabled=False, key_prefix="test"
    )
    for _ in range(10):
        decision = limiter.admit("client", now=0)
        assert decision.allowed
        assert decision.remaining is None
    assert redis_client.keys("test:*") == []


def test_redis_unrelated_errors_propagate(redis_client):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_ms=1000, key_prefix="test"
    )

    def broken(*args, **kwargs):
        raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")

    limiter._admit_script = broken  # type: ignore[attr-defined]
    with pytest.raises(ResponseError):
        limiter.admit("client", now=0)


@pytest.fixture()
def slow_window_reads(monkeypatch):
    """Widen the gap between reading a client's log and appending to it."""
    original = Pipeline.zcount

    def zcount(self, *args, **kwargs):
        result = original(self, *args, **kwargs)
        time.sleep(0.01)
        return result

    monkeypatch.setattr(Pipeline, "zcount", zcount)


@pytest.mark.parametrize("max_requests, callers", [(1, 8), (3, 12)])
def test_redis_concurrent_admissions_respect_limit(make_limiter, slow_window_reads, max_requests, callers):
    limiter = make_limiter(max_requests=max_requests, window_ms=60_000)
    barrier = threading.Barrier(callers)

    def attempt(_):
        barrier.wait()
        return limiter.admit("203.0.113.7", now=1_000).allowed

    with ThreadPoolExecutor(max_workers=callers) as pool:
        outcomes = list(pool.map(attempt, range(callers)))

    assert outcomes.count(True) == max_requests
    assert limiter.stats(now=1_000).total_recent_requests == max_requests
