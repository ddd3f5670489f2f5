"""Redis-backed sliding window rate limiter."""

from __future__ import annotations

import logging
from typing import Final

from redis import Redis
from redis.exceptions import ResponseError, WatchError

from .rate_limiter import (
    Clock,
    Decision,
    RateLimiterStats,
    check_limits,
    retry_after_seconds,
    wall_clock,
)

logger = logging.getLogger(__name__)


class RedisSlidingWindowRateLimiter:
    """Distributed sliding window limiter implemented with Redis sorted sets.

    Each client owns a sorted set ``<prefix>:log:<key>`` scored by request time
    in milliseconds, plus a ``<prefix>:seq:<key>`` counter that keeps members
    unique when several requests share a millisecond.

    Timestamps come from the wall clock because every process sharing the
    server must agree on them.
    """

    _ADMIT_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local seq_key = KEYS[2]
    local window_ms = tonumber(ARGV[1])
    local max_requests = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])

    redis.call('ZREMRANGEBYSCORE', key, '-inf', now_ms - window_ms)
    local current = redis.call('ZCARD', key)
    if current >= max_requests then
        return -1
    end
    local seq = redis.call('INCR', seq_key)
    redis.call('PEXPIRE', seq_key, window_ms)
    local member = tostring(now_ms) .. ':' .. tostring(seq)
    redis.call('ZADD', key, now_ms, member)
    redis.call('PEXPIRE', key, window_ms)
    return current + 1
    """

    _SWEEP_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local seq_key = KEYS[2]
    local cutoff = tonumber(ARGV[1])

    redis.call('ZREMRANGEBYSCORE', key, '-inf', cutoff)
    if redis.call('ZCARD', key) == 0 then
        redis.call('DEL', key, seq_key)
        return 1
    end
    return 0
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_ms: int,
        enabled: bool = True,
        key_prefix: str = "rate",
        clock: Clock = wall_clock,
    ) -> None:
        """Initialise the Redis client, window configuration, and Lua script cache."""
        if enabled:
            check_limits(max_requests, window_ms)
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_ms
        self._enabled = enabled
        self._key_prefix = key_prefix
        self._clock = clock
        self._admit_script = client.register_script(self._ADMIT_SCRIPT)
        self._sweep_script = client.register_script(self._SWEEP_SCRIPT)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def _log_key(self, key: str) -> str:
        return f"{self._key_prefix}:log:{key}"

    def _seq_key(self, key: str) -> str:
        return f"{self._key_prefix}:seq:{key}"

    def _client_keys(self):
        prefix = f"{self._key_prefix}:log:"
        for raw in self._client.scan_iter(match=f"{prefix}*"):
            name = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            yield name[len(prefix):]

    @staticmethod
    def _lua_unavailable(exc: ResponseError) -> bool:
        message = str(exc).lower()
        return "unknown command" in message and "eval" in message

    def admit(self, key: str, now: int | None = None) -> Decision:
        """Decide whether ``key`` may make another request at ``now`` (epoch ms)."""
        if not self._enabled:
            return Decision.unlimited()
        if now is None:
            now = self._clock()
        log_key, seq_key = self._log_key(key), self._seq_key(key)
        try:
            count = int(
                self._admit_script(
                    keys=[log_key, seq_key],
                    args=[self._window_ms, self._max_requests, now],
                )
            )
        except ResponseError as exc:
            if not self._lua_unavailable(exc):
                raise
            count = self._admit_fallback(log_key, seq_key, now)

        reset_at_ms = now + self._window_ms
        if count < 0:
            return Decision(
                allowed=False,
                limit=self._max_requests,
                remaining=0,
                reset_at_ms=reset_at_ms,
                retry_after_seconds=retry_after_seconds(self._window_ms),
            )
        return Decision(
            allowed=True,
            limit=self._max_requests,
            remaining=self._max_requests - count,
            reset_at_ms=reset_at_ms,
        )

    def _admit_fallback(self, log_key: str, seq_key: str, now_ms: int) -> int:
        """Optimistic WATCH/MULTI admission used when the server refuses Lua."""
        cutoff = now_ms - self._window_ms
        with self._client.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(log_key)
                    current = int(pipe.zcount(log_key, f"({cutoff}", "+inf"))
                    if current >= self._max_requests:
                        return -1
                    seq = self._client.incr(seq_key)
                    pipe.multi()
                    pipe.zremrangebyscore(log_key, "-inf", cutoff)
                    pipe.zadd(log_key, {f"{now_ms}:{seq}": now_ms})
                    pipe.pexpire(log_key, self._window_ms)
                    pipe.pexpire(seq_key, self._window_ms)
                    pipe.execute()
                    return current + 1
                except WatchError:
                    # Another admission touched the log; re-read and decide again.
                    continue

    def stats(self, now: int | None = None) -> RateLimiterStats:
        """Count recent requests per client without trimming the sorted sets."""
        if now is None:
            now = self._clock()
        active_clients = 0
        total_recent = 0
        tracked = 0
        lower = f"({now - self._window_ms}"
        for key in self._client_keys():
            tracked += 1
            recent = int(self._client.zcount(self._log_key(key), lower, "+inf"))
            if recent:
                active_clients += 1
                total_recent += recent
        return RateLimiterStats(
            enabled=self._enabled,
            active_clients=active_clients,
            total_recent_requests=total_recent,
            tracked_keys=tracked,
            window_ms=self._window_ms,
            max_requests=self._max_requests,
        )

    def reset_client(self, key: str) -> bool:
        removed = self._client.delete(self._log_key(key))
        self._client.delete(self._seq_key(key))
        return bool(removed)

    def reset_all(self) -> int:
        cleared = 0
        for key in list(self._client_keys()):
            cleared += self._client.delete(self._log_key(key))
            self._client.delete(self._seq_key(key))
        logger.info("rate limiter reset: cleared %d client entries", cleared)
        return cleared

    def sweep(self, now: int | None = None) -> int:
        """Trim every tracked sorted set and delete the ones left empty."""
        if now is None:
            now = self._clock()
        cutoff = now - self._window_ms
        removed = 0
        for key in list(self._client_keys()):
            log_key, seq_key = self._log_key(key), self._seq_key(key)
            try:
                removed += int(self._sweep_script(keys=[log_key, seq_key], args=[cutoff]))
            except ResponseError as exc:
                if not self._lua_unavailable(exc):
                    raise
                removed += self._sweep_fallback(log_key, seq_key, cutoff)
        if removed:
            logger.debug("rate limiter sweep removed %d expired entries", removed)
        return removed

    def _sweep_fallback(self, log_key: str, seq_key: str, cutoff: int) -> int:
        self._client.zremrangebyscore(log_key, "-inf", cutoff)
        with self._client.pipeline() as pipe:
            try:
                pipe.watch(log_key)
                if pipe.zcard(log_key):
                    return 0
                pipe.multi()
                pipe.delete(log_key, seq_key)
                pipe.execute()
            except WatchError:
                # A request landed between the count and the delete; keep the key.
                return 0
        return 1
