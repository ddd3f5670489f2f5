"""In-memory sliding window rate limiter implementation."""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Deque

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

# Anchors the monotonic clock to the epoch once so in-process timestamps never
# step backwards when the wall clock is adjusted.
_MONOTONIC_EPOCH_OFFSET_MS = time.time() * 1000 - time.monotonic() * 1000


def system_clock() -> int:
    """Return epoch milliseconds that never decrease within this process."""
    return int(_MONOTONIC_EPOCH_OFFSET_MS + time.monotonic() * 1000)


def wall_clock() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of a single admission check.

    ``limit`` and ``remaining`` are ``None`` when limiting is disabled, which
    callers should surface as "unlimited".
    """

    allowed: bool
    limit: int | None
    remaining: int | None
    reset_at_ms: int | None = None
    retry_after_seconds: int | None = None

    @property
    def reset_at(self) -> datetime | None:
        if self.reset_at_ms is None:
            return None
        return datetime.fromtimestamp(self.reset_at_ms / 1000, tz=timezone.utc)

    @classmethod
    def unlimited(cls) -> "Decision":
        return cls(allowed=True, limit=None, remaining=None)


@dataclass(frozen=True, slots=True)
class RateLimiterStats:
    """Aggregate view over the limiter state."""

    enabled: bool
    active_clients: int
    total_recent_requests: int
    tracked_keys: int
    window_ms: int
    max_requests: int


def retry_after_seconds(window_ms: int) -> int:
    """Seconds a rejected client is told to wait: always the full window."""
    return math.ceil(window_ms / 1000)


def check_limits(max_requests: int, window_ms: int) -> None:
    if max_requests <= 0:
        raise ValueError("max_requests must be positive")
    if window_ms <= 0:
        raise ValueError("window_ms must be positive")


class _Shard:
    __slots__ = ("lock", "logs")

    def __init__(self) -> None:
        self.lock = Lock()
        self.logs: dict[str, Deque[int]] = {}


class SlidingWindowRateLimiter:
    """Thread-safe sliding window rate limiter.

    Client logs are spread over ``shards`` independently locked partitions so
    admissions for unrelated clients do not serialise on a single lock. Every
    read-prune-check-append sequence for a key runs under its shard lock.
    """

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        *,
        enabled: bool = True,
        shards: int = 16,
        clock: Clock = system_clock,
    ) -> None:
        """Initialise limiter parameters and per-shard storage."""
        if enabled:
            check_limits(max_requests, window_ms)
            if shards <= 0:
                raise ValueError("shards must be positive")
        self._max_requests = max_requests
        self._window_ms = window_ms
        self._enabled = enabled
        self._clock = clock
        self._shards = tuple(_Shard() for _ in range(max(shards, 1)))

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    def _prune(self, log: Deque[int], now: int) -> None:
        # Entries are appended in order, so stale ones sit at the left.
        while log and now - log[0] >= self._window_ms:
            log.popleft()

    def admit(self, key: str, now: int | None = None) -> Decision:
        """Decide whether ``key`` may make another request at ``now`` (epoch ms)."""
        if not self._enabled:
            return Decision.unlimited()
        if now is None:
            now = self._clock()
        reset_at_ms = now + self._window_ms

        shard = self._shard_for(key)
        with shard.lock:
            log = shard.logs.get(key)
            if log is None:
                log = deque()
            else:
                self._prune(log, now)

            if len(log) >= self._max_requests:
                return Decision(
                    allowed=False,
                    limit=self._max_requests,
                    remaining=0,
                    reset_at_ms=reset_at_ms,
                    retry_after_seconds=retry_after_seconds(self._window_ms),
                )

            log.append(now)
            shard.logs[key] = log
            return Decision(
                allowed=True,
                limit=self._max_requests,
                remaining=self._max_requests - len(log),
                reset_at_ms=reset_at_ms,
            )

    def stats(self, now: int | None = None) -> RateLimiterStats:
        """Summarise recent activity without compacting the stored logs."""
        if now is None:
            now = self._clock()
        active_clients = 0
        total_recent = 0
        tracked = 0
        for shard in self._shards:
            with shard.lock:
                tracked += len(shard.logs)
                for log in shard.logs.values():
                    recent = sum(1 for stamp in log if now - stamp < self._window_ms)
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
        """Forget every recorded request for ``key``; return whether it was tracked."""
        shard = self._shard_for(key)
        with shard.lock:
            return shard.logs.pop(key, None) is not None

    def reset_all(self) -> int:
        """Drop all client state and return how many keys were cleared."""
        cleared = 0
        for shard in self._shards:
            with shard.lock:
                cleared += len(shard.logs)
                shard.logs.clear()
        logger.info("rate limiter reset: cleared %d client entries", cleared)
        return cleared

    def sweep(self, now: int | None = None) -> int:
        """Prune every log and delete keys left empty; return the number removed."""
        if now is None:
            now = self._clock()
        removed = 0
        for shard in self._shards:
            with shard.lock:
                empty = []
                for key, log in shard.logs.items():
                    self._prune(log, now)
                    if not log:
                        empty.append(key)
                for key in empty:
                    del shard.logs[key]
                removed += len(empty)
        if removed:
            logger.debug("rate limiter sweep removed %d expired entries", removed)
        return removed
