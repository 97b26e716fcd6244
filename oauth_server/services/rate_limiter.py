"""Token-bucket rate limiting for the open OAuth endpoints.

/oauth/register takes no credentials and /oauth/token is where codes
are guessed, so both are rate limited per client IP.

Each key owns a bucket of ``capacity`` tokens that refills continuously
at ``refill_rate`` tokens per second; a request spends one token.
Bursts up to ``capacity`` pass, the long-run rate is ``refill_rate``.

Buckets are created on first use, one per (endpoint, IP).  A bucket
that has refilled to capacity carries no information (a fresh bucket
would behave the same), so ``prune`` drops those; the background sweep
calls it so the table tracks active clients, not every IP ever seen.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    retry_after: float


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """capacity: burst size.  refill_rate: tokens added per second."""

    capacity: int = 60
    refill_rate: float = 1.0


@runtime_checkable
class RateLimiter(Protocol):
    def check(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    def reset(self, key: str) -> None: ...
    def prune(self) -> int: ...


@dataclass(slots=True)
class _Bucket:
    config: RateLimitConfig
    tokens: float
    updated_at: float

    def level_at(self, now: float) -> float:
        elapsed = max(0.0, now - self.updated_at)
        return min(float(self.config.capacity), self.tokens + elapsed * self.config.refill_rate)


class InMemoryRateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or bucket.config != config:
                bucket = _Bucket(config=config, tokens=float(config.capacity), updated_at=now)
                self._buckets[key] = bucket

            bucket.tokens = bucket.level_at(now)
            bucket.updated_at = now
            allowed = bucket.tokens >= 1
            if allowed:
                bucket.tokens -= 1

            return RateLimitResult(
                allowed=allowed,
                remaining=int(bucket.tokens) if allowed else 0,
                limit=config.capacity,
                retry_after=0 if allowed else (1 - bucket.tokens) / config.refill_rate,
            )

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def prune(self) -> int:
        """Drop every bucket that has refilled to capacity.  Returns the count."""
        now = self._clock()
        with self._lock:
            full = [
                key
                for key, bucket in self._buckets.items()
                if bucket.level_at(now) >= bucket.config.capacity
            ]
            for key in full:
                del self._buckets[key]
        return len(full)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)
