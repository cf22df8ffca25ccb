# rate limiter: fixed-window request counters per (category, user)
#
# window semantics:
#   1. no record, or now past its reset time -> fresh window, count 1
#   2. count already at the limit            -> denied until the window resets
#   3. otherwise                             -> count + 1
#
# the counters live behind a RateLimitStore so a single-process deployment can keep
# them in memory while multi-instance deployments point at redis.

import logging
import math
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from journey.config import settings
from journey.errors import RateLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in_ms: int
    limit: int
    reset_at_ms: int

    @property
    def retry_after_seconds(self) -> int:
        return max(1, math.ceil(self.reset_in_ms / 1000))


@dataclass
class RateLimitRecord:
    count: int
    reset_at_ms: int


class RateLimitStore(Protocol):
    def increment_and_check(self, key: str, limit: int, window_ms: int, now_ms: int) -> RateLimitResult:
        ...


class InMemoryRateLimitStore:
    """process-local counters. correct only for a single-instance deployment.

    keys are never deleted on success, so a small fraction of calls sweeps the
    whole map and evicts expired windows.
    """

    def __init__(self, sweep_probability: float = 0.01, rng: Callable[[], float] = random.random):
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()
        self.sweep_probability = sweep_probability
        self._rng = rng

    def __len__(self) -> int:
        return len(self._records)

    def increment_and_check(self, key: str, limit: int, window_ms: int, now_ms: int) -> RateLimitResult:
        with self._lock:
            if self._rng() < self.sweep_probability:
                self._sweep(now_ms)

            record = self._records.get(key)
            if record is None or now_ms > record.reset_at_ms:
                record = RateLimitRecord(count=1, reset_at_ms=now_ms + window_ms)
                self._records[key] = record
                return RateLimitResult(True, limit - 1, window_ms, limit, record.reset_at_ms)

            reset_in = record.reset_at_ms - now_ms
            if record.count >= limit:
                return RateLimitResult(False, 0, reset_in, limit, record.reset_at_ms)

            record.count += 1
            return RateLimitResult(True, limit - record.count, reset_in, limit, record.reset_at_ms)

    def _sweep(self, now_ms: int) -> None:
        expired = [key for key, rec in self._records.items() if now_ms > rec.reset_at_ms]
        for key in expired:
            del self._records[key]
        if expired:
            logger.debug(f"Rate limit sweep evicted {len(expired)} expired windows")


class RedisRateLimitStore:
    """fixed windows on a shared redis so every instance sees the same counters"""

    def __init__(self, client, prefix: str = "rate_limit"):
        self.client = client
        self.prefix = prefix

    def increment_and_check(self, key: str, limit: int, window_ms: int, now_ms: int) -> RateLimitResult:
        redis_key = f"{self.prefix}:{key}"
        # start the window only if none is open, then count atomically
        self.client.set(redis_key, 0, px=window_ms, nx=True)
        count = int(self.client.incr(redis_key))
        ttl_ms = int(self.client.pttl(redis_key))
        if ttl_ms < 0:
            # key lost its expiry; reopen the window
            self.client.pexpire(redis_key, window_ms)
            ttl_ms = window_ms

        reset_at = now_ms + ttl_ms
        if count > limit:
            return RateLimitResult(False, 0, ttl_ms, limit, reset_at)
        return RateLimitResult(True, limit - count, ttl_ms, limit, reset_at)


class RateLimiter:
    """per-category limits over a shared store"""

    def __init__(
        self,
        store: RateLimitStore,
        limits: Optional[dict[str, int]] = None,
        window_ms: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.limits = dict(limits if limits is not None else settings.RATE_LIMITS)
        self.window_ms = window_ms if window_ms is not None else settings.RATE_LIMIT_WINDOW_MS
        self._clock = clock

    def check(self, category: str, user_id: str) -> RateLimitResult:
        if category not in self.limits:
            raise ValueError(f"Unknown rate limit category: {category}")
        now_ms = int(self._clock() * 1000)
        return self.store.increment_and_check(
            f"{category}:{user_id}", self.limits[category], self.window_ms, now_ms
        )

    def enforce(self, category: str, user_id: str) -> RateLimitResult:
        """check and raise RateLimitError when the window is exhausted"""
        result = self.check(category, user_id)
        if not result.allowed:
            logger.warning(f"Rate limit hit: {category} for user {user_id[:8]}, resets in {result.reset_in_ms}ms")
            raise RateLimitError(
                "Too many requests. Please slow down.",
                retry_after_seconds=result.retry_after_seconds,
                reset_at=math.ceil(result.reset_at_ms / 1000),
            )
        return result


def _build_store() -> RateLimitStore:
    if settings.RATE_LIMIT_BACKEND == "redis":
        import redis

        logger.info("Using redis rate limit store")
        return RedisRateLimitStore(redis.Redis.from_url(settings.REDIS_URL))
    return InMemoryRateLimitStore(sweep_probability=settings.RATE_LIMIT_SWEEP_PROBABILITY)


# singleton instance
rate_limiter = RateLimiter(_build_store())


def get_rate_limiter() -> RateLimiter:
    """dependency injection for the rate limiter"""
    return rate_limiter
