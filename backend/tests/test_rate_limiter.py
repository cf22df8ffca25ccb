# tests for the fixed-window rate limiter and its stores

import threading
from unittest.mock import MagicMock

import pytest

from journey.errors import RateLimitError
from journey.services.rate_limiter import (
    InMemoryRateLimitStore,
    RateLimiter,
    RedisRateLimitStore,
)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def _limiter(limit=3, window_ms=60_000, clock=None, store=None):
    return RateLimiter(
        store or InMemoryRateLimitStore(sweep_probability=0.0),
        limits={"test": limit},
        window_ms=window_ms,
        clock=clock or FakeClock(),
    )


class TestFixedWindow:
    """window semantics for a single key"""

    def test_counts_down_then_denies(self):
        limiter = _limiter()
        results = [limiter.check("test", "u1") for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    def test_denied_reports_time_to_reset(self):
        clock = FakeClock()
        limiter = _limiter(clock=clock)
        for _ in range(3):
            limiter.check("test", "u1")
        clock.advance(20)
        denied = limiter.check("test", "u1")
        assert not denied.allowed
        assert denied.reset_in_ms == 40_000
        assert denied.retry_after_seconds == 40

    def test_resets_after_window(self):
        clock = FakeClock()
        limiter = _limiter(clock=clock)
        for _ in range(4):
            limiter.check("test", "u1")
        clock.advance(61)
        result = limiter.check("test", "u1")
        assert result.allowed
        assert result.remaining == 2

    def test_window_boundary_is_still_same_window(self):
        clock = FakeClock()
        limiter = _limiter(limit=1, clock=clock)
        limiter.check("test", "u1")
        clock.advance(60)
        assert not limiter.check("test", "u1").allowed

    def test_keys_are_per_user_and_category(self):
        limiter = RateLimiter(
            InMemoryRateLimitStore(sweep_probability=0.0),
            limits={"chat": 1, "mood": 1},
            clock=FakeClock(),
        )
        assert limiter.check("chat", "u1").allowed
        assert not limiter.check("chat", "u1").allowed
        assert limiter.check("chat", "u2").allowed
        assert limiter.check("mood", "u1").allowed

    def test_unknown_category_is_programming_error(self):
        with pytest.raises(ValueError):
            _limiter().check("nope", "u1")

    def test_default_categories(self):
        limiter = RateLimiter(InMemoryRateLimitStore(sweep_probability=0.0))
        assert limiter.limits == {"chat": 30, "journal": 10, "mood": 60, "cbt": 10, "pattern": 5}

    def test_enforce_raises_with_retry_metadata(self):
        clock = FakeClock(start=1000.0)
        limiter = _limiter(limit=1, clock=clock)
        limiter.enforce("test", "u1")
        with pytest.raises(RateLimitError) as exc:
            limiter.enforce("test", "u1")
        assert exc.value.retry_after_seconds == 60
        assert exc.value.reset_at == 1060
        assert exc.value.status_code == 429
        assert exc.value.to_dict()["code"] == "RATE_LIMITED"


class TestInMemoryStore:
    """sweep and concurrency behaviour"""

    def test_sweep_evicts_only_expired_records(self):
        store = InMemoryRateLimitStore(sweep_probability=0.0)
        store.increment_and_check("a", 5, 1000, now_ms=0)
        store.increment_and_check("b", 5, 1000, now_ms=900)
        assert len(store) == 2

        store.sweep_probability = 1.0
        store.increment_and_check("c", 5, 1000, now_ms=1500)
        # a expired at 1000, b lives until 1900
        assert len(store) == 2

    def test_no_sweep_when_rng_above_probability(self):
        store = InMemoryRateLimitStore(sweep_probability=0.01, rng=lambda: 0.5)
        store.increment_and_check("a", 5, 1000, now_ms=0)
        store.increment_and_check("b", 5, 1000, now_ms=5000)
        assert len(store) == 2

    def test_concurrent_checks_never_exceed_limit(self):
        limiter = _limiter(limit=50)
        allowed = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                result = limiter.check("test", "shared")
                with lock:
                    allowed.append(result.allowed)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sum(allowed) == 50


class TestRedisStore:
    """redis-backed windows, exercised against a mocked client"""

    def _client(self, count, ttl):
        client = MagicMock()
        client.incr.return_value = count
        client.pttl.return_value = ttl
        return client

    def test_allows_within_limit(self):
        client = self._client(count=2, ttl=45_000)
        result = RedisRateLimitStore(client).increment_and_check("chat:u1", 3, 60_000, now_ms=0)
        client.set.assert_called_once_with("rate_limit:chat:u1", 0, px=60_000, nx=True)
        assert result.allowed
        assert result.remaining == 1
        assert result.reset_in_ms == 45_000

    def test_denies_over_limit(self):
        client = self._client(count=4, ttl=10_000)
        result = RedisRateLimitStore(client).increment_and_check("chat:u1", 3, 60_000, now_ms=0)
        assert not result.allowed
        assert result.remaining == 0

    def test_restores_missing_expiry(self):
        client = self._client(count=1, ttl=-1)
        result = RedisRateLimitStore(client).increment_and_check("chat:u1", 3, 60_000, now_ms=0)
        client.pexpire.assert_called_once_with("rate_limit:chat:u1", 60_000)
        assert result.reset_in_ms == 60_000
