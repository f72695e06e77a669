"""
Tests for fixed-window rate limiting.
"""

import logging

import pytest

from cms_mcp.core.rate_limit import (
    FixedWindowRateLimiter,
    InMemoryCounterStore,
    RateLimitConfig,
    rate_limit_key,
)


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return FixedWindowRateLimiter(InMemoryCounterStore(clock=clock))


class TestInMemoryCounterStore:
    def test_first_increment_starts_window(self, clock):
        store = InMemoryCounterStore(clock=clock)
        assert store.increment("k", 60) == (1, 60)
        clock.now += 10
        assert store.increment("k", 60) == (2, 50)

    def test_expired_window_restarts(self, clock):
        store = InMemoryCounterStore(clock=clock)
        store.increment("k", 60)
        clock.now += 60
        assert store.increment("k", 60) == (1, 60)

    def test_peek_does_not_increment(self, clock):
        store = InMemoryCounterStore(clock=clock)
        store.increment("k", 60)
        assert store.peek("k") == (1, 60)
        assert store.peek("k") == (1, 60)
        assert store.peek("other") == (0, 0.0)

    def test_increment_sweeps_expired_counters(self, clock):
        store = InMemoryCounterStore(clock=clock, sweep_interval=60)
        store.increment("short", 5)
        store.increment("long", 120)
        clock.now += 10
        store.increment("fresh", 5)
        assert len(store) == 3

        clock.now += 50
        store.increment("fresh", 5)
        assert len(store) == 2
        assert store.peek("long")[0] == 1
        assert store.peek("short") == (0, 0.0)

    def test_distinct_keys_do_not_accumulate(self, clock):
        store = InMemoryCounterStore(clock=clock, sweep_interval=0)
        for n in range(100):
            store.increment(f"principal-{n}", 1)
            clock.now += 1
        assert len(store) == 1


class TestRateLimitKey:
    def test_key_format(self):
        assert rate_limit_key("cms-entries", "list", "remote", "editor") == (
            "mcp_rate_limit:cms-entries:list:remote:editor"
        )

    def test_defaults(self):
        assert rate_limit_key("cms-entries", None, "remote", None) == (
            "mcp_rate_limit:cms-entries:default:remote:anonymous"
        )


class TestFixedWindowRateLimiter:
    """Calls beyond the budget in one window are refused."""

    def test_allows_up_to_limit(self, limiter):
        config = RateLimitConfig(max_attempts=3, decay_seconds=60)
        results = [limiter.hit("t", "list", "remote", "a", config) for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].limit == 3

    def test_window_resets_after_decay(self, limiter, clock):
        config = RateLimitConfig(max_attempts=1, decay_seconds=30)
        assert limiter.hit("t", "list", "remote", "a", config).allowed
        assert not limiter.hit("t", "list", "remote", "a", config).allowed
        clock.now += 30
        assert limiter.hit("t", "list", "remote", "a", config).allowed

    def test_keys_are_independent(self, limiter):
        config = RateLimitConfig(max_attempts=1)
        assert limiter.hit("t", "list", "remote", "a", config).allowed
        assert limiter.hit("t", "list", "remote", "b", config).allowed
        assert limiter.hit("t", "get", "remote", "a", config).allowed

    def test_disabled_config_never_counts(self, limiter):
        config = RateLimitConfig(max_attempts=1, enabled=False)
        for _ in range(3):
            result = limiter.hit("t", "list", "remote", "a", config)
            assert result.allowed
            assert result.remaining == -1

    def test_remaining_does_not_consume(self, limiter):
        config = RateLimitConfig(max_attempts=2)
        limiter.hit("t", "list", "remote", "a", config)
        status = limiter.remaining("t", "list", "remote", "a", config)
        assert status.remaining == 1
        assert limiter.remaining("t", "list", "remote", "a", config).remaining == 1

    def test_clear_resets_budget(self, limiter):
        config = RateLimitConfig(max_attempts=1)
        limiter.hit("t", "list", "remote", "a", config)
        limiter.clear("t", "list", "remote", "a")
        assert limiter.hit("t", "list", "remote", "a", config).allowed

    def test_throttle_is_audited(self, limiter, caplog):
        config = RateLimitConfig(max_attempts=1)
        caplog.set_level(logging.INFO, logger="cms_mcp")
        limiter.hit("t", "list", "remote", "a", config)
        limiter.hit("t", "list", "remote", "a", config)

        audit = [r for r in caplog.records if r.getMessage() == "AUDIT: rate_limit"]
        assert len(audit) == 1
        assert audit[0].audit["details"]["tool"] == "t"
        assert audit[0].audit["details"]["limit"] == 1
        assert "Rate limit exceeded for t.list (principal: a)" in caplog.text
