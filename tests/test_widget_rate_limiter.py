"""Tests for gary_ai.widget.rate_limiter."""

from __future__ import annotations

from gary_ai.widget.config import RateLimitConfig
from gary_ai.widget.rate_limiter import RateLimiter


def _use(limiter: RateLimiter, times: int) -> None:
    for _ in range(times):
        assert limiter.can_make_request()
        limiter.record_request()


class TestRateLimiter:
    """Fixed window with lockout."""

    def test_allows_up_to_max_requests(self, clock):
        limiter = RateLimiter(RateLimitConfig(max_requests=3), clock=clock)
        _use(limiter, 3)
        assert limiter.remaining_requests() == 0

    def test_refusal_starts_lockout(self, clock):
        config = RateLimitConfig(max_requests=2, time_window=1000, lockout_duration=5000)
        limiter = RateLimiter(config, clock=clock)
        _use(limiter, 2)

        assert limiter.can_make_request() is False
        assert limiter.is_locked is True
        assert limiter.state.locked_until == clock.now + 5000
        assert limiter.time_until_reset() == 5000

    def test_lockout_outlasts_window(self, clock):
        config = RateLimitConfig(max_requests=1, time_window=1000, lockout_duration=5000)
        limiter = RateLimiter(config, clock=clock)
        _use(limiter, 1)
        assert limiter.can_make_request() is False

        clock.advance(2000)
        assert limiter.can_make_request() is False
        assert limiter.remaining_requests() == 0
        assert limiter.time_until_reset() == 3000

    def test_lockout_expiry_resets_counters(self, clock):
        config = RateLimitConfig(max_requests=1, time_window=1000, lockout_duration=5000)
        limiter = RateLimiter(config, clock=clock)
        _use(limiter, 1)
        assert limiter.can_make_request() is False

        clock.advance(5000)
        assert limiter.can_make_request() is True
        assert limiter.state.request_count == 0
        assert limiter.state.locked_until is None
        assert limiter.time_until_reset() == 0

    def test_window_rollover_resets_count(self, clock):
        config = RateLimitConfig(max_requests=2, time_window=1000)
        limiter = RateLimiter(config, clock=clock)
        _use(limiter, 2)

        clock.advance(1001)
        assert limiter.remaining_requests() == 2
        _use(limiter, 2)

    def test_window_boundary_still_counts(self, clock):
        config = RateLimitConfig(max_requests=1, time_window=1000)
        limiter = RateLimiter(config, clock=clock)
        _use(limiter, 1)

        clock.advance(1000)
        assert limiter.can_make_request() is False

    def test_remaining_requests(self, clock):
        limiter = RateLimiter(RateLimitConfig(max_requests=5), clock=clock)
        assert limiter.remaining_requests() == 5
        _use(limiter, 2)
        assert limiter.remaining_requests() == 3

    def test_time_until_reset_when_unlocked(self, clock):
        limiter = RateLimiter(clock=clock)
        assert limiter.time_until_reset() == 0

    def test_reset_clears_lockout(self, clock):
        limiter = RateLimiter(RateLimitConfig(max_requests=1), clock=clock)
        _use(limiter, 1)
        assert limiter.can_make_request() is False

        limiter.reset()
        assert limiter.is_locked is False
        assert limiter.can_make_request() is True

    def test_default_config(self):
        limiter = RateLimiter()
        assert limiter.config.max_requests == 10
        assert limiter.remaining_requests() == 10
