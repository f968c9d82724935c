"""Client-side rate limiter for outgoing chat requests.

A fixed window counter with a lockout: at most ``max_requests`` requests are
allowed per ``time_window`` milliseconds, and reaching the cap refuses every
request for ``lockout_duration`` milliseconds. Requests are never queued.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gary_ai.widget.config import RateLimitConfig
from gary_ai.widget.models import Clock, now_ms

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterState:
    """Transient counters of the rate limiter."""

    window_start: int
    request_count: int = 0
    locked_until: int | None = None


class RateLimiter:
    """Fixed window rate limiter with lockout.

    Thread Safety:
        Not thread-safe. The widget runs on a single event loop.

    Example:
        limiter = RateLimiter(RateLimitConfig(max_requests=3))

        if limiter.can_make_request():
            limiter.record_request()
    """

    def __init__(self, config: RateLimitConfig | None = None, clock: Clock | None = None):
        self._config = config or RateLimitConfig()
        self._clock = clock or now_ms
        self._state = RateLimiterState(window_start=self._clock())

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    @property
    def state(self) -> RateLimiterState:
        return self._state

    @property
    def is_locked(self) -> bool:
        locked_until = self._state.locked_until
        return locked_until is not None and self._clock() < locked_until

    def _refresh(self, now: int) -> None:
        state = self._state
        if state.locked_until is not None and now >= state.locked_until:
            logger.debug("Rate limit lockout expired")
            self._state = RateLimiterState(window_start=now)
            return
        if state.locked_until is None and now > state.window_start + self._config.time_window:
            self._state = RateLimiterState(window_start=now)

    def can_make_request(self) -> bool:
        """Check whether a request may be sent now.

        Hitting the cap starts the lockout period.

        Returns:
            True if the request is allowed, False if it must be refused.
        """
        now = self._clock()
        self._refresh(now)
        state = self._state

        if state.locked_until is not None:
            return False

        if state.request_count >= self._config.max_requests:
            state.locked_until = now + self._config.lockout_duration
            logger.warning(
                "Rate limit of %d requests per %dms reached, locked for %dms",
                self._config.max_requests,
                self._config.time_window,
                self._config.lockout_duration,
            )
            return False

        return True

    def record_request(self) -> None:
        """Count a request against the current window."""
        now = self._clock()
        self._refresh(now)
        self._state.request_count += 1

    def remaining_requests(self) -> int:
        """Requests still allowed in the current window."""
        now = self._clock()
        self._refresh(now)
        if self._state.locked_until is not None:
            return 0
        return max(0, self._config.max_requests - self._state.request_count)

    def time_until_reset(self) -> int:
        """Milliseconds until the lockout ends, 0 when not locked."""
        locked_until = self._state.locked_until
        if locked_until is None:
            return 0
        return max(0, locked_until - self._clock())

    def reset(self) -> None:
        """Forget all counters and any lockout."""
        self._state = RateLimiterState(window_start=self._clock())
