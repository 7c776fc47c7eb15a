"""Rate limiter — per-source-address request counter for the webhook endpoint.

Backed by the `limits` library (the engine under Flask-Limiter). The
storage URI decides the scope of the counters:

- memory://          per process, lost on restart (the default)
- redis://host:6379  shared by every instance, survives restarts

Set RATE_LIMIT_STORAGE_URI to a redis:// URI (install the `redis` extra)
when counters must outlive a restart. A limiter on memory:// logs a
warning when it is created.

Check-and-increment is a single atomic storage operation per key, so two
concurrent requests from one address cannot both take the last slot.
"""

import logging

from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter, MovingWindowRateLimiter

logger = logging.getLogger(__name__)

STRATEGIES = {
    # Counter starts at the first request and resets once the window has passed.
    "fixed-window": FixedWindowRateLimiter,
    # Never more than max_requests in any rolling window.
    "moving-window": MovingWindowRateLimiter,
}

_NAMESPACE = "paypal-webhook"


class RateLimiter:
    def __init__(self, max_requests, window_seconds,
                 storage_uri="memory://", strategy="moving-window"):
        if strategy not in STRATEGIES:
            raise ValueError(
                f"Unknown rate limit strategy {strategy!r} "
                f"(expected one of: {', '.join(STRATEGIES)})"
            )
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.storage_uri = storage_uri
        self.item = RateLimitItemPerSecond(max_requests, window_seconds)
        self.storage = storage_from_string(storage_uri)
        self.strategy = STRATEGIES[strategy](self.storage)
        if not self.persistent:
            logger.warning(
                f"Rate limit counters use {storage_uri} and reset on restart; "
                f"set RATE_LIMIT_STORAGE_URI to redis:// to keep them"
            )

    @property
    def persistent(self):
        """True when counters live outside this process."""
        return not self.storage_uri.startswith("memory://")

    def allow(self, source_key):
        """Record one request from `source_key`. False once the limit is reached."""
        allowed = self.strategy.hit(self.item, _NAMESPACE, source_key)
        if not allowed:
            logger.warning(
                f"Rate limit exceeded for {source_key} "
                f"({self.max_requests} per {self.window_seconds}s)"
            )
        return allowed

    def remaining(self, source_key):
        """Requests still allowed for `source_key` in the current window."""
        return self.strategy.get_window_stats(self.item, _NAMESPACE, source_key).remaining

    def reset(self):
        """Drop every counter in the backing storage."""
        self.storage.reset()
