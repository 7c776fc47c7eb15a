"""Tests for the per-address webhook rate limiter."""

import logging
import threading
from unittest.mock import patch

import pytest
from limits.storage import MemoryStorage

from payhook.services.rate_limiter import RateLimiter


class TestRateLimiter:
    @pytest.mark.parametrize("strategy", ["moving-window", "fixed-window"])
    def test_denies_after_max_requests(self, strategy):
        limiter = RateLimiter(3, 3600, strategy=strategy)

        assert [limiter.allow("203.0.113.7") for _ in range(3)] == [True, True, True]
        assert limiter.allow("203.0.113.7") is False
        assert limiter.allow("203.0.113.7") is False

    def test_addresses_counted_separately(self):
        limiter = RateLimiter(1, 3600)

        assert limiter.allow("203.0.113.7") is True
        assert limiter.allow("203.0.113.7") is False
        assert limiter.allow("198.51.100.2") is True

    def test_remaining(self):
        limiter = RateLimiter(5, 3600)
        limiter.allow("203.0.113.7")
        limiter.allow("203.0.113.7")

        assert limiter.remaining("203.0.113.7") == 3
        assert limiter.remaining("198.51.100.2") == 5

    def test_reset_clears_counters(self):
        limiter = RateLimiter(1, 3600)
        limiter.allow("203.0.113.7")
        limiter.reset()

        assert limiter.allow("203.0.113.7") is True

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValueError):
            RateLimiter(10, 60, strategy="token-bucket")

    def test_concurrent_requests_never_exceed_limit(self):
        """Twenty threads from one address race for five slots."""
        limiter = RateLimiter(5, 3600)
        results = []
        lock = threading.Lock()
        start = threading.Barrier(20)

        def worker():
            start.wait()
            allowed = limiter.allow("203.0.113.7")
            with lock:
                results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 5
        assert results.count(False) == 15


class TestStorageScope:
    def test_memory_storage_warns_counters_reset_on_restart(self, caplog):
        with caplog.at_level(logging.WARNING):
            limiter = RateLimiter(10, 60)

        assert limiter.persistent is False
        assert "reset on restart" in caplog.text

    @patch("payhook.services.rate_limiter.storage_from_string")
    def test_redis_storage_is_persistent(self, mock_storage, caplog):
        mock_storage.return_value = MemoryStorage()
        with caplog.at_level(logging.WARNING):
            limiter = RateLimiter(10, 60, storage_uri="redis://localhost:6379/0")

        mock_storage.assert_called_once_with("redis://localhost:6379/0")
        assert limiter.persistent is True
        assert "reset on restart" not in caplog.text
