"""Tests for rate limiters."""

from unittest.mock import MagicMock

import pytest
import redis

from huddle.errors import ApiErrorCode, RateLimitedError
from huddle.services.rate_limit import (
    InMemoryRateLimiter,
    NoOpRateLimiter,
    RedisRateLimiter,
    enforce,
)


class TestInMemoryRateLimiter:
    def test_limits_per_key(self):
        limiter = InMemoryRateLimiter(limit=2, window_seconds=60)
        assert limiter.allow("send:a")
        assert limiter.allow("send:a")
        assert not limiter.allow("send:a")
        assert limiter.allow("send:b")

    def test_window_expires(self, monkeypatch):
        now = [100.0]
        monkeypatch.setattr("huddle.services.rate_limit.time.monotonic", lambda: now[0])
        limiter = InMemoryRateLimiter(limit=1, window_seconds=10)

        assert limiter.allow("k")
        assert not limiter.allow("k")
        now[0] += 10
        assert limiter.allow("k")


class TestRedisRateLimiter:
    def _client(self, count: int):
        client = MagicMock()
        pipe = client.pipeline.return_value
        pipe.execute.return_value = [0, 1, count, True]
        return client

    def test_allows_under_limit(self):
        assert RedisRateLimiter(self._client(3), limit=3, window_seconds=60).allow("k")

    def test_blocks_over_limit(self):
        assert not RedisRateLimiter(self._client(4), limit=3, window_seconds=60).allow("k")

    def test_uses_prefixed_key(self):
        client = self._client(1)
        RedisRateLimiter(client, limit=3, window_seconds=60).allow("join:u1")
        pipe = client.pipeline.return_value
        assert pipe.zadd.call_args.args[0] == "rate:join:u1"

    def test_fails_open(self):
        client = MagicMock()
        client.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")
        assert RedisRateLimiter(client, limit=1, window_seconds=60).allow("k")


class TestEnforce:
    def test_none_limiter_never_blocks(self):
        enforce(None, "send:a")
        enforce(NoOpRateLimiter(), "send:a")

    def test_raises_when_blocked(self):
        limiter = InMemoryRateLimiter(limit=1, window_seconds=60)
        enforce(limiter, "friend:a")
        with pytest.raises(RateLimitedError) as exc_info:
            enforce(limiter, "friend:a")
        assert exc_info.value.code == ApiErrorCode.E_RATE_LIMITED
        assert "friend" in exc_info.value.message
