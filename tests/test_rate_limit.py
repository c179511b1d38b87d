"""
Tests for per-session fixed-window limits.
"""
from unittest.mock import patch

import resto_bot.config as config_mod
from resto_bot.services.rate_limit import SessionRateLimiter


class TestSessionRateLimiter:

    def test_allows_up_to_limit_then_refuses(self):
        limiter = SessionRateLimiter("test", "3/minute")
        results = [limiter.hit("session_1_aaaaaaaaaa") for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert results[0].remaining == 2
        assert 1 <= results[3].retry_after <= 60

    def test_counts_per_session(self):
        limiter = SessionRateLimiter("test", "1/minute")
        assert limiter.hit("session_1_aaaaaaaaaa").allowed
        assert limiter.hit("session_2_bbbbbbbbbb").allowed
        assert not limiter.hit("session_1_aaaaaaaaaa").allowed

    def test_reset(self):
        limiter = SessionRateLimiter("test", "1/minute")
        limiter.hit("session_1_aaaaaaaaaa")
        limiter.reset()
        assert limiter.hit("session_1_aaaaaaaaaa").allowed

    def test_disabled(self, monkeypatch):
        monkeypatch.setattr(config_mod, "RATE_LIMIT_ENABLED", False)
        limiter = SessionRateLimiter("test", "1/minute")
        assert all(limiter.hit("session_1_aaaaaaaaaa").allowed for _ in range(5))

    def test_store_failure_fails_open(self, caplog):
        limiter = SessionRateLimiter("test", "1/minute")
        with patch.object(limiter._limiter, "hit", side_effect=ConnectionError("redis down")):
            for _ in range(3):
                assert limiter.hit("session_1_aaaaaaaaaa").allowed
        assert "allowing request" in caplog.text
