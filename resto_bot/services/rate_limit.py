"""
Per-session rate limiting for AI chat turns and text-to-speech.

Fixed-window counters keyed by session id, built on the ``limits`` library
(the engine slowapi uses for the per-client limits in middleware.py). The counter
store is ``RATE_LIMIT_STORAGE_URI`` (``memory://`` by default, or
``redis://...`` to share counts between workers).

These limits deter abuse; they are not a security boundary. When the
counter store errors the request is allowed and the failure logged.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Optional

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from .. import config
from ..logging_config import session_prefix

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: int  # seconds until the window resets; 0 when allowed


class SessionRateLimiter:
    """
    Fixed-window limiter for one kind of request.

    Args:
        name: Namespace for the counters ("ai_turn", "tts")
        limit: Rate string such as "30/minute"
        storage_uri: ``limits`` storage URI; defaults to RATE_LIMIT_STORAGE_URI
    """

    def __init__(self, name: str, limit: str, storage_uri: Optional[str] = None):
        self.name = name
        self.item = parse(limit)
        self._storage = storage_from_string(storage_uri or config.RATE_LIMIT_STORAGE_URI)
        self._limiter = FixedWindowRateLimiter(self._storage)

    def hit(self, session_id: str) -> RateLimitResult:
        """Count one request for ``session_id`` and report whether it is allowed."""
        if not config.RATE_LIMIT_ENABLED:
            return RateLimitResult(allowed=True, remaining=self.item.amount, retry_after=0)

        try:
            allowed = self._limiter.hit(self.item, self.name, session_id)
            stats = self._limiter.get_window_stats(self.item, self.name, session_id)
        except Exception as exc:
            # Counter store unavailable: prefer availability
            logger.warning(
                "Rate limit store failed for %s (session %s), allowing request: %s",
                self.name, session_prefix(session_id), exc,
            )
            return RateLimitResult(allowed=True, remaining=self.item.amount, retry_after=0)

        if allowed:
            return RateLimitResult(allowed=True, remaining=stats.remaining, retry_after=0)

        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        logger.info(
            "Rate limit %s exceeded for session %s (retry in %ds)",
            self.name, session_prefix(session_id), retry_after,
        )
        return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)

    def reset(self) -> None:
        self._storage.reset()


_limiters = {}


def get_ai_turn_limiter() -> SessionRateLimiter:
    if "ai_turn" not in _limiters:
        _limiters["ai_turn"] = SessionRateLimiter("ai_turn", config.RATE_LIMIT_AI_TURNS)
    return _limiters["ai_turn"]


def get_tts_limiter() -> SessionRateLimiter:
    if "tts" not in _limiters:
        _limiters["tts"] = SessionRateLimiter("tts", config.RATE_LIMIT_TTS)
    return _limiters["tts"]


def reset_limiters() -> None:
    """Drop all counters (tests)."""
    for limiter in _limiters.values():
        limiter.reset()
