"""
Configuration Module for Resto Bot
==================================

This module centralizes all configuration settings, environment variables, and
constants used throughout the Resto Bot application. Values are read once at
import time from the process environment (a ``.env`` file at the project root
is loaded first, if present).

Configuration Categories:
-------------------------
- **Database**: Connection URL for the order/menu/chat store.

- **AI Assistant**: OpenAI-compatible gateway settings, the per-session chat
  cooldown, the conversation window sent to the model and the read-side
  duplicate-collapse window.

- **Rate Limiting**: Fixed-window limits keyed by session id for AI turns and
  text-to-speech, plus the per-IP limit on public write endpoints. Rate
  limiting is best-effort abuse deterrence and fails open when the counter
  store is unavailable.

- **Payment**: QRIS waiting countdown and the payment-before-confirm guard.

- **Cart Cache**: TTL and size for the in-memory cart cache in front of the
  database.

- **Staff Authentication**: HTTP Basic credentials for the kitchen console.

Environment Variables:
----------------------
- DATABASE_URL: SQLAlchemy URL (default: "sqlite:///./resto_bot.db")
- OPENAI_API_KEY / OPENAI_MODEL / OPENAI_BASE_URL: model gateway
- CHAT_COOLDOWN_SECONDS: Minimum gap between accepted chat turns (default: 2)
- CHAT_HISTORY_WINDOW: Prior messages sent to the model (default: 10)
- MESSAGE_DEDUP_WINDOW_SECONDS: Duplicate collapse window (default: 10)
- MAX_MESSAGE_LENGTH: Max user message length (default: 1000)
- QRIS_TIMEOUT_SECONDS: QRIS waiting countdown (default: 60)
- RATE_LIMIT_AI_TURNS: AI turns per session (default: "20/minute")
- RATE_LIMIT_TTS: TTS requests per session (default: "30/minute")
- RATE_LIMIT_PUBLIC: Public write endpoints per IP (default: "60/minute")
- RATE_LIMIT_STORAGE_URI: limits storage URI (default: "memory://")
- RATE_LIMIT_ENABLED: Enable/disable rate limiting (default: "true")
- TTS_PROVIDER: "elevenlabs" or "openai" (default: "elevenlabs")
- TTS_MAX_TEXT_LENGTH: Max characters per synthesis (default: 500)
- STAFF_USERNAME / STAFF_PASSWORD: Kitchen console credentials
- CORS_ORIGINS: Comma-separated allowed origins (default: "*")
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


# =============================================================================
# Database Configuration
# =============================================================================

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./resto_bot.db")


# =============================================================================
# AI Assistant Configuration
# =============================================================================

OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "")

# Replies from the model are short by instruction; cap them anyway
OPENAI_MAX_TOKENS: int = int(os.getenv("OPENAI_MAX_TOKENS", "500"))
OPENAI_TEMPERATURE: float = float(os.getenv("OPENAI_TEMPERATURE", "0.8"))

# A second turn starting within this many seconds of the previous accepted
# turn gets a placeholder reply instead of a model call
CHAT_COOLDOWN_SECONDS: float = float(os.getenv("CHAT_COOLDOWN_SECONDS", "2"))

# Most-recent-N prior messages included in the model input
CHAT_HISTORY_WINDOW: int = int(os.getenv("CHAT_HISTORY_WINDOW", "10"))

# Consecutive identical (role, content) messages closer than this collapse
MESSAGE_DEDUP_WINDOW_SECONDS: float = float(os.getenv("MESSAGE_DEDUP_WINDOW_SECONDS", "10"))

# Number of the session's latest orders summarized for the model
CHAT_ORDER_HISTORY_LIMIT: int = int(os.getenv("CHAT_ORDER_HISTORY_LIMIT", "3"))

MAX_MESSAGE_LENGTH: int = int(os.getenv("MAX_MESSAGE_LENGTH", "1000"))


# =============================================================================
# Rate Limiting Configuration
# =============================================================================
# Limit format follows the `limits` library: "N/second|minute|hour|day"
# or "N per minute".

RATE_LIMIT_ENABLED: bool = _env_bool("RATE_LIMIT_ENABLED", "true")
RATE_LIMIT_AI_TURNS: str = os.getenv("RATE_LIMIT_AI_TURNS", "20/minute")
RATE_LIMIT_TTS: str = os.getenv("RATE_LIMIT_TTS", "30/minute")
RATE_LIMIT_PUBLIC: str = os.getenv("RATE_LIMIT_PUBLIC", "60/minute")

# "memory://" keeps counters per process; use "redis://host:6379" when
# running several workers
RATE_LIMIT_STORAGE_URI: str = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")


def get_rate_limit_public() -> str:
    """
    Return the current public endpoint rate limit.

    This function allows dynamic override in tests without modifying
    the module-level constant.
    """
    return RATE_LIMIT_PUBLIC


# =============================================================================
# Payment Configuration
# =============================================================================

QRIS_TIMEOUT_SECONDS: float = float(os.getenv("QRIS_TIMEOUT_SECONDS", "60"))

# Staff may only move pending -> confirmed after the payment is recorded paid
REQUIRE_PAYMENT_BEFORE_CONFIRM: bool = _env_bool("REQUIRE_PAYMENT_BEFORE_CONFIRM", "true")


# =============================================================================
# Cart Cache Configuration
# =============================================================================
# Carts are persisted to the database and cached in memory with TTL/LRU
# eviction, so they survive reloads and server restarts.

CART_TTL_SECONDS: int = int(os.getenv("CART_TTL_SECONDS", "3600"))
CART_MAX_CACHE_SIZE: int = int(os.getenv("CART_MAX_CACHE_SIZE", "1000"))


# =============================================================================
# Text-to-Speech Configuration
# =============================================================================

TTS_PROVIDER: str = os.getenv("TTS_PROVIDER", "elevenlabs")
TTS_MAX_TEXT_LENGTH: int = int(os.getenv("TTS_MAX_TEXT_LENGTH", "500"))
ELEVENLABS_API_KEY: str = os.getenv("ELEVENLABS_API_KEY", "")

# "Roger" reads Indonesian well
ELEVENLABS_DEFAULT_VOICE: str = os.getenv("ELEVENLABS_DEFAULT_VOICE", "CwhRBWXzGAHq8TQ4Fs17")


# =============================================================================
# CORS Configuration
# =============================================================================

_cors_origins_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in _cors_origins_env.split(",")
    if origin.strip()
] or ["*"]


# =============================================================================
# Staff Authentication Configuration
# =============================================================================
# Credentials for HTTP Basic Auth on kitchen endpoints.
# STAFF_PASSWORD must be set for the kitchen console to work.

STAFF_USERNAME: str = os.getenv("STAFF_USERNAME", "dapur")
STAFF_PASSWORD: str = os.getenv("STAFF_PASSWORD", "")
