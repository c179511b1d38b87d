"""
Model invocation for chat turns.

``complete(messages)`` sends a chat-completions request through the OpenAI
SDK (any OpenAI-compatible gateway works via OPENAI_BASE_URL) and returns the
reply text. Provider failures are mapped onto the error taxonomy:

- 429 / rate limit              -> RateLimited
- 402 / insufficient_quota      -> QuotaExhausted
- missing key, connection error,
  timeout, 5xx                  -> UpstreamUnavailable
- anything else from the API    -> UpstreamFailed

The client is created lazily so importing this module never needs a key.
"""

import logging
import threading
from typing import Dict, List, Optional

import openai
from openai import OpenAI

from . import config
from .errors import QuotaExhausted, RateLimited, UpstreamFailed, UpstreamUnavailable

logger = logging.getLogger(__name__)

EMPTY_REPLY = "Maaf, aku lagi loading. Coba tanya lagi ya! 🙏"

_client: Optional[OpenAI] = None
_client_lock = threading.Lock()


def get_client() -> OpenAI:
    global _client
    if _client is not None:
        return _client

    if not config.OPENAI_API_KEY:
        raise UpstreamUnavailable("OPENAI_API_KEY is not configured")

    with _client_lock:
        if _client is None:
            kwargs = {"api_key": config.OPENAI_API_KEY}
            if config.OPENAI_BASE_URL:
                kwargs["base_url"] = config.OPENAI_BASE_URL
            _client = OpenAI(**kwargs)
            logger.debug("OpenAI client created (model=%s)", config.OPENAI_MODEL)
    return _client


def reset_client() -> None:
    global _client
    with _client_lock:
        _client = None


def _is_quota_error(exc: openai.APIStatusError) -> bool:
    if exc.status_code == 402:
        return True
    body = exc.body if isinstance(exc.body, dict) else {}
    error = body.get("error", body) if isinstance(body, dict) else {}
    code = error.get("code") if isinstance(error, dict) else None
    return code == "insufficient_quota"


def complete(messages: List[Dict[str, str]], model: Optional[str] = None) -> str:
    """
    Run one chat completion and return the reply text.

    Raises:
        RateLimited, QuotaExhausted, UpstreamUnavailable, UpstreamFailed
    """
    client = get_client()
    model = model or config.OPENAI_MODEL

    try:
        completion = client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=config.OPENAI_TEMPERATURE,
            max_tokens=config.OPENAI_MAX_TOKENS,
        )
    except (openai.APIConnectionError, openai.APITimeoutError) as exc:
        logger.error("Model provider unreachable: %s", exc)
        raise UpstreamUnavailable(f"provider unreachable: {exc}") from exc
    except openai.APIStatusError as exc:
        logger.error("Model provider error %s: %s", exc.status_code, exc.message)
        if _is_quota_error(exc):
            raise QuotaExhausted(f"provider quota: {exc.message}") from exc
        if exc.status_code == 429:
            raise RateLimited(f"provider rate limit: {exc.message}") from exc
        if exc.status_code >= 500:
            raise UpstreamUnavailable(f"provider status {exc.status_code}") from exc
        raise UpstreamFailed(f"provider status {exc.status_code}: {exc.message}") from exc

    content = completion.choices[0].message.content if completion.choices else None
    if not content:
        logger.warning("Model returned an empty reply")
        return EMPTY_REPLY

    logger.debug("Model reply received: %s", content[:100])
    return content
