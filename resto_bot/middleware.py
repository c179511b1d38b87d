"""
FastAPI middleware and the shared per-client limiter.
"""

import logging
import uuid

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from . import config
from .logging_config import reset_request_id, set_request_id
from .session_identity import is_valid_session_id

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to each request.
    The ID is kept in request.state.request_id and returned in X-Request-ID
    header; log lines emitted while handling the request carry it too.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        token = set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)

        response.headers["X-Request-ID"] = request_id
        return response


def get_session_id_or_ip(request: Request) -> str:
    """Rate limit key: the X-Session-ID header when valid, else the client IP."""
    session_id = request.headers.get("X-Session-ID")
    if is_valid_session_id(session_id):
        return f"session:{session_id}"
    return get_remote_address(request)


# Per-client limits on public write endpoints (session start, checkout).
# Per-session AI and TTS quotas live in services/rate_limit.py.
limiter = Limiter(
    key_func=get_session_id_or_ip,
    enabled=config.RATE_LIMIT_ENABLED,
    storage_uri=config.RATE_LIMIT_STORAGE_URI,
)
