"""
Authentication for staff endpoints.

Kitchen console routes use HTTP Basic Auth with credentials from
STAFF_USERNAME / STAFF_PASSWORD. Customer routes are anonymous and scoped by
the ``X-Session-ID`` header instead (see ``require_session``).

- 503 when STAFF_PASSWORD is not configured (fail closed)
- 401 with WWW-Authenticate when credentials are wrong
"""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from . import config
from .session_identity import is_valid_session_id


security = HTTPBasic(realm="Resto Bot Kitchen")


def verify_staff_credentials(
    credentials: HTTPBasicCredentials = Depends(security),
) -> str:
    """
    FastAPI dependency requiring staff credentials.

    Returns:
        str: The authenticated username.
    """
    if not config.STAFF_PASSWORD:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Staff authentication not configured. Set STAFF_PASSWORD environment variable.",
        )

    # Constant-time comparison
    username_correct = secrets.compare_digest(
        credentials.username.encode("utf-8"),
        config.STAFF_USERNAME.encode("utf-8"),
    )
    password_correct = secrets.compare_digest(
        credentials.password.encode("utf-8"),
        config.STAFF_PASSWORD.encode("utf-8"),
    )

    if not (username_correct and password_correct):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid staff credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


def require_session(x_session_id: Optional[str] = Header(None)) -> str:
    """FastAPI dependency returning a validated session id from the header."""
    if not is_valid_session_id(x_session_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing session ID",
        )
    return x_session_id
