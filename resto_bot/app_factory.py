"""
Application factory for the Resto Bot API.

``create_app()`` wires middleware, the shared limiter, the error renderer
and all routers. ``main.py`` builds the module-level ``app`` uvicorn serves;
tests build their own.
"""

import logging
import os

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import config
from .errors import RateLimited, RestoBotError
from .middleware import RequestIDMiddleware, limiter
from .routes import (
    cart_router,
    chat_router,
    kitchen_router,
    menu_router,
    orders_router,
    session_router,
    tts_router,
)
from .services.cart import get_cache_stats

logger = logging.getLogger(__name__)

ROUTERS = (
    session_router,
    menu_router,
    cart_router,
    chat_router,
    orders_router,
    kitchen_router,
    tts_router,
)


async def restobot_error_handler(request: Request, exc: RestoBotError) -> JSONResponse:
    """Render an expected failure as ``{"error", "message"}``; log the detail."""
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        level,
        "%s %s -> %d %s: %s",
        request.method, request.url.path, exc.status_code, exc.code, exc.detail,
    )

    headers = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.user_message},
        headers=headers,
    )


def create_app() -> FastAPI:
    """
    Create the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Resto Bot API",
        description="Table-side restaurant ordering with an AI assistant",
        version="1.0.0",
    )

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Configure rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RestoBotError, restobot_error_handler)

    static_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), "static")
    if os.path.exists(static_path):
        app.mount("/static", StaticFiles(directory=static_path), name="static")

    # Versioned API, plus root paths for older clients
    api_v1 = APIRouter(prefix="/api/v1")
    for router in ROUTERS:
        api_v1.include_router(router)
    app.include_router(api_v1)
    for router in ROUTERS:
        app.include_router(router)

    @app.get("/health")
    def health_check():
        return {
            "status": "healthy",
            "cart_cache": get_cache_stats(),
        }

    logger.info("Application created (%d routers)", len(ROUTERS))
    return app
