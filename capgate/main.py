"""Entry-point for the FastAPI ASGI app.

This module constructs the FastAPI instance, wires global middleware,
registers all route groups, and exposes the ``app`` variable ASGI servers
import.
"""

from __future__ import annotations

import os
import logging
import traceback
from contextvars import ContextVar
from time import perf_counter
from typing import Callable, Awaitable, Dict

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from capgate import APP_ENV

# Router imports live inside create_app(); routers import `limiter` from here
from capgate.utils.logger import configure_logging, logger
from capgate.settings import ALLOWED_ORIGINS


# Rate limiter (IP-based by default)
limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach request-level context vars for structured logging."""

    _request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:  # type: ignore[override]
        start = perf_counter()
        request_id = request.headers.get("X-Request-Id", os.urandom(4).hex())
        token = self._request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            duration_ms = (perf_counter() - start) * 1000
            logger.info(
                "request.complete",
                extra={
                    "extra": {
                        "path": request.url.path,
                        "method": request.method,
                        "status_code": response.status_code if "response" in locals() else 500,
                        "duration_ms": round(duration_ms, 2),
                        "request_id": request_id,
                    }
                },
            )
            self._request_id_ctx.reset(token)
        return response


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="capgate API",
        version="0.1.0",
        docs_url="/docs" if APP_ENV != "production" else None,
        redoc_url=None,
        openapi_url="/openapi.json" if APP_ENV != "production" else None,
    )

    # Global middleware
    app.add_middleware(RequestContextMiddleware)
    # Rate limiting middleware (SlowAPI expects limiter via app.state)
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    from slowapi.errors import RateLimitExceeded  # noqa: WPS433  (runtime import)
    from slowapi import _rate_limit_exceeded_handler

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(Exception)
    async def log_unhandled_exceptions(request: Request, exc: Exception):
        """Log full traceback for any unhandled exception that would become a 500."""
        error_logger = logging.getLogger("uvicorn.error")
        error_logger.error(
            "UNHANDLED %s at %s %s\n%s",
            type(exc).__name__,
            request.method,
            request.url.path,
            "".join(traceback.format_tb(exc.__traceback__))
        )
        raise exc

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Ucan-Aud"],
        max_age=600,
    )

    # Health check
    @app.get("/")
    async def root() -> Dict[str, str]:  # pylint: disable=unused-variable
        return {"status": "ok"}

    from capgate.routers import auth_routes, ucan_routes
    app.include_router(auth_routes.router)
    app.include_router(ucan_routes.router)

    return app

# The object ASGI servers import
app = create_app()
