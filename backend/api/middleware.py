"""
API middleware stack.

- Request context: X-Request-ID plus a structlog binding for the request
- Access logging
- Per-client rate limiting on the subscription routes
- Error mapping from the notifier taxonomy to JSON responses
- CORS for browser clients registering push endpoints
"""
from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from shared.config import get_settings
from shared.errors import (
    NotifierError,
    StoreError,
    SubscriptionNotFound,
    UnsupportedLeagueError,
)
from shared.utils.logging import get_logger

logger = get_logger(__name__)

RATE_LIMITED_PREFIX = "/v1/notifications"
RATE_LIMIT_RPM = 60
RATE_LIMIT_WINDOW_S = 60
QUIET_PATHS = frozenset({"/health", "/ready", "/metrics"})

# Client-facing errors: exception type -> (status, error code)
CLIENT_ERRORS: dict[type[NotifierError], tuple[int, str]] = {
    SubscriptionNotFound: (404, "subscription_not_found"),
    UnsupportedLeagueError: (400, "unsupported_league"),
}


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, binds it for every log line, and logs the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        path = request.url.path
        start = time.monotonic()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
            if path not in QUIET_PATHS:
                logger.info(
                    "http_request",
                    method=request.method,
                    path=path,
                    status=response.status_code,
                    duration_ms=round((time.monotonic() - start) * 1000, 2),
                )

        response.headers["X-Request-ID"] = request_id
        return response


class SubscriptionRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding one-minute window per client IP, applied only to subscription
    routes. The cron trigger and health probes are never limited.
    """

    def __init__(self, app: FastAPI, rpm: int = RATE_LIMIT_RPM) -> None:
        super().__init__(app)
        self._rpm = rpm
        self._hits: dict[str, list[float]] = {}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(RATE_LIMITED_PREFIX):
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        now = time.monotonic()
        hits = [t for t in self._hits.get(client, []) if now - t < RATE_LIMIT_WINDOW_S]

        if len(hits) >= self._rpm:
            self._hits[client] = hits
            logger.warning("subscription_rate_limited", client=client, path=request.url.path)
            return JSONResponse(
                status_code=429,
                content={"error": "rate_limit_exceeded", "message": f"Max {self._rpm} requests per minute"},
                headers={"Retry-After": str(RATE_LIMIT_WINDOW_S)},
            )

        hits.append(now)
        self._hits[client] = hits
        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self._rpm - len(hits)))
        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Register error handlers. Client errors keep their message; the rest do not."""

    @app.exception_handler(NotifierError)
    async def notifier_error_handler(request: Request, exc: NotifierError) -> JSONResponse:
        mapped = CLIENT_ERRORS.get(type(exc))
        if mapped:
            status, code = mapped
            return JSONResponse(status_code=status, content={"error": code, "message": str(exc)})

        logger.error(
            "request_failed",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
            store_key=exc.key if isinstance(exc, StoreError) else None,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "The request could not be completed",
                "request_id": _request_id(request),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "request_id": _request_id(request),
            },
        )

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"error": "not_found", "message": f"No route for {request.url.path}"},
        )


def setup_middleware(app: FastAPI) -> None:
    """Apply middleware; the last added runs first, so CORS goes last."""
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SubscriptionRateLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-RateLimit-Remaining"],
    )
    setup_exception_handlers(app)
