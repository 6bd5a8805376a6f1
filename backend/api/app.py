"""
FastAPI application factory for the Score Alerts API service.

Creates the app with:
- Subscription routes (subscribe, unsubscribe, unsubscribe-all, test push)
- Cron trigger for the notification cycle
- Middleware stack
- Health check endpoints
- Lifespan management (startup/shutdown)
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Union

from fastapi import FastAPI

from shared.config import get_settings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager

from api.dependencies import get_redis, init_dependencies
from api.middleware import setup_middleware
from api.routes.cron import router as cron_router
from api.routes.notifications import router as notifications_router
from notifications.wiring import build_components

logger = get_logger(__name__)

_CONNECT_RETRY_ATTEMPTS = 10
_CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn, name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    last_exc: Exception | None = None
    for attempt in range(1, _CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            last_exc = exc
            if attempt == _CONNECT_RETRY_ATTEMPTS:
                raise
            delay = _CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=_CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)
    if last_exc:
        raise last_exc


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing without Redis."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Connects Redis, builds the notification components and closes them on shutdown.
    """
    settings = get_settings()
    setup_logging("api")
    start_metrics_server()

    redis = RedisManager(settings)
    await _connect_with_retry(redis.connect, "Redis")

    components = build_components(redis, settings)
    await components.provider.start()
    init_dependencies(redis, components.lifecycle, components.pipeline)

    logger.info(
        "api_service_started",
        host=settings.api_host,
        port=settings.api_port,
        push_configured=settings.push_configured,
    )

    yield

    await components.provider.close()
    await redis.disconnect()
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing without Redis."""
    app = FastAPI(
        title="Score Alerts API",
        description="Push notifications for live sporting events",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Middleware
    setup_middleware(app)

    # REST routes
    app.include_router(notifications_router)
    app.include_router(cron_router)

    # Health check
    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/ready", tags=["system"])
    async def readiness() -> Dict[str, Union[str, bool]]:
        """Readiness probe: checks Redis."""
        try:
            redis_ok = await get_redis().ping()
        except RuntimeError:
            redis_ok = False
        return {
            "status": "ok" if redis_ok else "degraded",
            "redis": redis_ok,
        }

    return app


# For running with uvicorn directly
app = create_app()
