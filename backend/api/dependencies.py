"""
Dependency injection for the API service.
Provides the Redis connection and the notification components to route handlers.
"""
from __future__ import annotations

from shared.utils.redis_manager import RedisManager

from notifications.lifecycle import SubscriptionLifecycleManager
from notifications.pipeline import NotificationPipeline

# Module-level singletons, initialized at startup
_redis: RedisManager | None = None
_lifecycle: SubscriptionLifecycleManager | None = None
_pipeline: NotificationPipeline | None = None


def init_dependencies(
    redis: RedisManager,
    lifecycle: SubscriptionLifecycleManager,
    pipeline: NotificationPipeline,
) -> None:
    """Initialize module-level singletons. Called once at startup."""
    global _redis, _lifecycle, _pipeline
    _redis = redis
    _lifecycle = lifecycle
    _pipeline = pipeline


def get_redis() -> RedisManager:
    """FastAPI dependency: returns the shared RedisManager."""
    if _redis is None:
        raise RuntimeError("RedisManager not initialized. Call init_dependencies first")
    return _redis


def get_lifecycle() -> SubscriptionLifecycleManager:
    if _lifecycle is None:
        raise RuntimeError("Lifecycle manager not initialized. Call init_dependencies first")
    return _lifecycle


def get_pipeline() -> NotificationPipeline:
    if _pipeline is None:
        raise RuntimeError("Notification pipeline not initialized. Call init_dependencies first")
    return _pipeline
