"""Construction of the notification object graph, shared by both service roles."""
from __future__ import annotations

from dataclasses import dataclass

from shared.config import Settings, get_settings
from shared.utils.redis_manager import RedisManager

from ingest.providers.base import ScoresProvider
from ingest.providers.espn import ESPNScoresProvider
from notifications.dispatcher import DeliveryHandler, Dispatcher
from notifications.lifecycle import SubscriptionLifecycleManager
from notifications.pipeline import NotificationPipeline
from notifications.push import WebPushTransport
from notifications.store import NotificationStore
from scheduler.engine.polling import PollingScheduler


@dataclass
class NotificationComponents:
    store: NotificationStore
    provider: ScoresProvider
    lifecycle: SubscriptionLifecycleManager
    pipeline: NotificationPipeline


def build_components(
    redis: RedisManager,
    settings: Settings | None = None,
    provider: ScoresProvider | None = None,
    transport: WebPushTransport | None = None,
) -> NotificationComponents:
    settings = settings or get_settings()
    store = NotificationStore(redis, settings)
    provider = provider or ESPNScoresProvider()
    transport = transport or WebPushTransport(settings)
    lifecycle = SubscriptionLifecycleManager(store, transport, settings)
    dispatcher = Dispatcher(store, lifecycle, DeliveryHandler(transport, lifecycle), settings)
    pipeline = NotificationPipeline(
        store=store,
        provider=provider,
        dispatcher=dispatcher,
        lifecycle=lifecycle,
        scheduler=PollingScheduler(store, settings),
        settings=settings,
    )
    return NotificationComponents(
        store=store,
        provider=provider,
        lifecycle=lifecycle,
        pipeline=pipeline,
    )
