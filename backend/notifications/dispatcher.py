"""
Preference filter, fan-out and delivery outcome handling.

One event goes to every subscriber of its game whose preferences accept
the event type. Deliveries run concurrently and each one is isolated:
a failing subscriber never affects its siblings.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from shared.config import Settings, get_settings
from shared.errors import (
    DeliveryExpired,
    DeliveryTransient,
    MalformedSubscriptionData,
    StoreError,
)
from shared.models.domain import NotificationEvent, PushPayload, Subscription
from shared.models.enums import DeliveryOutcome
from shared.utils.logging import get_logger
from shared.utils.metrics import PUSH_DELIVERIES

from notifications.formatting import format_payload
from notifications.lifecycle import SubscriptionLifecycleManager
from notifications.push import WebPushTransport
from notifications.store import NotificationStore

logger = get_logger(__name__)


class DeliveryHandler:
    """Sends one payload and turns the transport outcome into cleanup."""

    def __init__(
        self,
        transport: WebPushTransport,
        lifecycle: SubscriptionLifecycleManager,
    ) -> None:
        self._transport = transport
        self._lifecycle = lifecycle

    async def deliver(
        self,
        subscription: Subscription,
        event: NotificationEvent,
        payload: PushPayload,
    ) -> DeliveryOutcome:
        outcome = DeliveryOutcome.SUCCESS
        try:
            await self._transport.send(subscription.push_subscription, payload)
        except DeliveryExpired as exc:
            outcome = DeliveryOutcome.EXPIRED
            logger.info(
                "push_expired",
                subscription_id=subscription.id,
                game_id=event.game_id,
                status=exc.status_code,
            )
            try:
                await self._lifecycle.handle_expired_endpoint(subscription.id, event.game_id)
            except (StoreError, MalformedSubscriptionData) as cleanup_exc:
                logger.warning(
                    "push_expired_cleanup_failed",
                    subscription_id=subscription.id,
                    game_id=event.game_id,
                    error=str(cleanup_exc),
                )
        except DeliveryTransient as exc:
            # No retry queue: the next event for this game is the next chance.
            outcome = DeliveryOutcome.TRANSIENT
            logger.warning(
                "push_failed",
                subscription_id=subscription.id,
                game_id=event.game_id,
                event_type=event.type.value,
                error=exc.reason,
                status=exc.status_code,
            )
        except Exception as exc:
            outcome = DeliveryOutcome.TRANSIENT
            logger.error(
                "push_delivery_error",
                subscription_id=subscription.id,
                game_id=event.game_id,
                event_type=event.type.value,
                error=str(exc),
                exc_info=True,
            )

        PUSH_DELIVERIES.labels(
            league=event.league.value,
            event_type=event.type.value,
            outcome=outcome.value,
        ).inc()
        return outcome


class Dispatcher:
    """Resolves a game's subscribers and fans each event out to them."""

    def __init__(
        self,
        store: NotificationStore,
        lifecycle: SubscriptionLifecycleManager,
        delivery: DeliveryHandler,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._lifecycle = lifecycle
        self._delivery = delivery
        self._settings = settings or get_settings()

    async def load_recipients(self, game_id: str) -> list[Subscription]:
        """Subscription records for every subscriber id of a game, in id order."""
        subscriber_ids = await self._store.subscribers(game_id)
        records = await asyncio.gather(
            *(self._load_one(game_id, sub_id) for sub_id in subscriber_ids)
        )
        return [r for r in records if r is not None]

    async def _load_one(self, game_id: str, subscription_id: str) -> Optional[Subscription]:
        try:
            record = await self._store.get_subscription(subscription_id)
        except MalformedSubscriptionData as exc:
            logger.warning(
                "subscription_malformed",
                subscription_id=subscription_id,
                game_id=game_id,
                error=exc.reason,
            )
            return None
        except StoreError as exc:
            logger.warning(
                "subscription_load_failed",
                subscription_id=subscription_id,
                game_id=game_id,
                error=exc.reason,
            )
            return None

        if record is None:
            try:
                await self._lifecycle.prune_orphan(game_id, subscription_id)
            except StoreError as exc:
                logger.warning(
                    "orphan_prune_failed",
                    subscription_id=subscription_id,
                    game_id=game_id,
                    error=exc.reason,
                )
        return record

    async def dispatch(
        self,
        event: NotificationEvent,
        recipients: list[Subscription],
        expired: set[str] | None = None,
    ) -> int:
        """
        Deliver one event to every recipient that wants it.

        Subscription ids whose endpoint expires are added to `expired` so
        later events of the same game skip them.

        Returns:
            Number of successful deliveries.
        """
        expired = expired if expired is not None else set()
        payload = format_payload(event, self._settings.site_url)

        targets: list[Subscription] = []
        for record in recipients:
            if record.id in expired:
                continue
            game_sub = record.find_game(event.game_id)
            if game_sub is None:
                logger.debug(
                    "subscriber_missing_game_entry",
                    subscription_id=record.id,
                    game_id=event.game_id,
                )
                continue
            if game_sub.events.wants(event.type):
                targets.append(record)

        outcomes = await asyncio.gather(
            *(self._delivery.deliver(record, event, payload) for record in targets)
        )

        sent = 0
        for record, outcome in zip(targets, outcomes):
            if outcome == DeliveryOutcome.SUCCESS:
                sent += 1
            elif outcome == DeliveryOutcome.EXPIRED:
                expired.add(record.id)
        return sent
