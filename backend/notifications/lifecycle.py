"""
Subscription lifecycle: create, update and remove subscriptions and the
per-game interest they carry, keeping the Active-Games working set in step.

Invariant maintained by every operation here:
    game_id in active_games  <=>  game:{game_id}:subs is non-empty
Record edits go through compare-and-set; set membership changes go
through RedisManager's transactional attach/detach helpers.
"""
from __future__ import annotations

import asyncio
import uuid
from typing import Optional

from shared.config import Settings, get_settings
from shared.errors import (
    DeliveryExpired,
    MalformedSubscriptionData,
    StoreError,
    SubscriptionNotFound,
    UnsupportedLeagueError,
)
from shared.models.domain import (
    GameMeta,
    GameSubscription,
    PartialEventPreferences,
    SubscribeRequest,
    SubscribeResult,
    Subscription,
    utcnow,
)
from shared.utils.logging import get_logger
from shared.utils.metrics import LIFECYCLE_OPERATIONS

from notifications.formatting import format_test_payload
from notifications.push import WebPushTransport
from notifications.store import NotificationStore

logger = get_logger(__name__)


class SubscriptionLifecycleManager:
    """Owns every mutation of subscription records and fan-out sets."""

    def __init__(
        self,
        store: NotificationStore,
        transport: WebPushTransport,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._settings = settings or get_settings()

    # ── User-driven operations ──────────────────────────────────────────
    async def subscribe(self, request: SubscribeRequest) -> SubscribeResult:
        """
        Idempotently upsert interest in one game.

        An absent or unknown subscription id starts a new record. The push
        endpoint is refreshed on every call since browsers rotate them.
        """
        if request.league.value not in self._settings.notification_leagues:
            raise UnsupportedLeagueError(request.league.value)

        subscription_id = await self._resolve_subscription_id(request.subscription_id)
        game_sub = GameSubscription(
            game_id=request.game_id,
            league=request.league,
            home_team=request.home_team,
            away_team=request.away_team,
            events=(request.events or PartialEventPreferences()).merged(),
            start_time=request.start_time,
        )

        def _upsert(current: Optional[Subscription]) -> Subscription:
            record = current or Subscription(
                id=subscription_id,
                push_subscription=request.push_subscription,
            )
            record.push_subscription = request.push_subscription
            record.upsert_game(game_sub)
            record.last_seen = utcnow()
            return record

        await self._store.update_subscription(subscription_id, _upsert, replace_malformed=True)
        await self._store.attach(
            request.game_id,
            subscription_id,
            GameMeta(league=request.league, start_time=request.start_time),
        )

        LIFECYCLE_OPERATIONS.labels(operation="subscribe").inc()
        logger.info(
            "subscription_added",
            subscription_id=subscription_id,
            game_id=request.game_id,
            league=request.league.value,
        )
        return SubscribeResult(subscription_id=subscription_id, game_subscription=game_sub)

    async def _resolve_subscription_id(self, requested: Optional[str]) -> str:
        if requested:
            try:
                existing = await self._store.get_subscription(requested)
            except MalformedSubscriptionData:
                # Overwritten by the upsert below.
                return requested
            if existing is not None:
                return requested
            logger.info("subscription_id_unknown", subscription_id=requested)
        return str(uuid.uuid4())

    async def unsubscribe(self, subscription_id: str, game_id: str) -> None:
        """
        Drop interest in one game.

        Raises:
            SubscriptionNotFound: No record exists for subscription_id.
        """
        found = [False]

        def _remove(current: Optional[Subscription]) -> Optional[Subscription]:
            if current is None:
                return None
            found[0] = True
            current.remove_game(game_id)
            current.last_seen = utcnow()
            return current

        await self._store.update_subscription(subscription_id, _remove)
        # Detach even when the record lacked the game so the sets converge.
        await self._store.detach(game_id, subscription_id)
        if not found[0]:
            raise SubscriptionNotFound(subscription_id)

        LIFECYCLE_OPERATIONS.labels(operation="unsubscribe").inc()
        logger.info("subscription_removed", subscription_id=subscription_id, game_id=game_id)

    async def unsubscribe_all(self, subscription_id: str) -> list[str]:
        """Delete a subscription record and detach it from every game."""
        removed: list[Optional[Subscription]] = [None]

        def _delete(current: Optional[Subscription]) -> None:
            removed[0] = current
            return None

        await self._store.update_subscription(subscription_id, _delete, replace_malformed=True)
        record = removed[0]
        if record is None:
            raise SubscriptionNotFound(subscription_id)

        game_ids = [g.game_id for g in record.subscribed_games]
        for game_id in game_ids:
            await self._store.detach(game_id, subscription_id)

        LIFECYCLE_OPERATIONS.labels(operation="unsubscribe_all").inc()
        logger.info("subscription_deleted", subscription_id=subscription_id, games=len(game_ids))
        return game_ids

    async def send_test(self, subscription_id: str) -> None:
        """
        Push a fixed test payload to a subscription's endpoint.

        Raises:
            SubscriptionNotFound: No record exists.
            DeliveryExpired: The endpoint is gone; the record was deleted.
            DeliveryTransient: The push did not land this time.
        """
        record = await self._store.get_subscription(subscription_id)
        if record is None:
            raise SubscriptionNotFound(subscription_id)

        try:
            await self._transport.send(
                record.push_subscription, format_test_payload(self._settings.site_url)
            )
        except DeliveryExpired:
            logger.info("test_push_endpoint_expired", subscription_id=subscription_id)
            await self.unsubscribe_all(subscription_id)
            raise

        LIFECYCLE_OPERATIONS.labels(operation="send_test").inc()
        logger.info("test_push_sent", subscription_id=subscription_id)

    # ── Pipeline-driven cleanup ─────────────────────────────────────────
    async def handle_expired_endpoint(self, subscription_id: str, game_id: str) -> bool:
        """
        Remove a dead endpoint's interest in a game.

        Returns True when the record had no games left and was deleted.
        """
        deleted = [False]

        def _drop_game(current: Optional[Subscription]) -> Optional[Subscription]:
            if current is None:
                return None
            current.remove_game(game_id)
            if not current.subscribed_games:
                deleted[0] = True
                return None
            return current

        await self._store.update_subscription(subscription_id, _drop_game, replace_malformed=True)
        await self._store.detach(game_id, subscription_id)

        LIFECYCLE_OPERATIONS.labels(operation="expire").inc()
        logger.info(
            "push_endpoint_expired_cleanup",
            subscription_id=subscription_id,
            game_id=game_id,
            record_deleted=deleted[0],
        )
        return deleted[0]

    async def prune_orphan(self, game_id: str, subscription_id: str) -> None:
        """Detach a subscriber id whose record no longer exists."""
        await self._store.detach(game_id, subscription_id)
        LIFECYCLE_OPERATIONS.labels(operation="prune_orphan").inc()
        logger.info("orphan_subscriber_pruned", subscription_id=subscription_id, game_id=game_id)

    async def cleanup_finished_game(self, game_id: str, reason: str = "final") -> None:
        """
        Forget a game entirely: every subscriber's entry for it, its
        subscriber set, cached state and meta, and its Active-Games entry.
        """
        subscriber_ids = await self._store.subscribers(game_id)
        await asyncio.gather(
            *(self._forget_game(sub_id, game_id) for sub_id in subscriber_ids)
        )
        await self._store.purge_game(game_id)

        LIFECYCLE_OPERATIONS.labels(operation=f"cleanup_{reason}").inc()
        logger.info(
            "game_cleaned_up",
            game_id=game_id,
            reason=reason,
            subscribers=len(subscriber_ids),
        )

    async def _forget_game(self, subscription_id: str, game_id: str) -> None:
        def _remove(current: Optional[Subscription]) -> Optional[Subscription]:
            if current is None:
                return None
            current.remove_game(game_id)
            return current

        try:
            await self._store.update_subscription(subscription_id, _remove)
        except (StoreError, MalformedSubscriptionData) as exc:
            # The record keeps a stale entry until its TTL; dispatch skips it.
            logger.warning(
                "game_cleanup_subscriber_failed",
                subscription_id=subscription_id,
                game_id=game_id,
                error=str(exc),
            )
