"""
Typed access to notification records in Redis.

RedisManager deals in raw strings and sets; this layer parses them into
domain models and decides what a malformed record means for the caller.
"""
from __future__ import annotations

from typing import Callable, Optional

from pydantic import ValidationError

from shared.config import Settings, get_settings
from shared.errors import MalformedSubscriptionData
from shared.models.domain import CachedGameState, GameMeta, Subscription
from shared.utils.logging import get_logger
from shared.utils.redis_manager import (
    GAME_META_KEY,
    GAME_STATE_KEY,
    SUBSCRIPTION_KEY,
    RedisManager,
    format_key,
)

logger = get_logger(__name__)

SubscriptionMutator = Callable[[Optional[Subscription]], Optional[Subscription]]


def _parse_subscription(key: str, raw: str) -> Subscription:
    try:
        return Subscription.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedSubscriptionData(key, str(exc.errors()[:1])) from exc


class NotificationStore:
    """Subscription, game state and game meta records plus the fan-out sets."""

    def __init__(self, redis: RedisManager, settings: Settings | None = None) -> None:
        self._redis = redis
        self._settings = settings or get_settings()

    # ── Subscriptions ───────────────────────────────────────────────────
    async def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        """Load a subscription. Raises MalformedSubscriptionData on schema mismatch."""
        key = format_key(SUBSCRIPTION_KEY, subscription_id=subscription_id)
        raw = await self._redis.get_json(key)
        if raw is None:
            return None
        return _parse_subscription(key, raw)

    async def update_subscription(
        self,
        subscription_id: str,
        mutate: SubscriptionMutator,
        replace_malformed: bool = False,
    ) -> Optional[Subscription]:
        """
        Compare-and-set a subscription record.

        `mutate` gets the current record (None when absent) and returns the
        new one, or None to delete it. With replace_malformed, an unparseable
        record is handed to `mutate` as None instead of raising.
        """
        key = format_key(SUBSCRIPTION_KEY, subscription_id=subscription_id)
        result: list[Optional[Subscription]] = [None]

        def _apply(raw: Optional[str]) -> Optional[str]:
            current: Optional[Subscription] = None
            if raw is not None:
                try:
                    current = _parse_subscription(key, raw)
                except MalformedSubscriptionData:
                    if not replace_malformed:
                        raise
                    logger.warning("subscription_record_replaced", subscription_id=subscription_id)
            updated = mutate(current)
            result[0] = updated
            return updated.to_json() if updated is not None else None

        await self._redis.update_json(key, _apply, ttl_s=self._settings.subscription_ttl_s)
        return result[0]

    # ── Per-game state ──────────────────────────────────────────────────
    async def get_game_state(self, game_id: str) -> Optional[CachedGameState]:
        """Last persisted state. A malformed record reads as absent."""
        key = format_key(GAME_STATE_KEY, game_id=game_id)
        raw = await self._redis.get_json(key)
        if raw is None:
            return None
        try:
            return CachedGameState.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("game_state_malformed", game_id=game_id, error=str(exc.errors()[:1]))
            return None

    async def save_game_state(self, state: CachedGameState) -> None:
        await self._redis.set_json(
            format_key(GAME_STATE_KEY, game_id=state.game_id),
            state.to_json(),
            ttl_s=self._settings.game_state_ttl_s,
        )

    async def get_game_meta(self, game_id: str) -> Optional[GameMeta]:
        raw = await self._redis.get_json(format_key(GAME_META_KEY, game_id=game_id))
        if raw is None:
            return None
        try:
            return GameMeta.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("game_meta_malformed", game_id=game_id, error=str(exc.errors()[:1]))
            return None

    # ── Fan-out index and working set ───────────────────────────────────
    async def active_games(self) -> list[str]:
        return await self._redis.get_active_games()

    async def subscribers(self, game_id: str) -> list[str]:
        return await self._redis.get_game_subscribers(game_id)

    async def attach(self, game_id: str, subscription_id: str, meta: GameMeta) -> None:
        await self._redis.attach_subscriber(
            game_id,
            subscription_id,
            meta.to_json(),
            meta_ttl_s=self._settings.subscription_ttl_s,
        )

    async def detach(self, game_id: str, subscription_id: str) -> int:
        remaining = await self._redis.detach_subscriber(game_id, subscription_id)
        if remaining == 0:
            logger.info("game_deactivated", game_id=game_id)
        return remaining

    async def purge_game(self, game_id: str) -> None:
        await self._redis.purge_game(game_id)

    # ── Serialization and idempotency ───────────────────────────────────
    async def acquire_lock(self, name: str, owner: str, ttl_s: int) -> bool:
        return await self._redis.try_acquire_lock(name, owner, ttl_s)

    async def release_lock(self, name: str, owner: str) -> bool:
        return await self._redis.release_lock(name, owner)

    async def mark_event_once(self, idempotency_key: str) -> bool:
        return await self._redis.mark_once(idempotency_key, self._settings.event_dedup_ttl_s)
