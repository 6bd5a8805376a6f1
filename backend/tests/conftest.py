"""
Shared fixtures: an in-memory stand-in for RedisManager and builders for
the domain objects most tests need.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.config import Settings
from shared.errors import StoreError, StoreUnavailableError
from shared.models.domain import (
    CachedGameState,
    GameSnapshot,
    PushEndpoint,
    PushKeys,
    ScoringPlay,
    Team,
)
from shared.models.enums import GameStatus, League
from shared.utils.redis_manager import (
    ACTIVE_GAMES_KEY,
    DEDUP_KEY,
    GAME_META_KEY,
    GAME_STATE_KEY,
    GAME_SUBSCRIBERS_KEY,
    LOCK_KEY,
    format_key,
)

from notifications.dispatcher import DeliveryHandler, Dispatcher
from notifications.lifecycle import SubscriptionLifecycleManager
from notifications.pipeline import NotificationPipeline
from notifications.store import NotificationStore
from scheduler.engine.polling import PollingScheduler


class FakeRedisManager:
    """Dict-and-set implementation of the RedisManager helper surface."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.sets: dict[str, set[str]] = {}
        self.fail_keys: set[str] = set()
        self.unavailable = False

    def _check(self, key: str) -> None:
        if key in self.fail_keys:
            raise StoreError(key, "injected failure")

    # JSON values
    async def ping(self) -> bool:
        return not self.unavailable

    async def get_json(self, key: str) -> Optional[str]:
        self._check(key)
        return self.values.get(key)

    async def set_json(self, key: str, data: str, ttl_s: int) -> None:
        self._check(key)
        self.values[key] = data
        self.ttls[key] = ttl_s

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self.values.pop(key, None)
            self.ttls.pop(key, None)
            self.sets.pop(key, None)

    async def update_json(
        self,
        key: str,
        mutate: Callable[[Optional[str]], Optional[str]],
        ttl_s: int,
    ) -> Optional[str]:
        self._check(key)
        updated = mutate(self.values.get(key))
        if updated is None:
            await self.delete(key)
        else:
            self.values[key] = updated
            self.ttls[key] = ttl_s
        return updated

    # Working set
    async def get_active_games(self) -> list[str]:
        if self.unavailable:
            raise StoreUnavailableError(ACTIVE_GAMES_KEY, "injected outage")
        return sorted(self.sets.get(ACTIVE_GAMES_KEY, set()))

    async def get_game_subscribers(self, game_id: str) -> list[str]:
        key = format_key(GAME_SUBSCRIBERS_KEY, game_id=game_id)
        self._check(key)
        return sorted(self.sets.get(key, set()))

    async def attach_subscriber(
        self, game_id: str, subscription_id: str, meta: str, meta_ttl_s: int
    ) -> None:
        self.sets.setdefault(format_key(GAME_SUBSCRIBERS_KEY, game_id=game_id), set()).add(subscription_id)
        self.sets.setdefault(ACTIVE_GAMES_KEY, set()).add(game_id)
        meta_key = format_key(GAME_META_KEY, game_id=game_id)
        self.values[meta_key] = meta
        self.ttls[meta_key] = meta_ttl_s

    async def detach_subscriber(self, game_id: str, subscription_id: str) -> int:
        subs_key = format_key(GAME_SUBSCRIBERS_KEY, game_id=game_id)
        self._check(subs_key)
        members = self.sets.get(subs_key, set())
        members.discard(subscription_id)
        if not members:
            self.sets.get(ACTIVE_GAMES_KEY, set()).discard(game_id)
            await self.delete(
                subs_key,
                format_key(GAME_STATE_KEY, game_id=game_id),
                format_key(GAME_META_KEY, game_id=game_id),
            )
        return len(members)

    async def purge_game(self, game_id: str) -> None:
        await self.delete(
            format_key(GAME_SUBSCRIBERS_KEY, game_id=game_id),
            format_key(GAME_STATE_KEY, game_id=game_id),
            format_key(GAME_META_KEY, game_id=game_id),
        )
        self.sets.get(ACTIVE_GAMES_KEY, set()).discard(game_id)

    # Locks and markers
    async def try_acquire_lock(self, name: str, owner: str, ttl_s: int) -> bool:
        key = format_key(LOCK_KEY, name=name)
        if key in self.values:
            return False
        self.values[key] = owner
        return True

    async def release_lock(self, name: str, owner: str) -> bool:
        key = format_key(LOCK_KEY, name=name)
        if self.values.get(key) == owner:
            del self.values[key]
            return True
        return False

    async def mark_once(self, marker: str, ttl_s: int) -> bool:
        key = format_key(DEDUP_KEY, key=marker)
        if key in self.values:
            return False
        self.values[key] = "1"
        return True

    # Test helpers
    def active(self) -> set[str]:
        return set(self.sets.get(ACTIVE_GAMES_KEY, set()))

    def subscribers_of(self, game_id: str) -> set[str]:
        return set(self.sets.get(format_key(GAME_SUBSCRIBERS_KEY, game_id=game_id), set()))

    def has_state(self, game_id: str) -> bool:
        return format_key(GAME_STATE_KEY, game_id=game_id) in self.values


# ── Builders ────────────────────────────────────────────────────────────

def make_game(
    game_id: str = "G1",
    league: League = League.NHL,
    status: GameStatus = GameStatus.LIVE,
    home_score: int = 0,
    away_score: int = 0,
    period: int = 1,
    start_time: Optional[datetime] = None,
) -> GameSnapshot:
    return GameSnapshot(
        id=game_id,
        league=league,
        status=status,
        home_team=Team(id="1", abbreviation="BOS", display_name="Boston"),
        away_team=Team(id="2", abbreviation="NYR", display_name="New York"),
        home_score=home_score,
        away_score=away_score,
        period=period,
        start_time=start_time,
    )


def make_state(
    game_id: str = "G1",
    league: League = League.NHL,
    status: GameStatus = GameStatus.LIVE,
    home_score: int = 0,
    away_score: int = 0,
    period: int = 1,
    scoring_plays_count: Optional[int] = 0,
) -> CachedGameState:
    return CachedGameState(
        game_id=game_id,
        league=league,
        status=status,
        home_score=home_score,
        away_score=away_score,
        home_team="BOS",
        away_team="NYR",
        period=period,
        scoring_plays_count=scoring_plays_count,
    )


def make_play(
    home_score: int,
    away_score: int,
    period: int = 1,
    scorer: str = "D. Pastrnak",
    assists: Optional[list[str]] = None,
    text: str = "",
    team: str = "BOS",
) -> ScoringPlay:
    return ScoringPlay(
        period=period,
        clock="10:00",
        team=team,
        scorer=scorer,
        assists=assists or [],
        home_score=home_score,
        away_score=away_score,
        text=text,
    )


def make_endpoint(suffix: str = "a") -> PushEndpoint:
    return PushEndpoint(
        endpoint=f"https://push.example.com/send/{suffix}",
        keys=PushKeys(p256dh=f"p256dh-{suffix}", auth=f"auth-{suffix}"),
    )


# ── Fixtures ────────────────────────────────────────────────────────────

@pytest.fixture
def settings() -> Settings:
    return Settings(
        vapid_public_key="test-public",
        vapid_private_key="test-private",
        site_url="https://scores.example.com",
        fetch_scoring_timeline=True,
    )


@pytest.fixture
def fake_redis() -> FakeRedisManager:
    return FakeRedisManager()


@pytest.fixture
def store(fake_redis: FakeRedisManager, settings: Settings) -> NotificationStore:
    return NotificationStore(fake_redis, settings)


@pytest.fixture
def transport() -> MagicMock:
    t = MagicMock()
    t.send = AsyncMock(return_value=None)
    t.configured = True
    return t


@pytest.fixture
def lifecycle(
    store: NotificationStore, transport: MagicMock, settings: Settings
) -> SubscriptionLifecycleManager:
    return SubscriptionLifecycleManager(store, transport, settings)


@pytest.fixture
def dispatcher(
    store: NotificationStore,
    lifecycle: SubscriptionLifecycleManager,
    transport: MagicMock,
    settings: Settings,
) -> Dispatcher:
    return Dispatcher(store, lifecycle, DeliveryHandler(transport, lifecycle), settings)


@pytest.fixture
def provider() -> MagicMock:
    p = MagicMock()
    p.get_scoreboard = AsyncMock(return_value=[])
    p.get_game_summary = AsyncMock(return_value=[])
    return p


@pytest.fixture
def pipeline(
    store: NotificationStore,
    provider: MagicMock,
    dispatcher: Dispatcher,
    lifecycle: SubscriptionLifecycleManager,
    settings: Settings,
) -> NotificationPipeline:
    return NotificationPipeline(
        store=store,
        provider=provider,
        dispatcher=dispatcher,
        lifecycle=lifecycle,
        scheduler=PollingScheduler(store, settings),
        settings=settings,
    )


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 1, 15, 19, 0, tzinfo=timezone.utc)
