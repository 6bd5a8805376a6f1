"""
Pydantic v2 domain models shared across all Score Alerts services.
These are the canonical wire/store representations. Field names are
snake_case in Python and camelCase on the wire (API bodies, store JSON,
push payloads).
"""
from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from shared.models.enums import (
    GameStatus,
    League,
    NotificationEventType,
    ScoringStrength,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_HTTP_URL = TypeAdapter(HttpUrl)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# ── Scores provider view ────────────────────────────────────────────────
class Team(DomainModel):
    id: str = ""
    abbreviation: str
    display_name: str = ""


class GameSnapshot(DomainModel):
    """The provider's current view of one contest."""
    id: str
    league: League
    status: GameStatus
    home_team: Team
    away_team: Team
    home_score: int = 0
    away_score: int = 0
    period: int = 0
    clock: Optional[str] = None
    detail: Optional[str] = None
    start_time: Optional[datetime] = None


class ScoringPlay(DomainModel):
    """One point-scoring occurrence, in timeline order."""
    period: int = 0
    clock: str = ""
    team_id: str = ""
    team: str = ""
    scorer: str = "Unknown"
    assists: list[str] = Field(default_factory=list)
    strength: Optional[ScoringStrength] = None
    home_score: int = 0
    away_score: int = 0
    text: str = ""
    season_total: Optional[int] = None


# ── Subscriptions ───────────────────────────────────────────────────────
class EventPreferences(DomainModel):
    game_start: bool = True
    game_end: bool = True
    scoring: bool = True
    period_end: bool = True

    def wants(self, event_type: NotificationEventType) -> bool:
        return {
            NotificationEventType.GAME_START: self.game_start,
            NotificationEventType.GAME_END: self.game_end,
            NotificationEventType.SCORING: self.scoring,
            NotificationEventType.PERIOD_END: self.period_end,
        }.get(event_type, False)


class PartialEventPreferences(DomainModel):
    """Preferences as sent by clients; omitted flags fall back to defaults."""
    game_start: Optional[bool] = None
    game_end: Optional[bool] = None
    scoring: Optional[bool] = None
    period_end: Optional[bool] = None

    def merged(self, base: EventPreferences | None = None) -> EventPreferences:
        base = base or EventPreferences()
        overrides = self.model_dump(exclude_none=True)
        return base.model_copy(update=overrides)


class GameSubscription(DomainModel):
    game_id: str
    league: League
    home_team: str
    away_team: str
    events: EventPreferences = Field(default_factory=EventPreferences)
    subscribed_at: datetime = Field(default_factory=utcnow)
    start_time: Optional[datetime] = None


class PushKeys(DomainModel):
    p256dh: str
    auth: str


class PushEndpoint(DomainModel):
    """Browser PushSubscription JSON: endpoint plus encryption keys."""
    endpoint: str = Field(min_length=1)
    keys: PushKeys
    expiration_time: Optional[float] = None

    @field_validator("endpoint")
    @classmethod
    def require_https(cls, value: str) -> str:
        url = _HTTP_URL.validate_python(value)
        if url.scheme != "https":
            raise ValueError("push endpoint must be an https URL")
        return value

    def subscription_info(self) -> dict[str, object]:
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.keys.p256dh, "auth": self.keys.auth},
        }


class Subscription(DomainModel):
    id: str
    push_subscription: PushEndpoint
    subscribed_games: list[GameSubscription] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    last_seen: datetime = Field(default_factory=utcnow)

    def find_game(self, game_id: str) -> Optional[GameSubscription]:
        return next((g for g in self.subscribed_games if g.game_id == game_id), None)

    def upsert_game(self, game_sub: GameSubscription) -> None:
        """Replace the entry for game_sub.game_id in place, or append it."""
        for idx, existing in enumerate(self.subscribed_games):
            if existing.game_id == game_sub.game_id:
                self.subscribed_games[idx] = game_sub
                return
        self.subscribed_games.append(game_sub)

    def remove_game(self, game_id: str) -> bool:
        before = len(self.subscribed_games)
        self.subscribed_games = [g for g in self.subscribed_games if g.game_id != game_id]
        return len(self.subscribed_games) != before


# ── Per-game cached state ───────────────────────────────────────────────
class CachedGameState(DomainModel):
    """What the last cycle observed for a game."""
    game_id: str
    league: League
    status: GameStatus
    home_score: int = 0
    away_score: int = 0
    home_team: str = ""
    away_team: str = ""
    period: int = 0
    scoring_plays_count: Optional[int] = 0
    last_updated: datetime = Field(default_factory=utcnow)


class GameMeta(DomainModel):
    """Scheduling hints, rewritten whenever a subscriber attaches."""
    league: League
    start_time: Optional[datetime] = None
    tracked_since: datetime = Field(default_factory=utcnow)


# ── Events and payloads ─────────────────────────────────────────────────
class NotificationEvent(DomainModel):
    type: NotificationEventType
    game_id: str
    league: League
    home_team: str
    away_team: str
    home_score: int
    away_score: int
    period: Optional[int] = None
    scorer: Optional[str] = None
    score_type: Optional[str] = None
    strength: Optional[ScoringStrength] = None
    description: Optional[str] = None

    @property
    def idempotency_key(self) -> str:
        raw = "|".join([
            self.game_id,
            self.type.value,
            str(self.period or 0),
            str(self.home_score),
            str(self.away_score),
            self.description or self.score_type or "",
        ])
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class PushPayload(DomainModel):
    title: str
    body: str
    game_id: str
    league: str
    type: NotificationEventType
    url: str


# ── Entry point contracts ───────────────────────────────────────────────
class SubscribeRequest(DomainModel):
    subscription_id: Optional[str] = None
    push_subscription: PushEndpoint
    game_id: str = Field(min_length=1)
    league: League
    home_team: str = Field(min_length=1)
    away_team: str = Field(min_length=1)
    events: Optional[PartialEventPreferences] = None
    start_time: Optional[datetime] = None


class SubscribeResult(DomainModel):
    success: bool = True
    subscription_id: str
    game_subscription: GameSubscription


class UnsubscribeRequest(DomainModel):
    subscription_id: str = Field(min_length=1)
    game_id: str = Field(min_length=1)


class TestPushRequest(DomainModel):
    subscription_id: str = Field(min_length=1)


class CycleResult(DomainModel):
    """Summary returned by one notification cycle."""
    processed: int = 0
    events: int = 0
    notifications: int = 0
    leagues_polled: list[str] = Field(default_factory=list)
    skipped: bool = False
