"""
Polling window engine for the notification scheduler.
Decides, once per cycle, which leagues have a tracked game close enough to
live play to be worth a scoreboard request.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from shared.config import Settings, get_settings
from shared.errors import StoreError
from shared.models.domain import CachedGameState, GameMeta
from shared.models.enums import GameStatus, League, Sport
from shared.utils.logging import get_logger

from notifications.store import NotificationStore

logger = get_logger(__name__)

# ── Expected wall-clock length of a game, by sport ──────────────────────
SPORT_DURATION: dict[Sport, timedelta] = {
    Sport.HOCKEY: timedelta(hours=3),
    Sport.FOOTBALL: timedelta(hours=3, minutes=30),
    Sport.BASKETBALL: timedelta(hours=2, minutes=30),
    Sport.BASEBALL: timedelta(hours=3, minutes=30),
    Sport.SOCCER: timedelta(hours=2),
}

# States in which a game is polled regardless of its start time.
_ALWAYS_POLL = {GameStatus.LIVE, GameStatus.DELAYED}


def expected_duration(league: League) -> timedelta:
    return SPORT_DURATION.get(league.sport, timedelta(hours=3))


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass
class PollPlan:
    """Result of one scheduling decision."""
    leagues: list[League] = field(default_factory=list)
    stale_games: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.leagues


class PollingScheduler:
    """
    Computes the leagues to query this cycle.

    A game is inside its polling window when

        start - lead_time  <=  now  <=  start + expected_duration + trail_time

    Games with no known start time, and games last seen live, always count.
    Games past stale_game_after_s are reported for cleanup instead: measured
    from the start time when known, otherwise from the last observation or
    from when the game was first tracked, whichever is later. Games with
    neither meta nor state can no longer be polled and are reported too.
    """

    def __init__(self, store: NotificationStore, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings or get_settings()

    def in_window(self, meta: GameMeta, now: datetime) -> bool:
        if meta.start_time is None:
            return True
        start = _as_utc(meta.start_time)
        opens = start - timedelta(seconds=self._settings.poll_lead_time_s)
        closes = (
            start
            + expected_duration(meta.league)
            + timedelta(seconds=self._settings.poll_trail_time_s)
        )
        return opens <= now <= closes

    def is_stale(
        self, meta: GameMeta, now: datetime, last_observed: Optional[datetime] = None
    ) -> bool:
        if meta.start_time is not None:
            reference = _as_utc(meta.start_time)
        else:
            reference = _as_utc(meta.tracked_since)
            if last_observed is not None:
                reference = max(reference, _as_utc(last_observed))
        return now - reference > timedelta(seconds=self._settings.stale_game_after_s)

    async def plan(self, active_games: list[str], now: Optional[datetime] = None) -> PollPlan:
        """
        Decide which leagues to poll for the given working set.

        Args:
            active_games: Game ids currently in the Active-Games set.
            now: Evaluation time, defaults to the current UTC time.

        Returns:
            PollPlan with leagues sorted by tag and stale game ids.
        """
        now = now or datetime.now(timezone.utc)
        leagues: set[League] = set()
        stale: list[str] = []

        for game_id in active_games:
            try:
                meta, state = await self._resolve(game_id)
            except StoreError as exc:
                logger.warning("poll_plan_game_unreadable", game_id=game_id, error=exc.reason)
                continue
            if meta is None:
                logger.info("poll_plan_game_untracked", game_id=game_id)
                stale.append(game_id)
                continue

            last_status = state.status if state else None
            last_observed = state.last_updated if state else None
            if last_status in _ALWAYS_POLL:
                leagues.add(meta.league)
            elif self.is_stale(meta, now, last_observed):
                stale.append(game_id)
            elif self.in_window(meta, now):
                leagues.add(meta.league)

        plan = PollPlan(
            leagues=sorted(leagues, key=lambda lg: lg.value),
            stale_games=stale,
        )
        logger.debug(
            "poll_plan_computed",
            active=len(active_games),
            leagues=[lg.value for lg in plan.leagues],
            stale=len(stale),
        )
        return plan

    async def _resolve(
        self, game_id: str
    ) -> tuple[Optional[GameMeta], Optional[CachedGameState]]:
        """League/start time for a game plus its last persisted state."""
        meta = await self._store.get_game_meta(game_id)
        state = await self._store.get_game_state(game_id)
        if meta is None and state is not None:
            meta = GameMeta(league=state.league, tracked_since=state.last_updated)
        return meta, state
