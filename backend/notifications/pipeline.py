"""
The notification cycle.

One call to process_notifications() is a run-to-completion batch:

    plan leagues -> fetch scoreboards -> per game: load state, fetch
    timeline, detect, dispatch, save state -> clean up finished games

Per-league, per-game and per-subscriber failures are isolated. Only a
store that cannot serve the Active-Games set aborts the cycle.
"""
from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from typing import AsyncIterator, Optional

import structlog

from shared.config import SerializationMode, Settings, get_settings
from shared.errors import NotifierError, StoreError, UpstreamFetchError
from shared.models.domain import CycleResult, GameSnapshot, ScoringPlay
from shared.models.enums import GameStatus, League
from shared.utils.logging import get_logger
from shared.utils.metrics import (
    ACTIVE_GAMES,
    CYCLE_DURATION,
    EVENTS_DETECTED,
    LEAGUES_POLLED,
    NOTIFY_CYCLES,
    SCOREBOARD_FETCH_ERRORS,
)

from ingest.providers.base import ScoresProvider
from notifications.detector import build_game_state, detect_events
from notifications.dispatcher import Dispatcher
from notifications.lifecycle import SubscriptionLifecycleManager
from notifications.store import NotificationStore
from scheduler.engine.polling import PollingScheduler

logger = get_logger(__name__)

RUN_LOCK_NAME = "run"
_TIMELINE_STATUSES = {GameStatus.LIVE, GameStatus.FINAL}


class NotificationPipeline:
    """Wires the scheduler, provider, detector and dispatcher into one cycle."""

    def __init__(
        self,
        store: NotificationStore,
        provider: ScoresProvider,
        dispatcher: Dispatcher,
        lifecycle: SubscriptionLifecycleManager,
        scheduler: PollingScheduler,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._dispatcher = dispatcher
        self._lifecycle = lifecycle
        self._scheduler = scheduler
        self._settings = settings or get_settings()
        self._owner = self._settings.instance_id or f"notifier-{uuid.uuid4().hex[:8]}"

    # ── Entry point ─────────────────────────────────────────────────────
    async def process_notifications(self) -> CycleResult:
        """
        Run one notification cycle.

        Raises:
            StoreUnavailableError: The Active-Games set could not be read.
        """
        start = time.perf_counter()
        mode = self._settings.serialization_mode

        if mode == SerializationMode.RUN_LOCK:
            acquired = await self._store.acquire_lock(
                RUN_LOCK_NAME, self._owner, self._settings.run_lock_ttl_s
            )
            if not acquired:
                logger.info("notify_cycle_skipped", reason="run_lock_held")
                NOTIFY_CYCLES.labels(result="skipped").inc()
                return CycleResult(skipped=True)

        try:
            with structlog.contextvars.bound_contextvars(cycle_id=uuid.uuid4().hex[:12]):
                result = await self._run_cycle()
        except Exception:
            NOTIFY_CYCLES.labels(result="error").inc()
            raise
        finally:
            if mode == SerializationMode.RUN_LOCK:
                await self._release(RUN_LOCK_NAME)
            CYCLE_DURATION.observe(time.perf_counter() - start)

        NOTIFY_CYCLES.labels(result="ok").inc()
        logger.info(
            "notify_cycle_complete",
            processed=result.processed,
            events=result.events,
            notifications=result.notifications,
            leagues=result.leagues_polled,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return result

    async def _run_cycle(self) -> CycleResult:
        active = await self._store.active_games()
        ACTIVE_GAMES.set(len(active))
        if not active:
            LEAGUES_POLLED.set(0)
            return CycleResult()

        plan = await self._scheduler.plan(active)
        LEAGUES_POLLED.set(len(plan.leagues))
        await self._sweep_stale(plan.stale_games)
        if plan.empty:
            return CycleResult()

        snapshots = await self._fetch_scoreboards(plan.leagues)

        stale = set(plan.stale_games)
        results = await asyncio.gather(
            *(
                self._process_game_isolated(game_id, snapshots.get(game_id))
                for game_id in active
                if game_id not in stale
            )
        )
        return CycleResult(
            processed=len(active),
            events=sum(r[0] for r in results),
            notifications=sum(r[1] for r in results),
            leagues_polled=[lg.value for lg in plan.leagues],
        )

    # ── Scoreboards ─────────────────────────────────────────────────────
    async def _fetch_scoreboards(self, leagues: list[League]) -> dict[str, GameSnapshot]:
        """Fetch every league concurrently and merge into game_id -> snapshot."""
        boards = await asyncio.gather(*(self._fetch_league(lg) for lg in leagues))
        merged: dict[str, GameSnapshot] = {}
        for games in boards:
            for game in games:
                merged[game.id] = game
        return merged

    async def _fetch_league(self, league: League) -> list[GameSnapshot]:
        try:
            return await self._provider.get_scoreboard(league)
        except UpstreamFetchError as exc:
            SCOREBOARD_FETCH_ERRORS.labels(league=league.value).inc()
            logger.warning("scoreboard_fetch_failed", league=league.value, error=exc.reason)
            return []

    async def _fetch_timeline(self, game: GameSnapshot) -> Optional[list[ScoringPlay]]:
        if not self._settings.fetch_scoring_timeline or game.status not in _TIMELINE_STATUSES:
            return None
        try:
            return await self._provider.get_game_summary(game.league, game.id)
        except UpstreamFetchError as exc:
            logger.warning(
                "scoring_timeline_unavailable",
                game_id=game.id,
                league=game.league.value,
                error=exc.reason,
            )
            return None

    # ── Per game ────────────────────────────────────────────────────────
    async def _process_game_isolated(
        self, game_id: str, game: Optional[GameSnapshot]
    ) -> tuple[int, int]:
        if game is None:
            # Feeds transiently omit games; no event and no state change.
            logger.debug("game_not_observable", game_id=game_id)
            return 0, 0
        try:
            async with self._game_serialized(game_id) as owned:
                if not owned:
                    logger.info("game_skipped", game_id=game_id, reason="game_lock_held")
                    return 0, 0
                return await self._process_game(game)
        except NotifierError as exc:
            logger.error(
                "game_processing_failed",
                game_id=game_id,
                league=game.league.value,
                error=str(exc),
            )
            return 0, 0
        except Exception as exc:
            logger.error(
                "game_processing_error",
                game_id=game_id,
                league=game.league.value,
                error=str(exc),
                exc_info=True,
            )
            return 0, 0

    @contextlib.asynccontextmanager
    async def _game_serialized(self, game_id: str) -> AsyncIterator[bool]:
        if self._settings.serialization_mode != SerializationMode.GAME_LOCK:
            yield True
            return
        name = f"game:{game_id}"
        acquired = await self._store.acquire_lock(name, self._owner, self._settings.game_lock_ttl_s)
        try:
            yield acquired
        finally:
            if acquired:
                await self._release(name)

    async def _process_game(self, game: GameSnapshot) -> tuple[int, int]:
        prev = await self._store.get_game_state(game.id)
        plays = await self._fetch_timeline(game)
        events = detect_events(prev, game, plays)

        sent = 0
        if events:
            logger.info(
                "events_detected",
                game_id=game.id,
                league=game.league.value,
                types=[e.type.value for e in events],
            )
            recipients = await self._dispatcher.load_recipients(game.id)
            expired: set[str] = set()
            # Sequential per game so subscribers see events in detection order.
            for event in events:
                EVENTS_DETECTED.labels(league=event.league.value, event_type=event.type.value).inc()
                if self._settings.event_dedup_enabled and not await self._store.mark_event_once(
                    event.idempotency_key
                ):
                    logger.info("event_deduplicated", game_id=game.id, event_type=event.type.value)
                    continue
                sent += await self._dispatcher.dispatch(event, recipients, expired)

        # Checkpoint after dispatch: a crash in between re-detects next cycle.
        await self._store.save_game_state(build_game_state(game, prev, plays))

        if game.status == GameStatus.FINAL:
            await self._lifecycle.cleanup_finished_game(game.id)
        return len(events), sent

    async def _sweep_stale(self, game_ids: list[str]) -> None:
        for game_id in game_ids:
            try:
                await self._lifecycle.cleanup_finished_game(game_id, reason="stale")
            except StoreError as exc:
                logger.warning("stale_game_cleanup_failed", game_id=game_id, error=exc.reason)

    async def _release(self, name: str) -> None:
        try:
            await self._store.release_lock(name, self._owner)
        except StoreError as exc:
            # The lock's TTL frees it.
            logger.warning("lock_release_failed", lock=name, error=exc.reason)
