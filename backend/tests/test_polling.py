"""Polling window decisions for the notification scheduler."""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from conftest import FakeRedisManager, make_state

from shared.models.domain import GameMeta
from shared.models.enums import GameStatus, League
from notifications.store import NotificationStore
from scheduler.engine.polling import PollingScheduler, expected_duration


@pytest.fixture
def scheduler(store: NotificationStore, settings) -> PollingScheduler:
    return PollingScheduler(store, settings)


async def _track(store: NotificationStore, game_id: str, league: League, start: datetime | None) -> None:
    await store.attach(game_id, f"sub-{game_id}", GameMeta(league=league, start_time=start))


def test_expected_duration_by_sport() -> None:
    assert expected_duration(League.NHL) == timedelta(hours=3)
    assert expected_duration(League.EPL) == timedelta(hours=2)
    assert expected_duration(League.NBA) == timedelta(hours=2, minutes=30)


@pytest.mark.parametrize(
    "start_delta,expected",
    [
        (timedelta(hours=1), False),
        (timedelta(minutes=30), True),
        (timedelta(hours=-2), True),
        (timedelta(hours=-4, minutes=-30), True),
        (timedelta(hours=-4, minutes=-31), False),
    ],
)
def test_window_edges_for_hockey(
    scheduler: PollingScheduler, now: datetime, start_delta: timedelta, expected: bool
) -> None:
    # Lead 30m, hockey 3h, trail 90m.
    meta = GameMeta(league=League.NHL, start_time=now + start_delta)
    assert scheduler.in_window(meta, now) is expected


def test_unknown_start_time_is_always_in_window(scheduler: PollingScheduler, now: datetime) -> None:
    meta = GameMeta(league=League.MLB, tracked_since=now - timedelta(hours=2))
    assert scheduler.in_window(meta, now) is True
    assert scheduler.is_stale(meta, now) is False


def test_unknown_start_time_goes_stale_once_unobserved(scheduler: PollingScheduler, now: datetime) -> None:
    meta = GameMeta(league=League.NFL, tracked_since=now - timedelta(hours=40))
    assert scheduler.is_stale(meta, now) is True
    assert scheduler.is_stale(meta, now, last_observed=now - timedelta(hours=1)) is False
    assert scheduler.is_stale(meta, now, last_observed=now - timedelta(hours=37)) is True


def test_naive_start_time_is_treated_as_utc(scheduler: PollingScheduler, now: datetime) -> None:
    meta = GameMeta(league=League.NHL, start_time=now.replace(tzinfo=None) - timedelta(hours=1))
    assert scheduler.in_window(meta, now) is True


@pytest.mark.asyncio
async def test_plan_collects_leagues_sorted_and_deduplicated(
    scheduler: PollingScheduler, store: NotificationStore, now: datetime
) -> None:
    await _track(store, "A", League.NHL, now - timedelta(hours=1))
    await _track(store, "B", League.NHL, now)
    await _track(store, "C", League.NBA, now + timedelta(minutes=10))
    await _track(store, "D", League.MLB, now + timedelta(days=1))

    plan = await scheduler.plan(await store.active_games(), now=now)

    assert plan.leagues == [League.NBA, League.NHL]
    assert plan.stale_games == []


@pytest.mark.asyncio
async def test_plan_empty_when_nothing_in_window(
    scheduler: PollingScheduler, store: NotificationStore, now: datetime
) -> None:
    await _track(store, "A", League.NFL, now + timedelta(hours=6))
    plan = await scheduler.plan(await store.active_games(), now=now)
    assert plan.empty


@pytest.mark.asyncio
async def test_game_last_seen_live_is_polled_past_its_window(
    scheduler: PollingScheduler, store: NotificationStore, now: datetime
) -> None:
    await _track(store, "A", League.MLB, now - timedelta(hours=6))
    await store.save_game_state(make_state("A", league=League.MLB, status=GameStatus.LIVE))

    plan = await scheduler.plan(["A"], now=now)

    assert plan.leagues == [League.MLB]


@pytest.mark.asyncio
async def test_long_past_game_is_reported_stale(
    scheduler: PollingScheduler, store: NotificationStore, now: datetime
) -> None:
    await _track(store, "A", League.NHL, now - timedelta(days=2))
    plan = await scheduler.plan(["A"], now=now)
    assert plan.stale_games == ["A"]
    assert plan.empty


@pytest.mark.asyncio
async def test_missing_meta_falls_back_to_state_league(
    scheduler: PollingScheduler,
    store: NotificationStore,
    fake_redis: FakeRedisManager,
    now: datetime,
) -> None:
    await store.save_game_state(make_state("A", league=League.NCAAW, status=GameStatus.SCHEDULED))
    fake_redis.sets["active_games"] = {"A"}

    plan = await scheduler.plan(["A"], now=now)

    assert plan.leagues == [League.NCAAW]


@pytest.mark.asyncio
async def test_game_with_no_meta_or_state_is_reported_stale(
    scheduler: PollingScheduler, now: datetime
) -> None:
    plan = await scheduler.plan(["ghost"], now=now)
    assert plan.empty
    assert plan.stale_games == ["ghost"]


@pytest.mark.asyncio
async def test_state_only_game_without_start_uses_last_observation(
    scheduler: PollingScheduler,
    store: NotificationStore,
    now: datetime,
) -> None:
    old = make_state("A", league=League.NBA, status=GameStatus.SCHEDULED)
    await store.save_game_state(old.model_copy(update={"last_updated": now - timedelta(days=2)}))

    plan = await scheduler.plan(["A"], now=now)

    assert plan.stale_games == ["A"]


@pytest.mark.asyncio
async def test_unreadable_game_does_not_break_plan(
    scheduler: PollingScheduler,
    store: NotificationStore,
    fake_redis: FakeRedisManager,
    now: datetime,
) -> None:
    await _track(store, "A", League.NHL, now)
    await _track(store, "B", League.NBA, now)
    fake_redis.fail_keys.add("game:A:meta")

    plan = await scheduler.plan(["A", "B"], now=now)

    assert plan.leagues == [League.NBA]
