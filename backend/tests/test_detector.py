"""
Unit tests for event detection.

Run: pytest backend/tests/test_detector.py -v
"""
from __future__ import annotations

from conftest import make_game, make_play, make_state

from shared.models.enums import GameStatus, League, NotificationEventType, ScoringStrength
from notifications.detector import (
    build_game_state,
    detect_events,
    hockey_goal_description,
    nfl_score_type,
)

T = NotificationEventType


def _types(events) -> list[NotificationEventType]:
    return [e.type for e in events]


# ── Status transitions ──────────────────────────────────────────────────

def test_scheduled_to_live_emits_single_game_start() -> None:
    prev = make_state(status=GameStatus.SCHEDULED, period=0)
    game = make_game(status=GameStatus.LIVE, period=1)
    events = detect_events(prev, game, [])
    assert _types(events) == [T.GAME_START]


def test_unchanged_snapshot_after_game_start_emits_nothing() -> None:
    prev = make_state(status=GameStatus.SCHEDULED, period=0)
    game = make_game(status=GameStatus.LIVE, period=1)
    assert detect_events(prev, game, []) == detect_events(prev, game, [])

    persisted = build_game_state(game, prev, [])
    assert detect_events(persisted, game, []) == []


def test_live_to_final_with_period_advance_emits_period_end_then_game_end() -> None:
    prev = make_state(status=GameStatus.LIVE, period=2, home_score=2, away_score=1)
    game = make_game(status=GameStatus.FINAL, period=3, home_score=2, away_score=1)
    events = detect_events(prev, game, None)
    assert _types(events) == [T.PERIOD_END, T.GAME_END]
    assert events[0].period == 2
    assert (events[1].home_score, events[1].away_score) == (2, 1)


def test_multi_period_jump_collapses_to_one_period_end() -> None:
    prev = make_state(status=GameStatus.LIVE, period=1)
    game = make_game(status=GameStatus.LIVE, period=3)
    events = detect_events(prev, game, [])
    assert _types(events) == [T.PERIOD_END]
    assert events[0].period == 1


def test_period_start_from_zero_is_not_a_period_end() -> None:
    prev = make_state(status=GameStatus.SCHEDULED, period=0)
    game = make_game(status=GameStatus.LIVE, period=1)
    assert T.PERIOD_END not in _types(detect_events(prev, game, []))


def test_no_previous_state_emits_nothing() -> None:
    game = make_game(status=GameStatus.LIVE, period=2, home_score=3)
    assert detect_events(None, game, [make_play(1, 0)]) == []


def test_postponed_game_emits_nothing() -> None:
    prev = make_state(status=GameStatus.SCHEDULED, period=0)
    game = make_game(status=GameStatus.POSTPONED, period=0)
    assert detect_events(prev, game, None) == []


# ── Scoring ─────────────────────────────────────────────────────────────

def test_new_plays_emit_one_scoring_event_each_in_order() -> None:
    plays = [
        make_play(1, 0, scorer="A"),
        make_play(1, 1, scorer="B", team="NYR"),
        make_play(2, 1, scorer="C"),
        make_play(2, 2, scorer="D", team="NYR"),
    ]
    prev = make_state(scoring_plays_count=2, home_score=1, away_score=1)
    game = make_game(home_score=2, away_score=2)
    events = detect_events(prev, game, plays)
    assert _types(events) == [T.SCORING, T.SCORING]
    assert [e.scorer for e in events] == ["C", "D"]
    assert [(e.home_score, e.away_score) for e in events] == [(2, 1), (2, 2)]


def test_timeline_shorter_than_count_emits_nothing() -> None:
    prev = make_state(scoring_plays_count=3, home_score=2, away_score=1)
    game = make_game(home_score=2, away_score=1)
    assert detect_events(prev, game, [make_play(1, 0)]) == []


def test_fallback_scoring_when_timeline_unavailable() -> None:
    prev = make_state(home_score=1, away_score=0)
    game = make_game(home_score=1, away_score=1)
    events = detect_events(prev, game, None)
    assert len(events) == 1
    assert events[0].type == T.SCORING
    assert events[0].score_type == "NYR scores"
    assert events[0].description is None


def test_empty_timeline_does_not_fall_back_to_score_delta() -> None:
    prev = make_state(home_score=0, away_score=0)
    game = make_game(home_score=1, away_score=0)
    assert detect_events(prev, game, []) == []


def test_hockey_goal_carries_strength_and_assists() -> None:
    play = make_play(
        1, 0,
        scorer="B. Marchand",
        assists=["D. Pastrnak", "C. McAvoy"],
        text="Brad Marchand (12) Power Play Goal",
    )
    play.strength = ScoringStrength.POWER_PLAY
    prev = make_state()
    events = detect_events(prev, make_game(home_score=1), [play])
    assert events[0].strength == ScoringStrength.POWER_PLAY
    assert events[0].description == "B. Marchand (PP) - Assists: D. Pastrnak, C. McAvoy"


def test_hockey_description_without_strength_or_assists() -> None:
    assert hockey_goal_description(make_play(1, 0, scorer="D. Pastrnak")) == "D. Pastrnak"


def test_football_score_type_from_point_delta() -> None:
    prev = make_state(league=League.NFL, scoring_plays_count=1, home_score=7, away_score=0)
    game = make_game(league=League.NFL, home_score=7, away_score=3)
    plays = [make_play(7, 0, text=""), make_play(7, 3, text="")]
    events = detect_events(prev, game, plays)
    assert events[0].score_type == "FIELD GOAL"


def test_football_score_type_prefers_text_keywords() -> None:
    assert nfl_score_type(3, "J. Allen 12 yd pass to S. Diggs (Touchdown)") == "TOUCHDOWN"
    assert nfl_score_type(2, "Two-Point conversion attempt succeeds") == "TWO-POINT CONVERSION"
    assert nfl_score_type(7) == "TOUCHDOWN + XP"
    assert nfl_score_type(5) == "SCORE"


def test_basketball_scoring_uses_play_text() -> None:
    prev = make_state(league=League.NBA)
    game = make_game(league=League.NBA, home_score=3)
    events = detect_events(prev, game, [make_play(3, 0, text="J. Tatum makes 26-foot three")])
    assert events[0].description == "J. Tatum makes 26-foot three"
    assert events[0].score_type is None


# ── Combined and determinism ────────────────────────────────────────────

def test_start_and_scoring_in_same_cycle_are_ordered() -> None:
    prev = make_state(status=GameStatus.SCHEDULED, period=0)
    game = make_game(status=GameStatus.LIVE, period=1, home_score=1)
    events = detect_events(prev, game, [make_play(1, 0)])
    assert _types(events) == [T.GAME_START, T.SCORING]


def test_detection_is_deterministic() -> None:
    prev = make_state(status=GameStatus.LIVE, period=1, scoring_plays_count=1, home_score=1)
    game = make_game(status=GameStatus.FINAL, period=3, home_score=2, away_score=1)
    plays = [make_play(1, 0), make_play(1, 1, team="NYR"), make_play(2, 1)]
    first = detect_events(prev, game, plays)
    for _ in range(5):
        assert detect_events(prev, game, plays) == first


# ── Persisted state ─────────────────────────────────────────────────────

def test_build_state_keeps_previous_count_when_timeline_missing() -> None:
    prev = make_state(scoring_plays_count=4, home_score=3, away_score=1)
    state = build_game_state(make_game(home_score=3, away_score=1, period=2), prev, None)
    assert state.scoring_plays_count == 4
    assert state.period == 2


def test_build_state_count_unknown_after_uncovered_score_change() -> None:
    prev = make_state(scoring_plays_count=4, home_score=3, away_score=1)
    state = build_game_state(make_game(home_score=4, away_score=1), prev, None)
    assert state.scoring_plays_count is None
    assert state.home_score == 4


def test_first_sighting_mid_game_without_timeline_has_unknown_count() -> None:
    assert build_game_state(make_game(home_score=2, away_score=1), None, None).scoring_plays_count is None
    assert build_game_state(make_game(), None, None).scoring_plays_count == 0


def test_unknown_count_rebaselines_from_scores_without_resending() -> None:
    prev = make_state(home_score=2, away_score=1, scoring_plays_count=None)
    plays = [make_play(1, 0), make_play(1, 1, team="NYR"), make_play(2, 1)]
    game = make_game(home_score=2, away_score=1)
    assert detect_events(prev, game, plays) == []
    assert build_game_state(game, prev, plays).scoring_plays_count == 3


def test_unknown_count_still_emits_plays_beyond_last_seen_score() -> None:
    prev = make_state(home_score=1, away_score=1, scoring_plays_count=None)
    plays = [make_play(1, 0, scorer="A"), make_play(1, 1, scorer="B", team="NYR"), make_play(2, 1, scorer="C")]
    events = detect_events(prev, make_game(home_score=2, away_score=1), plays)
    assert [e.scorer for e in events] == ["C"]


def test_build_state_uses_timeline_length() -> None:
    state = build_game_state(make_game(), None, [make_play(1, 0), make_play(2, 0)])
    assert state.scoring_plays_count == 2
    assert state.home_team == "BOS"
