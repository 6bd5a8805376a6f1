"""
Event detection: diff the cached state of a game against a fresh snapshot.

Everything here is pure. The pipeline loads the previous state, calls
detect_events(), dispatches the result and then persists build_game_state().
"""
from __future__ import annotations

from typing import Callable, Optional, Sequence

from shared.models.domain import (
    CachedGameState,
    GameSnapshot,
    NotificationEvent,
    ScoringPlay,
)
from shared.models.enums import (
    GameStatus,
    League,
    NotificationEventType,
    ScoringStrength,
)

STRENGTH_LABELS: dict[ScoringStrength, str] = {
    ScoringStrength.POWER_PLAY: "PP",
    ScoringStrength.SHORT_HANDED: "SH",
    ScoringStrength.EMPTY_NET: "EN",
    ScoringStrength.PENALTY_SHOT: "PS",
    ScoringStrength.OWN_GOAL: "OG",
}

# Keyword checks run before the point-delta lookup.
NFL_SCORE_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("touchdown",), "TOUCHDOWN"),
    (("field goal",), "FIELD GOAL"),
    (("safety",), "SAFETY"),
    (("two-point", "2-point"), "TWO-POINT CONVERSION"),
    (("extra point", "pat"), "EXTRA POINT"),
]

NFL_SCORE_BY_POINTS: dict[int, str] = {
    6: "TOUCHDOWN",
    7: "TOUCHDOWN + XP",
    8: "TOUCHDOWN + 2PT",
    3: "FIELD GOAL",
    2: "SAFETY",
    1: "EXTRA POINT",
}

# Statuses in which a finished period can be observed.
_PERIOD_END_STATUSES = {GameStatus.LIVE, GameStatus.FINAL}


def nfl_score_type(points: int, text: str = "") -> str:
    lowered = text.lower()
    for keywords, label in NFL_SCORE_KEYWORDS:
        if any(k in lowered for k in keywords):
            return label
    return NFL_SCORE_BY_POINTS.get(points, "SCORE")


def hockey_goal_description(play: ScoringPlay) -> str:
    """'Scorer (PP) - Assists: A, B'"""
    parts = [play.scorer]
    label = STRENGTH_LABELS.get(play.strength) if play.strength else None
    if label:
        parts.append(f"({label})")
    if play.assists:
        parts.append(f"- Assists: {', '.join(play.assists)}")
    return " ".join(parts)


def _base_event(
    event_type: NotificationEventType,
    game: GameSnapshot,
    home_score: int,
    away_score: int,
    **fields: object,
) -> NotificationEvent:
    return NotificationEvent(
        type=event_type,
        game_id=game.id,
        league=game.league,
        home_team=game.home_team.abbreviation,
        away_team=game.away_team.abbreviation,
        home_score=home_score,
        away_score=away_score,
        **fields,
    )


def _hockey_scoring(game: GameSnapshot, play: ScoringPlay, before: tuple[int, int]) -> NotificationEvent:
    return _base_event(
        NotificationEventType.SCORING,
        game,
        play.home_score,
        play.away_score,
        period=play.period,
        scorer=play.scorer,
        strength=play.strength,
        description=hockey_goal_description(play),
    )


def _football_scoring(game: GameSnapshot, play: ScoringPlay, before: tuple[int, int]) -> NotificationEvent:
    points = abs((play.home_score + play.away_score) - sum(before))
    return _base_event(
        NotificationEventType.SCORING,
        game,
        play.home_score,
        play.away_score,
        period=play.period,
        scorer=play.scorer if play.scorer != "Unknown" else None,
        score_type=nfl_score_type(points, play.text),
        description=play.text or None,
    )


def _plain_scoring(game: GameSnapshot, play: ScoringPlay, before: tuple[int, int]) -> NotificationEvent:
    return _base_event(
        NotificationEventType.SCORING,
        game,
        play.home_score,
        play.away_score,
        period=play.period,
        scorer=play.scorer if play.scorer != "Unknown" else None,
        description=play.text or None,
    )


ScoringBuilder = Callable[[GameSnapshot, ScoringPlay, tuple[int, int]], NotificationEvent]

SCORING_BUILDERS: dict[League, ScoringBuilder] = {
    League.NHL: _hockey_scoring,
    League.NFL: _football_scoring,
}


def next_scoring_count(
    game: GameSnapshot,
    prev: Optional[CachedGameState],
    plays: Optional[Sequence[ScoringPlay]],
) -> Optional[int]:
    """
    Scoring plays observed so far, or None when unknown.

    The count becomes unknown when points appear that no timeline covered:
    a first sighting of a game already scoring, or a score change while the
    timeline is down. The next successful fetch re-baselines from scores.
    """
    if plays is not None:
        return len(plays)
    if prev is None:
        return 0 if game.home_score + game.away_score == 0 else None
    if prev.scoring_plays_count is None:
        return None
    if game.home_score + game.away_score > prev.home_score + prev.away_score:
        return None
    return prev.scoring_plays_count


def _plays_already_seen(prev: CachedGameState, plays: Sequence[ScoringPlay]) -> int:
    if prev.scoring_plays_count is not None:
        return prev.scoring_plays_count
    seen_total = prev.home_score + prev.away_score
    return sum(1 for play in plays if play.home_score + play.away_score <= seen_total)


def build_game_state(
    game: GameSnapshot,
    prev: Optional[CachedGameState],
    plays: Optional[Sequence[ScoringPlay]],
) -> CachedGameState:
    """The state to persist after this cycle, whether or not events fired."""
    return CachedGameState(
        game_id=game.id,
        league=game.league,
        status=game.status,
        home_score=game.home_score,
        away_score=game.away_score,
        home_team=game.home_team.abbreviation,
        away_team=game.away_team.abbreviation,
        period=game.period,
        scoring_plays_count=next_scoring_count(game, prev, plays),
    )


def detect_events(
    prev: Optional[CachedGameState],
    game: GameSnapshot,
    plays: Optional[Sequence[ScoringPlay]] = None,
) -> list[NotificationEvent]:
    """
    Diff two observations of one game into notification events.

    Args:
        prev: State persisted by the previous cycle. None means this is the
            first observation and nothing can be detected yet.
        game: Current provider snapshot.
        plays: Full scoring timeline, or None when it could not be fetched.

    Returns:
        Events in emission order: gameStart, periodEnd, scoring plays in
        timeline order, gameEnd.
    """
    if prev is None:
        return []

    events: list[NotificationEvent] = []

    if prev.status == GameStatus.SCHEDULED and game.status == GameStatus.LIVE:
        events.append(
            _base_event(NotificationEventType.GAME_START, game, game.home_score, game.away_score)
        )

    # Collapses multi-period jumps into one event naming the period that just ended.
    if (
        prev.period >= 1
        and game.period > prev.period
        and game.status in _PERIOD_END_STATUSES
    ):
        events.append(
            _base_event(
                NotificationEventType.PERIOD_END,
                game,
                game.home_score,
                game.away_score,
                period=prev.period,
            )
        )

    events.extend(_scoring_events(prev, game, plays))

    if prev.status == GameStatus.LIVE and game.status == GameStatus.FINAL:
        events.append(
            _base_event(NotificationEventType.GAME_END, game, game.home_score, game.away_score)
        )

    return events


def _scoring_events(
    prev: CachedGameState,
    game: GameSnapshot,
    plays: Optional[Sequence[ScoringPlay]],
) -> list[NotificationEvent]:
    if plays is None:
        if game.home_score + game.away_score <= prev.home_score + prev.away_score:
            return []
        side = (
            game.home_team.abbreviation
            if game.home_score > prev.home_score
            else game.away_team.abbreviation
        )
        return [
            _base_event(
                NotificationEventType.SCORING,
                game,
                game.home_score,
                game.away_score,
                period=game.period or None,
                score_type=f"{side} scores",
            )
        ]

    start = _plays_already_seen(prev, plays)
    if len(plays) <= start:
        return []

    build = SCORING_BUILDERS.get(game.league, _plain_scoring)
    if start > 0:
        before = (plays[start - 1].home_score, plays[start - 1].away_score)
    else:
        before = (0, 0)

    events: list[NotificationEvent] = []
    for play in plays[start:]:
        events.append(build(game, play, before))
        before = (play.home_score, play.away_score)
    return events
