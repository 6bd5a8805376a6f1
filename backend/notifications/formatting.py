"""
Push payload formatting.

League-specific phrasing lives in lookup tables keyed by league, so
format_payload() stays a single function over (event, league).
"""
from __future__ import annotations

from typing import Callable

from shared.models.domain import NotificationEvent, PushPayload
from shared.models.enums import League, NotificationEventType

GAME_START_TITLES: dict[League, str] = {
    League.NHL: "Puck Drop!",
    League.NBA: "Tip-Off!",
    League.NCAAM: "Tip-Off!",
    League.NCAAW: "Tip-Off!",
    League.MLB: "Play Ball!",
    League.MLS: "Kickoff!",
    League.EPL: "Kickoff!",
    League.NFL: "Kickoff!",
}

SCORING_TITLES: dict[League, str] = {
    League.NHL: "GOAL!",
    League.MLS: "GOAL!",
    League.EPL: "GOAL!",
    League.MLB: "RUN!",
}

DEFAULT_SCORING_TITLE = "SCORE!"
TEST_PAYLOAD_TITLE = "Test Notification"


def _ordinal(n: int) -> str:
    if 11 <= n % 100 <= 13:
        return f"{n}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def hockey_period_label(period: int) -> str:
    if 1 <= period <= 3:
        return f"{_ordinal(period)} Period"
    if period == 4:
        return "OT"
    return f"{period - 3}OT"


def half_label(period: int) -> str:
    if period in (1, 2):
        return f"{_ordinal(period)} Half"
    extra = period - 2
    return f"OT{extra if extra > 1 else ''}"


def inning_label(period: int) -> str:
    return f"{_ordinal(max(period, 1))} Inning"


def quarter_label(period: int) -> str:
    return f"Q{period}"


PERIOD_LABELS: dict[League, Callable[[int], str]] = {
    League.NHL: hockey_period_label,
    League.NCAAM: half_label,
    League.NCAAW: half_label,
    League.MLS: half_label,
    League.EPL: half_label,
    League.MLB: inning_label,
    League.NBA: quarter_label,
    League.NFL: quarter_label,
}


def matchup(event: NotificationEvent) -> str:
    return f"{event.away_team} @ {event.home_team}"


def score_line(event: NotificationEvent) -> str:
    return f"{matchup(event)}: {event.away_score}-{event.home_score}"


def scoring_title(event: NotificationEvent) -> str:
    if event.league == League.NFL:
        return event.score_type or "SCORE"
    return SCORING_TITLES.get(event.league, DEFAULT_SCORING_TITLE)


def game_url(league: str, game_id: str, site_url: str = "") -> str:
    return f"{site_url.rstrip('/')}/{league}/game/{game_id}"


def format_payload(event: NotificationEvent, site_url: str = "") -> PushPayload:
    """Build the push payload shown to a subscriber for one event."""
    if event.type == NotificationEventType.GAME_START:
        title = GAME_START_TITLES.get(event.league, "Game Started")
        body = f"{matchup(event)} has started"
    elif event.type == NotificationEventType.GAME_END:
        title = "FINAL"
        body = score_line(event)
    elif event.type == NotificationEventType.PERIOD_END:
        label = PERIOD_LABELS.get(event.league, quarter_label)(event.period or 0)
        title = f"End of {label}"
        body = score_line(event)
    else:
        title = scoring_title(event)
        body = event.description or score_line(event)

    return PushPayload(
        title=title,
        body=body,
        game_id=event.game_id,
        league=event.league.value,
        type=event.type,
        url=game_url(event.league.value, event.game_id, site_url),
    )


def format_test_payload(site_url: str = "") -> PushPayload:
    return PushPayload(
        title=TEST_PAYLOAD_TITLE,
        body="If you see this, push notifications are working!",
        game_id="test",
        league=League.NHL.value,
        type=NotificationEventType.SCORING,
        url=f"{site_url.rstrip('/')}/{League.NHL.value}",
    )
