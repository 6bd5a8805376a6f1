"""Domain enumerations for the Score Alerts platform."""
from __future__ import annotations

from enum import Enum


class Sport(str, Enum):
    SOCCER = "soccer"
    BASKETBALL = "basketball"
    HOCKEY = "hockey"
    BASEBALL = "baseball"
    FOOTBALL = "football"


class League(str, Enum):
    NHL = "nhl"
    NFL = "nfl"
    NBA = "nba"
    MLB = "mlb"
    MLS = "mls"
    EPL = "epl"
    NCAAM = "ncaam"
    NCAAW = "ncaaw"

    @property
    def sport(self) -> Sport:
        return LEAGUE_SPORT[self]

    @property
    def espn_path(self) -> str:
        return LEAGUE_ESPN_PATHS[self]


LEAGUE_SPORT: dict[League, Sport] = {
    League.NHL: Sport.HOCKEY,
    League.NFL: Sport.FOOTBALL,
    League.NBA: Sport.BASKETBALL,
    League.MLB: Sport.BASEBALL,
    League.MLS: Sport.SOCCER,
    League.EPL: Sport.SOCCER,
    League.NCAAM: Sport.BASKETBALL,
    League.NCAAW: Sport.BASKETBALL,
}

LEAGUE_ESPN_PATHS: dict[League, str] = {
    League.NHL: "hockey/nhl",
    League.NFL: "football/nfl",
    League.NBA: "basketball/nba",
    League.MLB: "baseball/mlb",
    League.MLS: "soccer/usa.1",
    League.EPL: "soccer/eng.1",
    League.NCAAM: "basketball/mens-college-basketball",
    League.NCAAW: "basketball/womens-college-basketball",
}


class GameStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINAL = "final"
    POSTPONED = "postponed"
    DELAYED = "delayed"


class NotificationEventType(str, Enum):
    GAME_START = "gameStart"
    GAME_END = "gameEnd"
    SCORING = "scoring"
    PERIOD_END = "periodEnd"


class ScoringStrength(str, Enum):
    """Hockey goal situation parsed from play text."""
    EVEN = "even"
    POWER_PLAY = "ppg"
    SHORT_HANDED = "shg"
    EMPTY_NET = "en"
    PENALTY_SHOT = "ps"
    OWN_GOAL = "og"


class DeliveryOutcome(str, Enum):
    SUCCESS = "success"
    EXPIRED = "expired"
    TRANSIENT = "transient"
