"""
ESPN provider connector.
Fetches scoreboards and game summaries from ESPN's public site API and
normalizes them to GameSnapshot and ScoringPlay models.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from shared.config import get_settings
from shared.errors import UpstreamFetchError
from shared.models.domain import GameSnapshot, ScoringPlay, Team
from shared.models.enums import GameStatus, League, ScoringStrength
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

from ingest.providers.base import ScoresProvider

logger = get_logger(__name__)

_SEASON_TOTAL_RE = re.compile(r"\((\d+)\)")

# Checked in order; the first phrase found in the play text wins.
_STRENGTH_PHRASES: list[tuple[tuple[str, ...], ScoringStrength]] = [
    (("power play", "power-play"), ScoringStrength.POWER_PLAY),
    (("short handed", "shorthanded"), ScoringStrength.SHORT_HANDED),
    (("empty net",), ScoringStrength.EMPTY_NET),
    (("penalty shot",), ScoringStrength.PENALTY_SHOT),
    (("own goal",), ScoringStrength.OWN_GOAL),
]


def _parse_espn_status(status: dict[str, Any]) -> GameStatus:
    """Map an ESPN competition status block to GameStatus."""
    status_type = status.get("type", {}) or {}
    state = str(status_type.get("state", "")).lower()
    name = str(status_type.get("name", "")).lower()

    if state == "in":
        return GameStatus.LIVE
    if state == "post" or status_type.get("completed"):
        return GameStatus.FINAL
    if "postponed" in name:
        return GameStatus.POSTPONED
    if "delayed" in name:
        return GameStatus.DELAYED
    return GameStatus.SCHEDULED


def parse_scoring_strength(text: str) -> Optional[ScoringStrength]:
    lowered = text.lower()
    for phrases, strength in _STRENGTH_PHRASES:
        if any(p in lowered for p in phrases):
            return strength
    return None


def parse_season_total(text: str) -> Optional[int]:
    """Season goal count from play text, e.g. '(22)'."""
    match = _SEASON_TOTAL_RE.search(text)
    return int(match.group(1)) if match else None


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_start_time(raw: Any) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


class ESPNScoresProvider(ScoresProvider):
    """ESPN data provider connector."""

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        http_client = ProviderHTTPClient(
            provider_name="espn",
            base_url=base_url or settings.espn_base_url,
            timeout_s=settings.provider_request_timeout_s,
            max_retries=settings.provider_max_retries,
            transport=transport,
        )
        super().__init__(name="espn", http_client=http_client)

    async def _get_json(
        self,
        league: League,
        path: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        game_id: str | None = None,
    ) -> dict[str, Any]:
        try:
            resp = await self._http.get(path, params=params, endpoint=endpoint)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamFetchError(
                league.value, str(exc) or exc.__class__.__name__, game_id=game_id
            ) from exc
        if not isinstance(data, dict):
            raise UpstreamFetchError(league.value, "response is not a JSON object", game_id=game_id)
        return data

    async def get_scoreboard(self, league: League) -> list[GameSnapshot]:
        """Fetch today's scoreboard for a league."""
        data = await self._get_json(league, f"/{league.espn_path}/scoreboard", "scoreboard")

        games: list[GameSnapshot] = []
        for event in data.get("events", []) or []:
            try:
                game = self._parse_scoreboard_event(event, league)
            except (KeyError, IndexError, TypeError, ValidationError) as exc:
                logger.warning(
                    "espn_event_unparseable",
                    league=league.value,
                    event_id=event.get("id") if isinstance(event, dict) else None,
                    error=str(exc),
                )
                continue
            if game:
                games.append(game)
        return games

    async def get_game_summary(self, league: League, game_id: str) -> list[ScoringPlay]:
        """Fetch the ordered scoring plays for one game."""
        data = await self._get_json(
            league,
            f"/{league.espn_path}/summary",
            "summary",
            params={"event": game_id},
            game_id=game_id,
        )
        raw_plays = data.get("scoringPlays")
        if raw_plays is None:
            raw_plays = [p for p in data.get("plays", []) or [] if p.get("scoringPlay")]

        plays: list[ScoringPlay] = []
        try:
            for play in raw_plays:
                # Entries from scoringPlays may omit the flag; plays entries must carry it.
                if play.get("scoringPlay") is False:
                    continue
                plays.append(self._parse_scoring_play(play))
        except (AttributeError, TypeError, ValidationError) as exc:
            raise UpstreamFetchError(league.value, f"unparseable summary: {exc}", game_id=game_id) from exc
        return plays

    # ── Parsing helpers ─────────────────────────────────────────────────

    def _parse_scoreboard_event(self, event: dict[str, Any], league: League) -> Optional[GameSnapshot]:
        """Parse a single ESPN scoreboard event into a GameSnapshot."""
        comp = event["competitions"][0]
        competitors = comp.get("competitors", [])
        home = next((c for c in competitors if c.get("homeAway") == "home"), None)
        away = next((c for c in competitors if c.get("homeAway") == "away"), None)
        if not home or not away:
            return None

        status = comp.get("status") or event.get("status") or {}
        status_type = status.get("type", {}) or {}

        return GameSnapshot(
            id=str(event["id"]),
            league=league,
            status=_parse_espn_status(status),
            home_team=self._parse_team(home),
            away_team=self._parse_team(away),
            home_score=_to_int(home.get("score")),
            away_score=_to_int(away.get("score")),
            period=_to_int(status.get("period")),
            clock=status.get("displayClock") or None,
            detail=status_type.get("shortDetail") or None,
            start_time=_parse_start_time(event.get("date")),
        )

    @staticmethod
    def _parse_team(competitor: dict[str, Any]) -> Team:
        team = competitor.get("team", {}) or {}
        return Team(
            id=str(team.get("id", "")),
            abbreviation=team.get("abbreviation") or team.get("shortDisplayName") or "",
            display_name=team.get("displayName", ""),
        )

    @staticmethod
    def _parse_scoring_play(play: dict[str, Any]) -> ScoringPlay:
        text = play.get("text", "") or ""
        athletes = play.get("athletesInvolved") or []
        names = [a.get("shortName") or a.get("displayName") or "" for a in athletes]
        period = play.get("period", {})
        clock = play.get("clock", {})
        team = play.get("team", {}) or {}

        return ScoringPlay(
            period=_to_int(period.get("number") if isinstance(period, dict) else period),
            clock=str(clock.get("displayValue", "") if isinstance(clock, dict) else clock or ""),
            team_id=str(team.get("id", "")),
            team=team.get("abbreviation", "") or "",
            scorer=names[0] if names and names[0] else "Unknown",
            assists=[n for n in names[1:] if n],
            strength=parse_scoring_strength(text),
            home_score=_to_int(play.get("homeScore")),
            away_score=_to_int(play.get("awayScore")),
            text=text,
            season_total=parse_season_total(text) if athletes else None,
        )
