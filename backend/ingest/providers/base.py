"""
Abstract base class for scores providers.
Defines the contract the notification pipeline reads game data through.
"""
from __future__ import annotations

import abc

from shared.models.domain import GameSnapshot, ScoringPlay
from shared.models.enums import League
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class ScoresProvider(abc.ABC):
    """
    Abstract scores provider.

    Implementations raise UpstreamFetchError for any fetch or parse failure;
    callers decide whether that failure skips a league or only a timeline.
    """

    def __init__(self, name: str, http_client: ProviderHTTPClient) -> None:
        self._name = name
        self._http = http_client

    @property
    def name(self) -> str:
        return self._name

    async def start(self) -> None:
        """Initialize the provider HTTP client."""
        await self._http.start()

    async def close(self) -> None:
        """Shutdown the provider HTTP client."""
        await self._http.close()

    @abc.abstractmethod
    async def get_scoreboard(self, league: League) -> list[GameSnapshot]:
        """Every game the provider lists for the league today."""
        ...

    @abc.abstractmethod
    async def get_game_summary(self, league: League, game_id: str) -> list[ScoringPlay]:
        """Ordered scoring timeline for one game."""
        ...
