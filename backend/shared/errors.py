"""
Error taxonomy for the notification pipeline.

Per-game and per-subscriber failures are raised as one of these and caught
at the unit of work that owns them. Only StoreUnavailableError is allowed to
escape a notification cycle.
"""
from __future__ import annotations

from typing import Optional


class NotifierError(Exception):
    """Base class for all pipeline errors."""


class UpstreamFetchError(NotifierError):
    """A scoreboard or game summary could not be fetched or parsed."""

    def __init__(self, league: str, reason: str, game_id: Optional[str] = None) -> None:
        self.league = league
        self.game_id = game_id
        self.reason = reason
        target = f"{league}/{game_id}" if game_id else league
        super().__init__(f"Upstream fetch failed for {target}: {reason}")


class StoreError(NotifierError):
    """A single store read or write failed or timed out."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Store operation on '{key}' failed: {reason}")


class StoreUnavailableError(StoreError):
    """The store cannot serve the working set at all; aborts the cycle."""


class MalformedSubscriptionData(NotifierError):
    """A stored record does not match the expected schema."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Malformed record at '{key}': {reason}")


class SubscriptionNotFound(NotifierError):
    def __init__(self, subscription_id: str) -> None:
        self.subscription_id = subscription_id
        super().__init__(f"Subscription '{subscription_id}' not found")


class DeliveryExpired(NotifierError):
    """The push endpoint is permanently gone (404/410)."""

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Push endpoint expired (HTTP {status_code})")


class DeliveryTransient(NotifierError):
    """The push failed for a reason that may clear on its own."""

    def __init__(self, reason: str, status_code: Optional[int] = None) -> None:
        self.reason = reason
        self.status_code = status_code
        suffix = f" (HTTP {status_code})" if status_code else ""
        super().__init__(f"Push delivery failed: {reason}{suffix}")


class UnsupportedLeagueError(NotifierError):
    def __init__(self, league: str) -> None:
        self.league = league
        super().__init__(f"League '{league}' does not accept notification subscriptions")
