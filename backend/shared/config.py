"""
Central configuration for all Score Alerts services.
Uses pydantic-settings for env-based config with validation.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class SerializationMode(str, Enum):
    """How per-game state writes are kept single-writer."""
    RUN_LOCK = "run_lock"      # one invocation at a time, store-level lock
    GAME_LOCK = "game_lock"    # overlapping invocations, one lock per game
    EXTERNAL = "external"      # caller guarantees invocations never overlap


class Settings(BaseSettings):
    """Root settings shared across all services."""

    model_config = SettingsConfigDict(
        env_prefix="SA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    log_level: str = "INFO"
    instance_id: str = Field(default="", description="Unique pod/container ID for lock ownership")

    # ── Redis ────────────────────────────────────────────────
    redis_url: RedisDsn = Field(default="redis://redis:6379/0")
    redis_max_connections: int = 50
    store_timeout_s: float = 5.0

    # ── API ──────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 1
    cors_origins: list[str] = ["*"]
    cron_secret: str = ""
    site_url: str = Field(default="", description="Prefix for notification target URLs")

    # ── Scores provider ──────────────────────────────────────
    espn_base_url: str = "https://site.api.espn.com/apis/site/v2/sports"
    provider_request_timeout_s: float = 10.0
    provider_max_retries: int = 2
    fetch_scoring_timeline: bool = True

    # ── Web push ─────────────────────────────────────────────
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:notifications@example.com"
    push_ttl_s: int = 3600
    push_timeout_s: float = 10.0
    push_urgency: str = "high"

    # ── Notifications ────────────────────────────────────────
    notification_leagues: list[str] = Field(
        default=["nhl", "nfl", "nba", "mlb", "mls", "epl", "ncaam", "ncaaw"],
        description="Leagues that accept game subscriptions.",
    )
    poll_lead_time_s: int = 30 * 60
    poll_trail_time_s: int = 90 * 60
    stale_game_after_s: int = 36 * 3600
    subscription_ttl_s: int = 60 * 60 * 24 * 30
    game_state_ttl_s: int = 60 * 60 * 6

    # ── Serialization / idempotency ──────────────────────────
    serialization_mode: SerializationMode = SerializationMode.RUN_LOCK
    run_lock_ttl_s: int = 120
    game_lock_ttl_s: int = 60
    event_dedup_enabled: bool = False
    event_dedup_ttl_s: int = 60 * 60 * 6

    # ── Scheduler worker ─────────────────────────────────────
    notify_interval_s: float = 60.0

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = True
    metrics_port: int = 9090

    @property
    def redis_url_str(self) -> str:
        return str(self.redis_url)

    @property
    def redis_url_safe_log(self) -> str:
        """URL with password redacted, for logging only."""
        try:
            u = urlparse(str(self.redis_url))
            host = u.hostname or "?"
            netloc = ("***@" if u.password else "") + host + (f":{u.port}" if u.port else "")
            return f"{u.scheme}://{netloc}{u.path}"
        except Exception:
            return "redis://***"

    @property
    def push_configured(self) -> bool:
        return bool(self.vapid_public_key and self.vapid_private_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()
