"""
Prometheus metrics for the notification pipeline.
Scraped from the port started by start_metrics_server() in each service.
"""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
PROVIDER_REQUESTS = Counter(
    "sa_provider_requests_total",
    "Total scores provider HTTP requests",
    ["provider", "endpoint", "status"],
)
NOTIFY_CYCLES = Counter(
    "sa_notify_cycles_total",
    "Notification cycles by result",
    ["result"],
)
EVENTS_DETECTED = Counter(
    "sa_events_detected_total",
    "Notification events detected",
    ["league", "event_type"],
)
PUSH_DELIVERIES = Counter(
    "sa_push_deliveries_total",
    "Push deliveries by outcome",
    ["league", "event_type", "outcome"],
)
LIFECYCLE_OPERATIONS = Counter(
    "sa_lifecycle_operations_total",
    "Subscription lifecycle operations",
    ["operation"],
)
SCOREBOARD_FETCH_ERRORS = Counter(
    "sa_scoreboard_fetch_errors_total",
    "Scoreboard fetches that produced no data for a cycle",
    ["league"],
)

# ── Histograms ──────────────────────────────────────────────────────────
PROVIDER_LATENCY = Histogram(
    "sa_provider_latency_seconds",
    "Scores provider request latency in seconds",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
CYCLE_DURATION = Histogram(
    "sa_notify_cycle_seconds",
    "Wall time of one notification cycle",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
ACTIVE_GAMES = Gauge(
    "sa_active_games",
    "Games with at least one subscriber",
)
LEAGUES_POLLED = Gauge(
    "sa_leagues_polled",
    "Leagues inside the polling window in the last cycle",
)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
