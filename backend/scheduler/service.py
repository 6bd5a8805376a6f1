"""
Scheduler service for Score Alerts.
Runs a notification cycle every notify_interval_s seconds, for deployments
that have no external cron hitting the API trigger.
"""
from __future__ import annotations

import asyncio
import signal
import time

from shared.config import Settings, get_settings
from shared.errors import StoreUnavailableError
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager

from notifications.pipeline import NotificationPipeline
from notifications.wiring import build_components

logger = get_logger(__name__)


class SchedulerService:
    """Drives NotificationPipeline on a fixed interval until shutdown."""

    def __init__(self, pipeline: NotificationPipeline, settings: Settings | None = None) -> None:
        self._pipeline = pipeline
        self._settings = settings or get_settings()
        self._shutdown = asyncio.Event()

    async def run_once(self) -> None:
        try:
            await self._pipeline.process_notifications()
        except StoreUnavailableError as exc:
            logger.error("notify_cycle_store_unavailable", error=exc.reason)

    async def run(self) -> None:
        """Main loop. Cycles start on a fixed cadence; a slow cycle delays the next."""
        while not self._shutdown.is_set():
            started = time.monotonic()
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("scheduler_loop_error", error=str(exc), exc_info=True)

            remaining = self._settings.notify_interval_s - (time.monotonic() - started)
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=max(remaining, 0.0))
            except asyncio.TimeoutError:
                continue

    def request_shutdown(self) -> None:
        self._shutdown.set()


async def main() -> None:
    """Scheduler service entrypoint."""
    settings = get_settings()
    setup_logging("scheduler")
    start_metrics_server()

    redis = RedisManager(settings)
    await redis.connect()

    components = build_components(redis, settings)
    await components.provider.start()
    service = SchedulerService(components.pipeline, settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, service.request_shutdown)

    logger.info(
        "scheduler_service_started",
        instance_id=settings.instance_id,
        interval_s=settings.notify_interval_s,
        serialization=settings.serialization_mode.value,
    )

    try:
        await service.run()
    finally:
        await components.provider.close()
        await redis.disconnect()
        logger.info("scheduler_service_stopped")


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
