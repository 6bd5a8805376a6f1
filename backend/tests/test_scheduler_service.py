"""Scheduler worker loop: cadence, shutdown and outage handling."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.config import Settings
from shared.errors import StoreUnavailableError
from shared.models.domain import CycleResult
from scheduler.service import SchedulerService


@pytest.fixture
def cycle_pipeline() -> MagicMock:
    p = MagicMock()
    p.process_notifications = AsyncMock(return_value=CycleResult())
    return p


@pytest.mark.asyncio
async def test_store_outage_does_not_escape_run_once(cycle_pipeline: MagicMock, settings: Settings) -> None:
    cycle_pipeline.process_notifications.side_effect = StoreUnavailableError("active_games", "down")
    await SchedulerService(cycle_pipeline, settings).run_once()
    cycle_pipeline.process_notifications.assert_awaited_once()


@pytest.mark.asyncio
async def test_loop_runs_until_shutdown(cycle_pipeline: MagicMock, settings: Settings) -> None:
    settings.notify_interval_s = 0.01
    service = SchedulerService(cycle_pipeline, settings)

    task = asyncio.create_task(service.run())
    while cycle_pipeline.process_notifications.await_count < 3:
        await asyncio.sleep(0.005)
    service.request_shutdown()
    await asyncio.wait_for(task, timeout=1.0)

    assert task.done()


@pytest.mark.asyncio
async def test_unexpected_error_keeps_loop_alive(cycle_pipeline: MagicMock, settings: Settings) -> None:
    settings.notify_interval_s = 0.01
    service = SchedulerService(cycle_pipeline, settings)
    calls = 0

    async def flaky() -> CycleResult:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")
        service.request_shutdown()
        return CycleResult()

    cycle_pipeline.process_notifications.side_effect = flaky
    await asyncio.wait_for(service.run(), timeout=1.0)

    assert calls == 2
