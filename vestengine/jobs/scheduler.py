"""In-process trigger for the daily vesting run.

Deployments that prefer cron call ``scripts/run_daily_vesting.py`` instead and
leave ``VESTING_SCHEDULER_ENABLED`` off.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from vestengine.services.batch import BatchOrchestrator

logger = logging.getLogger(__name__)


def seconds_until_next_run(now: datetime, hour_utc: int) -> float:
    current = now.astimezone(timezone.utc)
    target = current.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if target <= current:
        target += timedelta(days=1)
    return (target - current).total_seconds()


class DailyVestingScheduler:
    def __init__(self, orchestrator_factory: Callable[[], BatchOrchestrator], *, hour_utc: int) -> None:
        self._orchestrator_factory = orchestrator_factory
        self._hour_utc = hour_utc
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="daily-vesting")
        logger.info("Daily vesting scheduler started (runs at %02d:00 UTC)", self._hour_utc)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Daily vesting scheduler stopped")

    async def run_once(self) -> None:
        try:
            summary = await self._orchestrator_factory().run_daily()
        except Exception:
            logger.exception("Daily vesting run failed")
            return
        if summary.errors:
            logger.warning("Daily vesting run finished with %s grant errors", len(summary.errors))

    async def _loop(self) -> None:
        while True:
            delay = seconds_until_next_run(datetime.now(timezone.utc), self._hour_utc)
            await asyncio.sleep(delay)
            await self.run_once()
