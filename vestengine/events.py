import logging

from fastapi import FastAPI

from vestengine.core.settings import settings
from vestengine.db.session import AsyncSessionLocal, engine
from vestengine.jobs.scheduler import DailyVestingScheduler
from vestengine.services.container import build_sql_services

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Application startup")
        app.state.vesting_scheduler = None
        if settings.vesting_scheduler_enabled:
            services = build_sql_services(AsyncSessionLocal)
            scheduler = DailyVestingScheduler(
                services.orchestrator, hour_utc=settings.vesting_scheduler_hour_utc
            )
            scheduler.start()
            app.state.vesting_scheduler = scheduler

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown")
        scheduler = getattr(app.state, "vesting_scheduler", None)
        if scheduler is not None:
            await scheduler.stop()
        await engine.dispose()
