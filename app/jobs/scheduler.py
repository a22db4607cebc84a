"""APScheduler setup and job registration."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings
from app.jobs.auto_finalize import auto_finalize_elections

scheduler = AsyncIOScheduler(timezone=settings.timezone)


def register_jobs() -> None:
    """Register all periodic jobs if not already present."""
    if scheduler.get_job("auto_finalize") is None:
        scheduler.add_job(
            auto_finalize_elections,
            IntervalTrigger(
                minutes=max(1, settings.auto_finalize_interval_minutes),
                timezone=settings.timezone,
            ),
            id="auto_finalize",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
