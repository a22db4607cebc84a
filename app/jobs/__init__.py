"""Background job modules for periodic election tasks."""

from app.jobs.auto_finalize import auto_finalize_elections, finalize_completed_elections

__all__ = [
    "auto_finalize_elections",
    "finalize_completed_elections",
]
