"""Periodic finalization of elections whose end date has passed."""

from __future__ import annotations

import logging

from app.services.finalization_service import FinalizationService
from app.utils.supabase_client import get_service_client
from supabase import Client

logger = logging.getLogger(__name__)


def finalize_completed_elections(client: Client) -> int:
    """Finalize every completed election that received at least one ballot."""
    finalization = FinalizationService(client)
    return sum(1 for election in finalization.pending() if finalization.finalize_if_due(election))


async def auto_finalize_elections() -> None:
    """Scheduler entrypoint for the auto-finalize sweep."""
    finalized = finalize_completed_elections(get_service_client())
    logger.info("auto_finalize_elections completed, %s elections finalized", finalized)
