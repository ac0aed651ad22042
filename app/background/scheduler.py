from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.core.config import get_settings
from app.core.db import AsyncSessionFactory
from app.services.errors import ImpersonationError
from app.services.impersonation import ImpersonationService

logger = logging.getLogger(__name__)
settings = get_settings()

impersonation_scheduler = AsyncIOScheduler()

CLEANUP_JOB_ID = "impersonation-cleanup"


async def run_impersonation_cleanup() -> int:
    """Time out expired impersonation sessions. Returns how many were cleaned."""
    async with AsyncSessionFactory() as session:
        service = ImpersonationService(session)
        try:
            result = await service.cleanup_expired_sessions()
        except ImpersonationError as exc:
            # Next tick retries; sessions are already unusable once expired
            logger.exception("impersonation_cleanup_failed", extra={"error": exc.message})
            return 0

    logger.info("impersonation_cleanup", extra={"expired_sessions_cleaned": result.expired_sessions_cleaned})
    return result.expired_sessions_cleaned


def start_scheduler() -> None:
    if impersonation_scheduler.running:
        return
    impersonation_scheduler.add_job(
        run_impersonation_cleanup,
        "interval",
        seconds=settings.impersonation_cleanup_interval_seconds,
        id=CLEANUP_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    impersonation_scheduler.start()
    logger.info(
        "Impersonation scheduler started",
        extra={"interval_seconds": settings.impersonation_cleanup_interval_seconds},
    )


def shutdown_scheduler() -> None:
    if impersonation_scheduler.running:
        impersonation_scheduler.shutdown(wait=False)
        logger.info("Impersonation scheduler stopped")
