import logging
from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from magenta_epg.config import settings
from magenta_epg.services.regeneration_service import (
    RegenerationController,
    RegenerationResult,
    get_regeneration_controller,
)


logger = logging.getLogger(__name__)

JOB_ID = "feed_check"


class FeedScheduler:
    """Periodic staleness check, so the feed also refreshes between client polls"""

    def __init__(
        self,
        cron: str,
        timezone: str,
        controller_getter: Callable[[], RegenerationController] = get_regeneration_controller,
    ):
        self.cron = cron
        self.timezone = timezone
        self.controller_getter = controller_getter
        self.scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    async def run_check(self) -> RegenerationResult:
        """Regenerate the feed if it went stale; outcome is logged, never raised"""
        result = await self.controller_getter().regenerate_if_needed()
        if result.status == "failed":
            logger.error(f"Scheduled regeneration failed ({result.error_kind}): {result.message}")
        elif result.status == "success":
            logger.info(f"Scheduled regeneration done: {result.channels} channels, {result.programmes} programmes")
        return result

    def start(self) -> None:
        if self.running:
            return

        self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        self.scheduler.add_job(
            self.run_check,
            trigger=CronTrigger.from_crontab(self.cron, timezone=self.timezone),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()

        next_time = self.get_next_run_time()
        logger.info(f"Scheduler started ({self.cron}), next feed check: {next_time.isoformat() if next_time else 'unknown'}")

    def shutdown(self) -> None:
        if self.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    def get_next_run_time(self) -> datetime | None:
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None


feed_scheduler = FeedScheduler(settings.refresh_cron, settings.epg_timezone)
