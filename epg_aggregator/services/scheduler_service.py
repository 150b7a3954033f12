import logging
from datetime import datetime
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger


logger = logging.getLogger(__name__)

JOB_ID = 'listings_warmup'


class WarmupScheduler:
    """Scheduler that keeps the full listings tier warm between requests"""

    def __init__(self, warm: Callable[[], Awaitable[object]], cron: str | None):
        self._warm = warm
        self.cron = cron
        self.scheduler: AsyncIOScheduler | None = None

    async def _warmup_job(self) -> None:
        """Background job that rebuilds the listings cache"""
        logger.info("Scheduled listings warm-up triggered")
        try:
            await self._warm()
        except Exception as e:
            logger.error(f"Exception in scheduled warm-up: {e}", exc_info=True)

    def start(self) -> None:
        """Start the scheduler with the warm-up job (no-op when no cron is configured)"""
        if not self.cron:
            logger.info("Warm-up schedule not configured, scheduler not started")
            return

        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(self.cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", self.cron, exc)
            raise

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self._warmup_job,
            trigger=trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next warm-up: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")
            self.scheduler = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled warm-up time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
