"""
Scheduler Service for CampPoll bot.
Runs the periodic deadline tick that sends reminders and closes schedules.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import BotConfig
from services.deadline_processor import DeadlineProcessor, TickReport

logger = logging.getLogger(__name__)

DEADLINE_TICK_JOB_ID = "deadline_tick"


class SchedulerService:
    """Service for running the deadline tick on a fixed interval."""

    def __init__(self, processor: DeadlineProcessor, config: BotConfig):
        self.processor = processor
        self.config = config
        self.scheduler = AsyncIOScheduler()
        self.last_report: Optional[TickReport] = None
        self.last_run: Optional[datetime] = None
        self.tick_count = 0
        self.failed_ticks = 0

    def start(self):
        """Register the deadline tick and start the scheduler."""
        if self.scheduler.running:
            return

        interval = self.config.tick_interval_minutes
        self.scheduler.add_job(
            self._run_tick,
            trigger=IntervalTrigger(minutes=interval),
            id=DEADLINE_TICK_JOB_ID,
            name="Deadline Tick",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=interval * 60,
        )
        self.scheduler.start()
        logger.info(f"Scheduler started (deadline tick every {interval} minute(s))")

    def shutdown(self):
        """Shutdown the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")

    async def _run_tick(self):
        """Scheduled job body. Errors are logged so the next tick still runs."""
        try:
            await self.run_now()
        except Exception as e:
            self.failed_ticks += 1
            logger.error(f"Error in deadline tick: {e}", exc_info=True)

    async def run_now(self) -> TickReport:
        """Run one deadline tick immediately."""
        logger.info("Running deadline tick")
        self.last_run = datetime.now()
        report = await self.processor.run_tick()
        self.tick_count += 1
        self.last_report = report
        return report

    def get_scheduler_stats(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        job = self.scheduler.get_job(DEADLINE_TICK_JOB_ID)
        return {
            'total_jobs': len(self.scheduler.get_jobs()),
            'running': self.scheduler.running,
            'tick_interval_minutes': self.config.tick_interval_minutes,
            'next_run': getattr(job, 'next_run_time', None) if job else None,
            'last_run': self.last_run,
            'tick_count': self.tick_count,
            'failed_ticks': self.failed_ticks,
            'last_report': self.last_report.to_dict() if self.last_report else None,
        }
