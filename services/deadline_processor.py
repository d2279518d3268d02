"""
Deadline tick for CampPoll bot.
One pass of scan -> classify -> dispatch -> persist for schedule deadlines.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from models import (
    ClosureJob, GatewayError, JobOutcome, Ok, ReminderJob, Result, StoreError,
)
from services.csv_service import create_summary_attachment
from services.dispatcher import BatchReport, NotificationDispatcher
from services.gateway import NotificationGateway
from services.reminder_scheduler import DeadlineCheckResult, ReminderScheduler
from storage import PollStore, StorageError
from utils.messages import (
    DISPLAY_TIMEZONE, build_author_closed_message, build_closure_message,
    build_reminder_message,
)
from utils.time import utc_now

logger = logging.getLogger(__name__)

REMINDER_PROFILE = "reminders"
CLOSURE_PROFILE = "closures"

# Backoff used when a retryable gateway error carries no retry_after
RETRY_BACKOFF_SECONDS = 1.0


@dataclass
class TickReport:
    """Counts for one deadline tick."""
    reminders_sent: int = 0
    reminders_failed: int = 0
    reminders_skipped: int = 0
    closures_completed: int = 0
    closures_failed: int = 0
    closures_skipped: int = 0
    stale_skipped: int = 0
    missed_closures: int = 0
    check_errors: int = 0
    elapsed: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reminders_sent": self.reminders_sent,
            "reminders_failed": self.reminders_failed,
            "reminders_skipped": self.reminders_skipped,
            "closures_completed": self.closures_completed,
            "closures_failed": self.closures_failed,
            "closures_skipped": self.closures_skipped,
            "stale_skipped": self.stale_skipped,
            "missed_closures": self.missed_closures,
            "check_errors": self.check_errors,
            "elapsed": round(self.elapsed, 3),
        }


def _tally(report: BatchReport):
    """(done, failed, skipped) from a dispatch report's outcomes."""
    done = failed = skipped = 0
    for outcome in report.results:
        if not isinstance(outcome, JobOutcome):
            failed += 1
        elif outcome.skipped:
            skipped += 1
        elif outcome.ok:
            done += 1
        else:
            failed += 1
    return done, failed, skipped


class DeadlineProcessor:
    """Runs deadline ticks: sends due reminders and closes expired schedules."""

    def __init__(
        self,
        store: PollStore,
        gateway: NotificationGateway,
        scheduler: ReminderScheduler,
        dispatcher: NotificationDispatcher,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        tz_name: str = DISPLAY_TIMEZONE,
    ):
        self.store = store
        self.gateway = gateway
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self._sleep = sleep
        self.tz_name = tz_name

    async def run_tick(self, now: Optional[datetime] = None, group_id: Optional[str] = None) -> TickReport:
        """
        Run one deadline tick.

        Safe to invoke repeatedly: tokens already recorded in reminders_sent
        are never sent again. Unexpected errors while scanning propagate to
        the caller.
        """
        started = time.monotonic()
        check: DeadlineCheckResult = await self.scheduler.check_deadlines(now, group_id)

        reminder_report, closure_report = await asyncio.gather(
            self.dispatcher.dispatch(REMINDER_PROFILE, check.upcoming_reminders, self.handle_reminder),
            self.dispatcher.dispatch(CLOSURE_PROFILE, check.just_closed, self.handle_closure),
        )

        report = TickReport(
            stale_skipped=len(check.skipped_stale),
            missed_closures=len(check.missed_closures),
            check_errors=len(check.errors),
        )
        report.reminders_sent, report.reminders_failed, report.reminders_skipped = _tally(reminder_report)
        report.closures_completed, report.closures_failed, report.closures_skipped = _tally(closure_report)
        report.elapsed = time.monotonic() - started

        logger.info(f"Deadline tick completed: {report.to_dict()}")
        return report

    async def _send_with_retries(self, send: Callable[[], Awaitable[Result]], max_retries: int) -> Result:
        """Call ``send`` again for retryable gateway errors, up to max_retries times."""
        result = await send()
        attempt = 0
        while isinstance(result, GatewayError) and result.is_retryable and attempt < max_retries:
            attempt += 1
            delay = result.retry_after or RETRY_BACKOFF_SECONDS * attempt
            logger.warning(f"Retrying send in {delay}s (attempt {attempt}/{max_retries}): {result.reason}")
            await self._sleep(delay)
            result = await send()
        return result

    async def handle_reminder(self, job: ReminderJob) -> JobOutcome:
        """Send one reminder and record it as sent if the send succeeded."""
        profile = self.dispatcher.get_profile(REMINDER_PROFILE)
        try:
            schedule = await self.scheduler.load_if_reminder_pending(job)
            if schedule is None:
                logger.info(f"Reminder {job.token} for schedule {job.schedule_id} no longer pending")
                return JobOutcome(job, Ok(), skipped=True)
            view = await self.store.get_summary(job.schedule_id, job.group_id)
        except StorageError as e:
            logger.error(f"Store error preparing reminder for schedule {job.schedule_id}: {e}")
            return JobOutcome(job, StoreError(str(e)))

        mentions = await self.gateway.resolve_mentions(schedule.reminder_mentions, schedule.group_id)
        message = build_reminder_message(schedule, job, view, mentions, tz_name=self.tz_name)
        result = await self._send_with_retries(
            lambda: self.gateway.send_channel_message(schedule.channel_id, message),
            profile.max_retries,
        )
        if not isinstance(result, Ok):
            logger.warning(f"Failed to send {job.token} reminder for schedule {job.schedule_id}: {result}")
            return JobOutcome(job, result)

        try:
            committed = await self.scheduler.mark_reminder_sent(job)
        except StorageError as e:
            logger.error(f"Sent {job.token} reminder for schedule {job.schedule_id} but could not record it: {e}")
            return JobOutcome(job, StoreError(str(e)))

        logger.info(f"Sent {job.token} deadline reminder for schedule {job.schedule_id}")
        return JobOutcome(job, result, committed=committed)

    async def handle_closure(self, job: ClosureJob) -> JobOutcome:
        """Post the closing summary, close the schedule and notify its author."""
        profile = self.dispatcher.get_profile(CLOSURE_PROFILE)
        try:
            schedule = await self.scheduler.load_if_closure_pending(job)
            if schedule is None:
                logger.info(f"Schedule {job.schedule_id} already closed")
                return JobOutcome(job, Ok(), skipped=True)
            view = await self.store.get_summary(job.schedule_id, job.group_id)
            if view is None:
                return JobOutcome(job, Ok(), skipped=True)
        except StorageError as e:
            logger.error(f"Store error preparing closure for schedule {job.schedule_id}: {e}")
            return JobOutcome(job, StoreError(str(e)))

        mentions = await self.gateway.resolve_mentions(schedule.reminder_mentions, schedule.group_id)
        attachment = create_summary_attachment(schedule, view)
        message = build_closure_message(schedule, view, mentions, attachment=attachment)
        result = await self._send_with_retries(
            lambda: self.gateway.send_channel_message(schedule.channel_id, message),
            profile.max_retries,
        )
        if not isinstance(result, Ok):
            logger.warning(f"Failed to send closure summary for schedule {job.schedule_id}: {result}")
            return JobOutcome(job, result)

        try:
            committed = await self.scheduler.mark_closed(job, utc_now())
        except StorageError as e:
            logger.error(f"Sent closure summary for schedule {job.schedule_id} but could not close it: {e}")
            return JobOutcome(job, StoreError(str(e)))

        if committed and schedule.author_id:
            dm_result = await self.gateway.send_direct_message(
                schedule.author_id, build_author_closed_message(schedule, view)
            )
            if not isinstance(dm_result, Ok):
                logger.info(f"Could not notify author of schedule {job.schedule_id}: {dm_result}")

        logger.info(f"Sent closure notification for schedule {job.schedule_id}")
        return JobOutcome(job, result, committed=committed)
