"""
Deadline reminder scheduler for CampPoll bot.
Classifies schedules into reminder-due, closure-due or inert on each tick and
owns the sent-state bookkeeping.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from models import ClosureJob, ReminderJob, ReminderTiming, Schedule, ScheduleStatus
from storage import PollStore
from utils.time import (
    CLOSURE_STALENESS, StalenessPolicy, staleness_threshold,
    timing_label, timing_to_hours, utc_now,
)
from utils.validation import MIN_DEADLINE_LOOKAHEAD_HOURS, validate_reminder_timings

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_TIMINGS: Tuple[ReminderTiming, ...] = (
    ReminderTiming("3d", 72.0, "回答締切まで残り3日"),
    ReminderTiming("1d", 24.0, "回答締切まで残り1日"),
    ReminderTiming("8h", 8.0, "回答締切まで残り8時間"),
)

DEFAULT_LOOKBACK = timedelta(days=7)
DEFAULT_LOOKAHEAD = timedelta(hours=MIN_DEADLINE_LOOKAHEAD_HOURS)


@dataclass
class DeadlineCheckResult:
    """Output of one classification pass."""
    upcoming_reminders: List[ReminderJob] = field(default_factory=list)
    just_closed: List[ClosureJob] = field(default_factory=list)
    skipped_stale: List[Tuple[str, str]] = field(default_factory=list)  # (schedule_id, token)
    missed_closures: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


def resolve_timings(schedule: Schedule) -> List[ReminderTiming]:
    """Custom timings that parse, or the defaults when none do."""
    result = validate_reminder_timings(schedule.reminder_timings)
    if not result:
        if schedule.reminder_timings:
            logger.debug(f"No valid custom timings for schedule {schedule.id}, using defaults")
        return list(DEFAULT_REMINDER_TIMINGS)

    return [
        ReminderTiming(token, timing_to_hours(token), timing_label(token), is_custom=True)
        for token in result.cleaned_value
    ]


def _as_utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


class ReminderScheduler:
    """Decides which reminders and closures are due and records that they were sent."""

    def __init__(
        self,
        store: PollStore,
        policy: StalenessPolicy = StalenessPolicy.ADAPTIVE,
        lookback: timedelta = DEFAULT_LOOKBACK,
        lookahead: timedelta = DEFAULT_LOOKAHEAD,
        closure_threshold: timedelta = CLOSURE_STALENESS,
    ):
        self.store = store
        self.policy = policy
        self.lookback = lookback
        if lookahead < DEFAULT_LOOKAHEAD:
            logger.warning(
                f"Lookahead {lookahead} cannot see the longest reminder timings, using {DEFAULT_LOOKAHEAD}"
            )
            lookahead = DEFAULT_LOOKAHEAD
        self.lookahead = lookahead
        self.closure_threshold = closure_threshold

    # Classification

    async def check_deadlines(
        self, now: Optional[datetime] = None, group_id: Optional[str] = None
    ) -> DeadlineCheckResult:
        """
        Scan schedules with a deadline near ``now`` and classify them.

        Storage failures on the range query propagate; problems with a single
        schedule are recorded in ``errors`` and the scan continues.
        """
        now = _as_utc(now)
        schedules = await self.store.query_by_deadline_range(
            now - self.lookback, now + self.lookahead, group_id
        )

        result = DeadlineCheckResult()
        for schedule in schedules:
            try:
                self._classify(schedule, now, result)
            except Exception as e:
                logger.error(f"Error checking deadline for schedule {schedule.id}: {e}")
                result.errors[schedule.id] = str(e)

        logger.info(
            f"Deadline check: {len(result.upcoming_reminders)} reminder(s), "
            f"{len(result.just_closed)} closure(s), {len(result.skipped_stale)} stale"
        )
        return result

    def _classify(self, schedule: Schedule, now: datetime, result: DeadlineCheckResult) -> None:
        if not schedule.is_open or not schedule.has_deadline:
            return

        if now < schedule.deadline:
            due, stale = self.get_due_reminders(schedule, now)
            result.upcoming_reminders.extend(due)
            result.skipped_stale.extend((schedule.id, token) for token in stale)
        elif self.should_close(schedule, now):
            result.just_closed.append(
                ClosureJob(schedule_id=schedule.id, group_id=schedule.group_id, deadline=schedule.deadline)
            )
        else:
            # Left open for a manual close; later ticks will not pick it up either
            logger.warning(
                f"Schedule {schedule.id} passed its deadline more than "
                f"{self.closure_threshold} ago and is still open"
            )
            result.missed_closures.append(schedule.id)

    def get_due_reminders(self, schedule: Schedule, now: datetime) -> Tuple[List[ReminderJob], List[str]]:
        """
        Reminders due for a schedule at ``now``.

        Returns:
            Tuple of (due jobs, tokens skipped as stale)
        """
        due: List[ReminderJob] = []
        stale: List[str] = []
        if schedule.deadline is None:
            return due, stale

        sent = set(schedule.reminders_sent)
        for timing in resolve_timings(schedule):
            if timing.token in sent:
                continue
            due_at = schedule.deadline - timedelta(hours=timing.hours)
            if now < due_at:
                continue

            lateness = now - due_at
            if lateness > staleness_threshold(timing.token, self.policy):
                logger.info(f"Skipping old reminder for {schedule.id} ({timing.token})")
                stale.append(timing.token)
                continue

            due.append(ReminderJob(
                schedule_id=schedule.id,
                group_id=schedule.group_id,
                token=timing.token,
                message=timing.label,
                due_at=due_at,
            ))
        return due, stale

    def should_close(self, schedule: Schedule, now: datetime) -> bool:
        """Whether a schedule is past its deadline, open, and not missed beyond the threshold."""
        if schedule.deadline is None or not schedule.is_open:
            return False
        since_deadline = now - schedule.deadline
        return timedelta(0) <= since_deadline <= self.closure_threshold

    # Fresh re-checks right before sending

    @staticmethod
    def _reminder_still_due(schedule: Schedule, token: str) -> bool:
        if not schedule.is_open or not schedule.has_deadline:
            return False
        if token in schedule.reminders_sent:
            return False
        return any(t.token == token for t in resolve_timings(schedule))

    async def load_if_reminder_pending(self, job: ReminderJob) -> Optional[Schedule]:
        """Fresh copy of the schedule if the reminder still needs sending, else None."""
        schedule = await self.store.get_schedule(job.schedule_id, job.group_id)
        if schedule is None or not self._reminder_still_due(schedule, job.token):
            return None
        return schedule

    async def load_if_closure_pending(self, job: ClosureJob) -> Optional[Schedule]:
        """Fresh copy of the schedule if it is still open, else None."""
        schedule = await self.store.get_schedule(job.schedule_id, job.group_id)
        if schedule is None or not schedule.is_open:
            return None
        return schedule

    # Commit path

    async def mark_reminder_sent(self, job: ReminderJob) -> bool:
        """
        Record that the reminder for ``job.token`` was sent.

        The due-check is repeated on a fresh read inside the store's update
        path, so concurrent ticks racing on one (schedule, token) produce at
        most one mark.

        Returns:
            True if this call recorded the token
        """
        def mutate(schedule: Schedule) -> bool:
            if not self._reminder_still_due(schedule, job.token):
                return False
            schedule.reminders_sent.append(job.token)
            return True

        updated = await self.store.update_schedule(job.schedule_id, job.group_id, mutate)
        if updated is None:
            logger.info(f"Reminder {job.token} for schedule {job.schedule_id} was already recorded")
            return False
        logger.info(f"Marked reminder {job.token} sent for schedule {job.schedule_id}")
        return True

    async def mark_closed(self, job: ClosureJob, closed_at: Optional[datetime] = None) -> bool:
        """Flip an open schedule to closed. Returns True if this call closed it."""
        closed_at = _as_utc(closed_at)

        def mutate(schedule: Schedule) -> bool:
            if not schedule.is_open:
                return False
            schedule.status = ScheduleStatus.CLOSED
            schedule.closed_at = closed_at
            return True

        updated = await self.store.update_schedule(job.schedule_id, job.group_id, mutate)
        if updated is None:
            logger.info(f"Schedule {job.schedule_id} was already closed")
            return False
        logger.info(f"Closed schedule {job.schedule_id}")
        return True
