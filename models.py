"""
Data models for CampPoll bot.
Defines the core entities: Schedule, DateOption, ResponseRecord, reminder jobs, etc.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp, treating naive values as UTC."""
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class ScheduleStatus(Enum):
    """Lifecycle state of a schedule poll."""
    OPEN = "open"
    CLOSED = "closed"


class ResponseStatus(Enum):
    """Availability answer for a single date option."""
    YES = "yes"
    MAYBE = "maybe"
    NO = "no"

    @classmethod
    def parse(cls, value: Any) -> Optional["ResponseStatus"]:
        """Parse a stored status, accepting the legacy ok/ng spellings."""
        if isinstance(value, ResponseStatus):
            return value
        if not isinstance(value, str):
            return None
        value = value.strip().lower()
        value = {"ok": "yes", "ng": "no"}.get(value, value)
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class DateOption:
    """One candidate date a schedule offers."""
    id: str
    label: str

    def to_dict(self) -> Dict:
        return {"id": self.id, "label": self.label}

    @classmethod
    def from_dict(cls, data: Dict) -> "DateOption":
        return cls(id=data["id"], label=data.get("label", ""))


@dataclass
class Schedule:
    """A scheduling poll with date options and an optional deadline."""
    id: str
    group_id: str
    channel_id: str
    title: str
    author_id: str
    dates: List[DateOption] = field(default_factory=list)
    deadline: Optional[datetime] = None
    status: ScheduleStatus = ScheduleStatus.OPEN
    reminder_timings: List[str] = field(default_factory=list)  # empty = defaults
    reminders_sent: List[str] = field(default_factory=list)
    reminder_mentions: List[str] = field(default_factory=lambda: ["@here"])
    message_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    closed_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self):
        """Convert string status to ScheduleStatus enum if needed."""
        if isinstance(self.status, str):
            self.status = ScheduleStatus(self.status)
        if self.deadline is not None and self.deadline.tzinfo is None:
            self.deadline = self.deadline.replace(tzinfo=timezone.utc)

    @property
    def is_open(self) -> bool:
        return self.status == ScheduleStatus.OPEN

    @property
    def has_deadline(self) -> bool:
        return self.deadline is not None

    def get_date(self, date_id: str) -> Optional[DateOption]:
        for date in self.dates:
            if date.id == date_id:
                return date
        return None

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "group_id": self.group_id,
            "channel_id": self.channel_id,
            "title": self.title,
            "author_id": self.author_id,
            "dates": [date.to_dict() for date in self.dates],
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "status": self.status.value,
            "reminder_timings": list(self.reminder_timings),
            "reminders_sent": list(self.reminders_sent),
            "reminder_mentions": list(self.reminder_mentions),
            "message_id": self.message_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Schedule":
        """Create Schedule from dictionary."""
        return cls(
            id=data["id"],
            group_id=str(data["group_id"]),
            channel_id=str(data["channel_id"]),
            title=data["title"],
            author_id=str(data.get("author_id", "")),
            dates=[DateOption.from_dict(d) for d in data.get("dates", [])],
            deadline=_parse_dt(data.get("deadline")),
            status=ScheduleStatus(data.get("status", "open")),
            reminder_timings=list(data.get("reminder_timings") or []),
            reminders_sent=list(data.get("reminders_sent") or []),
            reminder_mentions=list(data.get("reminder_mentions") or ["@here"]),
            message_id=data.get("message_id"),
            created_at=_parse_dt(data.get("created_at")) or _utcnow(),
            updated_at=_parse_dt(data.get("updated_at")) or _utcnow(),
            closed_at=_parse_dt(data.get("closed_at")),
            version=int(data.get("version", 0)),
        )


@dataclass
class ResponseRecord:
    """One user's latest answers for a schedule."""
    schedule_id: str
    user_id: str
    date_statuses: Dict[str, ResponseStatus] = field(default_factory=dict)
    username: str = ""
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict:
        return {
            "schedule_id": self.schedule_id,
            "user_id": self.user_id,
            "username": self.username,
            "date_statuses": {
                date_id: status.value if isinstance(status, ResponseStatus) else status
                for date_id, status in self.date_statuses.items()
            },
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ResponseRecord":
        # Unknown statuses are kept as raw strings; aggregation ignores them
        statuses = {}
        for date_id, raw in (data.get("date_statuses") or {}).items():
            statuses[date_id] = ResponseStatus.parse(raw) or raw
        return cls(
            schedule_id=data["schedule_id"],
            user_id=str(data["user_id"]),
            username=data.get("username", ""),
            date_statuses=statuses,
            updated_at=_parse_dt(data.get("updated_at")) or _utcnow(),
        )


@dataclass(frozen=True)
class ReminderTiming:
    """A parsed reminder timing token."""
    token: str
    hours: float
    label: str
    is_custom: bool = False


# ---------------------------------------------------------------------------
# Aggregation results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DateCounts:
    yes: int = 0
    maybe: int = 0
    no: int = 0

    @property
    def total(self) -> int:
        return self.yes + self.maybe + self.no

    def to_dict(self) -> Dict:
        return {"yes": self.yes, "maybe": self.maybe, "no": self.no}


@dataclass(frozen=True)
class ParticipationBuckets:
    fully_available: int = 0
    partially_available: int = 0
    unavailable: int = 0

    def to_dict(self) -> Dict:
        return {
            "fully_available": self.fully_available,
            "partially_available": self.partially_available,
            "unavailable": self.unavailable,
        }


@dataclass(frozen=True)
class AggregateView:
    """Vote tallies, participation and optimal-date ranking for one schedule."""
    counts: Dict[str, DateCounts]
    total_responders: int
    participation: ParticipationBuckets
    scores: Dict[str, float]
    optimal_date_id: Optional[str] = None
    alternative_date_ids: tuple = ()

    def yes_percentage(self, date_id: str) -> float:
        """Share of responders who answered yes for a date (0-100)."""
        if not self.total_responders:
            return 0.0
        counts = self.counts.get(date_id, DateCounts())
        return counts.yes / self.total_responders * 100

    def to_dict(self) -> Dict:
        return {
            "counts": {date_id: c.to_dict() for date_id, c in self.counts.items()},
            "total_responders": self.total_responders,
            "participation": self.participation.to_dict(),
            "scores": dict(self.scores),
            "optimal_date_id": self.optimal_date_id,
            "alternative_date_ids": list(self.alternative_date_ids),
        }


# ---------------------------------------------------------------------------
# Jobs and results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReminderJob:
    """A reminder that should be sent this tick."""
    schedule_id: str
    group_id: str
    token: str
    message: str
    due_at: datetime
    kind: str = field(default="reminder", init=False)


@dataclass(frozen=True)
class ClosureJob:
    """A schedule whose deadline passed and should be closed this tick."""
    schedule_id: str
    group_id: str
    deadline: datetime
    kind: str = field(default="closure", init=False)


Job = Union[ReminderJob, ClosureJob]


@dataclass(frozen=True)
class Ok:
    value: Any = None


@dataclass(frozen=True)
class GatewayError:
    reason: str
    status: Optional[int] = None
    retry_after: Optional[float] = None

    @property
    def is_retryable(self) -> bool:
        """Rate limits and server errors may succeed on a later attempt."""
        return self.status == 429 or (self.status is not None and self.status >= 500)


@dataclass(frozen=True)
class StoreError:
    reason: str


Result = Union[Ok, GatewayError, StoreError]


@dataclass
class JobOutcome:
    """What happened to one job during dispatch."""
    job: Job
    result: Result
    committed: bool = False
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return isinstance(self.result, Ok)


# ---------------------------------------------------------------------------
# Outbound messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MessageField:
    name: str
    value: str
    inline: bool = False


@dataclass(frozen=True)
class Attachment:
    filename: str
    data: bytes


@dataclass
class OutboundMessage:
    """Platform-neutral message payload handed to a NotificationGateway."""
    content: str
    title: Optional[str] = None
    description: Optional[str] = None
    fields: List[MessageField] = field(default_factory=list)
    color: Optional[int] = None
    footer: Optional[str] = None
    attachment: Optional[Attachment] = None
