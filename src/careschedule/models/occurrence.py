"""
Occurrence Model

Represents one scheduled instance of an activity for a client and assignee.
Occurrences are never deleted: cancellation and rescheduling are statuses.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, NewType, Optional
from uuid import UUID, uuid4

from ..exceptions import InvalidPattern

# Weak references to records owned by other parts of the case-management app
ActivityRef = NewType("ActivityRef", UUID)
GoalRef = NewType("GoalRef", UUID)
ClientRef = NewType("ClientRef", UUID)
UserRef = NewType("UserRef", UUID)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OccurrenceStatus(str, Enum):
    """Lifecycle status of an occurrence"""
    SCHEDULED = "scheduled"          # Pending, not started yet
    IN_PROGRESS = "in_progress"      # Started by the assignee
    COMPLETED = "completed"          # Completion recorded
    RESCHEDULED = "rescheduled"      # Superseded by a successor occurrence
    CANCELLED = "cancelled"          # Called off

    @property
    def is_active(self) -> bool:
        """Active occurrences count toward the assignee's no-overlap rule"""
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = frozenset({
    OccurrenceStatus.SCHEDULED,
    OccurrenceStatus.IN_PROGRESS,
    OccurrenceStatus.COMPLETED,
})

TERMINAL_STATUSES = frozenset({
    OccurrenceStatus.COMPLETED,
    OccurrenceStatus.CANCELLED,
    OccurrenceStatus.RESCHEDULED,
})

# Statuses an occurrence may still be moved, cancelled or progressed from
OPEN_STATUSES = frozenset({
    OccurrenceStatus.SCHEDULED,
    OccurrenceStatus.IN_PROGRESS,
})


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def as_utc(moment: datetime) -> datetime:
    """
    Instant in UTC.

    Aware datetimes sharing one tzinfo compare and subtract by wall clock,
    ignoring fold, so ordering across a DST fall-back hour must go through UTC.
    """
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """Half-open time window [start, end)"""
    start: datetime
    end: datetime

    @property
    def utc_start(self) -> datetime:
        return as_utc(self.start)

    @property
    def utc_end(self) -> datetime:
        return as_utc(self.end)

    @property
    def duration(self):
        """Elapsed time, not wall-clock difference"""
        return self.utc_end - self.utc_start

    @property
    def is_positive(self) -> bool:
        return self.utc_end > self.utc_start

    def overlaps(self, other: "TimeWindow") -> bool:
        """Touching boundaries (self.end == other.start) do not overlap"""
        return self.utc_start < other.utc_end and other.utc_start < self.utc_end


@dataclass
class RecurrencePattern:
    """
    Recurrence rule attached to the occurrence that originated a series.

    days_of_week uses 0=Sunday .. 6=Saturday and only applies to weekly series.
    end_date is inclusive.
    """
    frequency: RecurrenceFrequency = RecurrenceFrequency.WEEKLY
    interval: int = 1
    end_date: Optional[date] = None
    days_of_week: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "frequency": self.frequency.value,
            "interval": self.interval,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "days_of_week": sorted(set(self.days_of_week)),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecurrencePattern":
        """Create from dictionary (API payload or stored JSON)"""
        try:
            frequency = RecurrenceFrequency(data.get("frequency"))
        except ValueError:
            raise InvalidPattern(f"Unknown recurrence frequency: {data.get('frequency')!r}")

        end_date = data.get("end_date")
        if isinstance(end_date, str):
            end_date = date.fromisoformat(end_date)

        return cls(
            frequency=frequency,
            interval=data.get("interval", 1),
            end_date=end_date,
            days_of_week=list(data.get("days_of_week") or []),
        )


@dataclass
class Occurrence:
    """
    Occurrence entity.

    Reschedule chain: a successor points at the occurrence it replaces via
    rescheduled_from_ref; the replaced one is left with status RESCHEDULED.
    Series: the originating occurrence carries recurrence_pattern, generated
    members point back at it via recurrence_origin_ref.
    """
    id: UUID = field(default_factory=uuid4)
    activity_ref: ActivityRef = field(default_factory=uuid4)
    goal_ref: GoalRef = field(default_factory=uuid4)
    client_ref: ClientRef = field(default_factory=uuid4)
    assignee_ref: UserRef = field(default_factory=uuid4)
    created_by_ref: UserRef = field(default_factory=uuid4)

    scheduled_date: Optional[date] = None
    start_time: datetime = field(default_factory=_utcnow)
    end_time: datetime = field(default_factory=_utcnow)

    status: OccurrenceStatus = OccurrenceStatus.SCHEDULED
    priority: Priority = Priority.MEDIUM
    notes: Optional[str] = None

    completion_ref: Optional[UUID] = None               # set by the completion recorder
    rescheduled_from_ref: Optional[UUID] = None         # occurrence this one replaces
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_origin_ref: Optional[UUID] = None        # series originator, for generated members

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(self.start_time, self.end_time)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "activity_ref": str(self.activity_ref),
            "goal_ref": str(self.goal_ref),
            "client_ref": str(self.client_ref),
            "assignee_ref": str(self.assignee_ref),
            "created_by_ref": str(self.created_by_ref),
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "status": self.status.value,
            "priority": self.priority.value,
            "notes": self.notes,
            "completion_ref": str(self.completion_ref) if self.completion_ref else None,
            "rescheduled_from_ref": str(self.rescheduled_from_ref) if self.rescheduled_from_ref else None,
            "recurrence_pattern": self.recurrence_pattern.to_dict() if self.recurrence_pattern else None,
            "recurrence_origin_ref": str(self.recurrence_origin_ref) if self.recurrence_origin_ref else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
