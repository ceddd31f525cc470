"""
Schedule Query Service

Read-only views over the schedule store for calendars and dashboards.
Reads are plain pooled queries; a slightly stale answer is acceptable here.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from ..models.occurrence import Occurrence, OccurrenceStatus, Priority
from ..storage.occurrence_storage import OccurrenceFilter, OccurrenceStorage

logger = logging.getLogger("careschedule.services.schedule_query")


@dataclass
class ScheduleAnalytics:
    """Dashboard counters"""
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_priority: Dict[str, int] = field(default_factory=dict)    # cancelled excluded
    overdue: int = 0
    today: int = 0
    this_week: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "by_status": self.by_status,
            "by_priority": self.by_priority,
            "overdue": self.overdue,
            "today": self.today,
            "this_week": self.this_week,
        }


class ScheduleQueryService:
    """Service for schedule read models"""

    def __init__(
        self,
        storage: OccurrenceStorage,
        timezone_name: str = "UTC",
        upcoming_days: int = 7,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.tz = ZoneInfo(timezone_name)
        self.upcoming_days = upcoming_days
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def day_bounds(self, day: date):
        """[start, end) of a calendar day in the schedule time zone"""
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return start, end

    def local_today(self, now: Optional[datetime] = None) -> date:
        return (now or self.clock()).astimezone(self.tz).date()

    async def list_occurrences(self, filters: Optional[OccurrenceFilter] = None) -> List[Occurrence]:
        """List occurrences; cancelled ones only when asked for"""
        return await self.storage.list_filtered(filters or OccurrenceFilter())

    async def occurrences_on_date(
        self,
        day: date,
        assignee_ref: Optional[UUID] = None,
        include_cancelled: bool = False,
    ) -> List[Occurrence]:
        """Occurrences starting within the given calendar day"""
        start, end = self.day_bounds(day)
        exclude = () if include_cancelled else (OccurrenceStatus.CANCELLED,)
        return await self.storage.list_starting_between(
            start, end, assignee_ref=assignee_ref, exclude_statuses=exclude
        )

    async def occurrences_for_assignee_on_date(
        self,
        assignee_ref: UUID,
        day: date,
        include_cancelled: bool = False,
    ) -> List[Occurrence]:
        return await self.occurrences_on_date(day, assignee_ref, include_cancelled)

    async def todays_occurrences(
        self,
        now: Optional[datetime] = None,
        assignee_ref: Optional[UUID] = None,
    ) -> List[Occurrence]:
        return await self.occurrences_on_date(self.local_today(now), assignee_ref)

    async def upcoming(
        self,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
        assignee_ref: Optional[UUID] = None,
    ) -> List[Occurrence]:
        """Occurrences starting in [now, now + days), still live, soonest first"""
        now = now or self.clock()
        days = self.upcoming_days if days is None else days
        return await self.storage.list_starting_between(
            now,
            now + timedelta(days=days),
            assignee_ref=assignee_ref,
            exclude_statuses=(OccurrenceStatus.CANCELLED, OccurrenceStatus.RESCHEDULED),
        )

    async def overdue(self, now: Optional[datetime] = None) -> List[Occurrence]:
        """Scheduled occurrences whose window elapsed without being started or closed"""
        return await self.storage.list_overdue(now or self.clock())

    async def analytics(self, now: Optional[datetime] = None) -> ScheduleAnalytics:
        """Counts by status and priority plus overdue/today/this-week totals"""
        now = now or self.clock()
        by_status = await self.storage.count_by_status()
        by_priority = await self.storage.count_by_priority(include_cancelled=False)

        return ScheduleAnalytics(
            total=sum(by_status.values()),
            by_status={s.value: by_status.get(s, 0) for s in OccurrenceStatus},
            by_priority={p.value: by_priority.get(p, 0) for p in Priority},
            overdue=len(await self.overdue(now)),
            today=len(await self.todays_occurrences(now)),
            this_week=len(await self.upcoming(7, now)),
        )
