"""
Occurrence Storage

PostgreSQL storage for scheduled activity occurrences (activity_schedules).
"""
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

import asyncpg

from .base import BaseStorage
from ..exceptions import InvalidStateTransition, InvalidTimeRange, SchedulingConflict
from ..models.occurrence import (
    ACTIVE_STATUSES,
    Occurrence,
    OccurrenceStatus,
    Priority,
    RecurrencePattern,
    TimeWindow,
)

logger = logging.getLogger("careschedule.storage.occurrence")

_ACTIVE = [s.value for s in ACTIVE_STATUSES]

_COLUMNS = """
    id, activity_ref, goal_ref, client_ref, assignee_ref, created_by_ref,
    scheduled_date, start_time, end_time, status, priority, notes,
    completion_ref, rescheduled_from_ref, recurrence_pattern, recurrence_origin_ref,
    created_at, updated_at
"""


@dataclass
class OccurrenceFilter:
    """Filters for listing occurrences. Unset fields do not filter."""
    activity_ref: Optional[UUID] = None
    goal_ref: Optional[UUID] = None
    client_ref: Optional[UUID] = None
    assignee_ref: Optional[UUID] = None
    status: Optional[OccurrenceStatus] = None
    priority: Optional[Priority] = None
    scheduled_date: Optional[date] = None
    date_from: Optional[date] = None                  # inclusive, on scheduled_date
    date_to: Optional[date] = None                    # inclusive, on scheduled_date
    include_cancelled: bool = False

    def matches(self, occurrence: Occurrence) -> bool:
        """Python-side equivalent of the SQL built by OccurrenceStorage.list_filtered"""
        if self.activity_ref and occurrence.activity_ref != self.activity_ref:
            return False
        if self.goal_ref and occurrence.goal_ref != self.goal_ref:
            return False
        if self.client_ref and occurrence.client_ref != self.client_ref:
            return False
        if self.assignee_ref and occurrence.assignee_ref != self.assignee_ref:
            return False
        if self.status and occurrence.status != self.status:
            return False
        if self.priority and occurrence.priority != self.priority:
            return False
        if self.scheduled_date and occurrence.scheduled_date != self.scheduled_date:
            return False
        # NULL scheduled_date never satisfies a range bound in SQL either
        if self.date_from and (occurrence.scheduled_date is None or occurrence.scheduled_date < self.date_from):
            return False
        if self.date_to and (occurrence.scheduled_date is None or occurrence.scheduled_date > self.date_to):
            return False
        if self.excludes_cancelled and occurrence.status == OccurrenceStatus.CANCELLED:
            return False
        return True

    @property
    def excludes_cancelled(self) -> bool:
        return not self.include_cancelled and self.status != OccurrenceStatus.CANCELLED


@contextmanager
def _integrity_errors():
    """Translate schema backstop violations into scheduling errors"""
    try:
        yield
    except asyncpg.exceptions.ExclusionViolationError as e:
        raise SchedulingConflict(f"Schedule conflict detected: {e.detail or e}")
    except asyncpg.exceptions.UniqueViolationError as e:
        raise InvalidStateTransition(f"Occurrence already has a successor: {e.detail or e}")
    except asyncpg.exceptions.CheckViolationError as e:
        raise InvalidTimeRange(f"End time must be after start time: {e.detail or e}")


class OccurrenceStorage(BaseStorage):
    """Storage for Occurrence entities"""

    async def _write_row(
        self, occurrence: Occurrence, query: str, *args, conn: Optional[asyncpg.Connection] = None
    ) -> Optional[asyncpg.Record]:
        """
        Run an INSERT/UPDATE ... RETURNING with schema violations translated.

        The exclusion constraint only names the colliding range in its detail
        text, so the colliding occurrence is looked up again on a pooled
        connection (the caller's transaction is already aborted).
        """
        try:
            with _integrity_errors():
                return await self.fetchrow(query, *args, conn=conn)
        except SchedulingConflict as e:
            if e.conflicting_occurrence_id is None:
                try:
                    conflict = await self.find_overlapping(
                        occurrence.assignee_ref, occurrence.window, exclude_id=occurrence.id
                    )
                except (OSError, asyncpg.PostgresError) as lookup_error:
                    logger.warning(f"Could not look up conflicting occurrence for {occurrence.id}: {lookup_error}")
                    conflict = None
                if conflict:
                    e.conflicting_occurrence_id = conflict.id
            raise

    async def create(self, occurrence: Occurrence, conn: Optional[asyncpg.Connection] = None) -> Occurrence:
        """Insert a new occurrence"""
        query = f"""
            INSERT INTO activity_schedules ({_COLUMNS})
            VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,$13,$14,$15,$16,$17,$18)
            RETURNING *
        """
        pattern = occurrence.recurrence_pattern
        row = await self._write_row(
            occurrence,
            query,
            occurrence.id, occurrence.activity_ref, occurrence.goal_ref,
            occurrence.client_ref, occurrence.assignee_ref, occurrence.created_by_ref,
            occurrence.scheduled_date, occurrence.start_time, occurrence.end_time,
            occurrence.status.value, occurrence.priority.value, occurrence.notes,
            occurrence.completion_ref, occurrence.rescheduled_from_ref,
            json.dumps(pattern.to_dict()) if pattern else None,
            occurrence.recurrence_origin_ref,
            occurrence.created_at, occurrence.updated_at,
            conn=conn,
        )
        return self._row_to_occurrence(row)

    async def create_many(
        self, occurrences: Sequence[Occurrence], conn: asyncpg.Connection
    ) -> List[Occurrence]:
        """Insert a batch of occurrences on the caller's transaction"""
        return [await self.create(o, conn=conn) for o in occurrences]

    async def get_by_id(
        self,
        occurrence_id: UUID,
        conn: Optional[asyncpg.Connection] = None,
        for_update: bool = False,
    ) -> Optional[Occurrence]:
        """Get occurrence by ID, optionally locking the row"""
        query = "SELECT * FROM activity_schedules WHERE id = $1"
        if for_update:
            query += " FOR UPDATE"
        row = await self.fetchrow(query, occurrence_id, conn=conn)
        return self._row_to_occurrence(row) if row else None

    async def get_successor(
        self, occurrence_id: UUID, conn: Optional[asyncpg.Connection] = None
    ) -> Optional[Occurrence]:
        """Get the occurrence that replaced this one, if any"""
        query = "SELECT * FROM activity_schedules WHERE rescheduled_from_ref = $1"
        row = await self.fetchrow(query, occurrence_id, conn=conn)
        return self._row_to_occurrence(row) if row else None

    async def find_overlapping(
        self,
        assignee_ref: UUID,
        window: TimeWindow,
        exclude_id: Optional[UUID] = None,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[Occurrence]:
        """First active occurrence of the assignee overlapping [start, end)"""
        query = """
            SELECT * FROM activity_schedules
            WHERE assignee_ref = $1
              AND status = ANY($2::text[])
              AND start_time < $4 AND $3 < end_time
              AND ($5::uuid IS NULL OR id <> $5)
            ORDER BY start_time
            LIMIT 1
        """
        row = await self.fetchrow(
            query, assignee_ref, _ACTIVE, window.start, window.end, exclude_id, conn=conn
        )
        return self._row_to_occurrence(row) if row else None

    async def find_overlapping_any(
        self,
        assignee_ref: UUID,
        windows: Sequence[TimeWindow],
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[Occurrence]:
        """First active occurrence of the assignee overlapping any of the windows"""
        if not windows:
            return None
        query = """
            SELECT s.* FROM activity_schedules s
            JOIN unnest($3::timestamptz[], $4::timestamptz[]) AS w(start_time, end_time)
              ON s.start_time < w.end_time AND w.start_time < s.end_time
            WHERE s.assignee_ref = $1
              AND s.status = ANY($2::text[])
            ORDER BY s.start_time
            LIMIT 1
        """
        row = await self.fetchrow(
            query,
            assignee_ref,
            _ACTIVE,
            [w.start for w in windows],
            [w.end for w in windows],
            conn=conn,
        )
        return self._row_to_occurrence(row) if row else None

    async def update(
        self,
        occurrence: Occurrence,
        expected_status: Optional[OccurrenceStatus] = None,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[Occurrence]:
        """
        Write back mutable fields.

        With expected_status the write only applies while the stored status
        still matches; None is returned when another writer got there first.
        """
        occurrence.updated_at = datetime.now(timezone.utc)
        query = """
            UPDATE activity_schedules
            SET assignee_ref = $2, scheduled_date = $3, start_time = $4, end_time = $5,
                status = $6, priority = $7, notes = $8, completion_ref = $9,
                updated_at = $10
            WHERE id = $1 AND ($11::text IS NULL OR status = $11)
            RETURNING *
        """
        row = await self._write_row(
            occurrence,
            query,
            occurrence.id, occurrence.assignee_ref, occurrence.scheduled_date,
            occurrence.start_time, occurrence.end_time,
            occurrence.status.value, occurrence.priority.value, occurrence.notes,
            occurrence.completion_ref, occurrence.updated_at,
            expected_status.value if expected_status else None,
            conn=conn,
        )
        return self._row_to_occurrence(row) if row else None

    async def list_filtered(self, filters: Optional[OccurrenceFilter] = None) -> List[Occurrence]:
        """List occurrences matching filters, ordered by start time"""
        filters = filters or OccurrenceFilter()
        clauses: List[str] = []
        args: list = []

        def add(clause: str, value) -> None:
            args.append(value)
            clauses.append(clause.format(n=len(args)))

        if filters.activity_ref:
            add("activity_ref = ${n}", filters.activity_ref)
        if filters.goal_ref:
            add("goal_ref = ${n}", filters.goal_ref)
        if filters.client_ref:
            add("client_ref = ${n}", filters.client_ref)
        if filters.assignee_ref:
            add("assignee_ref = ${n}", filters.assignee_ref)
        if filters.status:
            add("status = ${n}", filters.status.value)
        if filters.priority:
            add("priority = ${n}", filters.priority.value)
        if filters.scheduled_date:
            add("scheduled_date = ${n}", filters.scheduled_date)
        if filters.date_from:
            add("scheduled_date >= ${n}", filters.date_from)
        if filters.date_to:
            add("scheduled_date <= ${n}", filters.date_to)
        if filters.excludes_cancelled:
            add("status <> ${n}", OccurrenceStatus.CANCELLED.value)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT * FROM activity_schedules {where} ORDER BY start_time, id"
        rows = await self.fetch(query, *args)
        return [self._row_to_occurrence(row) for row in rows]

    async def list_starting_between(
        self,
        start: datetime,
        end: datetime,
        assignee_ref: Optional[UUID] = None,
        exclude_statuses: Iterable[OccurrenceStatus] = (OccurrenceStatus.CANCELLED,),
    ) -> List[Occurrence]:
        """Occurrences with start_time in [start, end), ascending"""
        query = """
            SELECT * FROM activity_schedules
            WHERE start_time >= $1 AND start_time < $2
              AND NOT (status = ANY($3::text[]))
              AND ($4::uuid IS NULL OR assignee_ref = $4)
            ORDER BY start_time, id
        """
        rows = await self.fetch(
            query, start, end, [s.value for s in exclude_statuses], assignee_ref
        )
        return [self._row_to_occurrence(row) for row in rows]

    async def list_overdue(self, now: datetime) -> List[Occurrence]:
        """Scheduled occurrences whose window has fully elapsed"""
        query = """
            SELECT * FROM activity_schedules
            WHERE status = $1 AND end_time < $2
            ORDER BY end_time, id
        """
        rows = await self.fetch(query, OccurrenceStatus.SCHEDULED.value, now)
        return [self._row_to_occurrence(row) for row in rows]

    async def count_by_status(self) -> Dict[OccurrenceStatus, int]:
        """Count occurrences per status (every status present, zero if none)"""
        rows = await self.fetch(
            "SELECT status, COUNT(*) AS n FROM activity_schedules GROUP BY status"
        )
        counts = {status: 0 for status in OccurrenceStatus}
        for row in rows:
            counts[OccurrenceStatus(row["status"])] = row["n"]
        return counts

    async def count_by_priority(self, include_cancelled: bool = False) -> Dict[Priority, int]:
        """Count occurrences per priority"""
        query = "SELECT priority, COUNT(*) AS n FROM activity_schedules"
        args = []
        if not include_cancelled:
            query += " WHERE status <> $1"
            args.append(OccurrenceStatus.CANCELLED.value)
        query += " GROUP BY priority"
        rows = await self.fetch(query, *args)
        counts = {priority: 0 for priority in Priority}
        for row in rows:
            counts[Priority(row["priority"])] = row["n"]
        return counts

    def _row_to_occurrence(self, row) -> Occurrence:
        """Convert database row to Occurrence"""
        pattern = row["recurrence_pattern"]
        if isinstance(pattern, str):
            pattern = json.loads(pattern)

        return Occurrence(
            id=row["id"],
            activity_ref=row["activity_ref"],
            goal_ref=row["goal_ref"],
            client_ref=row["client_ref"],
            assignee_ref=row["assignee_ref"],
            created_by_ref=row["created_by_ref"],
            scheduled_date=row["scheduled_date"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            status=OccurrenceStatus(row["status"]),
            priority=Priority(row["priority"]),
            notes=row["notes"],
            completion_ref=row["completion_ref"],
            rescheduled_from_ref=row["rescheduled_from_ref"],
            recurrence_pattern=RecurrencePattern.from_dict(pattern) if pattern else None,
            recurrence_origin_ref=row["recurrence_origin_ref"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
