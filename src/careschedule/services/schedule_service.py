"""
Schedule Service

Lifecycle management for activity occurrences: creation (single or
recurring), updates, rescheduling, cancellation and status progress.

Every mutation runs as one transaction. Check-then-write for an assignee is
serialized with an advisory lock on that assignee, and status changes only
apply if the status read at the start of the transaction is still current.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, List, Optional, Union
from uuid import UUID
from zoneinfo import ZoneInfo

from .change_feed_service import ChangeFeedService
from .conflict_checker import ConflictChecker
from .recurrence import DEFAULT_MAX_OCCURRENCES, expand
from ..exceptions import InvalidStateTransition, InvalidTimeRange, NotFound
from ..models.change_event import ChangeType, ScheduleChangeEvent
from ..models.occurrence import (
    OPEN_STATUSES,
    Occurrence,
    OccurrenceStatus,
    Priority,
    RecurrencePattern,
    TimeWindow,
)
from ..storage.activity_storage import ActivityStorage
from ..storage.occurrence_storage import OccurrenceStorage

logger = logging.getLogger("careschedule.services.schedule")

# Status changes allowed through update/start/complete/cancel.
# RESCHEDULED is only reachable through reschedule_occurrence.
ALLOWED_TRANSITIONS: Dict[OccurrenceStatus, FrozenSet[OccurrenceStatus]] = {
    OccurrenceStatus.SCHEDULED: frozenset({
        OccurrenceStatus.IN_PROGRESS,
        OccurrenceStatus.COMPLETED,
        OccurrenceStatus.CANCELLED,
    }),
    OccurrenceStatus.IN_PROGRESS: frozenset({
        OccurrenceStatus.COMPLETED,
        OccurrenceStatus.CANCELLED,
    }),
}

_STATUS_CHANGE_TYPES = {
    OccurrenceStatus.IN_PROGRESS: ChangeType.STARTED,
    OccurrenceStatus.COMPLETED: ChangeType.COMPLETED,
    OccurrenceStatus.CANCELLED: ChangeType.CANCELLED,
}

RECURRING_NOTE = "(Recurring)"


def _append_note(notes: Optional[str], addition: str) -> str:
    return f"{notes} | {addition}" if notes else addition


class ScheduleService:
    """Service for occurrence lifecycle operations"""

    def __init__(
        self,
        storage: OccurrenceStorage,
        activity_storage: Optional[ActivityStorage] = None,
        change_feed: Optional[ChangeFeedService] = None,
        timezone_name: str = "UTC",
        max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
        horizon_days: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.activity_storage = activity_storage
        self.change_feed = change_feed
        self.conflicts = ConflictChecker(storage)
        self.tz = ZoneInfo(timezone_name)
        self.max_occurrences = max_occurrences
        self.horizon_days = horizon_days
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ============================================
    # Creation
    # ============================================

    async def create_occurrence(
        self,
        activity_ref: UUID,
        goal_ref: UUID,
        client_ref: UUID,
        start_time: datetime,
        assignee_ref: UUID,
        created_by_ref: UUID,
        end_time: Optional[datetime] = None,
        scheduled_date: Optional[date] = None,
        priority: Union[Priority, str] = Priority.MEDIUM,
        notes: Optional[str] = None,
        recurrence_pattern: Optional[RecurrencePattern] = None,
    ) -> Union[Occurrence, List[Occurrence]]:
        """
        Create a single occurrence, or a whole recurring series.

        Without a pattern a single Occurrence is returned. With a pattern the
        series is expanded from the given window and returned as a list, the
        originating occurrence first. A series is all-or-nothing: if any
        window conflicts, nothing is written.

        When end_time is omitted it comes from the activity template's
        estimated duration. scheduled_date defaults to the start's calendar
        date in the schedule time zone.

        Raises:
            InvalidTimeRange: end not after start, or no end and no template duration
            InvalidPattern: malformed recurrence pattern
            SchedulingConflict: a window overlaps an active occurrence of the assignee
        """
        start_time = self._localize(start_time)
        if end_time is None:
            end_time = start_time + await self._default_duration(activity_ref)
        anchor = self._validate_window(start_time, self._localize(end_time))
        priority = Priority(priority)
        if scheduled_date is None:
            scheduled_date = anchor.start.date()

        origin = Occurrence(
            activity_ref=activity_ref,
            goal_ref=goal_ref,
            client_ref=client_ref,
            assignee_ref=assignee_ref,
            created_by_ref=created_by_ref,
            scheduled_date=scheduled_date,
            start_time=anchor.start,
            end_time=anchor.end,
            priority=priority,
            notes=notes,
            recurrence_pattern=recurrence_pattern,
        )
        batch = [origin]

        if recurrence_pattern is not None:
            windows = self._expand_series(recurrence_pattern, anchor)
            recurring_notes = f"{notes or ''} {RECURRING_NOTE}".strip()
            for window in windows[1:]:
                batch.append(Occurrence(
                    activity_ref=activity_ref,
                    goal_ref=goal_ref,
                    client_ref=client_ref,
                    assignee_ref=assignee_ref,
                    created_by_ref=created_by_ref,
                    scheduled_date=scheduled_date + (window.start.date() - anchor.start.date()),
                    start_time=window.start,
                    end_time=window.end,
                    priority=priority,
                    notes=recurring_notes,
                    recurrence_origin_ref=origin.id,
                ))

        async with self.storage.transaction([str(assignee_ref)]) as conn:
            if recurrence_pattern is not None:
                await self.conflicts.ensure_batch_available(
                    assignee_ref, [o.window for o in batch], conn=conn
                )
            else:
                await self.conflicts.ensure_available(assignee_ref, anchor, conn=conn)
            created = await self.storage.create_many(batch, conn=conn)

        if recurrence_pattern is not None:
            logger.info(
                f"Created recurring series of {len(created)} occurrence(s) "
                f"({recurrence_pattern.frequency.value}/{recurrence_pattern.interval}) "
                f"for assignee {assignee_ref}, origin {origin.id}"
            )
        else:
            logger.info(
                f"Created occurrence {origin.id} for assignee {assignee_ref} "
                f"at {anchor.start.isoformat()}"
            )
        await self._publish(ChangeType.CREATED, created, actor_ref=created_by_ref)

        return created if recurrence_pattern is not None else created[0]

    # ============================================
    # Reads
    # ============================================

    async def get_occurrence(self, occurrence_id: UUID) -> Occurrence:
        """
        Raises:
            NotFound: no such occurrence
        """
        occurrence = await self.storage.get_by_id(occurrence_id)
        if not occurrence:
            raise NotFound(f"Occurrence {occurrence_id} not found")
        return occurrence

    async def get_reschedule_chain(self, occurrence_id: UUID) -> List[Occurrence]:
        """Every occurrence in the chain, from the original to the current one"""
        occurrence = await self.get_occurrence(occurrence_id)
        chain = [occurrence]
        seen = {occurrence.id}

        earliest = occurrence
        while earliest.rescheduled_from_ref:
            previous = await self.storage.get_by_id(earliest.rescheduled_from_ref)
            if not previous or previous.id in seen:
                break
            chain.insert(0, previous)
            seen.add(previous.id)
            earliest = previous

        latest = occurrence
        while True:
            successor = await self.storage.get_successor(latest.id)
            if not successor or successor.id in seen:
                break
            chain.append(successor)
            seen.add(successor.id)
            latest = successor

        return chain

    # ============================================
    # Mutations
    # ============================================

    async def update_occurrence(
        self,
        occurrence_id: UUID,
        scheduled_date: Optional[date] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        assignee_ref: Optional[UUID] = None,
        priority: Optional[Union[Priority, str]] = None,
        notes: Optional[str] = None,
        status: Optional[Union[OccurrenceStatus, str]] = None,
        completion_ref: Optional[UUID] = None,
        actor_ref: Optional[UUID] = None,
    ) -> Occurrence:
        """
        Update fields of an occurrence in place.

        Terminal occurrences only accept notes (and completion_ref once
        completed). Status changes follow ALLOWED_TRANSITIONS; completing
        requires a completion_ref. Moving the window or changing the assignee
        re-runs the conflict check, excluding the occurrence itself.

        Raises:
            NotFound, InvalidStateTransition, InvalidTimeRange, SchedulingConflict
        """
        status = OccurrenceStatus(status) if status is not None else None
        priority = Priority(priority) if priority is not None else None
        moves = any(v is not None for v in (scheduled_date, start_time, end_time, assignee_ref))

        current = await self.get_occurrence(occurrence_id)
        target_assignee = assignee_ref or current.assignee_ref

        async with self.storage.transaction([str(target_assignee)]) as conn:
            occurrence = await self._get_locked(occurrence_id, conn)
            expected = occurrence.status
            if assignee_ref is None and occurrence.assignee_ref != target_assignee:
                raise InvalidStateTransition(
                    f"Occurrence {occurrence_id} was reassigned concurrently; re-fetch and retry"
                )

            if expected.is_terminal:
                if moves or priority is not None or (status is not None and status != expected):
                    raise InvalidStateTransition(
                        f"Occurrence {occurrence_id} is {expected.value}; only notes can change"
                    )

            new_status = expected
            if status is not None and status != expected:
                self._check_transition(occurrence, status)
                new_status = status
            if new_status == OccurrenceStatus.COMPLETED and not (completion_ref or occurrence.completion_ref):
                raise InvalidStateTransition("Completing an occurrence requires a completion_ref")
            if completion_ref is not None and new_status != OccurrenceStatus.COMPLETED:
                raise InvalidStateTransition(
                    "completion_ref can only be attached to a completed occurrence"
                )

            if moves:
                window = self._validate_window(
                    self._localize(start_time) if start_time else occurrence.start_time,
                    self._localize(end_time) if end_time else occurrence.end_time,
                )
                if new_status.is_active:
                    await self.conflicts.ensure_available(
                        target_assignee, window, exclude_occurrence_id=occurrence.id, conn=conn
                    )
                occurrence.start_time = window.start
                occurrence.end_time = window.end
                occurrence.assignee_ref = target_assignee
                if scheduled_date is not None:
                    occurrence.scheduled_date = scheduled_date

            if priority is not None:
                occurrence.priority = priority
            if notes is not None:
                occurrence.notes = notes
            if completion_ref is not None:
                occurrence.completion_ref = completion_ref
            occurrence.status = new_status

            updated = await self._write(occurrence, expected, conn)

        logger.info(f"Updated occurrence {occurrence_id} (status={updated.status.value})")
        change_type = _STATUS_CHANGE_TYPES.get(new_status) if new_status != expected else None
        await self._publish(change_type or ChangeType.UPDATED, [updated], actor_ref=actor_ref)
        return updated

    async def reschedule_occurrence(
        self,
        occurrence_id: UUID,
        new_start_time: datetime,
        new_end_time: datetime,
        new_scheduled_date: Optional[date] = None,
        new_assignee_ref: Optional[UUID] = None,
        reason: Optional[str] = None,
        actor_ref: Optional[UUID] = None,
    ) -> Occurrence:
        """
        Move an occurrence to a new window, optionally to another assignee.

        A successor occurrence is created with rescheduled_from_ref pointing
        at the original, and the original is retired as RESCHEDULED. Both
        writes commit together or not at all.

        Raises:
            NotFound: no such occurrence
            InvalidStateTransition: occurrence is not scheduled or in progress
            InvalidTimeRange: new window does not end after it starts
            SchedulingConflict: new window overlaps the assignee's other occurrences
        """
        current = await self.get_occurrence(occurrence_id)
        if current.status not in OPEN_STATUSES:
            raise InvalidStateTransition(
                f"Cannot reschedule occurrence {occurrence_id}: status is {current.status.value}"
            )
        window = self._validate_window(self._localize(new_start_time), self._localize(new_end_time))
        target_assignee = new_assignee_ref or current.assignee_ref

        async with self.storage.transaction([str(target_assignee)]) as conn:
            original = await self._get_locked(occurrence_id, conn)
            expected = original.status
            if expected not in OPEN_STATUSES:
                raise InvalidStateTransition(
                    f"Cannot reschedule occurrence {occurrence_id}: status is {expected.value}"
                )
            if new_assignee_ref is None and original.assignee_ref != target_assignee:
                raise InvalidStateTransition(
                    f"Occurrence {occurrence_id} was reassigned concurrently; re-fetch and retry"
                )

            await self.conflicts.ensure_available(
                target_assignee, window, exclude_occurrence_id=original.id, conn=conn
            )

            original.status = OccurrenceStatus.RESCHEDULED
            retired = await self._write(original, expected, conn)

            successor = Occurrence(
                activity_ref=original.activity_ref,
                goal_ref=original.goal_ref,
                client_ref=original.client_ref,
                assignee_ref=target_assignee,
                created_by_ref=original.created_by_ref,
                scheduled_date=new_scheduled_date or window.start.date(),
                start_time=window.start,
                end_time=window.end,
                priority=original.priority,
                notes=f"Rescheduled: {reason}" if reason else original.notes,
                rescheduled_from_ref=original.id,
            )
            successor = await self.storage.create(successor, conn=conn)

        logger.info(
            f"Rescheduled occurrence {occurrence_id} -> {successor.id} "
            f"at {window.start.isoformat()} (assignee {target_assignee})"
        )
        await self._publish(
            ChangeType.RESCHEDULED, [retired, successor], actor_ref=actor_ref, reason=reason
        )
        return successor

    async def cancel_occurrence(
        self,
        occurrence_id: UUID,
        reason: Optional[str] = None,
        actor_ref: Optional[UUID] = None,
    ) -> Occurrence:
        """
        Cancel a scheduled or in-progress occurrence. The record is kept.

        Raises:
            NotFound, InvalidStateTransition
        """
        cancel_note = f"Cancelled: {reason}" if reason else "Cancelled"

        def apply(occurrence: Occurrence) -> None:
            occurrence.notes = _append_note(occurrence.notes, cancel_note)

        cancelled = await self._transition(occurrence_id, OccurrenceStatus.CANCELLED, apply)
        logger.info(f"Cancelled occurrence {occurrence_id}" + (f": {reason}" if reason else ""))
        await self._publish(ChangeType.CANCELLED, [cancelled], actor_ref=actor_ref, reason=reason)
        return cancelled

    async def start_occurrence(
        self, occurrence_id: UUID, actor_ref: Optional[UUID] = None
    ) -> Occurrence:
        """
        Mark a scheduled occurrence as in progress.

        Raises:
            NotFound, InvalidStateTransition
        """
        started = await self._transition(occurrence_id, OccurrenceStatus.IN_PROGRESS)
        logger.info(f"Started occurrence {occurrence_id}")
        await self._publish(ChangeType.STARTED, [started], actor_ref=actor_ref)
        return started

    async def complete_occurrence(
        self,
        occurrence_id: UUID,
        completion_ref: UUID,
        actor_ref: Optional[UUID] = None,
    ) -> Occurrence:
        """
        Mark an occurrence completed and attach the completion record reference.

        Raises:
            NotFound, InvalidStateTransition
        """
        if completion_ref is None:
            raise InvalidStateTransition("Completing an occurrence requires a completion_ref")

        def apply(occurrence: Occurrence) -> None:
            occurrence.completion_ref = completion_ref

        completed = await self._transition(occurrence_id, OccurrenceStatus.COMPLETED, apply)
        logger.info(f"Completed occurrence {occurrence_id} (completion {completion_ref})")
        await self._publish(ChangeType.COMPLETED, [completed], actor_ref=actor_ref)
        return completed

    # ============================================
    # Helpers
    # ============================================

    async def _transition(
        self,
        occurrence_id: UUID,
        new_status: OccurrenceStatus,
        apply: Optional[Callable[[Occurrence], None]] = None,
    ) -> Occurrence:
        """Status-only change under a row lock with an optimistic status check"""
        async with self.storage.transaction() as conn:
            occurrence = await self._get_locked(occurrence_id, conn)
            expected = occurrence.status
            self._check_transition(occurrence, new_status)
            occurrence.status = new_status
            if apply:
                apply(occurrence)
            return await self._write(occurrence, expected, conn)

    async def _get_locked(self, occurrence_id: UUID, conn) -> Occurrence:
        occurrence = await self.storage.get_by_id(occurrence_id, conn=conn, for_update=True)
        if not occurrence:
            raise NotFound(f"Occurrence {occurrence_id} not found")
        return occurrence

    async def _write(self, occurrence: Occurrence, expected: OccurrenceStatus, conn) -> Occurrence:
        updated = await self.storage.update(occurrence, expected_status=expected, conn=conn)
        if updated is None:
            raise InvalidStateTransition(
                f"Occurrence {occurrence.id} changed status concurrently; re-fetch and retry"
            )
        return updated

    @staticmethod
    def _check_transition(occurrence: Occurrence, new_status: OccurrenceStatus) -> None:
        allowed = ALLOWED_TRANSITIONS.get(occurrence.status, frozenset())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot change occurrence {occurrence.id} from "
                f"{occurrence.status.value} to {new_status.value}"
            )

    def _localize(self, moment: datetime) -> datetime:
        """Naive datetimes are read as schedule-local time"""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment.astimezone(self.tz)

    @staticmethod
    def _validate_window(start: datetime, end: datetime) -> TimeWindow:
        window = TimeWindow(start, end)
        if not window.is_positive:
            raise InvalidTimeRange(
                f"End time {end.isoformat()} must be after start time {start.isoformat()}"
            )
        return window

    def _expand_series(self, pattern: RecurrencePattern, anchor: TimeWindow) -> List[TimeWindow]:
        horizon = None
        if self.horizon_days:
            horizon = anchor.start + timedelta(days=self.horizon_days)
        return list(expand(pattern, anchor, max_occurrences=self.max_occurrences, horizon=horizon))

    async def _default_duration(self, activity_ref: UUID) -> timedelta:
        template = None
        if self.activity_storage is not None:
            template = await self.activity_storage.get_by_id(activity_ref)
        if template is None or template.default_duration is None:
            raise InvalidTimeRange(
                "end_time is required: activity has no estimated duration to derive it from"
            )
        return template.default_duration

    async def _publish(
        self,
        change_type: ChangeType,
        occurrences: List[Occurrence],
        actor_ref: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> None:
        if not self.change_feed:
            return
        event = ScheduleChangeEvent(
            change_type=change_type,
            occurrences=list(occurrences),
            actor_ref=actor_ref,
            reason=reason,
            occurred_at=self.clock(),
        )
        await self.change_feed.publish(event)
