"""
Conflict Checker

Decides whether a candidate window double-books an assignee. Only active
occurrences (scheduled, in progress, completed) count; rescheduled and
cancelled ones are history. Windows are half-open, so back-to-back
occurrences (one ending 10:00, the next starting 10:00) are allowed.
"""
import logging
from typing import Optional, Sequence
from uuid import UUID

from ..exceptions import InvalidPattern, SchedulingConflict
from ..models.occurrence import Occurrence, TimeWindow
from ..storage.occurrence_storage import OccurrenceStorage

logger = logging.getLogger("careschedule.services.conflicts")


def windows_overlap(a: TimeWindow, b: TimeWindow) -> bool:
    """[s1, e1) and [s2, e2) overlap iff s1 < e2 and s2 < e1"""
    return a.overlaps(b)


def first_self_overlap(windows: Sequence[TimeWindow]) -> Optional[int]:
    """Index of the first window overlapping an earlier one in the same batch"""
    ordered = sorted(range(len(windows)), key=lambda i: windows[i].utc_start)
    for prev, cur in zip(ordered, ordered[1:]):
        if windows_overlap(windows[prev], windows[cur]):
            return cur
    return None


class ConflictChecker:
    """Read-only overlap checks against the schedule store"""

    def __init__(self, storage: OccurrenceStorage):
        self.storage = storage

    async def find_conflict(
        self,
        assignee_ref: UUID,
        window: TimeWindow,
        exclude_occurrence_id: Optional[UUID] = None,
        conn=None,
    ) -> Optional[Occurrence]:
        """Return the first active occurrence of the assignee overlapping window"""
        return await self.storage.find_overlapping(
            assignee_ref, window, exclude_id=exclude_occurrence_id, conn=conn
        )

    async def has_conflict(
        self,
        assignee_ref: UUID,
        window: TimeWindow,
        exclude_occurrence_id: Optional[UUID] = None,
        conn=None,
    ) -> bool:
        return await self.find_conflict(assignee_ref, window, exclude_occurrence_id, conn) is not None

    async def ensure_available(
        self,
        assignee_ref: UUID,
        window: TimeWindow,
        exclude_occurrence_id: Optional[UUID] = None,
        conn=None,
    ) -> None:
        """
        Raises:
            SchedulingConflict: carrying the id of the colliding occurrence
        """
        conflict = await self.find_conflict(assignee_ref, window, exclude_occurrence_id, conn)
        if conflict:
            logger.info(
                f"Conflict for assignee {assignee_ref}: {window.start.isoformat()}-"
                f"{window.end.isoformat()} overlaps occurrence {conflict.id}"
            )
            raise SchedulingConflict(
                "Schedule conflict detected. There is already an activity scheduled "
                f"during this time (occurrence {conflict.id}).",
                conflicting_occurrence_id=conflict.id,
            )

    async def find_batch_conflict(
        self,
        assignee_ref: UUID,
        windows: Sequence[TimeWindow],
        conn=None,
    ) -> Optional[Occurrence]:
        """
        Check a whole series in one query.

        Raises:
            InvalidPattern: the series overlaps itself and can never be scheduled
        """
        clash = first_self_overlap(windows)
        if clash is not None:
            raise InvalidPattern(
                f"Recurring windows overlap each other (window starting "
                f"{windows[clash].start.isoformat()}); the activity lasts longer than the interval"
            )
        return await self.storage.find_overlapping_any(assignee_ref, windows, conn=conn)

    async def ensure_batch_available(
        self,
        assignee_ref: UUID,
        windows: Sequence[TimeWindow],
        conn=None,
    ) -> None:
        """
        Raises:
            InvalidPattern: the series overlaps itself
            SchedulingConflict: a window collides with an existing occurrence
        """
        conflict = await self.find_batch_conflict(assignee_ref, windows, conn=conn)
        if conflict:
            logger.info(
                f"Series conflict for assignee {assignee_ref}: occurrence {conflict.id} "
                f"at {conflict.start_time.isoformat()}"
            )
            raise SchedulingConflict(
                "Schedule conflict detected. A recurring occurrence overlaps an activity "
                f"already scheduled (occurrence {conflict.id}); no occurrences were created.",
                conflicting_occurrence_id=conflict.id,
            )
