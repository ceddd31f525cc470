from uuid import uuid4

import pytest

from src.careschedule.exceptions import InvalidPattern, SchedulingConflict
from src.careschedule.models import Occurrence, OccurrenceStatus, TimeWindow
from src.careschedule.services.conflict_checker import (
    ConflictChecker,
    first_self_overlap,
    windows_overlap,
)
from tests.conftest import at


def test_overlapping_windows():
    assert windows_overlap(TimeWindow(at(4, 9), at(4, 10)), TimeWindow(at(4, 9, 30), at(4, 10, 30)))
    assert windows_overlap(TimeWindow(at(4, 9), at(4, 12)), TimeWindow(at(4, 10), at(4, 11)))


def test_touching_windows_do_not_overlap():
    assert not windows_overlap(TimeWindow(at(4, 9), at(4, 10)), TimeWindow(at(4, 10), at(4, 11)))
    assert not windows_overlap(TimeWindow(at(4, 10), at(4, 11)), TimeWindow(at(4, 9), at(4, 10)))


def test_first_self_overlap():
    clean = [TimeWindow(at(4, 9), at(4, 10)), TimeWindow(at(5, 9), at(5, 10))]
    assert first_self_overlap(clean) is None

    clashing = [TimeWindow(at(4, 9), at(5, 10)), TimeWindow(at(5, 9), at(6, 10))]
    assert first_self_overlap(clashing) == 1


def seed(storage, assignee, start, end, status=OccurrenceStatus.SCHEDULED):
    return storage.add(Occurrence(assignee_ref=assignee, start_time=start, end_time=end, status=status))


async def test_ensure_available_reports_colliding_occurrence(storage, worker):
    existing = seed(storage, worker, at(4, 9), at(4, 10))
    checker = ConflictChecker(storage)

    with pytest.raises(SchedulingConflict) as exc:
        await checker.ensure_available(worker, TimeWindow(at(4, 9, 30), at(4, 10, 30)))
    assert exc.value.conflicting_occurrence_id == existing.id


async def test_inactive_statuses_do_not_block(storage, worker):
    seed(storage, worker, at(4, 9), at(4, 10), OccurrenceStatus.CANCELLED)
    seed(storage, worker, at(4, 9), at(4, 10), OccurrenceStatus.RESCHEDULED)
    checker = ConflictChecker(storage)

    assert not await checker.has_conflict(worker, TimeWindow(at(4, 9), at(4, 10)))


async def test_completed_occurrences_still_block(storage, worker):
    seed(storage, worker, at(4, 9), at(4, 10), OccurrenceStatus.COMPLETED)
    checker = ConflictChecker(storage)

    assert await checker.has_conflict(worker, TimeWindow(at(4, 9, 15), at(4, 9, 45)))


async def test_other_assignees_and_excluded_id_ignored(storage, worker):
    mine = seed(storage, worker, at(4, 9), at(4, 10))
    seed(storage, uuid4(), at(4, 9), at(4, 10))
    checker = ConflictChecker(storage)

    window = TimeWindow(at(4, 9), at(4, 10))
    assert not await checker.has_conflict(worker, window, exclude_occurrence_id=mine.id)


async def test_batch_with_self_overlap_is_invalid_pattern(storage, worker):
    checker = ConflictChecker(storage)
    windows = [TimeWindow(at(4, 9), at(5, 10)), TimeWindow(at(5, 9), at(6, 10))]

    with pytest.raises(InvalidPattern):
        await checker.ensure_batch_available(worker, windows)


async def test_batch_conflict_reports_existing(storage, worker):
    existing = seed(storage, worker, at(11, 9), at(11, 10))
    checker = ConflictChecker(storage)
    windows = [TimeWindow(at(d, 9), at(d, 9, 30)) for d in (4, 11, 18)]

    with pytest.raises(SchedulingConflict) as exc:
        await checker.ensure_batch_available(worker, windows)
    assert exc.value.conflicting_occurrence_id == existing.id


async def test_find_batch_conflict_returns_none_when_free(storage, worker):
    seed(storage, worker, at(4, 10), at(4, 11))
    checker = ConflictChecker(storage)
    windows = [TimeWindow(at(d, 9), at(d, 10)) for d in (4, 5)]

    assert await checker.find_batch_conflict(worker, windows) is None
