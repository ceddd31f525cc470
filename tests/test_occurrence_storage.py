import asyncpg
import pytest

from src.careschedule.exceptions import InvalidTimeRange, SchedulingConflict
from src.careschedule.models import Occurrence, OccurrenceStatus
from src.careschedule.storage import OccurrenceFilter, OccurrenceStorage
from tests.conftest import at


class ViolatingStorage(OccurrenceStorage):
    """Every write hits a constraint; lookups answer from a seeded row"""

    def __init__(self, error, existing=None, lookup_error=None):
        super().__init__()
        self.error = error
        self.existing = existing
        self.lookup_error = lookup_error
        self.lookups = []

    async def fetchrow(self, query, *args, conn=None):
        raise self.error

    async def find_overlapping(self, assignee_ref, window, exclude_id=None, conn=None):
        self.lookups.append((assignee_ref, window, exclude_id, conn))
        if self.lookup_error:
            raise self.lookup_error
        return self.existing


def exclusion_violation():
    return asyncpg.exceptions.ExclusionViolationError(
        "conflicting key value violates exclusion constraint \"no_overlapping_active_occurrences\""
    )


@pytest.fixture
def existing(worker):
    return Occurrence(assignee_ref=worker, start_time=at(4, 9), end_time=at(4, 10))


async def test_exclusion_violation_on_create_names_colliding_occurrence(worker, existing):
    storage = ViolatingStorage(exclusion_violation(), existing=existing)
    new = Occurrence(assignee_ref=worker, start_time=at(4, 9, 30), end_time=at(4, 10, 30))

    with pytest.raises(SchedulingConflict) as exc:
        await storage.create(new, conn=object())

    assert exc.value.conflicting_occurrence_id == existing.id
    assignee, window, exclude_id, conn = storage.lookups[0]
    assert (assignee, window, exclude_id) == (worker, new.window, new.id)
    # The caller's transaction is aborted, so the lookup borrows a fresh connection
    assert conn is None


async def test_exclusion_violation_on_update_names_colliding_occurrence(worker, existing):
    storage = ViolatingStorage(exclusion_violation(), existing=existing)
    moved = Occurrence(assignee_ref=worker, start_time=at(4, 8), end_time=at(4, 9, 15))

    with pytest.raises(SchedulingConflict) as exc:
        await storage.update(moved, expected_status=OccurrenceStatus.SCHEDULED)

    assert exc.value.conflicting_occurrence_id == existing.id
    assert storage.lookups[0][2] == moved.id


async def test_exclusion_violation_still_raised_when_lookup_fails(worker):
    storage = ViolatingStorage(exclusion_violation(), lookup_error=OSError("connection reset"))
    new = Occurrence(assignee_ref=worker, start_time=at(4, 9), end_time=at(4, 10))

    with pytest.raises(SchedulingConflict) as exc:
        await storage.create(new)

    assert exc.value.conflicting_occurrence_id is None


async def test_check_violation_maps_to_invalid_time_range(worker):
    storage = ViolatingStorage(asyncpg.exceptions.CheckViolationError("violates check constraint"))
    new = Occurrence(assignee_ref=worker, start_time=at(4, 10), end_time=at(4, 9))

    with pytest.raises(InvalidTimeRange):
        await storage.create(new)
    assert storage.lookups == []


def test_date_range_filter_skips_rows_without_scheduled_date():
    undated = Occurrence(start_time=at(4, 9), end_time=at(4, 10), scheduled_date=None)
    dated = Occurrence(start_time=at(4, 9), end_time=at(4, 10), scheduled_date=at(4, 9).date())
    filters = OccurrenceFilter(date_from=at(1, 0).date(), date_to=at(31, 0).date())

    assert not filters.matches(undated)
    assert filters.matches(dated)
