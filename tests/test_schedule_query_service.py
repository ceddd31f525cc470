from datetime import date, timedelta
from uuid import uuid4

from src.careschedule.models import Occurrence, OccurrenceStatus, Priority
from src.careschedule.services import ScheduleQueryService
from src.careschedule.storage import OccurrenceFilter
from tests.conftest import NOW, at


def seed(storage, start, minutes=60, status=OccurrenceStatus.SCHEDULED, **kwargs):
    kwargs.setdefault("scheduled_date", start.date())
    return storage.add(Occurrence(
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        status=status,
        **kwargs,
    ))


async def test_day_view_excludes_cancelled_by_default(storage, query_service):
    morning = seed(storage, at(4, 9))
    late = seed(storage, at(4, 23, 30))
    cancelled = seed(storage, at(4, 15), status=OccurrenceStatus.CANCELLED)
    seed(storage, at(5, 0))

    day = await query_service.occurrences_on_date(date(2024, 3, 4))
    assert [o.id for o in day] == [morning.id, late.id]

    everything = await query_service.occurrences_on_date(date(2024, 3, 4), include_cancelled=True)
    assert [o.id for o in everything] == [morning.id, cancelled.id, late.id]


async def test_day_view_for_one_assignee(storage, query_service, worker):
    mine = seed(storage, at(4, 9), assignee_ref=worker)
    seed(storage, at(4, 10))

    day = await query_service.occurrences_for_assignee_on_date(worker, date(2024, 3, 4))
    assert [o.id for o in day] == [mine.id]


async def test_day_bounds_follow_schedule_time_zone(storage):
    query_service = ScheduleQueryService(storage, timezone_name="America/New_York", clock=lambda: NOW)
    previous_evening = seed(storage, at(4, 3))     # 22:00 on the 3rd in New York
    morning = seed(storage, at(4, 14))

    day = await query_service.occurrences_on_date(date(2024, 3, 4))
    assert [o.id for o in day] == [morning.id]
    day_before = await query_service.occurrences_on_date(date(2024, 3, 3))
    assert [o.id for o in day_before] == [previous_evening.id]


async def test_today_uses_clock(storage, query_service):
    today = seed(storage, at(4, 15))
    seed(storage, at(5, 9))

    result = await query_service.todays_occurrences()
    assert [o.id for o in result] == [today.id]


async def test_upcoming_window(storage, query_service):
    seed(storage, at(4, 11))                                   # already started
    soon = seed(storage, at(4, 13))
    last = seed(storage, at(11, 11))
    seed(storage, at(11, 12))                                  # exactly now + 7 days
    seed(storage, at(5, 9), status=OccurrenceStatus.RESCHEDULED)
    seed(storage, at(5, 10), status=OccurrenceStatus.CANCELLED)

    result = await query_service.upcoming()
    assert [o.id for o in result] == [soon.id, last.id]

    next_day = await query_service.upcoming(days=1)
    assert [o.id for o in next_day] == [soon.id]


async def test_overdue_only_lists_elapsed_scheduled(storage, query_service):
    overdue = seed(storage, at(4, 9))
    seed(storage, at(4, 9), status=OccurrenceStatus.IN_PROGRESS)
    seed(storage, at(4, 9), status=OccurrenceStatus.COMPLETED)
    seed(storage, at(4, 11))                                   # ends exactly now

    result = await query_service.overdue()
    assert [o.id for o in result] == [overdue.id]


async def test_list_filters(storage, query_service, worker):
    client = uuid4()
    first = seed(storage, at(4, 9), client_ref=client, priority=Priority.HIGH)
    second = seed(storage, at(6, 9), client_ref=client)
    cancelled = seed(storage, at(5, 9), client_ref=client, status=OccurrenceStatus.CANCELLED)
    seed(storage, at(4, 10))

    result = await query_service.list_occurrences(OccurrenceFilter(client_ref=client))
    assert [o.id for o in result] == [first.id, second.id]

    result = await query_service.list_occurrences(
        OccurrenceFilter(client_ref=client, include_cancelled=True)
    )
    assert [o.id for o in result] == [first.id, cancelled.id, second.id]

    result = await query_service.list_occurrences(OccurrenceFilter(status=OccurrenceStatus.CANCELLED))
    assert [o.id for o in result] == [cancelled.id]

    result = await query_service.list_occurrences(OccurrenceFilter(priority=Priority.HIGH))
    assert [o.id for o in result] == [first.id]

    result = await query_service.list_occurrences(
        OccurrenceFilter(date_from=date(2024, 3, 5), date_to=date(2024, 3, 6), include_cancelled=True)
    )
    assert [o.id for o in result] == [cancelled.id, second.id]


async def test_analytics(storage, query_service):
    seed(storage, at(4, 9), priority=Priority.HIGH)                       # overdue, today
    seed(storage, at(4, 15))                                              # today, this week
    seed(storage, at(6, 9), priority=Priority.LOW)                        # this week
    seed(storage, at(4, 16), status=OccurrenceStatus.CANCELLED, priority=Priority.HIGH)
    seed(storage, at(1, 9), status=OccurrenceStatus.COMPLETED)

    stats = await query_service.analytics()

    assert stats.total == 5
    assert stats.by_status["scheduled"] == 3
    assert stats.by_status["cancelled"] == 1
    assert stats.by_status["rescheduled"] == 0
    assert stats.by_priority == {"high": 1, "medium": 2, "low": 1}
    assert stats.overdue == 1
    assert stats.today == 2
    assert stats.this_week == 2
    assert stats.to_dict()["total"] == 5
