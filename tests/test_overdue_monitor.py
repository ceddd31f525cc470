import asyncio
from datetime import timedelta

from src.careschedule.models import ChangeType, Occurrence, OccurrenceStatus
from src.careschedule.services import OverdueMonitor
from tests.conftest import at


def seed(storage, start, status=OccurrenceStatus.SCHEDULED):
    return storage.add(Occurrence(start_time=start, end_time=start + timedelta(hours=1), status=status))


async def test_reports_each_overdue_occurrence_once(storage, query_service, change_feed, publisher):
    late = seed(storage, at(4, 9))
    seed(storage, at(4, 14))
    monitor = OverdueMonitor(query_service, change_feed)

    fresh = await monitor.check_overdue()
    assert [o.id for o in fresh] == [late.id]
    assert publisher.events[0].change_type == ChangeType.OVERDUE
    assert publisher.events[0].occurrence_ids == [late.id]

    assert await monitor.check_overdue() == []
    assert len(publisher.events) == 1


async def test_forgets_occurrences_no_longer_overdue(storage, query_service, change_feed, publisher):
    late = seed(storage, at(4, 9))
    monitor = OverdueMonitor(query_service, change_feed)
    await monitor.check_overdue()

    storage.rows[late.id].status = OccurrenceStatus.IN_PROGRESS
    assert await monitor.check_overdue() == []

    storage.rows[late.id].status = OccurrenceStatus.SCHEDULED
    fresh = await monitor.check_overdue()
    assert [o.id for o in fresh] == [late.id]
    assert len(publisher.events) == 2


async def test_disabled_monitor_does_not_start(query_service):
    monitor = OverdueMonitor(query_service, enabled=False)
    await monitor.start()
    assert not monitor.is_running


async def test_start_and_stop(storage, query_service, change_feed, publisher):
    seed(storage, at(4, 9))
    monitor = OverdueMonitor(query_service, change_feed, poll_interval=3600)

    await monitor.start()
    assert monitor.is_running
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    await monitor.stop()

    assert not monitor.is_running
    assert [e.change_type for e in publisher.events] == [ChangeType.OVERDUE]
