from datetime import datetime, timezone
from uuid import uuid4

import pytest

from src.careschedule.models import ActivityTemplate
from src.careschedule.services import ChangeFeedService, ScheduleQueryService, ScheduleService
from tests.fakes import FakeActivityStorage, InMemoryOccurrenceStorage, RecordingPublisher

# Monday
NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def at(day: int, hour: int, minute: int = 0) -> datetime:
    """A UTC moment in March 2024 (the 4th is a Monday)"""
    return datetime(2024, 3, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def storage():
    return InMemoryOccurrenceStorage()


@pytest.fixture
def template():
    return ActivityTemplate(title="Medication review", frequency="weekly", estimated_duration=45)


@pytest.fixture
def activity_storage(template):
    return FakeActivityStorage([template])


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def change_feed(publisher):
    return ChangeFeedService({"recorder": publisher})


@pytest.fixture
def service(storage, activity_storage, change_feed):
    return ScheduleService(
        storage=storage,
        activity_storage=activity_storage,
        change_feed=change_feed,
        clock=lambda: NOW,
    )


@pytest.fixture
def query_service(storage):
    return ScheduleQueryService(storage, clock=lambda: NOW)


@pytest.fixture
def refs(template):
    """Reference ids shared by one client's care plan"""
    return {
        "activity_ref": template.id,
        "goal_ref": uuid4(),
        "client_ref": uuid4(),
        "created_by_ref": uuid4(),
    }


@pytest.fixture
def worker():
    return uuid4()
