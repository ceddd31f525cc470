from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.careschedule.app import app
from src.careschedule.models import ActivityTemplate
from src.careschedule.routes.auth import create_token
from src.careschedule.services import ChangeFeedService
from src.careschedule.services.engine_service import EngineService, set_engine_service
from tests.fakes import FakeActivityStorage, InMemoryOccurrenceStorage

client = TestClient(app)

TEMPLATE = ActivityTemplate(title="Wellness check", estimated_duration=30)
USER_ID = uuid4()
WORKER = str(uuid4())


@pytest.fixture(autouse=True)
def engine():
    service = EngineService(
        occurrence_storage=InMemoryOccurrenceStorage(),
        activity_storage=FakeActivityStorage([TEMPLATE]),
        change_feed=ChangeFeedService(),
    )
    set_engine_service(service)
    yield service
    set_engine_service(None)


def auth():
    return {"Authorization": f"Bearer {create_token(USER_ID)}"}


def payload(start="2024-03-04T09:00:00+00:00", end="2024-03-04T10:00:00+00:00", **extra):
    body = {
        "activity_ref": str(TEMPLATE.id),
        "goal_ref": str(uuid4()),
        "client_ref": str(uuid4()),
        "assignee_ref": WORKER,
        "start_time": start,
        "end_time": end,
    }
    body.update(extra)
    return body


def create(**kwargs):
    response = client.post("/api/v1/occurrences", json=payload(**kwargs), headers=auth())
    assert response.status_code == 201, response.text
    return response.json()


def test_requires_bearer_token():
    assert client.get("/api/v1/occurrences").status_code == 401
    response = client.get("/api/v1/occurrences", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_auth_me():
    response = client.get("/api/v1/auth/me", headers=auth())
    assert response.json() == {"user_id": str(USER_ID)}


def test_create_and_fetch():
    [created] = create(priority="high", notes="Knock twice")
    assert created["status"] == "scheduled"
    assert created["created_by_ref"] == str(USER_ID)

    response = client.get(f"/api/v1/occurrences/{created['id']}", headers=auth())
    assert response.status_code == 200
    assert response.json()["notes"] == "Knock twice"


def test_create_without_end_uses_activity_duration():
    body = payload()
    del body["end_time"]
    response = client.post("/api/v1/occurrences", json=body, headers=auth())
    assert response.status_code == 201
    assert response.json()[0]["end_time"] == "2024-03-04T09:30:00+00:00"


def test_accepts_utc_designator():
    [created] = create(start="2024-03-04T09:00:00Z", end="2024-03-04T10:00:00z")
    assert created["start_time"] == "2024-03-04T09:00:00+00:00"
    assert created["end_time"] == "2024-03-04T10:00:00+00:00"


def test_conflict_returns_409_with_colliding_id():
    [first] = create()
    response = client.post(
        "/api/v1/occurrences",
        json=payload("2024-03-04T09:30:00+00:00", "2024-03-04T10:30:00+00:00"),
        headers=auth(),
    )
    assert response.status_code == 409
    assert response.json()["detail"]["conflicting_occurrence_id"] == first["id"]


def test_recurring_series():
    series = create(recurrence_pattern={
        "frequency": "weekly",
        "days_of_week": [1, 3],
        "end_date": "2024-03-13",
    })
    assert len(series) == 4
    assert series[0]["recurrence_pattern"]["days_of_week"] == [1, 3]
    assert all(o["recurrence_origin_ref"] == series[0]["id"] for o in series[1:])


@pytest.mark.parametrize("body", [
    payload(assignee_ref="not-a-uuid"),
    payload(start="yesterday"),
    payload(end="2024-03-04T08:00:00+00:00"),
    payload(priority="urgent"),
    payload(recurrence_pattern={"frequency": "yearly"}),
    payload(recurrence_pattern={"frequency": "daily", "interval": 0}),
])
def test_invalid_input_returns_400(body):
    response = client.post("/api/v1/occurrences", json=body, headers=auth())
    assert response.status_code == 400


def test_unknown_occurrence_returns_404():
    response = client.get(f"/api/v1/occurrences/{uuid4()}", headers=auth())
    assert response.status_code == 404


def test_reschedule_and_history():
    [original] = create()
    response = client.post(
        f"/api/v1/occurrences/{original['id']}/reschedule",
        json={
            "new_start_time": "2024-03-05T09:00:00+00:00",
            "new_end_time": "2024-03-05T10:00:00+00:00",
            "reason": "Client request",
        },
        headers=auth(),
    )
    assert response.status_code == 201
    successor = response.json()
    assert successor["rescheduled_from_ref"] == original["id"]

    history = client.get(f"/api/v1/occurrences/{successor['id']}/history", headers=auth()).json()
    assert [o["id"] for o in history] == [original["id"], successor["id"]]
    assert history[0]["status"] == "rescheduled"


def test_lifecycle_endpoints():
    [occ] = create()
    url = f"/api/v1/occurrences/{occ['id']}"

    assert client.post(f"{url}/start", headers=auth()).json()["status"] == "in_progress"
    response = client.post(f"{url}/complete", json={"completion_ref": str(uuid4())}, headers=auth())
    assert response.json()["status"] == "completed"

    response = client.post(f"{url}/cancel", json={"reason": "late"}, headers=auth())
    assert response.status_code == 409


def test_patch_and_listing():
    [occ] = create()
    response = client.patch(
        f"/api/v1/occurrences/{occ['id']}", json={"priority": "low"}, headers=auth()
    )
    assert response.json()["priority"] == "low"

    client.post(f"/api/v1/occurrences/{occ['id']}/cancel", headers=auth())
    assert client.get("/api/v1/occurrences", headers=auth()).json() == []

    listed = client.get("/api/v1/occurrences", params={"include_cancelled": "true"}, headers=auth()).json()
    assert [o["id"] for o in listed] == [occ["id"]]


def test_schedule_views():
    [occ] = create()

    day = client.get("/api/v1/schedule/date/2024-03-04", params={"assignee_ref": WORKER}, headers=auth())
    assert [o["id"] for o in day.json()] == [occ["id"]]
    assert client.get("/api/v1/schedule/date/03-04-2024", headers=auth()).status_code == 400

    analytics = client.get("/api/v1/schedule/analytics", headers=auth()).json()
    assert analytics["total"] == 1
    assert analytics["by_status"]["scheduled"] == 1

    assert client.get("/api/v1/schedule/upcoming", params={"days": 0}, headers=auth()).status_code == 422


def test_health():
    assert client.get("/api/v1/health/live").json()["alive"] is True
    ready = client.get("/api/v1/health/ready")
    assert ready.status_code == 200
    assert ready.json()["database"] is True
