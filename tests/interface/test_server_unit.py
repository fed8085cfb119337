from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from cadence.application.config import AppConfig
from cadence.application.factory import Services
from cadence.consts import VERSION
from cadence.server import app, get_config, get_services

AT = "2026-10-19T08:05:00Z"


@pytest.fixture
def services(store, slot_repo, catalog, review_service, slot_service, analytics_service):
    return Services(
        store=store,
        slot_repo=slot_repo,
        catalog=catalog,
        reviews=review_service,
        slots=slot_service,
        analytics=analytics_service,
    )


@pytest.fixture
def client(services):
    app.dependency_overrides[get_config] = lambda: AppConfig(backend="memory")
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def eastern_client(services):
    app.dependency_overrides[get_config] = lambda: AppConfig(
        backend="memory", timezone="America/New_York"
    )
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def rate(client, flashcard_id="c1", rating="good", presented_at=AT, **extra):
    body = {
        "flashcard_id": flashcard_id,
        "rating": rating,
        "presented_at": presented_at,
        "rated_at": AT,
        **extra,
    }
    return client.post("/learners/kid-1/reviews", json=body)


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version(client):
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}


def test_queue_with_new_cards(client):
    response = client.get("/learners/kid-1/queue", params={"at": AT})

    assert response.status_code == 200
    data = response.json()
    assert [item["flashcard_id"] for item in data["items"]] == ["c1", "c2", "c3"]
    assert data["capacity"] is None
    assert data["window"] is None
    assert data["items"][0]["expected_version"] == 0
    assert data["items"][0]["state"]["status"] == "new"


def test_utc_query_time_uses_learner_timezone(eastern_client):
    eastern_client.post(
        "/learners/kid-1/slots",
        json={"day_of_week": 0, "start_time": "08:00", "end_time": "08:20", "capacity": 2},
    )

    # 12:05Z is 08:05 in New York, inside the Monday morning slot
    data = eastern_client.get(
        "/learners/kid-1/queue", params={"at": "2026-10-19T12:05:00Z"}
    ).json()

    start = datetime.fromisoformat(data["window"]["start"])
    assert start == datetime(2026, 10, 19, 8, 0, tzinfo=ZoneInfo("America/New_York"))
    assert start.utcoffset().total_seconds() == -4 * 3600
    assert len(data["items"]) == 2
    assert data["deferred"] == ["c3"]


def test_queue_reports_served_cards(client):
    client.post(
        "/learners/kid-1/slots",
        json={"day_of_week": 0, "start_time": "08:00", "end_time": "08:20", "capacity": 2},
    )
    for card in ("c1", "c2"):
        assert rate(client, card).status_code == 200

    data = client.get("/learners/kid-1/queue", params={"at": "2026-10-19T08:10:00Z"}).json()

    assert data["served"] == 2
    assert data["items"] == []
    assert data["deferred"] == ["c3"]


def test_queue_without_new_cards(client):
    response = client.get("/learners/kid-1/queue", params={"at": AT, "include_new": False})
    assert response.json()["items"] == []


def test_queue_then_rate(client):
    item = client.get("/learners/kid-1/queue", params={"at": AT}).json()["items"][0]

    response = rate(
        client,
        item["flashcard_id"],
        "good",
        presented_at=item["presented_at"],
        expected_version=item["expected_version"],
        rated_at="2026-10-19T08:06:00Z",
    )

    assert response.status_code == 200
    data = response.json()
    assert data["rating"] == "good"
    assert data["status_before"] == "new"
    assert data["interval_after"] == 1.0
    assert data["state"]["version"] == 1
    assert data["state"]["status"] == "learning"
    assert data["state"]["due_at"].startswith("2026-10-20T08:06")


def test_duplicate_rating_conflict(client):
    assert rate(client).status_code == 200

    response = rate(client)

    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_submission"


def test_stale_rating_conflict(client):
    assert rate(client, expected_version=0).status_code == 200

    response = rate(client, presented_at="2026-10-19T08:10:00Z", expected_version=0)

    assert response.status_code == 409
    data = response.json()
    assert data["error"] == "stale_state"
    assert "Please try again" in data["detail"]


def test_invalid_rating(client):
    response = rate(client, rating="perfect")
    assert response.status_code == 422
    assert "Unknown rating" in response.json()["detail"]


def test_button_numbers_are_not_ratings(client):
    response = rate(client, rating="4")
    assert response.status_code == 422


def test_unknown_flashcard(client):
    assert rate(client, flashcard_id="nope").status_code == 404


def test_slot_lifecycle(client):
    created = client.post(
        "/learners/kid-1/slots",
        json={"day_of_week": 0, "start_time": "08:00", "end_time": "08:20", "capacity": 2},
    )
    assert created.status_code == 201
    slot = created.json()
    assert slot["day_name"] == "monday"
    assert slot["duration_minutes"] == 20

    overlap = client.post(
        "/learners/kid-1/slots",
        json={"day_of_week": 0, "start_time": "08:10", "end_time": "08:30"},
    )
    assert overlap.status_code == 422
    assert overlap.json()["detail"] == "Time slots cannot overlap with existing slots."

    # The queue is now sized to the slot
    queue = client.get("/learners/kid-1/queue", params={"at": AT}).json()
    assert queue["capacity"] == 2
    assert queue["deferred"] == ["c3"]
    assert queue["window"]["slot_id"] == slot["slot_id"]

    slot_url = f"/learners/kid-1/slots/{slot['slot_id']}"
    updated = client.put(slot_url, json={"capacity": 5, "slot_type": "standard"})
    assert updated.status_code == 200
    assert updated.json()["capacity"] == 5
    assert updated.json()["slot_type"] == "standard"

    toggled = client.post(f"{slot_url}/toggle")
    assert toggled.json()["is_active"] is False

    assert len(client.get("/learners/kid-1/slots").json()) == 1
    assert client.delete(slot_url).status_code == 204
    assert client.delete(slot_url).status_code == 404


def test_slot_validation(client):
    bad_day = client.post(
        "/learners/kid-1/slots",
        json={"day_of_week": 9, "start_time": "08:00", "end_time": "08:20"},
    )
    inverted = client.post(
        "/learners/kid-1/slots",
        json={"day_of_week": 1, "start_time": "09:00", "end_time": "08:00"},
    )

    assert bad_day.status_code == 422
    assert inverted.status_code == 422


def test_analytics_without_history(client):
    response = client.get("/learners/kid-1/analytics", params={"at": AT})

    assert response.status_code == 200
    data = response.json()
    assert data["retention_rate"] is None
    assert data["has_retention_data"] is False
    assert data["total_cards"] == 0


def test_analytics_after_ratings(client):
    rate(client, "c1", "good")
    rate(client, "c2", "again")

    data = client.get(
        "/learners/kid-1/analytics", params={"at": AT, "window_days": 7}
    ).json()

    assert data["retention_rate"] == 0.5
    assert data["window_days"] == 7
    assert data["rating_counts"]["again"] == 1
    assert data["learning_count"] == 2
    assert data["weekly"]["attempts"] == 2
    assert data["weekly"]["new_cards"] == 2
