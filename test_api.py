"""HTTP-level tests for the FastAPI surface using an in-memory store."""

import pytest
from fastapi.testclient import TestClient

import main
from models import ActivityCreate, Category, Weekday
from routine_store import InMemoryRoutineStore

USER = "test_user"


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(main, "store", InMemoryRoutineStore())
    monkeypatch.setattr(main, "suggester", None)
    return TestClient(main.app)


def _activity(start="09:00", end="10:00", days=("Monday",), category="Exercise", title="Stretching"):
    return {"title": title, "category": category, "days": list(days), "start_time": start, "end_time": end}


def test_create_and_list(client):
    response = client.post(f"/activities/{USER}", json=_activity())
    assert response.status_code == 200
    assert response.json()["completed"] is False

    listed = client.get(f"/activities/{USER}", params={"category": "All", "day": "Monday"})
    assert listed.status_code == 200
    assert len(listed.json()["data"]) == 1


def test_conflict_returns_409_with_ids(client):
    first = client.post(f"/activities/{USER}", json=_activity()).json()
    response = client.post(f"/activities/{USER}", json=_activity("09:15", "09:45"))
    assert response.status_code == 409
    assert response.json()["detail"]["conflict_ids"] == [first["id"]]
    assert len(client.get(f"/activities/{USER}").json()["data"]) == 1


def test_auto_slot(client):
    client.post(f"/activities/{USER}", json=_activity())
    response = client.post(f"/activities/{USER}", params={"auto_slot": "true"}, json=_activity("09:15", "09:45"))
    assert response.status_code == 200
    assert response.json()["start_time"] == "10:00"


def test_invalid_interval_is_422(client):
    response = client.post(f"/activities/{USER}", json=_activity("10:00", "09:00"))
    assert response.status_code == 422


def test_unknown_category_filter_is_422(client):
    assert client.get(f"/activities/{USER}", params={"category": "Gaming"}).status_code == 422


def test_toggle_update_delete(client):
    created = client.post(f"/activities/{USER}", json=_activity()).json()

    toggled = client.post(f"/activities/{USER}/{created['id']}/toggle")
    assert toggled.json()["completed"] is True

    patched = client.patch(f"/activities/{USER}/{created['id']}", json={"title": "Yoga"})
    assert patched.json()["title"] == "Yoga"

    assert client.delete(f"/activities/{USER}/{created['id']}").status_code == 200
    assert client.delete(f"/activities/{USER}/{created['id']}").status_code == 404


def test_clear_all_requires_confirm(client):
    client.post(f"/activities/{USER}", json=_activity())
    assert client.delete(f"/activities/{USER}").status_code == 400
    response = client.delete(f"/activities/{USER}", params={"confirm": "true"})
    assert response.json()["deleted"] == 1


def test_sleep_schedule_round_trip(client):
    response = client.put(f"/sleep_schedule/{USER}", json={"wake": "07:00", "sleep": "23:00"})
    assert response.status_code == 200
    body = response.json()
    assert body["uniform"] is True
    assert len(body["data"]) == 21

    fetched = client.get(f"/sleep_schedule/{USER}").json()
    assert fetched["schedule"]["pairs"]["Monday"] == {"wake": "07:00", "sleep": "23:00"}


def test_missing_sleep_schedule_is_404(client):
    assert client.get(f"/sleep_schedule/{USER}").status_code == 404


def test_block_view(client):
    client.post(f"/activities/{USER}", json=_activity("08:30", "09:15"))
    response = client.get(f"/activities/{USER}/block", params={"day": "Monday", "start": "06:00"})
    assert len(response.json()["data"]) == 1


def test_suggestions_placed_with_auto_slot(client, monkeypatch):
    class _Suggester:
        def suggest(self, request, existing):
            return [
                ActivityCreate(title="Journal", category=Category.JOURNAL, days=[Weekday.MONDAY],
                               start_time="09:00", end_time="09:30"),
                ActivityCreate(title="Late walk", category=Category.EXERCISE, days=[Weekday.MONDAY],
                               start_time="23:30", end_time="23:50"),
            ]

    monkeypatch.setattr(main, "suggester", _Suggester())
    client.post(f"/activities/{USER}", json=_activity("09:00", "09:10"))
    client.post(f"/activities/{USER}", json=_activity("23:30", "23:55"))

    response = client.post(f"/suggest_routine/{USER}", json={"goals": ["calm mornings"]})
    body = response.json()
    assert [a["start_time"] for a in body["data"]] == ["09:10"]
    assert len(body["warnings"]) == 1


def test_suggestions_unconfigured_is_503(client, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    assert client.post(f"/suggest_routine/{USER}", json={"goals": ["x"]}).status_code == 503
