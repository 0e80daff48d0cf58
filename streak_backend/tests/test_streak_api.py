import asyncio

import pytest
from fastapi.testclient import TestClient

from streakflow.clock import FixedClock
from streakflow.main import app as default_app
from streakflow.main import create_app
from streakflow.models import new_aggregate
from streakflow.repositories import InMemoryStore
from streakflow.sync import SessionRegistry

BASE = "/api/v1/users"


@pytest.fixture
def api_store():
    return InMemoryStore()


@pytest.fixture
def api_clock():
    return FixedClock("2024-01-10")


@pytest.fixture
def client(api_store, api_clock):
    return TestClient(create_app(SessionRegistry(api_store, api_clock)))


def seed(store, records, join_date="2024-01-01", user_id="u1"):
    async def _seed():
        for r in records:
            await store.upsert_task_record(r)
        await store.save_user_aggregate(new_aggregate(user_id, join_date))

    asyncio.run(_seed())


def stored(store, user_id="u1"):
    return asyncio.run(store.get_all_task_records(user_id))


def assert_task_shape(task: dict):
    for key in ["id", "userId", "title", "date", "completed", "isRecurring", "reminderTime", "virtual"]:
        assert key in task
    assert isinstance(task["id"], str)
    assert isinstance(task["completed"], bool)
    assert isinstance(task["virtual"], bool)


class TestHealth:
    def test_health_check(self):
        res = TestClient(default_app).get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")
        assert data["policy"] == "purge-on-breach/1"


class TestUsers:
    def test_register_defaults_join_date_to_today(self, client):
        res = client.post(f"{BASE}/", json={"userId": "u1"})
        assert res.status_code == 201
        data = res.json()
        assert data["userId"] == "u1"
        assert data["joinDate"] == "2024-01-10"
        assert data["streakCount"] == 0

    def test_register_is_idempotent(self, client):
        client.post(f"{BASE}/", json={"userId": "u1", "joinDate": "2024-01-01"})
        res = client.post(f"{BASE}/", json={"userId": "u1", "joinDate": "2024-01-05"})
        assert res.status_code == 201
        assert res.json()["joinDate"] == "2024-01-01"

    def test_register_rejects_bad_join_date(self, client):
        res = client.post(f"{BASE}/", json={"userId": "u1", "joinDate": "01/01/2024"})
        assert res.status_code == 422
        assert res.json()["error"] == "ValidationError"


class TestTasks:
    def test_add_and_load_today(self, client):
        res = client.post(f"{BASE}/u1/tasks", json={"title": "  Read  ", "reminderTime": "07:30"})
        assert res.status_code == 201
        task = res.json()
        assert_task_shape(task)
        assert task["title"] == "Read"
        assert task["date"] == "2024-01-10"
        assert task["completed"] is False
        assert task["virtual"] is False

        res_today = client.get(f"{BASE}/u1/tasks/today")
        assert res_today.status_code == 200
        today = res_today.json()
        assert today["today"] == "2024-01-10"
        assert [t["id"] for t in today["tasks"]] == [task["id"]]
        assert (today["done"], today["total"]) == (0, 1)
        assert today["streak"]["streakCount"] == 0

    def test_add_rejects_bad_input(self, client):
        assert client.post(f"{BASE}/u1/tasks", json={"title": "   "}).status_code == 422
        assert client.post(f"{BASE}/u1/tasks", json={"title": "Run", "reminderTime": "25:00"}).status_code == 422

    def test_toggle_completes_day(self, client):
        task = client.post(f"{BASE}/u1/tasks", json={"title": "Read"}).json()
        res = client.post(f"{BASE}/u1/tasks/{task['id']}/toggle")
        assert res.status_code == 200
        assert res.json()["completed"] is True

        streak = client.get(f"{BASE}/u1/streak").json()
        assert streak["state"]["streakCount"] == 1
        assert streak["state"]["lastCompletedDate"] == "2024-01-10"
        assert streak["evaluation"]["decision"] == "accept"

    def test_toggle_virtual_ritual_returns_saved_record(self, client, api_store, make_record):
        seed(api_store, [make_record("2024-01-09", title="Meditate", is_recurring=True, id="m1")])
        today = client.get(f"{BASE}/u1/tasks/today").json()
        (virtual,) = today["tasks"]
        assert virtual["virtual"] is True
        assert virtual["id"] == "virtual-m1-2024-01-10"

        res = client.post(f"{BASE}/u1/tasks/{virtual['id']}/toggle")
        assert res.status_code == 200
        saved = res.json()
        assert saved["virtual"] is False
        assert saved["completed"] is True
        assert len(stored(api_store)) == 2

    def test_toggle_unknown_task(self, client):
        res = client.post(f"{BASE}/u1/tasks/missing/toggle")
        assert res.status_code == 404
        body = res.json()
        assert body["detail"] == "Task not found"
        assert body["error"]["code"] == "not_found"

    def test_delete_task(self, client, api_store):
        task = client.post(f"{BASE}/u1/tasks", json={"title": "ToDelete"}).json()
        res_del = client.delete(f"{BASE}/u1/tasks/{task['id']}")
        assert res_del.status_code == 204
        assert res_del.text == ""
        assert stored(api_store) == []

        res_again = client.delete(f"{BASE}/u1/tasks/{task['id']}")
        assert res_again.status_code == 404

    def test_history_lists_saved_records_oldest_first(self, client, api_store, make_record):
        seed(api_store, [make_record("2024-01-09", id="b"), make_record("2024-01-08", id="a")])
        res = client.get(f"{BASE}/u1/tasks")
        assert res.status_code == 200
        assert [t["id"] for t in res.json()] == ["a", "b"]


class TestStreakReconciliation:
    def test_missed_day_purges_later_history(self, client, api_store, make_record):
        seed(
            api_store,
            [
                make_record("2024-01-08", completed=False, id="missed"),
                make_record("2024-01-09", id="after"),
            ],
        )
        today = client.get(f"{BASE}/u1/tasks/today").json()
        assert today["evaluation"]["decision"] == "purge"
        assert today["evaluation"]["purged"] is True
        assert today["streak"]["streakCount"] == 0
        assert today["streak"]["joinDate"] == "2024-01-09"
        assert any("2024-01-08" in n for n in today["notices"])
        assert [r["id"] for r in stored(api_store)] == ["missed"]

        # notices are delivered once
        again = client.get(f"{BASE}/u1/tasks/today").json()
        assert again["notices"] == []
        assert again["evaluation"]["decision"] == "noop"

    def test_day_check_only_runs_on_new_day(self, client, api_clock):
        client.get(f"{BASE}/u1/tasks/today")
        res = client.post(f"{BASE}/u1/streak/day-check")
        assert res.status_code == 200
        assert res.json()["rolledOver"] is False

        api_clock.set("2024-01-11")
        res = client.post(f"{BASE}/u1/streak/day-check")
        assert res.json()["rolledOver"] is True
        assert res.json()["today"] == "2024-01-11"


class TestCalendar:
    def test_calendar_statuses(self, client, api_store, make_record):
        seed(
            api_store,
            [
                make_record("2024-01-08"),
                make_record("2024-01-10", completed=False),
            ],
        )
        res = client.get(f"{BASE}/u1/calendar?start=2024-01-08&end=2024-01-10")
        assert res.status_code == 200
        days = res.json()
        assert [d["status"] for d in days] == ["complete", "none", "partial"]

    def test_calendar_default_range(self, client):
        days = client.get(f"{BASE}/u1/calendar").json()
        assert len(days) == 35
        assert days[-1]["date"] == "2024-01-10"

    def test_calendar_rejects_bad_ranges(self, client):
        assert client.get(f"{BASE}/u1/calendar?start=2024-01-10&end=2024-01-01").status_code == 400
        assert client.get(f"{BASE}/u1/calendar?start=2022-01-01&end=2024-01-01").status_code == 400
        assert client.get(f"{BASE}/u1/calendar?start=yesterday").status_code == 400
