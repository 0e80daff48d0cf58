import sqlite3

import pytest

from streakflow.db import SQLiteStore
from streakflow.errors import TransientSyncError
from streakflow.models import new_aggregate
from streakflow.repositories import InMemoryStore


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteStore(str(tmp_path / "data" / "streakflow.db"))
    return InMemoryStore()


def ids(records):
    return sorted(r["id"] for r in records)


@pytest.mark.asyncio
async def test_upsert_by_id_keeps_one_row_with_last_value(any_store, make_record):
    record = make_record("2024-01-10", completed=False, id="t1")
    await any_store.upsert_task_record(record)
    await any_store.upsert_task_record({**record, "completed": True})
    await any_store.upsert_task_record({**record, "completed": False})

    records = await any_store.get_all_task_records("u1")
    assert len(records) == 1
    assert records[0]["completed"] is False


@pytest.mark.asyncio
async def test_history_is_per_user(any_store, make_record):
    await any_store.upsert_task_record(make_record("2024-01-10", id="a"))
    await any_store.upsert_task_record(make_record("2024-01-10", id="b", user_id="u2"))
    assert ids(await any_store.get_all_task_records("u1")) == ["a"]
    assert ids(await any_store.get_all_task_records("u2")) == ["b"]


@pytest.mark.asyncio
async def test_delete_by_id(any_store, make_record):
    await any_store.upsert_task_record(make_record("2024-01-10", id="a"))
    await any_store.delete_task_record("a")
    await any_store.delete_task_record("missing")
    assert await any_store.get_all_task_records("u1") == []


@pytest.mark.asyncio
async def test_delete_recurring_by_title(any_store, make_record):
    for rid, date in (("m1", "2024-01-08"), ("m2", "2024-01-09")):
        await any_store.upsert_task_record(make_record(date, title="Meditate", is_recurring=True, id=rid))
    await any_store.upsert_task_record(make_record("2024-01-09", title="Meditate", id="one-off"))
    await any_store.upsert_task_record(
        make_record("2024-01-09", title="Meditate", is_recurring=True, id="other-user", user_id="u2")
    )

    await any_store.delete_task_records_where("u1", "Meditate", is_recurring=True)

    assert ids(await any_store.get_all_task_records("u1")) == ["one-off"]
    assert ids(await any_store.get_all_task_records("u2")) == ["other-user"]


@pytest.mark.asyncio
async def test_delete_after_is_strict(any_store, make_record):
    for rid, date in (("a", "2024-01-07"), ("b", "2024-01-08"), ("c", "2024-01-09"), ("d", "2024-01-10")):
        await any_store.upsert_task_record(make_record(date, id=rid))
    await any_store.upsert_task_record(make_record("2024-01-10", id="e", user_id="u2"))

    await any_store.delete_task_records_after("u1", "2024-01-08")

    assert ids(await any_store.get_all_task_records("u1")) == ["a", "b"]
    assert ids(await any_store.get_all_task_records("u2")) == ["e"]


@pytest.mark.asyncio
async def test_aggregate_round_trip(any_store):
    assert await any_store.get_user_aggregate("u1") is None
    state = new_aggregate("u1", "2024-01-01")
    state["streak_count"] = 3
    state["persistence_log"] = ["2024-01-08", "2024-01-09", "2024-01-10"]
    state["last_completed_date"] = "2024-01-10"

    saved = await any_store.save_user_aggregate(state)
    assert saved == state
    assert await any_store.get_user_aggregate("u1") == state

    state["streak_count"] = 0
    await any_store.save_user_aggregate(state)
    assert (await any_store.get_user_aggregate("u1"))["streak_count"] == 0


@pytest.mark.asyncio
async def test_returned_records_are_copies(make_record):
    store = InMemoryStore()
    await store.upsert_task_record(make_record("2024-01-10", id="a", completed=False))
    (record,) = await store.get_all_task_records("u1")
    record["completed"] = True
    (again,) = await store.get_all_task_records("u1")
    assert again["completed"] is False


@pytest.mark.asyncio
async def test_sqlite_errors_become_transient(tmp_path, make_record, monkeypatch):
    store = SQLiteStore(str(tmp_path / "streakflow.db"))

    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(sqlite3, "connect", broken)
    with pytest.raises(TransientSyncError):
        await store.upsert_task_record(make_record("2024-01-10"))
