from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from functools import wraps
from typing import Generator, List, Optional

from .errors import TransientSyncError
from .models import TaskRecord, UserAggregate
from .repositories import TaskRecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _TaskCols:
    table: str = "task_records"
    id: str = "id"
    user_id: str = "user_id"
    title: str = "title"
    date: str = "date"
    completed: str = "completed"
    is_recurring: str = "is_recurring"
    reminder_time: str = "reminder_time"
    snoozed_until: str = "snoozed_until"


@dataclass(frozen=True)
class _UserCols:
    table: str = "user_aggregates"
    user_id: str = "user_id"
    streak_count: str = "streak_count"
    persistence_log: str = "persistence_log"
    last_completed_date: str = "last_completed_date"
    last_active_date: str = "last_active_date"
    join_date: str = "join_date"
    policy_version: str = "policy_version"


_T = _TaskCols()
_U = _UserCols()


def _threaded(fn):
    """Run a blocking store method in a worker thread, mapping sqlite errors to TransientSyncError."""

    @wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, self, *args, **kwargs)
        except sqlite3.Error as e:
            logger.warning("SQLite %s failed: %s", fn.__name__, e)
            raise TransientSyncError(f"Storage unavailable during {fn.__name__}") from e

    return wrapper


class SQLiteStore(TaskRecordStore):
    """
    Lightweight SQLite store implementing the TaskRecordStore interface.
    Each call opens its own connection, so calls are safe from worker threads.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_T.table} (
                    {_T.id} TEXT PRIMARY KEY,
                    {_T.user_id} TEXT NOT NULL,
                    {_T.title} TEXT NOT NULL,
                    {_T.date} TEXT NOT NULL,
                    {_T.completed} INTEGER NOT NULL DEFAULT 0,
                    {_T.is_recurring} INTEGER NOT NULL DEFAULT 0,
                    {_T.reminder_time} TEXT NULL,
                    {_T.snoozed_until} TEXT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_T.table}_user_date ON {_T.table}({_T.user_id}, {_T.date})"
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_U.table} (
                    {_U.user_id} TEXT PRIMARY KEY,
                    {_U.streak_count} INTEGER NOT NULL DEFAULT 0,
                    {_U.persistence_log} TEXT NOT NULL DEFAULT '[]',
                    {_U.last_completed_date} TEXT NULL,
                    {_U.last_active_date} TEXT NULL,
                    {_U.join_date} TEXT NOT NULL,
                    {_U.policy_version} TEXT NULL
                )
                """
            )

    def _row_to_record(self, row: sqlite3.Row) -> TaskRecord:
        return {
            "id": str(row[_T.id]),
            "user_id": str(row[_T.user_id]),
            "title": str(row[_T.title]),
            "date": str(row[_T.date]),
            "completed": bool(row[_T.completed]),
            "is_recurring": bool(row[_T.is_recurring]),
            "reminder_time": row[_T.reminder_time],
            "snoozed_until": row[_T.snoozed_until],
        }

    def _row_to_aggregate(self, row: sqlite3.Row) -> UserAggregate:
        return {
            "user_id": str(row[_U.user_id]),
            "streak_count": int(row[_U.streak_count]),
            "persistence_log": list(json.loads(row[_U.persistence_log] or "[]")),
            "last_completed_date": row[_U.last_completed_date],
            "last_active_date": row[_U.last_active_date],
            "join_date": str(row[_U.join_date]),
            "policy_version": row[_U.policy_version],
        }

    @_threaded
    def get_all_task_records(self, user_id: str) -> List[TaskRecord]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_T.table} WHERE {_T.user_id} = ? ORDER BY {_T.date}, rowid",
                (user_id,),
            ).fetchall()
            return [self._row_to_record(r) for r in rows]

    @_threaded
    def upsert_task_record(self, record: TaskRecord) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_T.table} ({_T.id}, {_T.user_id}, {_T.title}, {_T.date}, {_T.completed},
                    {_T.is_recurring}, {_T.reminder_time}, {_T.snoozed_until})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT({_T.id}) DO UPDATE SET
                    {_T.user_id} = excluded.{_T.user_id},
                    {_T.title} = excluded.{_T.title},
                    {_T.date} = excluded.{_T.date},
                    {_T.completed} = excluded.{_T.completed},
                    {_T.is_recurring} = excluded.{_T.is_recurring},
                    {_T.reminder_time} = excluded.{_T.reminder_time},
                    {_T.snoozed_until} = excluded.{_T.snoozed_until}
                """,
                (
                    record["id"],
                    record["user_id"],
                    record["title"],
                    record["date"],
                    1 if record["completed"] else 0,
                    1 if record["is_recurring"] else 0,
                    record.get("reminder_time"),
                    record.get("snoozed_until"),
                ),
            )

    @_threaded
    def delete_task_record(self, record_id: str) -> None:
        with self._conn() as conn:
            conn.execute(f"DELETE FROM {_T.table} WHERE {_T.id} = ?", (record_id,))

    @_threaded
    def delete_task_records_where(self, user_id: str, title: str, is_recurring: bool = True) -> None:
        with self._conn() as conn:
            conn.execute(
                f"DELETE FROM {_T.table} WHERE {_T.user_id} = ? AND {_T.title} = ? AND {_T.is_recurring} = ?",
                (user_id, title, 1 if is_recurring else 0),
            )

    @_threaded
    def delete_task_records_after(self, user_id: str, date: str) -> None:
        with self._conn() as conn:
            cur = conn.execute(
                f"DELETE FROM {_T.table} WHERE {_T.user_id} = ? AND {_T.date} > ?",
                (user_id, date),
            )
            logger.debug("Deleted %d records after %s for user %s", cur.rowcount, date, user_id)

    @_threaded
    def get_user_aggregate(self, user_id: str) -> Optional[UserAggregate]:
        with self._conn() as conn:
            row = conn.execute(f"SELECT * FROM {_U.table} WHERE {_U.user_id} = ?", (user_id,)).fetchone()
            return self._row_to_aggregate(row) if row else None

    @_threaded
    def save_user_aggregate(self, state: UserAggregate) -> UserAggregate:
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_U.table} ({_U.user_id}, {_U.streak_count}, {_U.persistence_log},
                    {_U.last_completed_date}, {_U.last_active_date}, {_U.join_date}, {_U.policy_version})
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT({_U.user_id}) DO UPDATE SET
                    {_U.streak_count} = excluded.{_U.streak_count},
                    {_U.persistence_log} = excluded.{_U.persistence_log},
                    {_U.last_completed_date} = excluded.{_U.last_completed_date},
                    {_U.last_active_date} = excluded.{_U.last_active_date},
                    {_U.join_date} = excluded.{_U.join_date},
                    {_U.policy_version} = excluded.{_U.policy_version}
                """,
                (
                    state["user_id"],
                    int(state["streak_count"]),
                    json.dumps(list(state["persistence_log"])),
                    state["last_completed_date"],
                    state["last_active_date"],
                    state["join_date"],
                    state.get("policy_version"),
                ),
            )
            row = conn.execute(
                f"SELECT * FROM {_U.table} WHERE {_U.user_id} = ?", (state["user_id"],)
            ).fetchone()
            assert row is not None
            return self._row_to_aggregate(row)
