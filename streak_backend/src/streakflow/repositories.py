from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, List, Optional

from .models import TaskRecord, UserAggregate, copy_aggregate
from .settings import get_settings

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class TaskRecordStore(ABC):
    """
    Abstract contract for task record and user aggregate storage backends.

    All operations are coroutines. Backends raise TransientSyncError when the
    underlying storage cannot be reached; callers decide whether to surface it.
    """

    @abstractmethod
    async def get_all_task_records(self, user_id: str) -> List[TaskRecord]:
        """Return every task record ever saved for the user."""

    @abstractmethod
    async def upsert_task_record(self, record: TaskRecord) -> None:
        """Create or replace a record by id. Last write wins."""

    @abstractmethod
    async def delete_task_record(self, record_id: str) -> None:
        """Delete a record by id. Deleting a missing id is not an error."""

    @abstractmethod
    async def delete_task_records_where(self, user_id: str, title: str, is_recurring: bool = True) -> None:
        """Delete all of the user's records with this title and recurring flag."""

    @abstractmethod
    async def delete_task_records_after(self, user_id: str, date: str) -> None:
        """Delete all of the user's records dated strictly after the given day key."""

    @abstractmethod
    async def get_user_aggregate(self, user_id: str) -> Optional[UserAggregate]:
        """Return the cached streak fields for the user, or None if never saved."""

    @abstractmethod
    async def save_user_aggregate(self, state: UserAggregate) -> UserAggregate:
        """Persist the cached streak fields and return the stored copy."""


class InMemoryStore(TaskRecordStore):
    """
    Thread-safe in-memory store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._records: Dict[str, TaskRecord] = {}
        self._aggregates: Dict[str, UserAggregate] = {}

    async def get_all_task_records(self, user_id: str) -> List[TaskRecord]:
        with self._lock:
            # Return copies to avoid external mutation
            return [r.copy() for r in self._records.values() if r["user_id"] == user_id]

    async def upsert_task_record(self, record: TaskRecord) -> None:
        with self._lock:
            self._records[record["id"]] = record.copy()

    async def delete_task_record(self, record_id: str) -> None:
        with self._lock:
            self._records.pop(record_id, None)

    async def delete_task_records_where(self, user_id: str, title: str, is_recurring: bool = True) -> None:
        with self._lock:
            doomed = [
                rid
                for rid, r in self._records.items()
                if r["user_id"] == user_id and r["title"] == title and r["is_recurring"] == is_recurring
            ]
            for rid in doomed:
                del self._records[rid]

    async def delete_task_records_after(self, user_id: str, date: str) -> None:
        with self._lock:
            doomed = [
                rid
                for rid, r in self._records.items()
                if r["user_id"] == user_id and isinstance(r.get("date"), str) and r["date"] > date
            ]
            for rid in doomed:
                del self._records[rid]
        logger.debug("Deleted %d records after %s for user %s", len(doomed), date, user_id)

    async def get_user_aggregate(self, user_id: str) -> Optional[UserAggregate]:
        with self._lock:
            state = self._aggregates.get(user_id)
            return None if state is None else copy_aggregate(state)

    async def save_user_aggregate(self, state: UserAggregate) -> UserAggregate:
        with self._lock:
            self._aggregates[state["user_id"]] = copy_aggregate(state)
            return copy_aggregate(state)


_store: Optional[TaskRecordStore] = None


# PUBLIC_INTERFACE
def get_store() -> TaskRecordStore:
    """
    Return the process-wide store configured by settings.
    - memory: InMemoryStore
    - sqlite: SQLiteStore at SQLITE_DB_PATH
    """
    global _store
    if _store is None:
        settings = get_settings()
        if settings.persistence_backend == "sqlite":
            from .db import SQLiteStore

            _store = SQLiteStore(settings.sqlite_db_path)
        else:
            _store = InMemoryStore()
        logger.info("Using %s task record store", settings.persistence_backend)
    return _store


def reset_store() -> None:
    """Forget the process-wide store; the next get_store() builds a new one."""
    global _store
    _store = None
