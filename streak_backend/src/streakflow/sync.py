"""
Aggregate sync: runs materialize -> evaluate -> reconcile -> apply once per
triggering event and keeps a per-user local view of today.

Local changes are optimistic. Remote writes are best effort: on a
TransientSyncError the local view is kept, a transient notice is queued and
nothing is retried; the next triggering event reconciles again from whatever
the store then holds. History is re-read on every run.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Deque, Dict, List, Optional

from .clock import Clock
from .errors import NotFoundError, TransientSyncError
from .evaluator import MAX_WALK_DAYS, StreakEvaluation, evaluate_streak
from .materializer import is_virtual, materialize_today, promote_virtual
from .models import TaskRecord, UserAggregate, copy_aggregate, new_aggregate
from .policy import DecisionKind, StreakPolicy, get_policy
from .repositories import TaskRecordStore

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    ACCEPTED = "accepted"
    PURGING = "purging"


class Trigger(str, Enum):
    LOAD = "load"
    ADD = "add"
    TOGGLE = "toggle"
    DELETE = "delete"
    DAY_ROLLOVER = "day_rollover"


@dataclass(frozen=True)
class PipelineResult:
    trigger: Trigger
    decision: DecisionKind
    evaluation: StreakEvaluation
    state: UserAggregate
    purged_after: Optional[str] = None


class StreakSession:
    """
    Local view and reconciliation pipeline for one user.

    Pipelines of one session never interleave. Writes issued outside a
    pipeline (add, toggle, delete) rely on the store's upsert-by-id
    semantics when they race with other sessions of the same user.
    """

    def __init__(
        self,
        user_id: str,
        store: TaskRecordStore,
        clock: Clock,
        policy: Optional[StreakPolicy] = None,
        *,
        max_walk_days: int = MAX_WALK_DAYS,
        notice_limit: int = 20,
    ) -> None:
        self.user_id = user_id
        self._store = store
        self._clock = clock
        self._policy = policy or get_policy()
        self._max_walk_days = max_walk_days
        self._lock = asyncio.Lock()

        self.state = SyncState.IDLE
        self.transitions: Deque[SyncState] = deque(maxlen=32)
        self.today_tasks: List[TaskRecord] = []
        self.aggregate: Optional[UserAggregate] = None
        self.last_result: Optional[PipelineResult] = None
        self.observed_day: Optional[str] = None
        self.notices: Deque[str] = deque(maxlen=notice_limit)

    def today(self) -> str:
        return self._clock.now()

    async def history(self) -> List[TaskRecord]:
        """Every stored record for the user, oldest day first. Never cached."""
        records = await self._store.get_all_task_records(self.user_id)
        return sorted(records, key=lambda r: str(r.get("date")))

    # Notifications -----------------------------------------------------
    def notify(self, message: str) -> None:
        self.notices.append(message)

    def drain_notices(self) -> List[str]:
        pending = list(self.notices)
        self.notices.clear()
        return pending

    def _set_state(self, state: SyncState) -> None:
        if state is not self.state:
            logger.debug("Session %s: %s -> %s", self.user_id, self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    async def _remote(self, op: Awaitable[object], what: str) -> bool:
        try:
            await op
        except TransientSyncError as e:
            logger.warning("Could not %s for user %s: %s", what, self.user_id, e.message)
            self.notify(f"Could not {what}; changes are kept on this device for now")
            return False
        return True

    # Aggregate ---------------------------------------------------------
    async def register(self, join_date: Optional[str] = None) -> UserAggregate:
        """Return the stored aggregate, creating it with the given join date (default today)."""
        aggregate = await self._store.get_user_aggregate(self.user_id)
        if aggregate is None:
            aggregate = new_aggregate(self.user_id, join_date or self._clock.now())
            aggregate = await self._store.save_user_aggregate(aggregate)
            logger.info("Created streak aggregate for user %s (join %s)", self.user_id, aggregate["join_date"])
        self.aggregate = aggregate
        return aggregate

    # Pipeline ----------------------------------------------------------
    async def run_pipeline(self, trigger: Trigger) -> Optional[PipelineResult]:
        """
        Reconcile once. Returns None when the store could not be read or the
        purge could not be applied; the local view is left as it was.
        """
        async with self._lock:
            try:
                return await self._reconcile(trigger)
            except TransientSyncError as e:
                logger.warning("Reconcile (%s) failed for user %s: %s", trigger.value, self.user_id, e.message)
                self.notify("Could not sync your streak; it will be checked again shortly")
                return None
            finally:
                self._set_state(SyncState.IDLE)

    async def _reconcile(self, trigger: Trigger) -> PipelineResult:
        today = self._clock.now()
        self._set_state(SyncState.EVALUATING)

        aggregate = await self.register()
        history = await self._store.get_all_task_records(self.user_id)
        evaluation = evaluate_streak(history, today, aggregate["join_date"], self._max_walk_days)
        decision = self._policy.decide(evaluation, aggregate)

        purged_after = None
        updated: Optional[UserAggregate] = decision.state
        if decision.kind is DecisionKind.PURGE:
            self._set_state(SyncState.PURGING)
            purged_after = decision.purge_after
            # The floor is stored before any delete; a failed save leaves
            # history untouched.
            floored = copy_aggregate(aggregate)
            floored["join_date"] = self._policy.purge_floor(aggregate, purged_after)
            aggregate = await self._store.save_user_aggregate(floored)
            self.aggregate = aggregate

            logger.warning(
                "Breach on %s for user %s: deleting all task records after it", purged_after, self.user_id
            )
            await self._store.delete_task_records_after(self.user_id, purged_after)

            # Single re-entry: nothing after the breach is left to breach again
            self._set_state(SyncState.EVALUATING)
            history = await self._store.get_all_task_records(self.user_id)
            evaluation = evaluate_streak(history, today, aggregate["join_date"], self._max_walk_days)
            updated = self._policy.apply_to(aggregate, evaluation, purged_after=purged_after)
            self.notify(f"Streak broken on {purged_after}; progress logged after it was cleared")

        self.today_tasks = materialize_today(history, today)
        self.observed_day = today
        if updated is not None:
            self._set_state(SyncState.ACCEPTED)
            self.aggregate = updated
            if await self._remote(self._store.save_user_aggregate(updated), "save your streak"):
                logger.info(
                    "Streak for user %s: %d (%s, %s)",
                    self.user_id,
                    updated["streak_count"],
                    decision.kind.value,
                    trigger.value,
                )

        result = PipelineResult(
            trigger=trigger,
            decision=decision.kind,
            evaluation=evaluation,
            state=self.aggregate or aggregate,
            purged_after=purged_after,
        )
        self.last_result = result
        return result

    async def load(self) -> Optional[PipelineResult]:
        return await self.run_pipeline(Trigger.LOAD)

    async def check_day_rollover(self) -> bool:
        """Run the pipeline if the clock's day differs from the last one observed."""
        if self.observed_day == self._clock.now():
            return False
        await self.run_pipeline(Trigger.DAY_ROLLOVER)
        return True

    async def _ensure_current_day(self) -> None:
        if self.observed_day is None:
            await self.load()
        elif self.observed_day != self._clock.now():
            await self.run_pipeline(Trigger.DAY_ROLLOVER)

    def _find_today(self, task_id: str) -> int:
        for i, record in enumerate(self.today_tasks):
            if record["id"] == task_id:
                return i
        raise NotFoundError("Task not found")

    # Mutations ---------------------------------------------------------
    async def add_task(self, title: str, is_recurring: bool = False, reminder_time: Optional[str] = None) -> TaskRecord:
        await self._ensure_current_day()
        record: TaskRecord = {
            "id": uuid.uuid4().hex,
            "user_id": self.user_id,
            "title": title,
            "date": self._clock.now(),
            "completed": False,
            "is_recurring": is_recurring,
            "reminder_time": reminder_time,
            "snoozed_until": None,
        }
        self.today_tasks.append(record)
        if await self._remote(self._store.upsert_task_record(record), "save the task"):
            await self.run_pipeline(Trigger.ADD)
        return record

    async def toggle_task(self, task_id: str) -> TaskRecord:
        """
        Flip completion of one of today's tasks. A virtual ritual is promoted
        to a concrete record with a fresh id on its first toggle.
        """
        await self._ensure_current_day()
        index = self._find_today(task_id)
        current = self.today_tasks[index]
        if is_virtual(current):
            updated = promote_virtual(current, self._clock.now())
        else:
            updated = current.copy()
        updated["completed"] = not current["completed"]

        self.today_tasks[index] = updated
        if await self._remote(self._store.upsert_task_record(updated), "save the task"):
            await self.run_pipeline(Trigger.TOGGLE)
        return updated

    async def delete_task(self, task_id: str) -> None:
        """
        Remove one of today's tasks. Deleting a recurring task removes the
        whole ritual: every instance with its title, on every day.
        """
        await self._ensure_current_day()
        record = self.today_tasks[self._find_today(task_id)]
        if record["is_recurring"]:
            self.today_tasks = [
                r for r in self.today_tasks if not (r["is_recurring"] and r["title"] == record["title"])
            ]
            op = self._store.delete_task_records_where(self.user_id, record["title"], is_recurring=True)
        else:
            self.today_tasks = [r for r in self.today_tasks if r["id"] != task_id]
            op = self._store.delete_task_record(task_id)
        if await self._remote(op, "remove the task"):
            await self.run_pipeline(Trigger.DELETE)


class SessionRegistry:
    """One StreakSession per user, created on first use."""

    def __init__(
        self,
        store: TaskRecordStore,
        clock: Clock,
        policy: Optional[StreakPolicy] = None,
        *,
        max_walk_days: int = MAX_WALK_DAYS,
        notice_limit: int = 20,
    ) -> None:
        self.store = store
        self.clock = clock
        self._policy = policy or get_policy()
        self._max_walk_days = max_walk_days
        self._notice_limit = notice_limit
        self._sessions: Dict[str, StreakSession] = {}

    def get(self, user_id: str) -> StreakSession:
        session = self._sessions.get(user_id)
        if session is None:
            session = StreakSession(
                user_id,
                self.store,
                self.clock,
                self._policy,
                max_walk_days=self._max_walk_days,
                notice_limit=self._notice_limit,
            )
            self._sessions[user_id] = session
        return session

    def sessions(self) -> List[StreakSession]:
        return list(self._sessions.values())


class DayRolloverWatcher:
    """
    Background task re-running every session's pipeline when the day changes.
    """

    def __init__(self, registry: SessionRegistry, interval_seconds: float) -> None:
        self._registry = registry
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> int:
        """Check every session once; return how many rolled over."""
        rolled = 0
        for session in self._registry.sessions():
            try:
                if await session.check_day_rollover():
                    rolled += 1
            except Exception:
                logger.exception("Day rollover check failed for user %s", session.user_id)
        return rolled

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            rolled = await self.tick()
            if rolled:
                logger.info("Day rollover reconciled %d session(s)", rolled)

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())
            logger.info("Day rollover watcher started (every %ss)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
