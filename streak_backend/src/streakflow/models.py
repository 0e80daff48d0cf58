from __future__ import annotations

from typing import List, Optional, TypedDict


# PUBLIC_INTERFACE
class TaskRecord(TypedDict):
    """
    One occurrence of an objective on one calendar day, as held by the stores.

    Fields:
    - id: Unique string identifier ('virtual-...' ids are never persisted)
    - user_id: Owning user reference
    - title: Objective name; also the key that links daily instances of a recurring objective
    - date: Local calendar day key, 'YYYY-MM-DD'
    - completed: Completion flag; the only field mutated after creation
    - is_recurring: True if the instance belongs to a daily ritual
    - reminder_time: Optional 'HH:MM' reminder, informational
    - snoozed_until: Optional ISO timestamp of a snoozed reminder, informational
    """

    id: str
    user_id: str
    title: str
    date: str
    completed: bool
    is_recurring: bool
    reminder_time: Optional[str]
    snoozed_until: Optional[str]


# PUBLIC_INTERFACE
class UserAggregate(TypedDict):
    """
    Cached streak fields persisted alongside the user account.

    streak_count is a cache: it must always be reproducible from the task
    record history back to join_date.
    """

    user_id: str
    streak_count: int
    persistence_log: List[str]
    last_completed_date: Optional[str]
    last_active_date: Optional[str]
    join_date: str
    policy_version: Optional[str]


def new_aggregate(user_id: str, join_date: str) -> UserAggregate:
    return {
        "user_id": user_id,
        "streak_count": 0,
        "persistence_log": [],
        "last_completed_date": None,
        "last_active_date": None,
        "join_date": join_date,
        "policy_version": None,
    }


def copy_aggregate(state: UserAggregate) -> UserAggregate:
    """Copy including the persistence log list."""
    copied = state.copy()
    copied["persistence_log"] = list(state["persistence_log"])
    return copied
