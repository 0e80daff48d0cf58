"""
Streak evaluation over a user's task record history.

Every day falls in one of three states:

- complete ("perfect"): at least one record, all of them completed
- partial ("broken"): at least one record, at least one not completed
- none ("idle"): no records at all

The streak is the number of perfect days found walking backward from today
until the first broken day (the breach) or the join date. Idle days neither
count nor break the walk. Today is never a breach: its tasks may still be
completed.

Everything here is a pure function of its arguments.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import InvariantViolation
from .models import TaskRecord
from .utils import is_date_key, iter_date_keys, parse_date_key, to_date_key

logger = logging.getLogger(__name__)

MAX_WALK_DAYS = 3650

STATUS_NONE = "none"
STATUS_COMPLETE = "complete"
STATUS_PARTIAL = "partial"


@dataclass(frozen=True)
class StreakEvaluation:
    """
    Outcome of one backward walk.

    - streak: perfect days counted, today included when perfect
    - breach_date: most recent broken day before today, or None
    - perfect_days: day keys counted toward the streak, newest first
    - skipped: records ignored because their date was missing or malformed
    """

    today: str
    streak: int
    breach_date: Optional[str]
    perfect_days: Tuple[str, ...] = ()
    skipped: int = 0


@dataclass(frozen=True)
class DayActivity:
    date: str
    total: int
    completed: int
    status: str


def _record_day(record: TaskRecord) -> str:
    day = record.get("date")
    if not is_date_key(day):
        raise InvariantViolation(f"Task record {record.get('id')!r} has unparseable date {day!r}")
    return day  # type: ignore[return-value]


def _index_by_day(history: Iterable[TaskRecord]) -> Tuple[Dict[str, List[bool]], int]:
    """Group completion flags by day key; count malformed records."""
    days: Dict[str, List[bool]] = defaultdict(list)
    skipped = 0
    for record in history:
        try:
            day = _record_day(record)
        except InvariantViolation as e:
            logger.warning("%s; record skipped", e.message)
            skipped += 1
            continue
        days[day].append(bool(record.get("completed")))
    return days, skipped


def _status(flags: Optional[List[bool]]) -> str:
    if not flags:
        return STATUS_NONE
    return STATUS_COMPLETE if all(flags) else STATUS_PARTIAL


# PUBLIC_INTERFACE
def evaluate_streak(
    history: Iterable[TaskRecord],
    today: str,
    join_date: Optional[str],
    max_days: int = MAX_WALK_DAYS,
) -> StreakEvaluation:
    """
    Walk backward from today and return the streak and the breach date, if any.

    Args:
        history: Every task record saved for the user. Records dated after
            today or before join_date are never visited.
        today: Current day key from the clock.
        join_date: Lower bound of the walk. An unparseable value is logged and
            the walk is bounded by the oldest record instead.
        max_days: Safety bound on the number of days walked. Exceeding it is
            logged and the walk stops with the streak counted so far.

    Returns:
        StreakEvaluation. The same inputs always give the same result.
    """
    days, skipped = _index_by_day(history)
    today_d = parse_date_key(today)

    floor = None
    if join_date is not None:
        try:
            floor = parse_date_key(join_date)
        except ValueError:
            logger.warning("Unparseable join date %r; bounding walk by oldest record", join_date)
    if days:
        oldest = parse_date_key(min(days))
        # Nothing to find below the oldest record
        floor = oldest if floor is None or oldest > floor else floor

    perfect: List[str] = []
    if _status(days.get(today)) == STATUS_COMPLETE:
        perfect.append(today)

    breach: Optional[str] = None
    cursor = today_d - timedelta(days=1)
    walked = 0
    while floor is not None and cursor >= floor:
        if walked >= max_days:
            logger.warning(
                "Streak walk from %s exceeded %d days (floor %s); stopping at streak %d",
                today,
                max_days,
                to_date_key(floor),
                len(perfect),
            )
            break
        walked += 1
        key = to_date_key(cursor)
        status = _status(days.get(key))
        if status == STATUS_COMPLETE:
            perfect.append(key)
        elif status == STATUS_PARTIAL:
            breach = key
            break
        cursor -= timedelta(days=1)

    return StreakEvaluation(
        today=today,
        streak=len(perfect),
        breach_date=breach,
        perfect_days=tuple(perfect),
        skipped=skipped,
    )


# PUBLIC_INTERFACE
def day_status(history: Iterable[TaskRecord], day: str) -> str:
    """Return 'none', 'complete' or 'partial' for one day."""
    return _status([bool(r.get("completed")) for r in history if r.get("date") == day])


# PUBLIC_INTERFACE
def summarize_days(history: Iterable[TaskRecord], start: str, end: str) -> List[DayActivity]:
    """
    Per-day totals and status for every day in [start, end], oldest first.
    Used by calendar views; idle days are included with status 'none'.
    """
    days: Dict[str, List[bool]] = defaultdict(list)
    for record in history:
        day = record.get("date")
        if isinstance(day, str) and start <= day <= end:
            days[day].append(bool(record.get("completed")))
    return [
        DayActivity(date=key, total=len(days.get(key, ())), completed=sum(days.get(key, ())), status=_status(days.get(key)))
        for key in iter_date_keys(start, end)
    ]


def today_progress(records: Iterable[TaskRecord]) -> Tuple[int, int]:
    """(done, total) over today's materialized records."""
    flags = [bool(r.get("completed")) for r in records]
    return sum(flags), len(flags)
