from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_session
from ..errors import ValidationError
from ..evaluator import summarize_days
from ..schemas import DayActivityOut, DayCheckOut, EvaluationOut, StreakOut, UserStreakStateOut
from ..sync import StreakSession
from ..utils import is_date_key, parse_date_key, shift_date_key

router = APIRouter(
    prefix="/api/v1/users",
    tags=["streaks"],
)

MAX_CALENDAR_DAYS = 366
DEFAULT_CALENDAR_DAYS = 35


def _streak_view(session: StreakSession) -> StreakOut:
    return StreakOut(
        today=session.today(),
        state=UserStreakStateOut.from_aggregate(session.aggregate),  # type: ignore[arg-type]
        evaluation=EvaluationOut.from_result(session.last_result),
        notices=session.drain_notices(),
    )


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}/streak",
    response_model=StreakOut,
    summary="Get streak",
    description=(
        "Return the cached streak aggregate and the evaluation that produced it. "
        "Sessions not yet reconciled today are reconciled first."
    ),
)
async def get_streak(session: StreakSession = Depends(get_session)) -> StreakOut:
    """
    Read the user's streak.
    """
    await session.check_day_rollover()
    if session.aggregate is None:
        await session.register()
    return _streak_view(session)


# PUBLIC_INTERFACE
@router.post(
    "/{user_id}/streak/day-check",
    response_model=DayCheckOut,
    summary="Day rollover check",
    description=(
        "Re-run reconciliation when the local day changed since the session last looked. "
        "Clients call this on focus/visibility changes; the server also runs it periodically."
    ),
)
async def day_check(session: StreakSession = Depends(get_session)) -> DayCheckOut:
    """
    Check for a day change and reconcile if there was one.
    """
    rolled = await session.check_day_rollover()
    if session.aggregate is None:
        await session.register()
    return DayCheckOut(
        today=session.today(),
        state=UserStreakStateOut.from_aggregate(session.aggregate),  # type: ignore[arg-type]
        evaluation=EvaluationOut.from_result(session.last_result),
        notices=session.drain_notices(),
        rolled_over=rolled,
    )


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}/calendar",
    response_model=List[DayActivityOut],
    summary="Calendar",
    description=(
        "Per-day task totals and status ('none', 'complete', 'partial') for a date range, "
        f"oldest first. Defaults to the last {DEFAULT_CALENDAR_DAYS} days; at most "
        f"{MAX_CALENDAR_DAYS} days per request."
    ),
    responses={400: {"description": "Invalid date range"}},
)
async def calendar(
    start: Optional[str] = Query(None, description="First day, YYYY-MM-DD"),
    end: Optional[str] = Query(None, description="Last day, YYYY-MM-DD (default today)"),
    session: StreakSession = Depends(get_session),
) -> List[DayActivityOut]:
    """
    Calendar statuses for a range of days.
    """
    for value in (start, end):
        if value is not None and not is_date_key(value):
            raise ValidationError("start and end must be YYYY-MM-DD")
    last = end or session.today()
    first = start or shift_date_key(last, -(DEFAULT_CALENDAR_DAYS - 1))
    span = (parse_date_key(last) - parse_date_key(first)).days
    if span < 0:
        raise ValidationError("start must not be after end")
    if span >= MAX_CALENDAR_DAYS:
        raise ValidationError(f"range must not exceed {MAX_CALENDAR_DAYS} days")

    history = await session.history()
    return [
        DayActivityOut(date=d.date, total=d.total, completed=d.completed, status=d.status)
        for d in summarize_days(history, first, last)
    ]
