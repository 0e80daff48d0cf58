from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from ..deps import get_registry, get_session
from ..evaluator import today_progress
from ..schemas import EvaluationOut, TaskCreate, TaskOut, TodayOut, UserCreate, UserStreakStateOut
from ..sync import SessionRegistry, StreakSession

router = APIRouter(
    prefix="/api/v1/users",
    tags=["tasks"],
)


def _today_view(session: StreakSession) -> TodayOut:
    done, total = today_progress(session.today_tasks)
    return TodayOut(
        today=session.today(),
        tasks=[TaskOut.from_record(t) for t in session.today_tasks],
        done=done,
        total=total,
        streak=UserStreakStateOut.from_aggregate(session.aggregate),  # type: ignore[arg-type]
        evaluation=EvaluationOut.from_result(session.last_result),
        notices=session.drain_notices(),
    )


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=UserStreakStateOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register user",
    description=(
        "Create the user's streak aggregate. joinDate defaults to today. "
        "Registering an existing user returns the stored aggregate unchanged."
    ),
    responses={
        201: {"description": "Aggregate created or already present"},
        503: {"description": "Store unavailable"},
    },
)
async def register_user(
    payload: UserCreate, registry: SessionRegistry = Depends(get_registry)
) -> UserStreakStateOut:
    """
    Register a user for streak tracking.
    """
    aggregate = await registry.get(payload.user_id).register(payload.join_date)
    return UserStreakStateOut.from_aggregate(aggregate)


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}/tasks/today",
    response_model=TodayOut,
    summary="Load today",
    description=(
        "Reconcile the user's streak and return today's tasks: concrete records first, then "
        "virtual instances of recurring objectives not yet touched today.\n\n"
        "This is the app-load trigger. If the last day was left incomplete, every task record "
        "dated after it is deleted before the view is built."
    ),
)
async def load_today(session: StreakSession = Depends(get_session)) -> TodayOut:
    """
    Run the load pipeline and return today's view.
    """
    await session.load()
    if session.aggregate is None:
        await session.register()
    return _today_view(session)


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}/tasks",
    response_model=List[TaskOut],
    summary="List history",
    description="Every task record saved for the user, oldest day first. Virtual records are not included.",
)
async def list_history(session: StreakSession = Depends(get_session)) -> List[TaskOut]:
    """
    Return the user's full task record history.
    """
    records = await session.history()
    return [TaskOut.from_record(r) for r in records]


# PUBLIC_INTERFACE
@router.post(
    "/{user_id}/tasks",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add task",
    description="Add an objective for today. Recurring objectives reappear every following day.",
    responses={
        201: {"description": "Task created (saved remotely or kept locally)"},
        422: {"description": "Validation error"},
    },
)
async def add_task(payload: TaskCreate, session: StreakSession = Depends(get_session)) -> TaskOut:
    """
    Create a task for today.
    """
    record = await session.add_task(payload.title, payload.is_recurring, payload.reminder_time)
    return TaskOut.from_record(record)


# PUBLIC_INTERFACE
@router.post(
    "/{user_id}/tasks/{task_id}/toggle",
    response_model=TaskOut,
    summary="Toggle task",
    description=(
        "Flip completion of one of today's tasks. Toggling a virtual recurring task saves it "
        "as a new record with a fresh id, which is returned."
    ),
    responses={
        200: {"description": "Task toggled"},
        404: {"description": "Task not found in today's list"},
    },
)
async def toggle_task(task_id: str, session: StreakSession = Depends(get_session)) -> TaskOut:
    """
    Toggle a task's completion flag.
    """
    record = await session.toggle_task(task_id)
    return TaskOut.from_record(record)


# PUBLIC_INTERFACE
@router.delete(
    "/{user_id}/tasks/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete task",
    description="Delete one of today's tasks. Deleting a recurring task removes every instance with its title.",
    responses={
        204: {"description": "Task deleted"},
        404: {"description": "Task not found in today's list"},
    },
)
async def delete_task(task_id: str, session: StreakSession = Depends(get_session)) -> None:
    """
    Delete a task. Returns 204 on success, 404 if not found.
    """
    await session.delete_task(task_id)
    return None
