from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .materializer import is_virtual
from .models import TaskRecord, UserAggregate
from .utils import is_date_key, is_time_key

if TYPE_CHECKING:
    from .sync import PipelineResult

_CAMEL = ConfigDict(populate_by_name=True)


def _check_date_key(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = value.strip()
    if not is_date_key(s):
        raise ValueError("date must be a calendar day in YYYY-MM-DD format (e.g., '2025-01-31').")
    return s


def _check_title(value: str) -> str:
    if value is None:
        raise ValueError("title is required")
    s = value.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


# PUBLIC_INTERFACE
class UserCreate(BaseModel):
    """
    Schema for registering a user's streak aggregate.
    joinDate defaults to the current day when omitted.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"userId": "u-123", "joinDate": "2025-01-01"}},
    )

    user_id: str = Field(..., alias="userId", min_length=1, max_length=128, description="User reference")
    join_date: Optional[str] = Field(
        default=None, alias="joinDate", description="First day considered by streak scans (YYYY-MM-DD)"
    )

    @field_validator("join_date")
    @classmethod
    def validate_join_date(cls, v: Optional[str]) -> Optional[str]:
        return _check_date_key(v)


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for adding an objective for today.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "Meditate",
                "isRecurring": True,
                "reminderTime": "07:30",
            }
        },
    )

    title: str = Field(..., description="Objective name", min_length=1, max_length=200)
    is_recurring: bool = Field(default=False, alias="isRecurring", description="Repeat this objective daily")
    reminder_time: Optional[str] = Field(default=None, alias="reminderTime", description="Optional HH:MM reminder")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        return _check_title(v)

    @field_validator("reminder_time")
    @classmethod
    def validate_reminder_time(cls, v: Optional[str]) -> Optional[str]:
        """
        Accept empty strings as 'no reminder'; otherwise require 24h HH:MM.
        """
        if v is None or v.strip() == "":
            return None
        s = v.strip()
        if not is_time_key(s):
            raise ValueError("reminderTime must be HH:MM (24h)")
        return s


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a task record, concrete or virtual.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "virtual-5f2c-2025-02-01",
                "userId": "u-123",
                "title": "Meditate",
                "date": "2025-02-01",
                "completed": False,
                "isRecurring": True,
                "reminderTime": "07:30",
                "snoozedUntil": None,
                "virtual": True,
            }
        },
    )

    id: str = Field(..., description="Record id; 'virtual-' ids are not yet persisted")
    user_id: str = Field(..., alias="userId")
    title: str
    date: str = Field(..., description="Day key YYYY-MM-DD")
    completed: bool
    is_recurring: bool = Field(..., alias="isRecurring")
    reminder_time: Optional[str] = Field(default=None, alias="reminderTime")
    snoozed_until: Optional[str] = Field(default=None, alias="snoozedUntil")
    virtual: bool = Field(default=False, description="True while the record exists only in memory")

    @classmethod
    def from_record(cls, record: TaskRecord) -> "TaskOut":
        return cls(**record, virtual=is_virtual(record))


# PUBLIC_INTERFACE
class UserStreakStateOut(BaseModel):
    """Cached streak fields of a user."""

    model_config = _CAMEL

    user_id: str = Field(..., alias="userId")
    streak_count: int = Field(..., alias="streakCount", ge=0)
    persistence_log: List[str] = Field(default_factory=list, alias="persistenceLog")
    last_completed_date: Optional[str] = Field(default=None, alias="lastCompletedDate")
    last_active_date: Optional[str] = Field(default=None, alias="lastActiveDate")
    join_date: str = Field(..., alias="joinDate")
    policy_version: Optional[str] = Field(default=None, alias="policyVersion")

    @classmethod
    def from_aggregate(cls, state: UserAggregate) -> "UserStreakStateOut":
        return cls(**state)


# PUBLIC_INTERFACE
class EvaluationOut(BaseModel):
    """Result of the last streak evaluation run for the session."""

    model_config = _CAMEL

    streak: int = Field(..., ge=0)
    breach_date: Optional[str] = Field(default=None, alias="breachDate")
    decision: Optional[str] = Field(default=None, description="accept, purge or noop")
    purged: bool = Field(default=False, description="True when the last run deleted history")

    @classmethod
    def from_result(cls, result: Optional["PipelineResult"]) -> Optional["EvaluationOut"]:
        if result is None:
            return None
        return cls(
            streak=result.evaluation.streak,
            breach_date=result.evaluation.breach_date,
            decision=result.decision.value,
            purged=result.purged_after is not None,
        )


# PUBLIC_INTERFACE
class TodayOut(BaseModel):
    """
    Today's view: concrete records followed by virtual recurring instances.
    """

    model_config = _CAMEL

    today: str
    tasks: List[TaskOut]
    done: int = Field(..., description="Completed tasks today")
    total: int = Field(..., description="Tasks today, virtual included")
    streak: UserStreakStateOut
    evaluation: Optional[EvaluationOut] = None
    notices: List[str] = Field(default_factory=list, description="Pending transient notifications")


# PUBLIC_INTERFACE
class StreakOut(BaseModel):
    """Aggregate plus the evaluation that produced it."""

    model_config = _CAMEL

    today: str
    state: UserStreakStateOut
    evaluation: Optional[EvaluationOut] = None
    notices: List[str] = Field(default_factory=list)


# PUBLIC_INTERFACE
class DayCheckOut(StreakOut):
    """Result of a day-rollover check."""

    rolled_over: bool = Field(..., alias="rolledOver")


# PUBLIC_INTERFACE
class DayActivityOut(BaseModel):
    """Calendar cell for one day."""

    date: str
    total: int
    completed: int
    status: str = Field(..., description="none, complete or partial")
