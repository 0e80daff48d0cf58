"""
Reconciliation policies: what to do with stored state given an evaluation.

Only one policy ships, PurgeOnBreachPolicy. Failing a day is destructive
under it: every task record dated after the breach day is deleted, so the
stored history can never show progress logged after an unresolved failure.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .evaluator import StreakEvaluation
from .models import UserAggregate, copy_aggregate
from .utils import shift_date_key

logger = logging.getLogger(__name__)


class DecisionKind(str, Enum):
    ACCEPT = "accept"
    PURGE = "purge"
    NOOP = "noop"


@dataclass(frozen=True)
class Decision:
    """
    - kind: accept, purge or noop
    - evaluation: the evaluation the decision was made on
    - state: aggregate to write for ACCEPT; None otherwise
    - purge_after: breach day for PURGE; records dated after it are deleted
    """

    kind: DecisionKind
    evaluation: StreakEvaluation
    state: Optional[UserAggregate] = None
    purge_after: Optional[str] = None


# PUBLIC_INTERFACE
class StreakPolicy(ABC):
    """Versioned contract for reconciling an evaluation with stored state."""

    version: str = ""

    @abstractmethod
    def decide(self, evaluation: StreakEvaluation, state: UserAggregate) -> Decision:
        """Return the action to take for this evaluation."""

    @abstractmethod
    def purge_floor(self, state: UserAggregate, breach_date: str) -> str:
        """Join date to re-evaluate against once history after breach_date is gone."""

    @abstractmethod
    def apply_to(
        self,
        state: UserAggregate,
        evaluation: StreakEvaluation,
        purged_after: Optional[str] = None,
    ) -> UserAggregate:
        """Return the aggregate reflecting the evaluation; the input is not mutated."""


class PurgeOnBreachPolicy(StreakPolicy):
    """
    Purge fires exactly when the evaluation found a breach. Otherwise the
    computed streak is accepted when its count or perfect-day log differs
    from the stored aggregate. Bookkeeping fields alone (last active day,
    policy version) never cause a write; they are refreshed with the next
    accepted change.

    After a purge the join date moves to the day after the breach, which
    takes the breach day out of every later scan and ends the purge.
    """

    version = "purge-on-breach/1"

    def decide(self, evaluation: StreakEvaluation, state: UserAggregate) -> Decision:
        if evaluation.breach_date is not None:
            return Decision(DecisionKind.PURGE, evaluation, purge_after=evaluation.breach_date)

        updated = self.apply_to(state, evaluation)
        if (
            updated["streak_count"] == state["streak_count"]
            and updated["persistence_log"] == list(state["persistence_log"])
        ):
            return Decision(DecisionKind.NOOP, evaluation)
        return Decision(DecisionKind.ACCEPT, evaluation, state=updated)

    def purge_floor(self, state: UserAggregate, breach_date: str) -> str:
        return shift_date_key(breach_date, 1)

    def apply_to(
        self,
        state: UserAggregate,
        evaluation: StreakEvaluation,
        purged_after: Optional[str] = None,
    ) -> UserAggregate:
        updated = copy_aggregate(state)
        # today stays in the log only while it is still perfect
        log = set(state["persistence_log"]) - {evaluation.today}
        log |= set(evaluation.perfect_days)
        if purged_after is not None:
            log = {d for d in log if d <= purged_after}
            updated["join_date"] = self.purge_floor(state, purged_after)
            # perfect days come from the post-purge evaluation, all after the floor
            log |= set(evaluation.perfect_days)

        updated["streak_count"] = evaluation.streak
        updated["persistence_log"] = sorted(log)
        updated["last_completed_date"] = updated["persistence_log"][-1] if log else None
        updated["last_active_date"] = evaluation.today
        updated["policy_version"] = self.version
        return updated


# PUBLIC_INTERFACE
def get_policy() -> StreakPolicy:
    """Return the policy in effect."""
    return PurgeOnBreachPolicy()
