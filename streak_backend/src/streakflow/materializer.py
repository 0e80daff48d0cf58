"""
Ritual materialization: today's occurrences of recurring objectives.

A recurring objective has no template identity of its own. Its title links
the daily instances, and the most recent instance serves as the template for
today's occurrence until the user first toggles it, at which point it is
promoted to a concrete record.
"""

from __future__ import annotations

import logging
import uuid
from typing import Dict, Iterable, List, Optional

from .models import TaskRecord
from .utils import is_date_key

logger = logging.getLogger(__name__)

VIRTUAL_PREFIX = "virtual-"


def virtual_id(template_id: str, today: str) -> str:
    return f"{VIRTUAL_PREFIX}{template_id}-{today}"


def is_virtual_id(record_id: str) -> bool:
    return record_id.startswith(VIRTUAL_PREFIX)


def is_virtual(record: TaskRecord) -> bool:
    return is_virtual_id(record["id"])


def _latest_templates(history: Iterable[TaskRecord]) -> Dict[str, TaskRecord]:
    """
    Most recent recurring record per title. Strict comparison keeps the
    earliest record in input order when two share a date.
    """
    templates: Dict[str, TaskRecord] = {}
    for record in history:
        if not record.get("is_recurring"):
            continue
        date = record.get("date")
        if not is_date_key(date):
            logger.warning("Skipping recurring record %s with date %r", record.get("id"), date)
            continue
        current = templates.get(record["title"])
        if current is None or date > current["date"]:
            templates[record["title"]] = record
    return templates


# PUBLIC_INTERFACE
def materialize_today(history: Iterable[TaskRecord], today: str) -> List[TaskRecord]:
    """
    Return today's task list: the concrete records dated today, followed by a
    virtual record for every recurring title that has no concrete record today.

    Virtual records copy the template's title, owner and reminder time, start
    incomplete, and get the id 'virtual-<templateId>-<today>' so repeated calls
    on the same history produce the same ids.
    """
    records = list(history)
    today_records = [r for r in records if r.get("date") == today]
    present_titles = {r["title"] for r in today_records}

    virtuals: List[TaskRecord] = []
    for title, template in _latest_templates(records).items():
        if title in present_titles:
            continue
        virtuals.append(
            {
                "id": virtual_id(template["id"], today),
                "user_id": template["user_id"],
                "title": title,
                "date": today,
                "completed": False,
                "is_recurring": True,
                "reminder_time": template.get("reminder_time"),
                "snoozed_until": None,
            }
        )
    return today_records + virtuals


# PUBLIC_INTERFACE
def promote_virtual(record: TaskRecord, today: str, new_id: Optional[str] = None) -> TaskRecord:
    """
    Turn a virtual record into a concrete one ready to be saved: fresh id and
    today's date. Other fields, including `completed`, are carried over; the
    caller applies the toggle.
    """
    promoted = record.copy()
    promoted["id"] = new_id or uuid.uuid4().hex
    promoted["date"] = today
    return promoted
