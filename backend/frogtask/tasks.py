from __future__ import annotations

from datetime import date
from typing import List, Protocol

from pydantic import BaseModel, Field

from . import storage
from .timeutils import date_key


class DueTask(BaseModel):
    id: str
    title: str = ""
    completed: bool = False
    suppressed: bool = False


class TaskSource(Protocol):
    def due_items(self, account_id: str, day: date) -> List[DueTask]:
        ...


class StoredTask(BaseModel):
    id: str
    account_id: str
    title: str = ""
    type: str = "regular"
    date: str | None = None
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    completed: bool = False
    completed_dates: List[str] = Field(default_factory=list)
    suppressed_dates: List[str] = Field(default_factory=list)
    deleted: bool = False


class StoredTaskSource:
    """Reads due items from the ``tasks`` collection.

    Regular tasks are due on their ``date``; weekly tasks recur on
    ``day_of_week`` (Monday is 0) and track completion per date.
    """

    def due_items(self, account_id: str, day: date) -> List[DueTask]:
        key = date_key(day)
        items: List[DueTask] = []
        for raw in storage.list_tasks({"account_id": account_id, "deleted": {"$ne": True}}):
            task = StoredTask.model_validate(raw)
            if task.type == "weekly":
                if task.day_of_week != day.weekday():
                    continue
                completed = key in task.completed_dates
            elif task.date == key:
                completed = task.completed
            else:
                continue
            items.append(
                DueTask(
                    id=task.id,
                    title=task.title,
                    completed=completed,
                    suppressed=key in task.suppressed_dates,
                )
            )
        return items


def due_count(items: List[DueTask]) -> int:
    return sum(1 for item in items if not item.suppressed)


def incomplete_count(items: List[DueTask]) -> int:
    return sum(1 for item in items if not item.suppressed and not item.completed)
