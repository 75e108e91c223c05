"""Database models."""
from recurring_engine.models.recurrence_rule import (
    LAST_WEEK_OF_MONTH,
    RecurrenceRule,
    RecurrenceType,
    SeriesStatus,
)
from recurring_engine.models.task import Task, TaskStatus
from recurring_engine.models.user import User

__all__ = [
    "LAST_WEEK_OF_MONTH",
    "RecurrenceRule",
    "RecurrenceType",
    "SeriesStatus",
    "Task",
    "TaskStatus",
    "User",
]
