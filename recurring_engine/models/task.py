"""Task model for SQLModel."""
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import JSON, Column, ForeignKey, Integer, String, Text, UniqueConstraint
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from recurring_engine.models.recurrence_rule import RecurrenceRule, RecurrenceType, SeriesStatus
from recurring_engine.utils.timezone import utcnow

if TYPE_CHECKING:
    from recurring_engine.models.user import User


class TaskStatus(str, Enum):
    """Lifecycle status of a task."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ARCHIVED = "archived"


class Task(SQLModel, table=True):
    """Task entity; a parent task carries the recurrence rule, instances point back at it."""

    # At most one generated instance per parent and due date. Concurrent
    # generators rely on this constraint, not on an application check.
    __table_args__ = (
        UniqueConstraint("recurring_parent_id", "due_date", name="uq_task_recurring_parent_due_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(
        sa_column=Column(String, ForeignKey("user.id", ondelete="CASCADE"), index=True)
    )
    name: str = Field(max_length=200, min_length=1)
    note: Optional[str] = Field(default=None, sa_column=Column(Text))
    project_id: Optional[int] = Field(default=None, index=True)
    priority: str = Field(default="medium", max_length=20)  # high, medium, low
    tags: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    status: str = Field(default=TaskStatus.NOT_STARTED.value, max_length=20)
    due_date: Optional[date] = Field(default=None, index=True)  # calendar day in the owner's timezone
    completed_at: Optional[datetime] = Field(default=None)  # UTC
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Recurrence rule, authoritative on the parent only; instances keep a display copy
    recurrence_type: str = Field(default=RecurrenceType.NONE.value, max_length=30, index=True)
    recurrence_interval: int = Field(default=1)
    recurrence_weekdays: Optional[List[int]] = Field(default=None, sa_column=Column(JSON))  # 0=Sunday..6=Saturday
    recurrence_week_of_month: Optional[int] = Field(default=None)  # 1-5, 5 = last
    recurrence_month_day: Optional[int] = Field(default=None)  # 1-31
    recurrence_end_date: Optional[date] = Field(default=None)
    recurrence_series_start: Optional[date] = Field(default=None)
    completion_based: bool = Field(default=False)

    # Series state on parents; "snapshot" on generated instances
    recurrence_status: str = Field(default=SeriesStatus.ACTIVE.value, max_length=20, index=True)
    recurrence_error: Optional[str] = Field(default=None, max_length=500)

    recurring_parent_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("task.id", ondelete="SET NULL"), index=True, nullable=True),
    )

    # Relationships
    user: "User" = Relationship(back_populates="tasks")

    @property
    def rule(self) -> RecurrenceRule:
        return RecurrenceRule.from_task(self)

    @property
    def is_instance(self) -> bool:
        return self.recurring_parent_id is not None

    @property
    def is_recurring_parent(self) -> bool:
        return (
            not self.is_instance
            and self.recurrence_type != RecurrenceType.NONE.value
            and self.recurrence_status != SeriesStatus.SNAPSHOT.value
        )

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE.value
