"""Schemas for the recurrence service API."""
from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


class RecurrenceRuleSchema(BaseModel):
    """Recurrence configuration as exposed to API clients."""
    type: str = Field(default="none", pattern=r"^(none|daily|weekly|monthly|monthly_weekday|monthly_last_day)$")
    interval: int = Field(default=1, ge=1)
    weekdays: List[int] = Field(default_factory=list)  # 0=Sunday..6=Saturday
    week_of_month: Optional[int] = Field(default=None, ge=1, le=5)  # 5 = last
    month_day: Optional[int] = Field(default=None, ge=1, le=31)
    end_date: Optional[date] = None
    completion_based: bool = False
    series_start: Optional[date] = None


class TaskResponse(BaseModel):
    """Task as returned by the recurrence service."""
    id: int
    user_id: str
    name: str
    note: Optional[str] = None
    project_id: Optional[int] = None
    priority: Optional[str] = "medium"
    tags: Optional[List[str]] = []
    status: str
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    recurrence_type: str = "none"
    recurrence_status: str = "active"
    recurrence_error: Optional[str] = None  # warning shown when a series could not continue
    recurring_parent_id: Optional[int] = None

    class Config:
        from_attributes = True


class GeneratedInstanceResponse(BaseModel):
    """Result of a generation attempt; ``instance`` is null when nothing was created."""
    generated: bool
    instance: Optional[Dict[str, Any]] = None


class NextIteration(BaseModel):
    due_date: date


class NextIterationsResponse(BaseModel):
    task_id: int
    rule: RecurrenceRuleSchema
    iterations: List[NextIteration]


class CompletionEventData(BaseModel):
    """Payload of a task.completed event."""
    id: Optional[int] = None
    task_id: Optional[int] = None
    user_id: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def resolved_task_id(self) -> Optional[int]:
        return self.task_id if self.task_id is not None else self.id
