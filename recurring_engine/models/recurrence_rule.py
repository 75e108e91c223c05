"""Recurrence rule value object embedded in a task record."""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from recurring_engine.models.task import Task


class RecurrenceType(str, Enum):
    """How a task repeats."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    MONTHLY_WEEKDAY = "monthly_weekday"
    MONTHLY_LAST_DAY = "monthly_last_day"


class SeriesStatus(str, Enum):
    """State of a recurring series, stored on the parent task.

    Generated instances carry SNAPSHOT: their rule columns are a display copy
    and never drive generation, even after the parent is gone.
    """
    ACTIVE = "active"
    ENDED = "ended"
    INVALID = "invalid"
    SNAPSHOT = "snapshot"


# week_of_month value meaning "last such weekday in the month"
LAST_WEEK_OF_MONTH = 5


@dataclass(frozen=True)
class RecurrenceRule:
    """Immutable description of how a task repeats.

    Weekday ordinals run 0=Sunday..6=Saturday. ``series_start`` is the
    first-ever anchor of the series; weekly intervals are counted from it.
    """

    type: RecurrenceType = RecurrenceType.NONE
    interval: int = 1
    weekdays: Tuple[int, ...] = field(default_factory=tuple)
    week_of_month: Optional[int] = None
    month_day: Optional[int] = None
    end_date: Optional[date] = None
    completion_based: bool = False
    series_start: Optional[date] = None

    @property
    def is_recurring(self) -> bool:
        return self.type != RecurrenceType.NONE

    @classmethod
    def from_task(cls, task: "Task") -> "RecurrenceRule":
        """Build the rule from a task's recurrence columns."""
        return cls.from_dict({
            "type": task.recurrence_type,
            "interval": task.recurrence_interval,
            "weekdays": task.recurrence_weekdays,
            "week_of_month": task.recurrence_week_of_month,
            "month_day": task.recurrence_month_day,
            "end_date": task.recurrence_end_date,
            "completion_based": task.completion_based,
            "series_start": task.recurrence_series_start,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecurrenceRule":
        """Build a rule from loosely typed values (task columns, API payloads).

        Values are normalised but not validated; see RecurrenceValidator.
        """
        raw_type = data.get("type") or RecurrenceType.NONE.value
        try:
            rule_type = RecurrenceType(raw_type)
        except ValueError:
            # Kept as the raw string so validation can report it
            rule_type = raw_type

        interval = data.get("interval")
        weekdays = data.get("weekdays") or ()
        if isinstance(weekdays, int):
            weekdays = (weekdays,)

        return cls(
            type=rule_type,
            interval=1 if interval is None else interval,
            weekdays=tuple(weekdays),
            week_of_month=data.get("week_of_month"),
            month_day=data.get("month_day"),
            end_date=_coerce_date(data.get("end_date")),
            completion_based=bool(data.get("completion_based", False)),
            series_start=_coerce_date(data.get("series_start")),
        )

    def to_columns(self) -> Dict[str, Any]:
        """Map the rule onto the task's recurrence columns."""
        return {
            "recurrence_type": _type_value(self.type),
            "recurrence_interval": self.interval,
            "recurrence_weekdays": list(self.weekdays) if self.weekdays else None,
            "recurrence_week_of_month": self.week_of_month,
            "recurrence_month_day": self.month_day,
            "recurrence_end_date": self.end_date,
            "completion_based": self.completion_based,
            "recurrence_series_start": self.series_start,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": _type_value(self.type),
            "interval": self.interval,
            "weekdays": list(self.weekdays),
            "week_of_month": self.week_of_month,
            "month_day": self.month_day,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "completion_based": self.completion_based,
            "series_start": self.series_start.isoformat() if self.series_start else None,
        }


def _type_value(rule_type) -> str:
    return rule_type.value if isinstance(rule_type, RecurrenceType) else str(rule_type)


def _coerce_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        # datetime is a date subclass
        return value.date() if hasattr(value, "hour") else value
    return date.fromisoformat(str(value)[:10])
