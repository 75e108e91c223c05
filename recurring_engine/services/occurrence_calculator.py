"""
Occurrence Calculator

Pure calendar arithmetic mapping a recurrence rule and an anchor date to the
next date on which an instance should exist. Nothing here touches storage.

Weekday ordinals follow the task model: 0=Sunday..6=Saturday.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Union

from dateutil.relativedelta import relativedelta, SU, MO, TU, WE, TH, FR, SA

from recurring_engine.errors import RuleInvalidError
from recurring_engine.models.recurrence_rule import (
    LAST_WEEK_OF_MONTH,
    RecurrenceRule,
    RecurrenceType,
)
from recurring_engine.services.recurrence_validator import RecurrenceValidator
from recurring_engine.utils.timezone import to_local_date

logger = logging.getLogger(__name__)

# dateutil weekday constants indexed by ordinal (0=Sunday)
WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)

# Upper bound on chained steps when previewing a series
MAX_PREVIEW_ITERATIONS = 100


def weekday_ordinal(day: date) -> int:
    """Weekday of ``day`` as 0=Sunday..6=Saturday."""
    return (day.weekday() + 1) % 7


def week_start(day: date) -> date:
    """Sunday that starts the week containing ``day``."""
    return day - timedelta(days=weekday_ordinal(day))


def first_weekday_of_month(year: int, month: int, weekday: int) -> date:
    return date(year, month, 1) + relativedelta(weekday=WEEKDAYS[weekday](+1))


def last_weekday_of_month(year: int, month: int, weekday: int) -> date:
    return date(year, month, 1) + relativedelta(day=31, weekday=WEEKDAYS[weekday](-1))


def nth_weekday_of_month(year: int, month: int, weekday: int, n: int) -> Optional[date]:
    """The ``n``-th ``weekday`` of the month, or None when the month has fewer."""
    candidate = date(year, month, 1) + relativedelta(weekday=WEEKDAYS[weekday](+n))
    if candidate.month != month:
        return None
    return candidate


def ensure_valid(rule: RecurrenceRule) -> None:
    """Raise RuleInvalidError if the rule breaks a structural invariant."""
    result = RecurrenceValidator.validate_recurrence_rule(rule)
    if not result["valid"]:
        raise RuleInvalidError(
            "; ".join(result["errors"]),
            errors=result["errors"],
            details={"type": str(getattr(rule.type, "value", rule.type))},
        )


def should_generate(rule: RecurrenceRule, candidate: date) -> bool:
    """True while ``candidate`` falls before the rule's end date."""
    if rule.end_date is None:
        return True
    return candidate < rule.end_date


def _next_daily(rule: RecurrenceRule, anchor: date) -> date:
    return anchor + relativedelta(days=rule.interval)


def _next_weekly(rule: RecurrenceRule, anchor: date) -> date:
    # Week parity is measured from the series start so edits to the anchor
    # do not shift which weeks are "on" for interval > 1.
    epoch = week_start(rule.series_start or anchor)
    wanted = set(rule.weekdays)

    # interval + 1 weeks always contain a full eligible week after the anchor
    for offset in range(1, 7 * (rule.interval + 1) + 1):
        candidate = anchor + timedelta(days=offset)
        if weekday_ordinal(candidate) not in wanted:
            continue
        weeks_from_epoch = (week_start(candidate) - epoch).days // 7
        if weeks_from_epoch % rule.interval == 0:
            return candidate

    raise RuleInvalidError(f"No weekly occurrence found after {anchor}", details={"weekdays": sorted(wanted)})


def _next_monthly(rule: RecurrenceRule, anchor: date) -> date:
    target_day = rule.month_day or anchor.day
    # relativedelta clamps an absolute day to the end of a shorter month
    return anchor + relativedelta(months=rule.interval, day=target_day)


def _next_monthly_weekday(rule: RecurrenceRule, anchor: date) -> date:
    month = anchor + relativedelta(months=rule.interval, day=1)
    weekday = rule.weekdays[0]
    if rule.week_of_month == LAST_WEEK_OF_MONTH:
        return last_weekday_of_month(month.year, month.month, weekday)
    candidate = nth_weekday_of_month(month.year, month.month, weekday, rule.week_of_month)
    if candidate is None:
        raise RuleInvalidError(
            f"Month {month:%Y-%m} has no occurrence {rule.week_of_month} of weekday {weekday}",
            details={"week_of_month": rule.week_of_month, "weekday": weekday},
        )
    return candidate


def _next_monthly_last_day(rule: RecurrenceRule, anchor: date) -> date:
    return anchor + relativedelta(months=rule.interval, day=31)


_CALCULATORS: Dict[RecurrenceType, Callable[[RecurrenceRule, date], date]] = {
    RecurrenceType.DAILY: _next_daily,
    RecurrenceType.WEEKLY: _next_weekly,
    RecurrenceType.MONTHLY: _next_monthly,
    RecurrenceType.MONTHLY_WEEKDAY: _next_monthly_weekday,
    RecurrenceType.MONTHLY_LAST_DAY: _next_monthly_last_day,
}


def next_occurrence(
    rule: RecurrenceRule,
    anchor: Union[date, datetime],
    tz_name: Optional[str] = None,
) -> Optional[date]:
    """
    Next date on which an instance of the series should exist.

    Args:
        rule: A previously validated recurrence rule
        anchor: Due date of the latest instance, or its completion timestamp
            for completion-based rules. Timestamps are converted to a calendar
            day in ``tz_name`` first.
        tz_name: Owner's timezone, used only for timestamp anchors

    Returns:
        The next occurrence, or None when the rule does not repeat or the
        series has reached its end date

    Raises:
        RuleInvalidError: If the rule breaks a structural invariant
    """
    ensure_valid(rule)
    if rule.type == RecurrenceType.NONE:
        return None

    anchor_day = to_local_date(anchor, tz_name)
    candidate = _CALCULATORS[rule.type](rule, anchor_day)

    if not should_generate(rule, candidate):
        logger.debug(f"Candidate {candidate} is on or after end date {rule.end_date}; series ends")
        return None
    return candidate


def upcoming_occurrences(
    rule: RecurrenceRule,
    start: Union[date, datetime],
    count: int = 5,
    tz_name: Optional[str] = None,
) -> List[date]:
    """Preview up to ``count`` occurrences after ``start``, chained one from the next."""
    occurrences: List[date] = []
    current: Optional[date] = to_local_date(start, tz_name)

    for _ in range(MAX_PREVIEW_ITERATIONS):
        if len(occurrences) >= count:
            break
        current = next_occurrence(rule, current)
        if current is None:
            break
        occurrences.append(current)

    return occurrences
