from datetime import date, datetime

import pytest
import pytz

from recurring_engine.errors import RuleInvalidError
from recurring_engine.models.recurrence_rule import RecurrenceRule, RecurrenceType
from recurring_engine.services.occurrence_calculator import (
    first_weekday_of_month,
    last_weekday_of_month,
    next_occurrence,
    nth_weekday_of_month,
    should_generate,
    upcoming_occurrences,
    week_start,
    weekday_ordinal,
)

MONDAY = date(2024, 1, 1)


def rule(rule_type, **fields):
    return RecurrenceRule(type=rule_type, **fields)


def test_weekday_ordinals_start_on_sunday():
    assert weekday_ordinal(date(2024, 1, 7)) == 0
    assert weekday_ordinal(MONDAY) == 1
    assert weekday_ordinal(date(2024, 1, 6)) == 6
    assert week_start(MONDAY) == date(2023, 12, 31)


def test_non_recurring_rule_has_no_next_occurrence():
    assert next_occurrence(RecurrenceRule(), MONDAY) is None


class TestDaily:
    def test_interval_three_chains(self):
        every_three = rule(RecurrenceType.DAILY, interval=3)
        first = next_occurrence(every_three, MONDAY)
        assert first == date(2024, 1, 4)
        assert next_occurrence(every_three, first) == date(2024, 1, 7)

    def test_crosses_leap_day(self):
        assert next_occurrence(rule(RecurrenceType.DAILY), date(2024, 2, 28)) == date(2024, 2, 29)

    def test_end_date_ends_series(self):
        bounded = rule(RecurrenceType.DAILY, end_date=date(2024, 1, 2))
        assert next_occurrence(bounded, MONDAY) is None

    def test_end_date_after_candidate_still_generates(self):
        bounded = rule(RecurrenceType.DAILY, end_date=date(2024, 1, 3))
        assert next_occurrence(bounded, MONDAY) == date(2024, 1, 2)


class TestWeekly:
    def test_weekend_days_from_monday(self):
        weekends = rule(RecurrenceType.WEEKLY, weekdays=(0, 6))
        assert next_occurrence(weekends, MONDAY) == date(2024, 1, 6)

    def test_monday_wednesday_friday_from_monday(self):
        mwf = rule(RecurrenceType.WEEKLY, weekdays=(1, 3, 5))
        assert next_occurrence(mwf, MONDAY) == date(2024, 1, 3)
        assert next_occurrence(mwf, date(2024, 1, 5)) == date(2024, 1, 8)

    def test_every_other_week_skips_off_weeks(self):
        fortnightly = rule(RecurrenceType.WEEKLY, interval=2, weekdays=(1,), series_start=MONDAY)
        assert next_occurrence(fortnightly, MONDAY) == date(2024, 1, 15)
        assert next_occurrence(fortnightly, date(2024, 1, 15)) == date(2024, 1, 29)

    def test_every_other_week_keeps_remaining_days_of_current_week(self):
        fortnightly = rule(RecurrenceType.WEEKLY, interval=2, weekdays=(1, 5), series_start=MONDAY)
        assert next_occurrence(fortnightly, MONDAY) == date(2024, 1, 5)
        assert next_occurrence(fortnightly, date(2024, 1, 5)) == date(2024, 1, 15)

    def test_week_parity_counts_from_series_start(self):
        # Anchor in an off week relative to the series start
        fortnightly = rule(RecurrenceType.WEEKLY, interval=2, weekdays=(3,), series_start=MONDAY)
        assert next_occurrence(fortnightly, date(2024, 1, 9)) == date(2024, 1, 17)


class TestMonthly:
    def test_day_31_clamps_to_30_day_month(self):
        on_31st = rule(RecurrenceType.MONTHLY, month_day=31)
        assert next_occurrence(on_31st, date(2024, 3, 31)) == date(2024, 4, 30)

    def test_day_31_returns_after_short_month(self):
        on_31st = rule(RecurrenceType.MONTHLY, month_day=31)
        assert next_occurrence(on_31st, date(2024, 4, 30)) == date(2024, 5, 31)

    def test_february_in_leap_year(self):
        on_30th = rule(RecurrenceType.MONTHLY, month_day=30)
        assert next_occurrence(on_30th, date(2024, 1, 30)) == date(2024, 2, 29)

    def test_without_month_day_uses_anchor_day(self):
        assert next_occurrence(rule(RecurrenceType.MONTHLY), date(2024, 1, 15)) == date(2024, 2, 15)

    def test_quarterly_across_year_end(self):
        quarterly = rule(RecurrenceType.MONTHLY, interval=3, month_day=30)
        assert next_occurrence(quarterly, date(2024, 11, 30)) == date(2025, 2, 28)

    def test_chained_occurrences_strictly_increase(self):
        on_31st = rule(RecurrenceType.MONTHLY, month_day=31)
        current = date(2024, 1, 31)
        for _ in range(24):
            following = next_occurrence(on_31st, current)
            assert following > current
            current = following


class TestMonthlyWeekday:
    def test_second_tuesday(self):
        second_tuesday = rule(RecurrenceType.MONTHLY_WEEKDAY, weekdays=(2,), week_of_month=2)
        assert next_occurrence(second_tuesday, date(2024, 1, 9)) == date(2024, 2, 13)

    def test_last_week_falls_back_to_fourth_occurrence(self):
        # February 2024 has four Mondays
        last_monday = rule(RecurrenceType.MONTHLY_WEEKDAY, weekdays=(1,), week_of_month=5)
        assert next_occurrence(last_monday, date(2024, 1, 29)) == date(2024, 2, 26)

    def test_last_week_uses_fifth_occurrence_when_present(self):
        # April 2024 has five Mondays
        last_monday = rule(RecurrenceType.MONTHLY_WEEKDAY, weekdays=(1,), week_of_month=5)
        assert next_occurrence(last_monday, date(2024, 3, 25)) == date(2024, 4, 29)

    def test_first_sunday_across_year_end(self):
        first_sunday = rule(RecurrenceType.MONTHLY_WEEKDAY, weekdays=(0,), week_of_month=1)
        assert next_occurrence(first_sunday, date(2024, 12, 1)) == date(2025, 1, 5)


class TestMonthlyLastDay:
    def test_last_day_of_february(self):
        month_end = rule(RecurrenceType.MONTHLY_LAST_DAY)
        assert next_occurrence(month_end, date(2024, 1, 31)) == date(2024, 2, 29)
        assert next_occurrence(month_end, date(2024, 2, 29)) == date(2024, 3, 31)

    def test_interval_two(self):
        month_end = rule(RecurrenceType.MONTHLY_LAST_DAY, interval=2)
        assert next_occurrence(month_end, date(2023, 12, 31)) == date(2024, 2, 29)


class TestInvalidRules:
    @pytest.mark.parametrize("invalid", [
        RecurrenceRule(type=RecurrenceType.WEEKLY),
        RecurrenceRule(type=RecurrenceType.DAILY, interval=0),
        RecurrenceRule(type=RecurrenceType.WEEKLY, weekdays=(7,)),
        RecurrenceRule(type=RecurrenceType.MONTHLY_WEEKDAY, weekdays=(1,), week_of_month=6),
        RecurrenceRule(type=RecurrenceType.MONTHLY_WEEKDAY, weekdays=(1, 2), week_of_month=1),
        RecurrenceRule(type=RecurrenceType.MONTHLY, month_day=32),
        RecurrenceRule.from_dict({"type": "yearly"}),
    ])
    def test_raises_rule_invalid(self, invalid):
        with pytest.raises(RuleInvalidError) as exc_info:
            next_occurrence(invalid, MONDAY)
        assert exc_info.value.code == "RULE_INVALID"
        assert exc_info.value.errors


def test_timestamp_anchor_uses_owner_local_day():
    late_evening_utc = datetime(2024, 1, 1, 23, 30, tzinfo=pytz.utc)
    daily = rule(RecurrenceType.DAILY)
    assert next_occurrence(daily, late_evening_utc, "UTC") == date(2024, 1, 2)
    # Already January 2nd in Tokyo
    assert next_occurrence(daily, late_evening_utc, "Asia/Tokyo") == date(2024, 1, 3)


def test_naive_timestamp_anchor_is_utc():
    assert next_occurrence(rule(RecurrenceType.DAILY), datetime(2024, 1, 1, 23, 30), "Asia/Tokyo") == date(2024, 1, 3)


def test_month_helpers():
    assert first_weekday_of_month(2024, 2, 4) == date(2024, 2, 1)
    assert last_weekday_of_month(2024, 2, 1) == date(2024, 2, 26)
    assert nth_weekday_of_month(2024, 2, 1, 4) == date(2024, 2, 26)
    assert nth_weekday_of_month(2024, 2, 1, 5) is None
    assert nth_weekday_of_month(2024, 4, 1, 5) == date(2024, 4, 29)


def test_should_generate():
    bounded = rule(RecurrenceType.DAILY, end_date=date(2024, 1, 10))
    assert should_generate(bounded, date(2024, 1, 9))
    assert not should_generate(bounded, date(2024, 1, 10))
    assert should_generate(rule(RecurrenceType.DAILY), date(2999, 1, 1))


class TestUpcomingOccurrences:
    def test_returns_requested_count(self):
        assert upcoming_occurrences(rule(RecurrenceType.DAILY, interval=2), MONDAY, count=3) == [
            date(2024, 1, 3), date(2024, 1, 5), date(2024, 1, 7),
        ]

    def test_stops_at_end_date(self):
        bounded = rule(RecurrenceType.DAILY, end_date=date(2024, 1, 5))
        assert upcoming_occurrences(bounded, MONDAY, count=10) == [
            date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4),
        ]

    def test_capped_iterations(self):
        assert len(upcoming_occurrences(rule(RecurrenceType.DAILY), MONDAY, count=500)) == 100

    def test_non_recurring_is_empty(self):
        assert upcoming_occurrences(RecurrenceRule(), MONDAY) == []
