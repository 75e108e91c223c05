"""Recurrence Validator."""
from typing import Dict, Any
import re

from recurring_engine.models.recurrence_rule import (
    LAST_WEEK_OF_MONTH,
    RecurrenceRule,
    RecurrenceType,
)


def _new_result() -> Dict[str, Any]:
    return {
        "valid": True,
        "errors": [],
        "warnings": []
    }


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class RecurrenceValidator:
    """Validate recurrence rules and task attributes before they reach the engine."""

    @staticmethod
    def validate_recurrence_rule(rule: RecurrenceRule) -> Dict[str, Any]:
        """
        Validate a recurrence rule against its structural invariants.

        Args:
            rule: The rule to check

        Returns:
            Dict with validation result
        """
        result = _new_result()

        if not isinstance(rule.type, RecurrenceType):
            allowed = ", ".join(t.value for t in RecurrenceType)
            result["valid"] = False
            result["errors"].append(f"Recurrence type must be one of: {allowed}, got: {rule.type}")
            return result

        # Everything else is ignored for non-recurring tasks
        if rule.type == RecurrenceType.NONE:
            return result

        if not _is_int(rule.interval) or rule.interval < 1:
            result["errors"].append(f"Recurrence interval must be a positive integer, got: {rule.interval}")

        for weekday in rule.weekdays:
            if not _is_int(weekday) or not 0 <= weekday <= 6:
                result["errors"].append(f"Weekday must be between 0 (Sunday) and 6 (Saturday), got: {weekday}")

        if rule.type == RecurrenceType.WEEKLY:
            if not rule.weekdays:
                result["errors"].append("Weekly recurrence requires at least one weekday")

        elif rule.type == RecurrenceType.MONTHLY_WEEKDAY:
            if len(rule.weekdays) != 1:
                result["errors"].append("Monthly weekday recurrence requires exactly one weekday")
            if rule.week_of_month is None:
                result["errors"].append("Monthly weekday recurrence requires a week of month")
            elif not _is_int(rule.week_of_month) or not 1 <= rule.week_of_month <= LAST_WEEK_OF_MONTH:
                result["errors"].append(f"Week of month must be between 1 and 5 (last), got: {rule.week_of_month}")

        elif rule.type == RecurrenceType.MONTHLY:
            if rule.month_day is not None and (not _is_int(rule.month_day) or not 1 <= rule.month_day <= 31):
                result["errors"].append(f"Month day must be between 1 and 31, got: {rule.month_day}")

        # Fields that the chosen type does not use
        if rule.weekdays and rule.type not in (RecurrenceType.WEEKLY, RecurrenceType.MONTHLY_WEEKDAY):
            result["warnings"].append(f"Weekdays are ignored for {rule.type.value} recurrence")
        if rule.month_day is not None and rule.type != RecurrenceType.MONTHLY:
            result["warnings"].append(f"Month day is ignored for {rule.type.value} recurrence")
        if rule.week_of_month is not None and rule.type != RecurrenceType.MONTHLY_WEEKDAY:
            result["warnings"].append(f"Week of month is ignored for {rule.type.value} recurrence")

        if rule.end_date and rule.series_start and rule.end_date <= rule.series_start:
            result["warnings"].append("Recurrence end date is on or before the series start; no instances will be generated")

        if result["errors"]:
            result["valid"] = False

        return result

    @staticmethod
    def validate_tag_limits(tags: list) -> Dict[str, Any]:
        """
        Validate tag limits.

        Args:
            tags: List of tags

        Returns:
            Dict with validation result
        """
        result = _new_result()

        if not tags:
            return result

        if not isinstance(tags, list):
            result["valid"] = False
            result["errors"].append("Tags must be a list")
            return result

        if len(tags) > 10:
            result["valid"] = False
            result["errors"].append(f"Maximum 10 tags allowed, got {len(tags)}")
            return result

        for i, tag in enumerate(tags):
            if not isinstance(tag, str):
                result["valid"] = False
                result["errors"].append(f"Tag at index {i} must be a string")
                return result

            if len(tag) > 20:
                result["valid"] = False
                result["errors"].append(f"Tag '{tag}' exceeds maximum length of 20 characters")
                return result

            if not re.match(r'^[\w\s\-_.]+$', tag):
                result["warnings"].append(f"Tag '{tag}' contains potentially problematic characters")

        return result

    @staticmethod
    def validate_priority(priority: str) -> Dict[str, Any]:
        """Validate priority value."""
        result = _new_result()

        if not priority:
            return result

        if priority not in ["high", "medium", "low"]:
            result["valid"] = False
            result["errors"].append(f"Priority must be one of: high, medium, low, got: {priority}")

        return result
