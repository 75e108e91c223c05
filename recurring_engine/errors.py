"""
Recurrence Engine Errors

Error taxonomy for recurring task generation:
- RuleInvalidError: rule breaks a structural invariant, series becomes invalid
- DuplicateOccurrenceError: occurrence already stored, always swallowed
- StoreUnavailableError: transient persistence failure, propagated to the caller
"""

from typing import Any, Dict, Optional


class RecurrenceEngineError(Exception):
    """Base exception for recurrence engine errors"""
    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class RuleInvalidError(RecurrenceEngineError):
    """Recurrence rule fails a structural invariant."""

    def __init__(self, message: str, errors: Optional[list] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details["errors"] = list(errors or [message])
        super().__init__(code="RULE_INVALID", message=message, details=details)

    @property
    def errors(self) -> list:
        return self.details["errors"]


class DuplicateOccurrenceError(RecurrenceEngineError):
    """An instance for this parent and due date already exists."""

    def __init__(self, parent_id: int, due_date):
        super().__init__(
            code="DUPLICATE_OCCURRENCE",
            message=f"Occurrence {due_date} already generated for task {parent_id}",
            details={"parent_id": parent_id, "due_date": str(due_date)},
        )


class StoreUnavailableError(RecurrenceEngineError):
    """Task store could not be reached or failed transiently."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(code="STORE_UNAVAILABLE", message=message, details=details)


class TaskNotFoundError(RecurrenceEngineError):
    """Requested task does not exist."""

    def __init__(self, task_id: int):
        super().__init__(
            code="NOT_FOUND",
            message=f"Task {task_id} not found",
            details={"task_id": task_id},
        )


# Shown on the parent task when a series stops because its rule is broken
INVALID_SERIES_WARNING = "Recurrence could not be continued - please review the repeat settings."
