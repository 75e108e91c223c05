"""Task service: the task-update code path the recurrence engine plugs into."""
from sqlmodel import Session, select
from typing import Any, Dict, List, Optional
from dataclasses import replace
from datetime import date, datetime
import logging

from recurring_engine.errors import RecurrenceEngineError, RuleInvalidError, TaskNotFoundError
from recurring_engine.models.recurrence_rule import RecurrenceRule, RecurrenceType, SeriesStatus
from recurring_engine.models.task import Task, TaskStatus
from recurring_engine.services.occurrence_calculator import upcoming_occurrences
from recurring_engine.services.recurrence_validator import RecurrenceValidator
from recurring_engine.services.scheduler_driver import SchedulerDriver
from recurring_engine.services.task_repository import TaskRepository
from recurring_engine.utils.timezone import local_today, utcnow

logger = logging.getLogger(__name__)

# Rule fields accepted by update_recurrence, keyed by RecurrenceRule attribute
RULE_FIELDS = ("type", "interval", "weekdays", "week_of_month", "month_day", "end_date", "completion_based")


def _validate(result: Dict[str, Any], message: str) -> None:
    if not result["valid"]:
        raise RecurrenceEngineError(code="VALIDATION_ERROR", message=f"{message}: {', '.join(result['errors'])}",
                                    details={"errors": result["errors"]})


def _validate_rule(rule: RecurrenceRule) -> List[str]:
    result = RecurrenceValidator.validate_recurrence_rule(rule)
    if not result["valid"]:
        raise RuleInvalidError("Invalid recurrence rule: " + ", ".join(result["errors"]), errors=result["errors"])
    for warning in result["warnings"]:
        logger.warning(f"Recurrence rule warning: {warning}")
    return result["warnings"]


class TaskService:
    """Creates, edits, completes and deletes tasks; hands recurring work to the engine."""

    def __init__(self, session: Session, driver: Optional[SchedulerDriver] = None, default_timezone: str = "UTC"):
        self.session = session
        self.repo = TaskRepository(session)
        self.driver = driver
        self.default_timezone = default_timezone

    def _today_for(self, user_id: str) -> date:
        return local_today(self.repo.user_timezone(user_id, self.default_timezone))

    def get_task(self, task_id: int) -> Task:
        task = self.repo.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def create_task(
        self,
        user_id: str,
        name: str,
        note: Optional[str] = None,
        project_id: Optional[int] = None,
        priority: str = "medium",
        tags: Optional[List[str]] = None,
        due_date: Optional[date] = None,
        rule: Optional[RecurrenceRule] = None,
    ) -> Task:
        """Create a task; a recurring rule makes it the parent of a new series."""
        _validate(RecurrenceValidator.validate_priority(priority), "Invalid priority")
        _validate(RecurrenceValidator.validate_tag_limits(tags or []), "Invalid tags")

        rule = rule or RecurrenceRule()
        if rule.is_recurring:
            _validate_rule(rule)
            if rule.series_start is None:
                rule = replace(rule, series_start=due_date or self._today_for(user_id))

        task = Task(
            user_id=user_id,
            name=name,
            note=note,
            project_id=project_id,
            priority=priority,
            tags=list(tags) if tags else None,
            due_date=due_date,
            created_at=utcnow(),
            updated_at=utcnow(),
            **rule.to_columns(),
        )
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        logger.info(f"Created task {task.id} ({rule.type.value if rule.is_recurring else 'one-off'})")
        return task

    def update_recurrence(self, task_id: int, **changes) -> Task:
        """
        Edit the recurrence rule of a parent task.

        Changes apply to occurrences generated afterwards; instances already
        generated keep their dates. Any edit resets an ended or invalid series
        to active, except setting the type to none, which ends it.

        Raises:
            RecurrenceEngineError: If the task is a generated instance
            RuleInvalidError: If the resulting rule is invalid
        """
        task = self.get_task(task_id)
        if task.is_instance:
            raise RecurrenceEngineError(
                code="EDIT_PARENT",
                message=f"Recurrence of task {task_id} is controlled by its parent task {task.recurring_parent_id}",
                details={"recurring_parent_id": task.recurring_parent_id},
            )

        unknown = set(changes) - set(RULE_FIELDS)
        if unknown:
            raise RecurrenceEngineError(code="VALIDATION_ERROR", message=f"Unknown recurrence fields: {sorted(unknown)}")

        merged = task.rule.to_dict()
        merged.update(changes)
        rule = RecurrenceRule.from_dict(merged)

        if rule.is_recurring:
            _validate_rule(rule)
            if rule.series_start is None:
                rule = replace(rule, series_start=task.due_date or self._today_for(task.user_id))
            task.recurrence_status = SeriesStatus.ACTIVE.value
        else:
            task.recurrence_status = SeriesStatus.ENDED.value

        for column, value in rule.to_columns().items():
            setattr(task, column, value)
        task.recurrence_error = None
        task.updated_at = utcnow()
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        logger.info(f"Updated recurrence of task {task_id}: {rule.to_dict()}")
        return task

    def complete_task(self, task_id: int, completed_at: Optional[datetime] = None):
        """Mark a task done and run the completion hook; returns (task, generated instance or None)."""
        task = self.get_task(task_id)
        task.status = TaskStatus.DONE.value
        task.completed_at = completed_at or utcnow()
        task.updated_at = utcnow()
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)

        generated = None
        if self.driver is not None:
            generated = self.driver.on_task_completed(task.id)
        return task, generated

    def delete_task(self, task_id: int) -> bool:
        """
        Delete a task. Deleting a series parent also removes its open future
        instances; completed or past instances stay as standalone tasks.
        """
        task = self.repo.get(task_id)
        if task is None:
            return False

        if not task.is_instance:
            today = self._today_for(task.user_id)
            for instance in self.repo.list_instances(task.id):
                if instance.is_done or (instance.due_date is not None and instance.due_date <= today):
                    self._detach(instance)
                else:
                    self.session.delete(instance)

        self.session.delete(task)
        self.session.commit()
        logger.info(f"Deleted task {task_id}")
        return True

    def _detach(self, instance: Task) -> None:
        # Becomes a standalone one-off task; its rule copy must not start a new series
        instance.recurring_parent_id = None
        for column, value in RecurrenceRule().to_columns().items():
            setattr(instance, column, value)
        instance.recurrence_status = SeriesStatus.ENDED.value
        instance.recurrence_error = None
        instance.updated_at = utcnow()
        self.session.add(instance)

    def get_instances(self, parent_id: int) -> List[Task]:
        return self.repo.list_instances(parent_id)

    def get_next_iterations(self, task_id: int, start_from: Optional[date] = None, count: int = 5) -> List[date]:
        """Preview upcoming occurrence dates of a task's series (instances use their parent's rule)."""
        task = self.get_task(task_id)
        source = self.get_task(task.recurring_parent_id) if task.is_instance else task
        rule = source.rule
        if not rule.is_recurring:
            return []
        start = start_from or self._today_for(source.user_id)
        return upcoming_occurrences(rule, start, count)

    def get_recurring_parents(self, user_id: str) -> List[Task]:
        statement = (
            select(Task)
            .where(Task.user_id == user_id)
            .where(Task.recurring_parent_id.is_(None))
            .where(Task.recurrence_type != RecurrenceType.NONE.value)
            .where(Task.recurrence_status != SeriesStatus.SNAPSHOT.value)
            .order_by(Task.created_at.desc())
        )
        return list(self.session.exec(statement).all())
