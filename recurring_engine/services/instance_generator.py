"""
Instance Generator

Decides whether a recurring series needs a new instance and creates it at
most once per computed occurrence. Concurrent callers (sweep ticks, duplicate
completion events) race on the store's unique (recurring_parent_id, due_date)
constraint; the loser gets a DuplicateOccurrenceError, which is treated as a
no-op.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.engine import Engine
from sqlmodel import Session

from recurring_engine.dapr.client import DaprEventPublisher, dapr_publisher
from recurring_engine.errors import (
    INVALID_SERIES_WARNING,
    DuplicateOccurrenceError,
    RuleInvalidError,
)
from recurring_engine.models.recurrence_rule import RecurrenceRule, SeriesStatus
from recurring_engine.models.task import Task, TaskStatus
from recurring_engine.services.occurrence_calculator import next_occurrence
from recurring_engine.services.task_repository import TaskRepository
from recurring_engine.utils.logger import recurring_logger
from recurring_engine.utils.metrics import MetricsCollector, metrics_collector
from recurring_engine.utils.timezone import to_local_date, utcnow

logger = logging.getLogger(__name__)

# Steps allowed when skipping occurrences that fall on or before the latest instance
MAX_SKIP_STEPS = 1000


@dataclass
class GeneratedInstance:
    """A task row created for one occurrence of a series."""
    task_id: int
    parent_id: int
    due_date: date
    anchor: date
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "parent_id": self.parent_id,
            "due_date": self.due_date.isoformat(),
            "anchor": self.anchor.isoformat(),
            "name": self.name,
        }


def resolve_anchor(parent: Task, latest: Optional[Task], rule: RecurrenceRule, tz_name: str) -> Optional[Union[date, datetime]]:
    """
    Reference point for the next occurrence.

    The latest instance's due date, or its completion timestamp for
    completion-based rules. Without instances the parent is the series' first
    occurrence. Returns None while a completion-based series waits for its
    open instance to be completed.
    """
    source = latest or parent
    if rule.completion_based:
        if source.completed_at is not None:
            return source.completed_at
        if latest is not None:
            return None
    if source.due_date is not None:
        return source.due_date
    return to_local_date(source.created_at, tz_name)


def build_instance(parent: Task, due_date: date, rule: RecurrenceRule) -> Task:
    """New instance carrying the parent's static attributes and a display copy of its rule."""
    instance = Task(
        user_id=parent.user_id,
        name=parent.name,
        note=parent.note,
        project_id=parent.project_id,
        priority=parent.priority,
        tags=list(parent.tags) if parent.tags else None,
        status=TaskStatus.NOT_STARTED.value,
        due_date=due_date,
        recurring_parent_id=parent.id,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    for column, value in rule.to_columns().items():
        setattr(instance, column, value)
    instance.recurrence_status = SeriesStatus.SNAPSHOT.value
    return instance


class InstanceGenerator:
    """Creates the next instance of a recurring series, exactly once."""

    def __init__(
        self,
        engine: Engine,
        publisher: Optional[DaprEventPublisher] = None,
        metrics: Optional[MetricsCollector] = None,
        default_timezone: str = "UTC",
    ):
        self.engine = engine
        self.publisher = publisher or dapr_publisher
        self.metrics = metrics or metrics_collector
        self.default_timezone = default_timezone

    def maybe_generate_next(self, parent: Union[Task, int], until: Optional[date] = None) -> Optional[GeneratedInstance]:
        """
        Generate the next instance of a series if one is due.

        Args:
            parent: Parent task or its id; the row is re-read so edits,
                deletions and series state changes are observed
            until: When given, occurrences after this date are left for later

        Returns:
            The created instance, or None when nothing was created (no rule,
            series not active, waiting on completion, not yet due, series
            ended, rule invalid, already generated by another caller, or
            parent deleted meanwhile)

        Raises:
            StoreUnavailableError: If the task store fails; series state is
                left untouched
        """
        parent_id = parent.id if isinstance(parent, Task) else parent

        with Session(self.engine) as session:
            repo = TaskRepository(session)
            current = repo.get(parent_id)
            if current is None:
                logger.info(f"Task {parent_id} no longer exists, skipping generation")
                return None
            if current.is_instance:
                logger.debug(f"Task {parent_id} is an instance; only its parent drives generation")
                return None

            rule = current.rule
            if not rule.is_recurring:
                return None
            if current.recurrence_status != SeriesStatus.ACTIVE.value:
                logger.debug(f"Series {parent_id} is {current.recurrence_status}, skipping")
                return None

            tz_name = repo.user_timezone(current.user_id, self.default_timezone)
            latest = repo.latest_instance(parent_id)
            anchor = resolve_anchor(current, latest, rule, tz_name)
            if anchor is None:
                logger.debug(f"Series {parent_id} waits for instance {latest.id} to be completed")
                return None

            try:
                due_date = self._next_after_floor(rule, anchor, tz_name, latest or current)
            except RuleInvalidError as e:
                self._mark_invalid(repo, current, e)
                return None

            if due_date is None:
                self._mark_ended(repo, current)
                return None
            if until is not None and due_date > until:
                return None

            # Fast path only; the unique constraint is what guarantees a single row
            if repo.instance_exists(parent_id, due_date):
                self._record_duplicate(parent_id, due_date)
                return None

            try:
                instance = repo.insert_instance(build_instance(current, due_date, rule))
            except DuplicateOccurrenceError:
                self._record_duplicate(parent_id, due_date)
                return None
            if instance is None:
                return None

            generated = GeneratedInstance(
                task_id=instance.id,
                parent_id=parent_id,
                due_date=due_date,
                anchor=to_local_date(anchor, tz_name),
                name=instance.name,
            )
            event_data = {
                "id": generated.task_id,
                "user_id": instance.user_id,
                "recurring_parent_id": parent_id,
                "name": generated.name,
                "due_date": due_date.isoformat(),
            }

        self.metrics.instance_created()
        recurring_logger.info(
            "Generated recurring instance",
            task_id=generated.task_id,
            parent_id=parent_id,
            due_date=due_date,
            anchor=generated.anchor,
        )
        self._publish(self.publisher.publish_instance_created, event_data)
        return generated

    def catch_up(self, parent: Union[Task, int], today: date, limit: int = 31) -> List[GeneratedInstance]:
        """Generate every missed occurrence up to and including ``today``."""
        generated: List[GeneratedInstance] = []
        for _ in range(limit):
            instance = self.maybe_generate_next(parent, until=today)
            if instance is None:
                break
            generated.append(instance)
        if len(generated) == limit:
            logger.warning(f"Catch-up for series {getattr(parent, 'id', parent)} stopped after {limit} instances")
        return generated

    def _next_after_floor(self, rule: RecurrenceRule, anchor, tz_name: str, floor_task: Task) -> Optional[date]:
        # A completion-based anchor can precede the latest due date when a task
        # is completed early; due dates within a series must still increase.
        due_date = next_occurrence(rule, anchor, tz_name)
        floor = floor_task.due_date
        steps = 0
        while due_date is not None and floor is not None and due_date <= floor:
            steps += 1
            if steps > MAX_SKIP_STEPS:
                raise RuleInvalidError(f"No occurrence found after {floor}")
            due_date = next_occurrence(rule, due_date)
        return due_date

    def _record_duplicate(self, parent_id: int, due_date: date) -> None:
        self.metrics.duplicate_skipped()
        logger.info(f"Occurrence {due_date} of series {parent_id} already generated, skipping")

    def _mark_ended(self, repo: TaskRepository, parent: Task) -> None:
        repo.set_series_status(parent.id, SeriesStatus.ENDED)
        self.metrics.series_ended()
        recurring_logger.info("Recurring series ended", parent_id=parent.id, end_date=parent.recurrence_end_date)
        self._publish(self.publisher.publish_series_ended, {
            "id": parent.id,
            "user_id": parent.user_id,
        })

    def _mark_invalid(self, repo: TaskRepository, parent: Task, error: RuleInvalidError) -> None:
        repo.set_series_status(parent.id, SeriesStatus.INVALID, f"{INVALID_SERIES_WARNING} ({error.message})"[:500])
        self.metrics.series_invalid()
        recurring_logger.error("Recurring series has an invalid rule", parent_id=parent.id, errors=error.errors)
        self._publish(self.publisher.publish_series_invalid, {
            "id": parent.id,
            "user_id": parent.user_id,
            "errors": error.errors,
        })

    @staticmethod
    def _publish(publish, data: Dict[str, Any]) -> None:
        # The row is already committed; a lost event must not undo it
        try:
            publish(data)
        except Exception as e:
            logger.error(f"Failed to publish recurrence event: {str(e)}")
