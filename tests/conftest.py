"""Shared fixtures: a file-backed SQLite store per test and engine wiring."""
from datetime import date

import pytest
from sqlmodel import Session

from recurring_engine.config import Settings
from recurring_engine.dapr.client import DaprEventPublisher
from recurring_engine.db.config import create_db_engine
from recurring_engine.db.init import init_db
from recurring_engine.models.recurrence_rule import RecurrenceRule, RecurrenceType
from recurring_engine.models.task import Task
from recurring_engine.models.user import User
from recurring_engine.services.instance_generator import InstanceGenerator
from recurring_engine.services.scheduler_driver import SchedulerDriver
from recurring_engine.services.task_repository import TaskRepository
from recurring_engine.services.task_service import TaskService
from recurring_engine.utils.metrics import metrics_collector


class RecordingPublisher(DaprEventPublisher):
    """Publisher that keeps events in memory instead of sending them."""

    def __init__(self):
        super().__init__(enabled=False)
        self.events = []

    def publish_event(self, topic, event_type, data, source="recurring-engine"):
        self.events.append((topic, event_type, data))
        return {"success": True, "published": False}

    def types(self):
        return [event_type for _, event_type, _ in self.events]


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics_collector.reset()
    yield
    metrics_collector.reset()


@pytest.fixture
def engine(tmp_path):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'tasks.db'}")
    init_db(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def user(session):
    owner = User(email="owner@example.com", name="Owner", timezone="UTC")
    session.add(owner)
    session.commit()
    session.refresh(owner)
    return owner


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        sweep_interval_seconds=300,
        sweep_max_workers=1,
        catch_up_limit=31,
        preview_count=5,
        default_timezone="UTC",
        disable_scheduler=True,
        dapr_enabled=False,
        dapr_pubsub_name="task-pubsub",
        log_level="INFO",
        environment="test",
    )


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def generator(engine, publisher):
    return InstanceGenerator(engine, publisher=publisher)


@pytest.fixture
def driver(engine, generator, settings):
    return SchedulerDriver(engine, generator=generator, settings=settings)


@pytest.fixture
def service(session, driver):
    return TaskService(session, driver=driver)


@pytest.fixture
def make_parent(session, user):
    """Create a parent task with the given rule fields; returns its id."""
    def _make(rule_type=RecurrenceType.DAILY, due_date=date(2024, 1, 1), owner=None, **rule_fields):
        task = TaskService(session).create_task(
            user_id=(owner or user).id,
            name="Water the plants",
            note="Both balconies",
            project_id=7,
            priority="high",
            tags=["home", "garden"],
            due_date=due_date,
            rule=RecurrenceRule(type=rule_type, **rule_fields),
        )
        return task.id
    return _make


@pytest.fixture
def fetch(engine):
    """Read tasks in a fresh session so rows written by the engine are seen."""
    def _fetch(task_id):
        with Session(engine) as s:
            task = s.get(Task, task_id)
            if task is not None:
                s.expunge(task)
            return task
    return _fetch


@pytest.fixture
def instances_of(engine):
    def _instances(parent_id):
        with Session(engine) as s:
            rows = TaskRepository(s).list_instances(parent_id)
            for row in rows:
                s.expunge(row)
            return rows
    return _instances
