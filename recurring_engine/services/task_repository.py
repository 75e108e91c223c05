"""Task store access for the recurrence engine."""
import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterator, List, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, TimeoutError as PoolTimeoutError
from sqlmodel import Session, select

from recurring_engine.errors import DuplicateOccurrenceError, StoreUnavailableError
from recurring_engine.models.recurrence_rule import RecurrenceType, SeriesStatus
from recurring_engine.models.task import Task
from recurring_engine.models.user import User
from recurring_engine.utils.timezone import utcnow

logger = logging.getLogger(__name__)


@contextmanager
def store_errors(session: Session, action: str) -> Iterator[None]:
    """Translate driver failures into StoreUnavailableError; integrity errors pass through."""
    try:
        yield
    except IntegrityError:
        raise
    except (DBAPIError, PoolTimeoutError) as e:
        session.rollback()
        logger.error(f"Task store failed during {action}: {str(e)}")
        raise StoreUnavailableError(f"Task store unavailable during {action}", details={"action": action}) from e


class TaskRepository:
    """Queries and writes the engine needs, on a single session."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, task_id: int) -> Optional[Task]:
        with store_errors(self.session, "get task"):
            return self.session.get(Task, task_id)

    def user_timezone(self, user_id: str, default: str = "UTC") -> str:
        with store_errors(self.session, "get user timezone"):
            user = self.session.get(User, user_id)
        return (user.timezone if user and user.timezone else default)

    def latest_instance(self, parent_id: int) -> Optional[Task]:
        """Most recently scheduled instance of a series."""
        statement = (
            select(Task)
            .where(Task.recurring_parent_id == parent_id)
            .order_by(Task.due_date.desc(), Task.id.desc())
        )
        with store_errors(self.session, "get latest instance"):
            return self.session.exec(statement).first()

    def find_instance(self, parent_id: int, due_date: date) -> Optional[Task]:
        statement = (
            select(Task)
            .where(Task.recurring_parent_id == parent_id)
            .where(Task.due_date == due_date)
        )
        with store_errors(self.session, "find instance"):
            return self.session.exec(statement).first()

    def instance_exists(self, parent_id: int, due_date: date) -> bool:
        return self.find_instance(parent_id, due_date) is not None

    def list_instances(self, parent_id: int) -> List[Task]:
        statement = (
            select(Task)
            .where(Task.recurring_parent_id == parent_id)
            .order_by(Task.due_date.asc(), Task.id.asc())
        )
        with store_errors(self.session, "list instances"):
            return list(self.session.exec(statement).all())

    def active_parent_ids(self) -> List[int]:
        """Parents whose rule repeats and whose series has neither ended nor failed."""
        statement = (
            select(Task.id)
            .where(Task.recurring_parent_id.is_(None))
            .where(Task.recurrence_type != RecurrenceType.NONE.value)
            .where(Task.recurrence_status == SeriesStatus.ACTIVE.value)
            .order_by(Task.id.asc())
        )
        with store_errors(self.session, "list active parents"):
            return list(self.session.exec(statement).all())

    def exists(self, task_id: int) -> bool:
        statement = select(Task.id).where(Task.id == task_id)
        with store_errors(self.session, "check task"):
            return self.session.exec(statement).first() is not None

    def insert_instance(self, instance: Task) -> Optional[Task]:
        """
        Insert a generated instance.

        Returns:
            The stored instance, or None when the parent was deleted while the
            instance was being generated

        Raises:
            DuplicateOccurrenceError: If the unique (parent, due date) constraint
                rejected the row because another caller stored it first
        """
        parent_id, due_date = instance.recurring_parent_id, instance.due_date
        try:
            with store_errors(self.session, "insert instance"):
                self.session.add(instance)
                self.session.commit()
        except IntegrityError:
            self.session.rollback()
            if self.find_instance(parent_id, due_date) is not None:
                raise DuplicateOccurrenceError(parent_id, due_date)
            if not self.exists(parent_id):
                logger.info(f"Parent task {parent_id} was deleted before its instance for {due_date} was stored")
                return None
            raise

        with store_errors(self.session, "refresh instance"):
            self.session.refresh(instance)
        return instance

    def set_series_status(self, parent_id: int, status: SeriesStatus, error: Optional[str] = None) -> None:
        with store_errors(self.session, "update series status"):
            parent = self.session.get(Task, parent_id)
            if parent is None:
                return
            parent.recurrence_status = status.value
            parent.recurrence_error = error
            parent.updated_at = utcnow()
            self.session.add(parent)
            self.session.commit()
