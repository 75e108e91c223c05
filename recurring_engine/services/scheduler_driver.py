"""
Scheduler Driver

Entry points that decide when instances get generated:
- periodic sweep over every active recurring series
- completion hook for completion-based series

Both call InstanceGenerator.maybe_generate_next and rely on the store's unique
constraint for idempotence, so the order in which they fire does not matter.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz
from sqlalchemy.engine import Engine
from sqlmodel import Session

from recurring_engine.config import Settings, get_settings
from recurring_engine.errors import StoreUnavailableError
from recurring_engine.models.task import TaskStatus
from recurring_engine.services.instance_generator import GeneratedInstance, InstanceGenerator
from recurring_engine.services.task_repository import TaskRepository
from recurring_engine.utils.logger import recurring_logger
from recurring_engine.utils.metrics import SWEEP_SECONDS, SWEEPS, metrics_collector
from recurring_engine.utils.timezone import local_today, utcnow

logger = logging.getLogger(__name__)

# Delay before the sweep loop retries after the store failed
STORE_RETRY_SECONDS = 5


@dataclass
class SweepResult:
    """Outcome of one sweep over all active series."""
    started_at: datetime
    processed: int = 0
    generated: List[GeneratedInstance] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "processed": self.processed,
            "generated": [instance.to_dict() for instance in self.generated],
            "failed": {str(task_id): error for task_id, error in self.failed.items()},
            "duration_seconds": round(self.duration_seconds, 3),
        }


class SchedulerDriver:
    """Runs generation for all active series, periodically or on completion."""

    def __init__(
        self,
        engine: Engine,
        generator: Optional[InstanceGenerator] = None,
        settings: Optional[Settings] = None,
    ):
        self.engine = engine
        self.settings = settings or get_settings()
        self.generator = generator or InstanceGenerator(engine, default_timezone=self.settings.default_timezone)
        self.last_sweep: Optional[SweepResult] = None
        self._loop_task: Optional[asyncio.Task] = None

    @metrics_collector.time_operation(SWEEP_SECONDS)
    def run_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Generate every instance that is due across all active series.

        A series is due when its next occurrence falls on or before today in
        its owner's timezone. Each series runs in its own session; a failure in
        one is recorded and the rest of the batch continues.

        Raises:
            StoreUnavailableError: If the list of active series cannot be read
        """
        now = now or datetime.now(pytz.utc)
        result = SweepResult(started_at=now)
        start_time = time.time()

        with Session(self.engine) as session:
            parent_ids = TaskRepository(session).active_parent_ids()

        if self.settings.sweep_max_workers > 1 and len(parent_ids) > 1:
            with ThreadPoolExecutor(max_workers=self.settings.sweep_max_workers) as executor:
                outcomes = list(executor.map(lambda pid: self._process_isolated(pid, now), parent_ids))
        else:
            outcomes = [self._process_isolated(pid, now) for pid in parent_ids]

        for parent_id, generated, error in outcomes:
            result.processed += 1
            if error is not None:
                result.failed[parent_id] = error
            result.generated.extend(generated)

        result.duration_seconds = time.time() - start_time
        self.last_sweep = result
        metrics_collector.increment_counter(SWEEPS)
        recurring_logger.info(
            "Recurring sweep finished",
            processed=result.processed,
            generated=len(result.generated),
            failed=len(result.failed),
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result

    def _process_isolated(self, parent_id: int, now: datetime):
        try:
            return parent_id, self.process_parent(parent_id, now), None
        except StoreUnavailableError as e:
            metrics_collector.error()
            logger.error(f"Store unavailable while processing series {parent_id}: {e.message}")
            return parent_id, [], e.message
        except Exception as e:
            metrics_collector.error()
            logger.exception(f"Unexpected error processing series {parent_id}: {str(e)}")
            return parent_id, [], str(e)

    def process_parent(self, parent_id: int, now: Optional[datetime] = None) -> List[GeneratedInstance]:
        """Catch one series up to today in its owner's timezone."""
        with Session(self.engine) as session:
            repo = TaskRepository(session)
            parent = repo.get(parent_id)
            if parent is None:
                return []
            tz_name = repo.user_timezone(parent.user_id, self.settings.default_timezone)

        today = local_today(tz_name, now)
        return self.generator.catch_up(parent_id, today, limit=self.settings.catch_up_limit)

    def on_task_completed(self, task_id: int, completed_at: Optional[datetime] = None) -> Optional[GeneratedInstance]:
        """
        Completion hook: generate the next instance right away for
        completion-based series instead of waiting for the next sweep.

        Args:
            task_id: Completed task, either an instance or the parent itself
            completed_at: Completion time from the event; recorded on the task
                if the completing code path has not stored it yet

        Returns:
            The generated instance, or None
        """
        with Session(self.engine) as session:
            repo = TaskRepository(session)
            task = repo.get(task_id)
            if task is None:
                logger.warning(f"Completed task {task_id} not found, ignoring completion event")
                return None

            if task.completed_at is None and completed_at is not None:
                task.completed_at = completed_at.astimezone(pytz.utc).replace(tzinfo=None) if completed_at.tzinfo else completed_at
                task.status = TaskStatus.DONE.value
                task.updated_at = utcnow()
                session.add(task)
                session.commit()

            parent_id = task.recurring_parent_id if task.is_instance else task.id
            parent = task if parent_id == task.id else repo.get(parent_id)
            if parent is None or not parent.is_recurring_parent or not parent.completion_based:
                return None

        logger.info(f"Task {task_id} completed, generating next instance of series {parent_id}")
        return self.generator.maybe_generate_next(parent_id)

    async def start(self) -> None:
        """Start the periodic sweep loop in the running event loop."""
        if self.settings.disable_scheduler:
            logger.info("Recurring sweep disabled by DISABLE_SCHEDULER")
            return
        if self.is_running:
            logger.info("Recurring sweep already running")
            return

        logger.info(f"Starting recurring sweep every {self.settings.sweep_interval_seconds}s")
        self._loop_task = asyncio.create_task(self._run_loop())

    async def _run_loop(self) -> None:
        while True:
            delay = self.settings.sweep_interval_seconds
            try:
                await asyncio.to_thread(self.run_sweep)
            except StoreUnavailableError as e:
                logger.error(f"Recurring sweep failed, store unavailable: {e.message}")
                delay = min(delay, STORE_RETRY_SECONDS)
            except Exception as e:
                logger.exception(f"Error in recurring sweep: {str(e)}")
            await asyncio.sleep(delay)

    async def stop(self) -> None:
        """Cancel the sweep loop; an in-flight sweep finishes in its worker thread."""
        if self._loop_task is None:
            return
        logger.info("Stopping recurring sweep...")
        self._loop_task.cancel()
        try:
            await self._loop_task
        except asyncio.CancelledError:
            pass
        self._loop_task = None

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "disabled": self.settings.disable_scheduler,
            "interval_seconds": self.settings.sweep_interval_seconds,
            "max_workers": self.settings.sweep_max_workers,
            "last_sweep": self.last_sweep.to_dict() if self.last_sweep else None,
        }
