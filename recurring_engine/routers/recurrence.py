"""Recurrence router: manual sweeps, per-series generation and previews."""
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from recurring_engine.db.config import get_session
from recurring_engine.errors import RecurrenceEngineError, RuleInvalidError, StoreUnavailableError, TaskNotFoundError
from recurring_engine.schemas.task import (
    GeneratedInstanceResponse,
    NextIteration,
    NextIterationsResponse,
    RecurrenceRuleSchema,
    TaskResponse,
)
from recurring_engine.services.scheduler_driver import SchedulerDriver
from recurring_engine.services.task_service import TaskService

router = APIRouter(tags=["Recurrence"])

_driver: Optional[SchedulerDriver] = None


def get_scheduler_driver() -> SchedulerDriver:
    """Dependency returning the process-wide scheduler driver."""
    global _driver
    if _driver is None:
        from recurring_engine.db.config import engine
        _driver = SchedulerDriver(engine)
    return _driver


def get_task_service(
    session: Session = Depends(get_session),
    driver: SchedulerDriver = Depends(get_scheduler_driver),
) -> TaskService:
    """Dependency for getting TaskService instance."""
    return TaskService(session, driver=driver, default_timezone=driver.settings.default_timezone)


def raise_http_error(error: RecurrenceEngineError):
    """Map engine errors onto HTTP responses."""
    if isinstance(error, TaskNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, RuleInvalidError):
        code = 422
    elif isinstance(error, StoreUnavailableError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_400_BAD_REQUEST
    raise HTTPException(status_code=code, detail={"code": error.code, "message": error.message, **error.details})


@router.post("/sweep", response_model=Dict[str, Any])
def run_sweep(driver: SchedulerDriver = Depends(get_scheduler_driver)):
    """Run one sweep over every active recurring series now."""
    try:
        return driver.run_sweep().to_dict()
    except StoreUnavailableError as e:
        raise_http_error(e)


@router.get("/status", response_model=Dict[str, Any])
def scheduler_status(driver: SchedulerDriver = Depends(get_scheduler_driver)):
    """Sweep loop state and the last sweep's outcome."""
    return driver.get_status()


@router.post("/tasks/{task_id}/generate", response_model=GeneratedInstanceResponse)
def generate_next(
    task_id: int,
    service: TaskService = Depends(get_task_service),
    driver: SchedulerDriver = Depends(get_scheduler_driver),
):
    """Generate the next instance of one series if it is due."""
    try:
        service.get_task(task_id)
        instance = driver.generator.maybe_generate_next(task_id)
    except RecurrenceEngineError as e:
        raise_http_error(e)

    return GeneratedInstanceResponse(
        generated=instance is not None,
        instance=instance.to_dict() if instance else None,
    )


@router.get("/tasks/{task_id}/next-iterations", response_model=NextIterationsResponse)
def next_iterations(
    task_id: int,
    start_from: Optional[date] = Query(None, description="Preview occurrences after this date (defaults to today)"),
    count: Optional[int] = Query(None, ge=1, le=50, description="Number of occurrences to return (defaults to RECURRENCE_PREVIEW_COUNT)"),
    service: TaskService = Depends(get_task_service),
    driver: SchedulerDriver = Depends(get_scheduler_driver),
):
    """Preview the upcoming occurrence dates of a task's series."""
    try:
        task = service.get_task(task_id)
        dates = service.get_next_iterations(task_id, start_from=start_from, count=count or driver.settings.preview_count)
        source = service.get_task(task.recurring_parent_id) if task.is_instance else task
    except RecurrenceEngineError as e:
        raise_http_error(e)

    return NextIterationsResponse(
        task_id=task_id,
        rule=RecurrenceRuleSchema(**source.rule.to_dict()),
        iterations=[NextIteration(due_date=day) for day in dates],
    )


@router.get("/tasks/{task_id}/instances", response_model=List[TaskResponse])
def list_instances(task_id: int, service: TaskService = Depends(get_task_service)):
    """Generated instances of a series, oldest due date first."""
    try:
        service.get_task(task_id)
    except RecurrenceEngineError as e:
        raise_http_error(e)
    return service.get_instances(task_id)
