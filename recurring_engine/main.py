"""Recurring task engine service: Dapr event subscription, sweep loop and admin API."""
import asyncio
import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from pydantic import ValidationError

from recurring_engine.config import get_settings
from recurring_engine.db.init import init_db
from recurring_engine.errors import StoreUnavailableError
from recurring_engine.routers import recurrence
from recurring_engine.routers.recurrence import get_scheduler_driver
from recurring_engine.schemas.task import CompletionEventData
from recurring_engine.services.scheduler_driver import SchedulerDriver
from recurring_engine.utils.logger import configure_logging
from recurring_engine.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)

COMPLETION_EVENT_TYPES = ("task.completed", "task.completed.api")

app = FastAPI(
    title="Recurring Task Engine",
    description="Generates instances of recurring tasks exactly once per occurrence",
    version="1.0.0",
)

app.include_router(recurrence.router, prefix="/recurrence")


@app.on_event("startup")
async def startup_event():
    """Initialize database tables and start the sweep loop."""
    settings = get_settings()
    configure_logging(settings.log_level)
    try:
        init_db()
    except Exception as e:
        logger.warning(f"Database initialization failed: {str(e)}. Sweeps will retry against the store.")

    await get_scheduler_driver().start()
    logger.info("Application startup complete.")


@app.on_event("shutdown")
async def shutdown_event():
    await get_scheduler_driver().stop()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


@app.get("/metrics")
async def metrics():
    return metrics_collector.get_metrics()


@app.get("/dapr/subscribe")
def subscribe():
    """Dapr subscription endpoint for Kafka topics."""
    return [{
        "pubsubname": get_settings().dapr_pubsub_name,
        "topic": "task-events",
        "route": "events"
    }]


def _unwrap_event(body: Dict[str, Any]) -> Dict[str, Any]:
    # Dapr delivers our envelope inside a CloudEvent's "data"
    inner = body.get("data")
    if isinstance(inner, dict) and "type" in inner and "data" in inner:
        return inner
    return body


@app.post("/events")
async def handle_event(request: Request, driver: SchedulerDriver = Depends(get_scheduler_driver)):
    """Consume task events; completions of completion-based series generate immediately."""
    body_bytes = await request.body()
    if not body_bytes:
        logger.info("[DAPR] Empty request received")
        return {"status": "DROP"}

    try:
        event = _unwrap_event(await request.json())
    except ValueError as e:
        logger.error(f"[DAPR] Malformed event body: {e}")
        return {"status": "DROP"}

    event_type = event.get("type")
    if event_type not in COMPLETION_EVENT_TYPES:
        logger.debug(f"[DAPR] Ignoring event type {event_type}")
        return {"status": "SUCCESS"}

    try:
        data = CompletionEventData(**(event.get("data") or {}))
    except ValidationError as e:
        logger.error(f"[DAPR] Invalid task.completed payload: {e}")
        return {"status": "DROP"}
    if data.resolved_task_id is None:
        logger.error("[DAPR] Missing task id in task.completed event")
        return {"status": "DROP"}

    try:
        instance = await asyncio.to_thread(driver.on_task_completed, data.resolved_task_id, data.completed_at)
    except StoreUnavailableError as e:
        logger.error(f"[DAPR] Store unavailable handling completion of task {data.resolved_task_id}: {e.message}")
        return {"status": "RETRY"}

    return {
        "status": "SUCCESS",
        "generated": instance.to_dict() if instance else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "recurring_engine.main:app",
        host="0.0.0.0",
        port=8000,
    )
