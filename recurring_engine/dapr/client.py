"""Dapr client for publishing recurrence events through the Dapr sidecar."""
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

import pytz
from dapr.clients import DaprClient

from recurring_engine.config import get_settings

logger = logging.getLogger(__name__)

TASK_EVENTS_TOPIC = "task-events"
SOURCE = "recurring-engine"


class DaprEventPublisher:
    """Publishes engine events to Kafka via Dapr pub/sub."""

    def __init__(self, enabled: Optional[bool] = None, pubsub_name: Optional[str] = None):
        """Initialize Dapr event publisher; settings supply anything not given."""
        settings = get_settings()
        self.enabled = settings.dapr_enabled if enabled is None else enabled
        self.pubsub_name = pubsub_name or settings.dapr_pubsub_name
        if not self.enabled:
            logger.warning("Dapr publishing disabled. Events will only be logged.")

    def publish_event(self, topic: str, event_type: str, data: Dict[str, Any], source: str = SOURCE) -> Dict[str, Any]:
        """Publish an event to a topic via Dapr pub/sub."""
        event_envelope = {
            "event_id": str(uuid.uuid4()),
            "type": event_type,
            "timestamp": datetime.now(pytz.utc).isoformat(),
            "source": source,
            "data": data
        }

        if not self.enabled:
            # Development mode: log the event instead of publishing
            logger.info(f"[DEV MODE] Would publish to topic '{topic}': {event_type} from {source} with data {data}")
            return {"success": True, "event_id": event_envelope["event_id"], "published": False}

        try:
            with DaprClient() as client:
                client.publish_event(
                    pubsub_name=self.pubsub_name,
                    topic_name=topic,
                    data=json.dumps(event_envelope, default=str),
                    data_content_type="application/json"
                )

            logger.info(f"Published event {event_type} to topic {topic}")
            return {"success": True, "event_id": event_envelope["event_id"], "published": True}

        except Exception as e:
            logger.error(f"Failed to publish event to topic {topic}: {str(e)}")
            raise

    def publish_instance_created(self, instance_data: Dict[str, Any]):
        """Publish task.created for a generated instance."""
        return self.publish_event(
            topic=TASK_EVENTS_TOPIC,
            event_type="task.created",
            data=instance_data
        )

    def publish_series_ended(self, series_data: Dict[str, Any]):
        """Publish recurrence.ended."""
        return self.publish_event(
            topic=TASK_EVENTS_TOPIC,
            event_type="recurrence.ended",
            data=series_data
        )

    def publish_series_invalid(self, series_data: Dict[str, Any]):
        """Publish recurrence.invalid so the UI can warn on the parent task."""
        return self.publish_event(
            topic=TASK_EVENTS_TOPIC,
            event_type="recurrence.invalid",
            data=series_data
        )


# Global instance
dapr_publisher = DaprEventPublisher()
