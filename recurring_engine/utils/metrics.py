"""
Metrics Collection for the Recurring Task Engine.

Counts generated instances, skipped duplicates and series transitions,
and times sweeps.
"""

import time
from typing import Dict, Any, Callable
from collections import defaultdict
from datetime import datetime
from functools import wraps
import threading

import pytz

INSTANCES_CREATED = "recurring_instances_created_total"
DUPLICATES_SKIPPED = "recurring_duplicates_skipped_total"
SERIES_ENDED = "recurring_series_ended_total"
SERIES_INVALID = "recurring_series_invalid_total"
ERRORS = "recurring_errors_total"
SWEEPS = "recurring_sweeps_total"
SWEEP_SECONDS = "recurring_sweep_seconds"


class MetricsCollector:
    """Collects and manages metrics for the recurring task engine."""

    def __init__(self):
        """Initialize metrics collector."""
        self.metrics = defaultdict(int)
        self.timers = defaultdict(float)
        self.lock = threading.Lock()
        self.reset()

    def reset(self):
        """Zero all counters and timers."""
        with self.lock:
            self.metrics.clear()
            self.timers.clear()
            for name in (INSTANCES_CREATED, DUPLICATES_SKIPPED, SERIES_ENDED,
                         SERIES_INVALID, ERRORS, SWEEPS):
                self.metrics[name] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        """Increment a counter metric."""
        with self.lock:
            self.metrics[metric_name] += value

    def record_timer(self, metric_name: str, duration: float):
        """Record a timing metric."""
        with self.lock:
            self.timers[metric_name] += duration

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timers": dict(self.timers),
                "timestamp": datetime.now(pytz.utc).isoformat()
            }

    def instance_created(self):
        self.increment_counter(INSTANCES_CREATED)

    def duplicate_skipped(self):
        self.increment_counter(DUPLICATES_SKIPPED)

    def series_ended(self):
        self.increment_counter(SERIES_ENDED)

    def series_invalid(self):
        self.increment_counter(SERIES_INVALID)

    def error(self):
        self.increment_counter(ERRORS)

    def time_operation(self, metric_name: str) -> Callable:
        """Decorator recording the wall time of each call, including failed ones."""
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.record_timer(metric_name, time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics_collector = MetricsCollector()
