"""Recurrence engine services."""
from recurring_engine.services.instance_generator import GeneratedInstance, InstanceGenerator
from recurring_engine.services.occurrence_calculator import next_occurrence, upcoming_occurrences
from recurring_engine.services.scheduler_driver import SchedulerDriver, SweepResult

__all__ = [
    "GeneratedInstance",
    "InstanceGenerator",
    "SchedulerDriver",
    "SweepResult",
    "next_occurrence",
    "upcoming_occurrences",
]
