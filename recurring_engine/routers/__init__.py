"""API routers."""
from recurring_engine.routers import recurrence

__all__ = ["recurrence"]
