"""Initialize database tables."""
import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

# Imported for table registration
from recurring_engine.models.task import Task  # noqa: F401
from recurring_engine.models.user import User  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(db_engine: Optional[Engine] = None) -> None:
    """Create all tables in the database."""
    if db_engine is None:
        from recurring_engine.db.config import engine as db_engine

    logger.info("Creating all tables...")
    SQLModel.metadata.create_all(db_engine)
    logger.info("Tables created successfully.")


if __name__ == "__main__":
    init_db()
    print("Database tables created successfully.")
