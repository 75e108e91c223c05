"""Database configuration for the recurring task engine."""
import logging
from typing import Generator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine

from recurring_engine.config import get_settings

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; SQLite gets foreign keys and WAL enabled on every connection."""
    if not database_url.startswith("sqlite"):
        logger.info("Using PostgreSQL database")
        return create_engine(database_url, echo=False, pool_pre_ping=True)

    logger.info(f"Using SQLite database: {database_url}")
    db_engine = create_engine(database_url, echo=False, connect_args={"check_same_thread": False})

    @event.listens_for(db_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        # Enable foreign keys and WAL mode for better concurrency
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return db_engine


DATABASE_URL = get_settings().database_url

engine = create_db_engine(DATABASE_URL)


def get_session() -> Generator[Session, None, None]:
    """Dependency for getting database sessions."""
    with Session(engine) as session:
        yield session
