"""Alembic environment: migrations run against DATABASE_URL."""
from alembic import context
from sqlmodel import SQLModel

from recurring_engine.config import get_settings
from recurring_engine.db.config import create_db_engine
import recurring_engine.models  # noqa: F401  registers tables on SQLModel.metadata

target_metadata = SQLModel.metadata


def run_migrations_offline():
    context.configure(
        url=get_settings().database_url,
        target_metadata=target_metadata,
        literal_binds=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = create_db_engine(get_settings().database_url)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
