"""User model for SQLModel."""
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime
from typing import TYPE_CHECKING
import uuid

from recurring_engine.utils.timezone import utcnow

if TYPE_CHECKING:
    from recurring_engine.models.task import Task


class User(SQLModel, table=True):
    """Task owner; their timezone decides where a calendar day starts."""

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        index=True
    )
    email: str = Field(unique=True, index=True, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    timezone: str = Field(default="UTC", max_length=64)  # IANA name
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Relationships
    tasks: list["Task"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
