"""Column helpers shared by the portal tables."""

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC; every timestamp column is a plain ``DateTime`` without a time zone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class TimestampMixin(SQLModel):
    created_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(), nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(), nullable=False)

    def touch(self) -> None:
        """Record a change made through the ORM (bulk updates set the column themselves)."""
        self.updated_at = utcnow()
