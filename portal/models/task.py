"""Task model: the tenant-scoped work item shown on the Kanban board."""

import uuid
from datetime import date, datetime
from enum import StrEnum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from portal.models.base import TimestampMixin, new_uuid


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    HIDDEN = "hidden"
    CANCELLED = "cancelled"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Task(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)

    # Nullable for legacy rows; such tasks are hidden from client roles.
    org_id: uuid.UUID | None = Field(default=None, foreign_key="organizations.id", index=True)

    title: str = Field(max_length=500, nullable=False)
    description: str | None = Field(default=None)
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)

    assigned_to: uuid.UUID | None = Field(default=None, foreign_key="profiles.id", index=True)
    created_by: uuid.UUID = Field(foreign_key="profiles.id", nullable=False)

    due_date: date | None = Field(default=None)
    completed_at: datetime | None = Field(default=None, sa_type=sa.DateTime())


# ── Pydantic schemas ─────────────────────────────────────────

class TaskCreate(SQLModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to: uuid.UUID | None = None
    due_date: date | None = None
    org_id: uuid.UUID | None = Field(default=None, description="Defaults to the caller's primary organization")


class TaskUpdate(SQLModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assigned_to: uuid.UUID | None = None
    due_date: date | None = None
    org_id: uuid.UUID | None = None


class TaskRead(SQLModel):
    id: uuid.UUID
    org_id: uuid.UUID | None
    title: str
    description: str | None
    status: TaskStatus
    priority: TaskPriority
    assigned_to: uuid.UUID | None
    created_by: uuid.UUID
    due_date: date | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime
