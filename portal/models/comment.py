"""Task comments, optionally internal to the team."""

import uuid
from datetime import datetime

from sqlmodel import Field, SQLModel

from portal.core.access import Role
from portal.models.base import TimestampMixin, new_uuid


class TaskComment(TimestampMixin, SQLModel, table=True):
    __tablename__ = "task_comments"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="profiles.id", nullable=False)
    content: str = Field(nullable=False)
    is_internal: bool = Field(default=False, nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class CommentCreate(SQLModel):
    content: str = Field(min_length=1, max_length=10000)
    is_internal: bool = False


class CommentUpdate(SQLModel):
    content: str = Field(min_length=1, max_length=10000)


class CommentAuthor(SQLModel):
    id: uuid.UUID
    full_name: str
    role: Role


class CommentRead(SQLModel):
    id: uuid.UUID
    task_id: uuid.UUID
    user_id: uuid.UUID
    content: str
    is_internal: bool
    created_at: datetime
    updated_at: datetime
    author: CommentAuthor | None = None
