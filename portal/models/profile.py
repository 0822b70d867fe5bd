"""Profile model: a portal user, team member or client contact."""

import uuid

from pydantic import EmailStr
from sqlmodel import Field, SQLModel

from portal.core.access import Role
from portal.models.base import TimestampMixin, new_uuid


class Profile(TimestampMixin, SQLModel, table=True):
    __tablename__ = "profiles"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    email: str = Field(max_length=320, unique=True, nullable=False, index=True)
    full_name: str = Field(default="", max_length=255)
    role: Role = Field(default=Role.CLIENT)
    is_active: bool = Field(default=True)
    is_onboarded: bool = Field(default=False)

    # NULL until the invited user sets a password
    password_hash: str | None = Field(default=None)

    # Legacy single-org reference, kept in step with the primary membership
    org_id: uuid.UUID | None = Field(default=None, foreign_key="organizations.id")

    invited_by: uuid.UUID | None = Field(default=None, foreign_key="profiles.id")


# ── Pydantic schemas ─────────────────────────────────────────

class ProfileInvite(SQLModel):
    email: EmailStr
    full_name: str = Field(min_length=1, max_length=255)
    role: Role
    org_id: uuid.UUID | None = None
    password: str | None = Field(default=None, min_length=8, max_length=128)


class ProfileUpdate(SQLModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    role: Role | None = None
    is_active: bool | None = None
    is_onboarded: bool | None = None


class ProfileRead(SQLModel):
    id: uuid.UUID
    email: str
    full_name: str
    role: Role
    is_active: bool
    is_onboarded: bool
    org_id: uuid.UUID | None
