"""Organization membership: which organizations a profile belongs to."""

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from portal.models.base import new_uuid, utcnow
from portal.models.organization import OrganizationRead
from portal.models.profile import ProfileRead


class OrganizationMembership(SQLModel, table=True):
    __tablename__ = "user_organizations"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "org_id", name="uq_user_organizations_user_org"),
        # At most one primary membership per user.
        sa.Index(
            "uq_user_organizations_primary",
            "user_id",
            unique=True,
            postgresql_where=sa.text("is_primary"),
            sqlite_where=sa.text("is_primary"),
        ),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="profiles.id", nullable=False, index=True)
    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    is_primary: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(), nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class MembershipCreate(SQLModel):
    org_id: uuid.UUID
    is_primary: bool = False


class MembershipRead(SQLModel):
    id: uuid.UUID
    user_id: uuid.UUID
    org_id: uuid.UUID
    is_primary: bool
    created_at: datetime


class UserMembershipRead(MembershipRead):
    """A membership listed from the user's side, with its organization."""
    organization: OrganizationRead | None = None


class OrgMemberRead(MembershipRead):
    """A membership listed from the organization's side, with the profile."""
    profile: ProfileRead | None = None
