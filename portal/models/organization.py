"""Organization model: a tenant (client company)."""

import uuid

from pydantic import BaseModel
from pydantic import Field as PydanticField
from sqlmodel import Field, SQLModel

from portal.models.base import TimestampMixin, new_uuid


class Organization(TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=255, nullable=False)
    slug: str = Field(max_length=100, unique=True, nullable=False, index=True)
    logo_url: str | None = Field(default=None, max_length=2048)

    # Profile that created the organization (no FK: profiles already point here)
    created_by: uuid.UUID | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class OrganizationCreate(BaseModel):
    name: str = PydanticField(min_length=1, max_length=255)
    slug: str = PydanticField(max_length=100, pattern=r"^[a-z0-9\-]+$")
    logo_url: str | None = PydanticField(default=None, max_length=2048)


class OrganizationUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    logo_url: str | None = Field(default=None, max_length=2048)


class OrganizationRead(SQLModel):
    id: uuid.UUID
    name: str
    slug: str
    logo_url: str | None
