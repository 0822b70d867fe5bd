"""Organization CRUD: visibility and mutation decided by the access module."""

import logging
import uuid

from fastapi import APIRouter, HTTPException, status
from sqlmodel import select

from portal.api.deps import Auth, Session, require, require_capability
from portal.core.access import (
    Capability,
    Resource,
    can_mutate_resource,
    can_view_resource,
    visible_org_ids,
)
from portal.models.membership import OrganizationMembership, OrgMemberRead
from portal.models.organization import (
    Organization,
    OrganizationCreate,
    OrganizationRead,
    OrganizationUpdate,
)
from portal.models.profile import Profile, ProfileRead
from portal.services.organizations import delete_organization

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/organizations", tags=["organizations"])


def _as_resource(org: Organization) -> Resource:
    return Resource(org_id=org.id, owner_id=org.created_by)


@router.post("", response_model=OrganizationRead, status_code=status.HTTP_201_CREATED)
async def create_organization(
    body: OrganizationCreate,
    auth: Auth,
    session: Session,
) -> OrganizationRead:
    require_capability(
        auth,
        Capability.MANAGE_ORGANIZATIONS,
        "Only admins and managers can create organizations",
    )

    existing = await session.execute(
        select(Organization).where(Organization.slug == body.slug)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Slug '{body.slug}' is already taken",
        )

    org = Organization(
        name=body.name,
        slug=body.slug,
        logo_url=body.logo_url,
        created_by=auth.user_id,
    )
    session.add(org)
    await session.commit()
    await session.refresh(org)
    logger.info("Organization %s (%s) created by %s", org.id, org.slug, auth.user_id)
    return OrganizationRead.model_validate(org)


@router.get("", response_model=list[OrganizationRead])
async def list_organizations(
    auth: Auth,
    session: Session,
) -> list[OrganizationRead]:
    stmt = select(Organization).order_by(Organization.name.asc())  # type: ignore[attr-defined]
    scope = visible_org_ids(auth.actor)
    if scope is not None:
        stmt = stmt.where(Organization.id.in_(scope))  # type: ignore[attr-defined]
    result = await session.execute(stmt)
    return [OrganizationRead.model_validate(o) for o in result.scalars().all()]


@router.get("/{org_id}", response_model=OrganizationRead)
async def get_organization(
    org_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> OrganizationRead:
    org = await _get_or_404(org_id, session)
    require(can_view_resource(auth.actor, _as_resource(org)))
    return OrganizationRead.model_validate(org)


@router.patch("/{org_id}", response_model=OrganizationRead)
async def update_organization(
    org_id: uuid.UUID,
    body: OrganizationUpdate,
    auth: Auth,
    session: Session,
) -> OrganizationRead:
    org = await _get_or_404(org_id, session)
    require(can_mutate_resource(auth.actor, _as_resource(org)))

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(org, field, value)

    org.touch()
    session.add(org)
    await session.commit()
    await session.refresh(org)
    return OrganizationRead.model_validate(org)


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_organization(
    org_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> None:
    require_capability(
        auth,
        Capability.DELETE_ORGANIZATIONS,
        "Only admins can delete organizations",
    )
    org = await _get_or_404(org_id, session)
    await delete_organization(session, org)


@router.get("/{org_id}/members", response_model=list[OrgMemberRead])
async def list_members(
    org_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> list[OrgMemberRead]:
    org = await _get_or_404(org_id, session)
    require(can_view_resource(auth.actor, _as_resource(org)))

    stmt = (
        select(OrganizationMembership, Profile)
        .join(Profile, Profile.id == OrganizationMembership.user_id)
        .where(OrganizationMembership.org_id == org.id)
        .order_by(Profile.email.asc())  # type: ignore[attr-defined]
    )
    result = await session.execute(stmt)
    return [
        OrgMemberRead(
            **OrgMemberRead.model_validate(membership).model_dump(exclude={"profile"}),
            profile=ProfileRead.model_validate(profile),
        )
        for membership, profile in result.all()
    ]


# ── Internal helper ───────────────────────────────────────────

async def _get_or_404(org_id: uuid.UUID, session) -> Organization:
    org = await session.get(Organization, org_id)
    if org is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    return org
