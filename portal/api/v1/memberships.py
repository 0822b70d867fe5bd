"""Organization memberships of a user, including the primary organization."""

import uuid

from fastapi import APIRouter, HTTPException, status
from sqlmodel import select

from portal.api.deps import Auth, Session, require, require_capability
from portal.core.access import Capability, Resource, can_view_resource
from portal.models.membership import (
    MembershipCreate,
    MembershipRead,
    OrganizationMembership,
    UserMembershipRead,
)
from portal.models.organization import Organization, OrganizationRead
from portal.models.profile import Profile
from portal.services import memberships as membership_service
from portal.services.memberships import MembershipExists
from portal.services.profiles import can_mutate_profile, can_view_profile

router = APIRouter(prefix="/users/{user_id}/organizations", tags=["memberships"])


@router.get("", response_model=list[UserMembershipRead])
async def list_memberships(
    user_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> list[UserMembershipRead]:
    """Organizations of a user, primary first.

    Clients only see the memberships that fall inside their own organizations.
    """
    profile = await _get_profile_or_404(user_id, session)
    org_ids = await membership_service.member_org_ids(session, user_id)
    require(can_view_profile(auth.actor, profile, org_ids))

    stmt = (
        select(OrganizationMembership, Organization)
        .join(Organization, Organization.id == OrganizationMembership.org_id)
        .where(OrganizationMembership.user_id == user_id)
        .order_by(
            OrganizationMembership.is_primary.desc(),  # type: ignore[attr-defined]
            OrganizationMembership.created_at.asc(),  # type: ignore[attr-defined]
        )
    )
    result = await session.execute(stmt)
    return [
        UserMembershipRead(
            id=membership.id,
            user_id=membership.user_id,
            org_id=membership.org_id,
            is_primary=membership.is_primary,
            created_at=membership.created_at,
            organization=OrganizationRead.model_validate(org),
        )
        for membership, org in result.all()
        if can_view_resource(auth.actor, Resource(org_id=membership.org_id))
    ]


@router.post("", response_model=MembershipRead, status_code=status.HTTP_201_CREATED)
async def add_membership(
    user_id: uuid.UUID,
    body: MembershipCreate,
    auth: Auth,
    session: Session,
) -> MembershipRead:
    require_capability(
        auth,
        Capability.MANAGE_ORGANIZATIONS,
        "Only admins and managers can change organization memberships",
    )
    await _get_profile_or_404(user_id, session)
    if await session.get(Organization, body.org_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")

    try:
        membership = await membership_service.add_membership(
            session, user_id, body.org_id, make_primary=body.is_primary
        )
    except MembershipExists as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User is already a member of this organization",
        ) from exc
    return MembershipRead.model_validate(membership)


@router.delete("/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_membership(
    user_id: uuid.UUID,
    membership_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> None:
    require_capability(
        auth,
        Capability.MANAGE_ORGANIZATIONS,
        "Only admins and managers can change organization memberships",
    )
    await membership_service.remove_membership(session, user_id, membership_id)


@router.post("/{membership_id}/primary", response_model=MembershipRead)
async def set_primary(
    user_id: uuid.UUID,
    membership_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> MembershipRead:
    """Make one membership the user's primary organization."""
    profile = await _get_profile_or_404(user_id, session)
    org_ids = await membership_service.member_org_ids(session, user_id)
    require(
        profile.id == auth.user_id or can_mutate_profile(auth.actor, profile, org_ids),
        "You cannot change this user's primary organization",
    )

    # InvalidMembership is served as 404 by the access error handler.
    membership = await membership_service.set_primary_organization(
        session, user_id, membership_id
    )
    return MembershipRead.model_validate(membership)


@router.post("/repair-primary", response_model=MembershipRead | None)
async def repair_primary(
    user_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> MembershipRead | None:
    """Re-flag the resolved primary membership after inconsistent state was logged."""
    require_capability(
        auth,
        Capability.MANAGE_ORGANIZATIONS,
        "Only admins and managers can repair memberships",
    )
    await _get_profile_or_404(user_id, session)
    membership = await membership_service.repair_primary(session, user_id)
    return MembershipRead.model_validate(membership) if membership else None


# ── Internal helpers ──────────────────────────────────────────

async def _get_profile_or_404(user_id: uuid.UUID, session) -> Profile:
    profile = await session.get(Profile, user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return profile
