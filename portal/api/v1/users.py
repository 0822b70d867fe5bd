"""Users: invitations, listing and profile administration."""

import logging
import uuid

from fastapi import APIRouter, HTTPException, Query, status
from sqlmodel import select

from portal.api.deps import Auth, Session, require
from portal.core.access import (
    Resource,
    Role,
    can_assign_role,
    can_invite,
    can_invite_users,
    can_view_resource,
    get_allowed_invite_roles,
    visible_org_ids,
)
from portal.core.security import hash_password
from portal.models.membership import OrganizationMembership
from portal.models.organization import Organization
from portal.models.profile import Profile, ProfileInvite, ProfileRead, ProfileUpdate
from portal.services.memberships import add_membership, member_org_ids
from portal.services.profiles import can_mutate_profile, can_view_profile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

# Fields anyone may change on their own profile
SELF_SERVICE_FIELDS = frozenset({"full_name", "is_onboarded"})


@router.post("/invite", response_model=ProfileRead, status_code=status.HTTP_201_CREATED)
async def invite_user(
    body: ProfileInvite,
    auth: Auth,
    session: Session,
) -> ProfileRead:
    """Create an account for someone and optionally attach it to an organization."""
    require(can_invite_users(auth.actor.role), "Your role cannot invite users")
    require(
        body.role in get_allowed_invite_roles(auth.actor.role),
        f"Your role cannot invite '{body.role}' users",
    )
    require(
        can_invite(auth.actor, body.role, body.org_id),
        "Invitations must target one of your organizations",
    )

    if body.org_id is not None and await session.get(Organization, body.org_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")

    existing = await session.execute(select(Profile.id).where(Profile.email == body.email))
    if existing.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A user with this email already exists",
        )

    profile = Profile(
        email=body.email,
        full_name=body.full_name,
        role=body.role,
        password_hash=hash_password(body.password) if body.password else None,
        invited_by=auth.user_id,
    )
    try:
        session.add(profile)
        await session.flush()
        if body.org_id is not None:
            await add_membership(session, profile.id, body.org_id, commit=False)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await session.refresh(profile)
    # Email delivery is handled outside this service.
    logger.info(
        "Invitation recorded for %s as %s by %s (org %s)",
        profile.id,
        profile.role,
        auth.user_id,
        body.org_id,
    )
    return ProfileRead.model_validate(profile)


@router.get("", response_model=list[ProfileRead])
async def list_users(
    auth: Auth,
    session: Session,
    role: Role | None = None,
    org_id: uuid.UUID | None = None,
    include_inactive: bool = Query(default=False),
) -> list[ProfileRead]:
    stmt = select(Profile).order_by(Profile.email.asc())  # type: ignore[attr-defined]

    scope = visible_org_ids(auth.actor)
    if scope is not None:
        members = select(OrganizationMembership.user_id).where(
            OrganizationMembership.org_id.in_(scope)  # type: ignore[attr-defined]
        )
        stmt = stmt.where(Profile.id.in_(members))  # type: ignore[attr-defined]

    if org_id is not None:
        require(can_view_resource(auth.actor, Resource(org_id=org_id)))
        in_org = select(OrganizationMembership.user_id).where(
            OrganizationMembership.org_id == org_id
        )
        stmt = stmt.where(Profile.id.in_(in_org))  # type: ignore[attr-defined]

    if role is not None:
        stmt = stmt.where(Profile.role == role)
    if not include_inactive:
        stmt = stmt.where(Profile.is_active.is_(True))  # type: ignore[attr-defined]

    result = await session.execute(stmt)
    return [ProfileRead.model_validate(p) for p in result.scalars().all()]


@router.get("/{user_id}", response_model=ProfileRead)
async def get_user(
    user_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> ProfileRead:
    profile = await _get_or_404(user_id, session)
    org_ids = await member_org_ids(session, profile.id)
    require(can_view_profile(auth.actor, profile, org_ids))
    return ProfileRead.model_validate(profile)


@router.patch("/{user_id}", response_model=ProfileRead)
async def update_user(
    user_id: uuid.UUID,
    body: ProfileUpdate,
    auth: Auth,
    session: Session,
) -> ProfileRead:
    profile = await _get_or_404(user_id, session)
    org_ids = await member_org_ids(session, profile.id)
    require(can_view_profile(auth.actor, profile, org_ids))

    update_data = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if not update_data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No valid fields to update",
        )

    is_self = profile.id == auth.user_id
    if not (is_self and update_data.keys() <= SELF_SERVICE_FIELDS):
        require(
            can_mutate_profile(auth.actor, profile, org_ids),
            "You cannot modify this user",
        )

    new_role = update_data.get("role")
    if new_role is not None and new_role != profile.role:
        require(
            can_assign_role(auth.actor, profile.role, new_role),
            f"Your role cannot change a '{profile.role}' user to '{new_role}'",
        )

    if "is_active" in update_data and is_self:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot change your own active status",
        )

    for field, value in update_data.items():
        setattr(profile, field, value)

    profile.touch()
    session.add(profile)
    await session.commit()
    await session.refresh(profile)
    return ProfileRead.model_validate(profile)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_user(
    user_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> None:
    profile = await _get_or_404(user_id, session)
    if profile.id == auth.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account",
        )
    org_ids = await member_org_ids(session, profile.id)
    require(
        can_mutate_profile(auth.actor, profile, org_ids),
        "You cannot deactivate this user",
    )

    profile.is_active = False
    profile.touch()
    session.add(profile)
    await session.commit()
    logger.info("User %s deactivated by %s", profile.id, auth.user_id)


# ── Internal helper ───────────────────────────────────────────

async def _get_or_404(user_id: uuid.UUID, session) -> Profile:
    profile = await session.get(Profile, user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return profile
