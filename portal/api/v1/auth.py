"""Authentication endpoints: bootstrap, login, current user."""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlmodel import select

from portal.api.deps import Auth, Session
from portal.core.access import (
    Capability,
    Role,
    get_allowed_invite_roles,
    has_capability,
)
from portal.core.security import create_jwt, hash_password, verify_password
from portal.models.membership import MembershipRead
from portal.models.profile import Profile, ProfileRead
from portal.services.memberships import get_primary_membership, list_user_memberships

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Schemas ──────────────────────────────────────────────────

class BootstrapRequest(BaseModel):
    """First administrator of a fresh installation."""
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    full_name: str = Field(default="", max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: ProfileRead


class MeResponse(BaseModel):
    user: ProfileRead
    memberships: list[MembershipRead]
    primary_membership: MembershipRead | None
    invitable_roles: list[Role]


# ── Routes ───────────────────────────────────────────────────

@router.post(
    "/bootstrap",
    response_model=LoginResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create the first admin account",
)
async def bootstrap_admin(body: BootstrapRequest, session: Session) -> LoginResponse:
    """Create the initial admin. Only allowed while no admin exists.

    This is the only unauthenticated write endpoint.
    """
    existing = await session.execute(select(Profile.id).where(Profile.role == Role.ADMIN))
    if existing.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An admin account already exists",
        )

    profile = Profile(
        email=body.email,
        full_name=body.full_name,
        role=Role.ADMIN,
        password_hash=hash_password(body.password),
        is_onboarded=True,
    )
    session.add(profile)
    await session.commit()
    await session.refresh(profile)
    logger.info("Bootstrapped admin account %s", profile.id)

    return LoginResponse(
        access_token=create_jwt(subject=str(profile.id)),
        user=ProfileRead.model_validate(profile),
    )


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, session: Session) -> LoginResponse:
    """Authenticate with email + password, receive a JWT."""
    stmt = select(Profile).where(Profile.email == body.email)
    result = await session.execute(stmt)
    profile = result.scalar_one_or_none()

    if profile is None or not verify_password(body.password, profile.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    if not has_capability(profile.role, Capability.LOGIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This account has no portal access",
        )

    return LoginResponse(
        access_token=create_jwt(subject=str(profile.id)),
        user=ProfileRead.model_validate(profile),
    )


@router.get("/me", response_model=MeResponse)
async def get_me(auth: Auth, session: Session) -> MeResponse:
    """Return the current user, their organizations and what they may invite."""
    memberships = await list_user_memberships(session, auth.user_id)
    primary = await get_primary_membership(session, auth.user_id)

    return MeResponse(
        user=ProfileRead.model_validate(auth.profile),
        memberships=[MembershipRead.model_validate(m) for m in memberships],
        primary_membership=MembershipRead.model_validate(primary) if primary else None,
        invitable_roles=sorted(get_allowed_invite_roles(auth.actor.role)),
    )
