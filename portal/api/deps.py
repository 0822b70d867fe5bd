"""FastAPI dependencies for authentication and authorization."""

import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.access import Actor, Capability, Forbidden, has_capability
from portal.core.database import get_session
from portal.core.security import decode_jwt
from portal.models.profile import Profile
from portal.services.memberships import member_org_ids

bearer_scheme = HTTPBearer()


class AuthContext:
    """Resolved identity carried through a request."""

    __slots__ = ("profile", "actor")

    def __init__(self, profile: Profile, actor: Actor) -> None:
        self.profile = profile
        self.actor = actor

    @property
    def user_id(self) -> uuid.UUID:
        return self.actor.user_id


async def load_actor(session: AsyncSession, profile: Profile) -> Actor:
    """Build the decision input for ``profile`` from current database state."""
    return Actor(
        user_id=profile.id,
        role=profile.role,
        org_ids=await member_org_ids(session, profile.id),
    )


async def get_auth_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AuthContext:
    """Resolve a bearer JWT to an AuthContext.

    Only the subject is taken from the token. Role, active flag and
    memberships are read from the database on every request.
    """
    try:
        payload = decode_jwt(credentials.credentials)
        user_id = uuid.UUID(payload["sub"])
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired JWT",
        ) from exc
    except (KeyError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed JWT payload",
        ) from exc

    profile = await session.get(Profile, user_id, populate_existing=True)
    if profile is None or not profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is disabled or no longer exists",
        )
    if not has_capability(profile.role, Capability.LOGIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This account has no portal access",
        )

    return AuthContext(profile=profile, actor=await load_actor(session, profile))


def require(allowed: bool, detail: str = "Permission denied") -> None:
    """Turn a negative authorization decision into ``Forbidden`` (served as 403)."""
    if not allowed:
        raise Forbidden(detail)


def require_capability(auth: AuthContext, capability: Capability, detail: str) -> None:
    require(has_capability(auth.actor.role, capability), detail)


# Typed shorthand for use in route signatures
Auth = Annotated[AuthContext, Depends(get_auth_context)]
Session = Annotated[AsyncSession, Depends(get_session)]
