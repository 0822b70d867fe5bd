"""Organization membership lifecycle.

All writes that touch ``is_primary`` run in one transaction that first locks
the user's profile row and every membership row of the user
(``SELECT ... FOR UPDATE``). Concurrent calls for the same user therefore
serialize, and the partial unique index on ``(user_id) WHERE is_primary``
rejects any interleaving that would commit two primaries.
"""

import logging
import uuid

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from portal.core.access import (
    InconsistentPrimaryState,
    InvalidMembership,
    check_primary_state,
    resolve_primary_organization,
)
from portal.models.base import utcnow
from portal.models.membership import OrganizationMembership
from portal.models.profile import Profile

logger = logging.getLogger(__name__)


class MembershipExists(Exception):
    """The user already belongs to the organization."""

    def __init__(self, user_id: uuid.UUID, org_id: uuid.UUID) -> None:
        super().__init__(f"User {user_id} is already a member of organization {org_id}")
        self.user_id = user_id
        self.org_id = org_id


# ── Reads ─────────────────────────────────────────────────────

async def list_user_memberships(
    session: AsyncSession, user_id: uuid.UUID
) -> list[OrganizationMembership]:
    """Memberships of one user, primary first, then oldest first."""
    stmt = (
        select(OrganizationMembership)
        .where(OrganizationMembership.user_id == user_id)
        .order_by(
            OrganizationMembership.is_primary.desc(),  # type: ignore[attr-defined]
            OrganizationMembership.created_at.asc(),  # type: ignore[attr-defined]
        )
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def member_org_ids(session: AsyncSession, user_id: uuid.UUID) -> frozenset[uuid.UUID]:
    stmt = select(OrganizationMembership.org_id).where(
        OrganizationMembership.user_id == user_id
    )
    result = await session.execute(stmt)
    return frozenset(result.scalars().all())


async def get_primary_membership(
    session: AsyncSession, user_id: uuid.UUID
) -> OrganizationMembership | None:
    """Resolve the primary membership, logging inconsistent state instead of failing."""
    memberships = await list_user_memberships(session, user_id)
    try:
        check_primary_state(memberships)
    except InconsistentPrimaryState as exc:
        logger.warning("Primary organization of user %s needs repair: %s", user_id, exc)
    return resolve_primary_organization(memberships)


# ── Writes ────────────────────────────────────────────────────

async def _lock_memberships(
    session: AsyncSession, user_id: uuid.UUID
) -> list[OrganizationMembership]:
    # The profile row serializes writers even while the user has no memberships.
    await session.execute(select(Profile.id).where(Profile.id == user_id).with_for_update())
    stmt = (
        select(OrganizationMembership)
        .where(OrganizationMembership.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def _mark_primary(
    session: AsyncSession, user_id: uuid.UUID, membership: OrganizationMembership
) -> None:
    # Unset first: the partial unique index is checked per statement.
    await session.execute(
        update(OrganizationMembership)
        .where(
            OrganizationMembership.user_id == user_id,
            OrganizationMembership.id != membership.id,
        )
        .values(is_primary=False)
    )
    await session.execute(
        update(OrganizationMembership)
        .where(OrganizationMembership.id == membership.id)
        .values(is_primary=True)
    )
    await session.execute(
        update(Profile)
        .where(Profile.id == user_id)
        .values(org_id=membership.org_id, updated_at=utcnow())
    )


async def _clear_legacy_org(session: AsyncSession, user_id: uuid.UUID) -> None:
    await session.execute(
        update(Profile)
        .where(Profile.id == user_id)
        .values(org_id=None, updated_at=utcnow())
    )


async def set_primary_organization(
    session: AsyncSession, user_id: uuid.UUID, membership_id: uuid.UUID
) -> OrganizationMembership:
    """Make ``membership_id`` the only primary membership of ``user_id``.

    Idempotent. Raises ``InvalidMembership`` without touching any row when the
    membership belongs to someone else or does not exist.
    """
    try:
        memberships = await _lock_memberships(session, user_id)
        target = next((m for m in memberships if m.id == membership_id), None)
        if target is None:
            raise InvalidMembership(user_id, membership_id)
        await _mark_primary(session, user_id, target)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await session.refresh(target)
    logger.info("Primary organization of user %s set to %s", user_id, target.org_id)
    return target


async def add_membership(
    session: AsyncSession,
    user_id: uuid.UUID,
    org_id: uuid.UUID,
    *,
    make_primary: bool = False,
    commit: bool = True,
) -> OrganizationMembership:
    """Add ``user_id`` to ``org_id``.

    The new membership becomes primary when asked to, or when the user had no
    primary membership yet. With ``commit=False`` the caller owns the
    transaction.
    """
    try:
        memberships = await _lock_memberships(session, user_id)
        if any(m.org_id == org_id for m in memberships):
            raise MembershipExists(user_id, org_id)

        membership = OrganizationMembership(user_id=user_id, org_id=org_id)
        session.add(membership)
        await session.flush()

        if make_primary or not any(m.is_primary for m in memberships):
            await _mark_primary(session, user_id, membership)

        if commit:
            await session.commit()
    except IntegrityError as exc:
        # Lost a race against a concurrent add of the same organization
        if commit:
            await session.rollback()
        raise MembershipExists(user_id, org_id) from exc
    except Exception:
        if commit:
            await session.rollback()
        raise

    await session.refresh(membership)
    logger.info("User %s added to organization %s", user_id, org_id)
    return membership


async def _promote_after_removal(
    session: AsyncSession,
    user_id: uuid.UUID,
    remaining: list[OrganizationMembership],
) -> None:
    successor = resolve_primary_organization(remaining)
    if successor is None:
        await _clear_legacy_org(session, user_id)
    else:
        await _mark_primary(session, user_id, successor)


async def remove_membership(
    session: AsyncSession, user_id: uuid.UUID, membership_id: uuid.UUID
) -> None:
    """Remove a membership; the oldest remaining one inherits primary status."""
    try:
        memberships = await _lock_memberships(session, user_id)
        target = next((m for m in memberships if m.id == membership_id), None)
        if target is None:
            raise InvalidMembership(user_id, membership_id)

        await session.delete(target)
        await session.flush()

        if target.is_primary:
            remaining = [m for m in memberships if m.id != target.id]
            await _promote_after_removal(session, user_id, remaining)

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("User %s removed from organization %s", user_id, target.org_id)


async def detach_organization(session: AsyncSession, org_id: uuid.UUID) -> list[uuid.UUID]:
    """Delete every membership of ``org_id`` inside the caller's transaction.

    Users who lose their primary membership get a successor promoted. Returns
    the affected user ids.
    """
    stmt = select(OrganizationMembership.user_id).where(
        OrganizationMembership.org_id == org_id
    )
    result = await session.execute(stmt)
    user_ids = list(result.scalars().all())

    for user_id in user_ids:
        memberships = await _lock_memberships(session, user_id)
        target = next((m for m in memberships if m.org_id == org_id), None)
        if target is None:
            continue
        await session.delete(target)
        await session.flush()
        if target.is_primary:
            remaining = [m for m in memberships if m.id != target.id]
            await _promote_after_removal(session, user_id, remaining)

    return user_ids


async def repair_primary(
    session: AsyncSession, user_id: uuid.UUID
) -> OrganizationMembership | None:
    """Rewrite the flags so exactly the resolved primary membership is marked."""
    try:
        memberships = await _lock_memberships(session, user_id)
        chosen = resolve_primary_organization(memberships)
        if chosen is not None:
            await _mark_primary(session, user_id, chosen)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    if chosen is not None:
        await session.refresh(chosen)
        logger.info("Primary organization of user %s repaired to %s", user_id, chosen.org_id)
    return chosen
