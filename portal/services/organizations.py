"""Organization lifecycle that spans several tables."""

import logging

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portal.models.comment import TaskComment
from portal.models.organization import Organization
from portal.models.profile import Profile
from portal.models.task import Task
from portal.services.memberships import detach_organization

logger = logging.getLogger(__name__)


async def delete_organization(session: AsyncSession, org: Organization) -> None:
    """Delete an organization with its tasks and memberships in one transaction."""
    try:
        affected = await detach_organization(session, org.id)
        # Legacy pointers left behind by inconsistent primary flags
        await session.execute(
            update(Profile).where(Profile.org_id == org.id).values(org_id=None)
        )
        await session.execute(
            delete(TaskComment).where(
                TaskComment.task_id.in_(select(Task.id).where(Task.org_id == org.id))  # type: ignore[attr-defined]
            )
        )
        await session.execute(delete(Task).where(Task.org_id == org.id))
        await session.delete(org)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Organization %s (%s) deleted, %d memberships removed",
        org.id,
        org.slug,
        len(affected),
    )
