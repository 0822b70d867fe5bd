"""Tasks: tenant-scoped work items with role-based visibility."""

import logging
import uuid
from typing import Literal

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import delete
from sqlmodel import select

from portal.api.deps import Auth, AuthContext, Session, load_actor, require
from portal.core.access import (
    Capability,
    Resource,
    can_mutate_resource,
    can_view_resource,
    has_capability,
    is_team_role,
    visible_org_ids,
)
from portal.models.base import utcnow
from portal.models.comment import TaskComment
from portal.models.organization import Organization
from portal.models.profile import Profile
from portal.models.task import Task, TaskCreate, TaskRead, TaskStatus, TaskUpdate
from portal.services.memberships import get_primary_membership

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _as_resource(task: Task) -> Resource:
    return Resource(org_id=task.org_id, owner_id=task.created_by, assignee_id=task.assigned_to)


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    auth: Auth,
    session: Session,
    view: Literal["my-tasks", "all"] = "all",
    status_filter: TaskStatus | None = Query(default=None, alias="status"),
    assignee: uuid.UUID | None = None,
    org_id: uuid.UUID | None = None,
) -> list[TaskRead]:
    stmt = select(Task).order_by(Task.created_at.desc())  # type: ignore[attr-defined]

    # Clients only ever see tasks of their own organizations; untagged
    # tasks never match an IN clause.
    scope = visible_org_ids(auth.actor)
    if scope is not None:
        stmt = stmt.where(Task.org_id.in_(scope))  # type: ignore[union-attr]

    if org_id is not None:
        require(can_view_resource(auth.actor, Resource(org_id=org_id)))
        stmt = stmt.where(Task.org_id == org_id)
    if view == "my-tasks":
        stmt = stmt.where(Task.assigned_to == auth.user_id)
    if assignee is not None:
        stmt = stmt.where(Task.assigned_to == assignee)
    if status_filter is not None:
        stmt = stmt.where(Task.status == status_filter)

    result = await session.execute(stmt)
    return [TaskRead.model_validate(t) for t in result.scalars().all()]


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    body: TaskCreate,
    auth: Auth,
    session: Session,
) -> TaskRead:
    title = body.title.strip()
    if not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")

    org_id = body.org_id
    if org_id is None:
        primary = await get_primary_membership(session, auth.user_id)
        org_id = primary.org_id if primary else None
    if org_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="org_id is required when you have no primary organization",
        )
    await _get_org_or_404(org_id, session)

    resource = Resource(org_id=org_id, owner_id=auth.user_id, assignee_id=body.assigned_to)
    require(
        can_view_resource(auth.actor, resource) and can_mutate_resource(auth.actor, resource),
        "You cannot create tasks in this organization",
    )
    await _check_assignee(auth, session, body.assigned_to, org_id)

    task = Task(
        org_id=org_id,
        title=title,
        description=body.description.strip() if body.description else None,
        status=body.status,
        priority=body.priority,
        assigned_to=body.assigned_to,
        created_by=auth.user_id,
        due_date=body.due_date,
        completed_at=utcnow() if body.status == TaskStatus.COMPLETED else None,
    )
    session.add(task)
    await session.commit()
    await session.refresh(task)
    logger.info("Task %s created in organization %s by %s", task.id, org_id, auth.user_id)
    return TaskRead.model_validate(task)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> TaskRead:
    task = await _get_or_404(task_id, session)
    require(can_view_resource(auth.actor, _as_resource(task)))
    return TaskRead.model_validate(task)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: uuid.UUID,
    body: TaskUpdate,
    auth: Auth,
    session: Session,
) -> TaskRead:
    task = await _get_or_404(task_id, session)
    require(can_view_resource(auth.actor, _as_resource(task)))
    require(can_mutate_resource(auth.actor, _as_resource(task)), "You cannot modify this task")

    update_data = body.model_dump(exclude_unset=True)

    if "org_id" in update_data and update_data["org_id"] != task.org_id:
        require(
            has_capability(auth.actor.role, Capability.MUTATE_ANY),
            "Only admins and managers can move tasks between organizations",
        )
        if update_data["org_id"] is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A task must belong to an organization",
            )
        await _get_org_or_404(update_data["org_id"], session)

    if "title" in update_data:
        title = (update_data["title"] or "").strip()
        if not title:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Title cannot be empty",
            )
        update_data["title"] = title

    if "description" in update_data:
        update_data["description"] = (update_data["description"] or "").strip() or None

    for field in ("status", "priority"):
        if field in update_data and update_data[field] is None:
            update_data.pop(field)

    target_org = update_data.get("org_id", task.org_id)
    if "assigned_to" in update_data or target_org != task.org_id:
        await _check_assignee(
            auth, session, update_data.get("assigned_to", task.assigned_to), target_org
        )

    new_status = update_data.get("status")
    if new_status is not None:
        if new_status == TaskStatus.COMPLETED and task.status != TaskStatus.COMPLETED:
            task.completed_at = utcnow()
        elif new_status != TaskStatus.COMPLETED:
            task.completed_at = None

    for field, value in update_data.items():
        setattr(task, field, value)

    task.touch()
    session.add(task)
    await session.commit()
    await session.refresh(task)
    return TaskRead.model_validate(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> None:
    task = await _get_or_404(task_id, session)
    require(can_view_resource(auth.actor, _as_resource(task)))
    require(can_mutate_resource(auth.actor, _as_resource(task)), "You cannot delete this task")
    await session.execute(delete(TaskComment).where(TaskComment.task_id == task_id))
    await session.delete(task)
    await session.commit()
    logger.info("Task %s deleted by %s", task_id, auth.user_id)


# ── Internal helpers ──────────────────────────────────────────

async def _check_assignee(
    auth: AuthContext,
    session,
    assignee_id: uuid.UUID | None,
    org_id: uuid.UUID | None,
) -> None:
    """Validate who a task may be assigned to.

    Clients assign only to themselves or to team members, and nobody can be
    handed a task they would not be able to see.
    """
    if assignee_id is None or assignee_id == auth.user_id:
        return

    assignee = await session.get(Profile, assignee_id)
    if assignee is None or not assignee.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Assignee not found or inactive",
        )

    if not is_team_role(auth.actor.role):
        require(
            is_team_role(assignee.role),
            "Clients can only assign tasks to themselves or team members",
        )

    assignee_actor = await load_actor(session, assignee)
    if not can_view_resource(assignee_actor, Resource(org_id=org_id)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Assignee has no access to this organization",
        )


async def _get_or_404(task_id: uuid.UUID, session) -> Task:
    task = await session.get(Task, task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


async def _get_org_or_404(org_id: uuid.UUID, session) -> Organization:
    org = await session.get(Organization, org_id)
    if org is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    return org
