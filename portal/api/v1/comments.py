"""Comments on a task, with team-only internal notes."""

import logging
import uuid

from fastapi import APIRouter, HTTPException, status
from sqlmodel import select

from portal.api.deps import Auth, AuthContext, Session, require
from portal.core.access import (
    Resource,
    can_mutate_resource,
    can_use_internal_comments,
    can_view_resource,
)
from portal.models.comment import (
    CommentAuthor,
    CommentCreate,
    CommentRead,
    CommentUpdate,
    TaskComment,
)
from portal.models.profile import Profile
from portal.models.task import Task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks/{task_id}/comments", tags=["comments"])


@router.get("", response_model=list[CommentRead])
async def list_comments(
    task_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> list[CommentRead]:
    """Comments of a task, oldest first. Client roles never get internal ones."""
    await _get_visible_task(task_id, auth, session)

    stmt = (
        select(TaskComment, Profile)
        .join(Profile, Profile.id == TaskComment.user_id)
        .where(TaskComment.task_id == task_id)
        .order_by(TaskComment.created_at.asc())  # type: ignore[attr-defined]
    )
    if not can_use_internal_comments(auth.actor.role):
        stmt = stmt.where(TaskComment.is_internal == False)  # noqa: E712

    result = await session.execute(stmt)
    return [_to_read(comment, author) for comment, author in result.all()]


@router.post("", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
async def create_comment(
    task_id: uuid.UUID,
    body: CommentCreate,
    auth: Auth,
    session: Session,
) -> CommentRead:
    await _get_visible_task(task_id, auth, session)

    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Content is required")

    # A client asking for an internal comment gets a regular one.
    is_internal = body.is_internal and can_use_internal_comments(auth.actor.role)

    comment = TaskComment(
        task_id=task_id,
        user_id=auth.user_id,
        content=content,
        is_internal=is_internal,
    )
    session.add(comment)
    await session.commit()
    await session.refresh(comment)
    logger.info(
        "Comment %s added to task %s by %s (internal=%s)",
        comment.id,
        task_id,
        auth.user_id,
        is_internal,
    )
    return _to_read(comment, auth.profile)


@router.patch("/{comment_id}", response_model=CommentRead)
async def update_comment(
    task_id: uuid.UUID,
    comment_id: uuid.UUID,
    body: CommentUpdate,
    auth: Auth,
    session: Session,
) -> CommentRead:
    task = await _get_visible_task(task_id, auth, session)
    comment = await _get_comment_or_404(task_id, comment_id, auth, session)
    require(
        can_mutate_resource(auth.actor, _as_resource(task, comment)),
        "Only the author, admins and managers can edit this comment",
    )

    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Content is required")

    comment.content = content
    comment.touch()
    session.add(comment)
    await session.commit()
    await session.refresh(comment)
    author = await session.get(Profile, comment.user_id)
    return _to_read(comment, author)


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    task_id: uuid.UUID,
    comment_id: uuid.UUID,
    auth: Auth,
    session: Session,
) -> None:
    task = await _get_visible_task(task_id, auth, session)
    comment = await _get_comment_or_404(task_id, comment_id, auth, session)
    require(
        can_mutate_resource(auth.actor, _as_resource(task, comment)),
        "Only the author, admins and managers can delete this comment",
    )
    await session.delete(comment)
    await session.commit()
    logger.info("Comment %s on task %s deleted by %s", comment_id, task_id, auth.user_id)


# ── Internal helpers ──────────────────────────────────────────

def _as_resource(task: Task, comment: TaskComment) -> Resource:
    return Resource(org_id=task.org_id, owner_id=comment.user_id)


def _to_read(comment: TaskComment, author: Profile | None) -> CommentRead:
    read = CommentRead.model_validate(comment)
    if author is not None:
        read.author = CommentAuthor.model_validate(author)
    return read


async def _get_visible_task(task_id: uuid.UUID, auth: AuthContext, session) -> Task:
    task = await session.get(Task, task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    require(
        can_view_resource(
            auth.actor,
            Resource(org_id=task.org_id, owner_id=task.created_by, assignee_id=task.assigned_to),
        )
    )
    return task


async def _get_comment_or_404(
    task_id: uuid.UUID,
    comment_id: uuid.UUID,
    auth: AuthContext,
    session,
) -> TaskComment:
    comment = await session.get(TaskComment, comment_id)
    # Internal comments do not exist as far as client roles are concerned.
    if (
        comment is None
        or comment.task_id != task_id
        or (comment.is_internal and not can_use_internal_comments(auth.actor.role))
    ):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
    return comment
