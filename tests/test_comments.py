"""Tests for task comments: internal notes and who may edit or delete."""

import pytest
from httpx import AsyncClient
from sqlmodel import select

from portal.core.access import Role
from portal.models.comment import TaskComment
from portal.models.task import Task


async def _task(session, org, creator) -> Task:
    task = Task(org_id=org.id, title="Review brand guide", created_by=creator.id)
    session.add(task)
    await session.commit()
    await session.refresh(task)
    return task


async def _comment(client: AsyncClient, task, headers, content="Looks good", **extra) -> dict:
    resp = await client.post(
        f"/v1/tasks/{task.id}/comments",
        json={"content": content, **extra},
        headers=headers,
    )
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_internal_comments_hidden_from_clients(
    client: AsyncClient, session, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    uma = await make_user("uma@portal.com", role=Role.USER)
    ann = await make_user("ann@acme.com", orgs=[acme])
    task = await _task(session, acme, ann)

    await _comment(client, task, headers_for(uma), "Client-facing update")
    internal = await _comment(
        client, task, headers_for(uma), "Budget is tight", is_internal=True
    )
    assert internal["is_internal"] is True
    assert internal["author"]["role"] == "user"

    resp = await client.get(f"/v1/tasks/{task.id}/comments", headers=headers_for(ann))
    assert resp.status_code == 200
    assert [c["content"] for c in resp.json()] == ["Client-facing update"]

    resp = await client.get(f"/v1/tasks/{task.id}/comments", headers=headers_for(uma))
    assert [c["content"] for c in resp.json()] == ["Client-facing update", "Budget is tight"]

    resp = await client.delete(
        f"/v1/tasks/{task.id}/comments/{internal['id']}", headers=headers_for(ann)
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_client_cannot_post_internal_comment(
    client: AsyncClient, session, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    ann = await make_user("ann@acme.com", orgs=[acme])
    task = await _task(session, acme, ann)

    created = await _comment(client, task, headers_for(ann), "Secret?", is_internal=True)
    assert created["is_internal"] is False
    assert created["user_id"] == str(ann.id)


@pytest.mark.asyncio
async def test_comments_follow_task_visibility(
    client: AsyncClient, session, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    globex = await make_org("globex")
    ann = await make_user("ann@acme.com", orgs=[acme])
    gil = await make_user("gil@globex.com", orgs=[globex])
    task = await _task(session, globex, gil)

    resp = await client.get(f"/v1/tasks/{task.id}/comments", headers=headers_for(ann))
    assert resp.status_code == 403

    resp = await client.post(
        f"/v1/tasks/{task.id}/comments", json={"content": "Hi"}, headers=headers_for(ann)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_blank_comment_rejected(
    client: AsyncClient, session, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    ann = await make_user("ann@acme.com", orgs=[acme])
    task = await _task(session, acme, ann)

    resp = await client.post(
        f"/v1/tasks/{task.id}/comments", json={"content": "   "}, headers=headers_for(ann)
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_only_author_or_manager_edits_and_deletes(
    client: AsyncClient, session, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    mia = await make_user("mia@portal.com", role=Role.MANAGER)
    uma = await make_user("uma@portal.com", role=Role.USER)
    ann = await make_user("ann@acme.com", orgs=[acme])
    bob = await make_user("bob@acme.com", orgs=[acme])
    task = await _task(session, acme, ann)
    comment = await _comment(client, task, headers_for(ann), "First draft")
    url = f"/v1/tasks/{task.id}/comments/{comment['id']}"

    for other in (bob, uma):
        resp = await client.patch(url, json={"content": "Hijacked"}, headers=headers_for(other))
        assert resp.status_code == 403
        resp = await client.delete(url, headers=headers_for(other))
        assert resp.status_code == 403

    resp = await client.patch(url, json={"content": "Final draft"}, headers=headers_for(ann))
    assert resp.status_code == 200
    assert resp.json()["content"] == "Final draft"
    assert resp.json()["author"]["id"] == str(ann.id)

    resp = await client.delete(url, headers=headers_for(mia))
    assert resp.status_code == 204

    resp = await client.get(f"/v1/tasks/{task.id}/comments", headers=headers_for(ann))
    assert resp.json() == []


@pytest.mark.asyncio
async def test_deleting_task_removes_comments(
    client: AsyncClient, session, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    ann = await make_user("ann@acme.com", orgs=[acme])
    task = await _task(session, acme, ann)
    task_id = task.id
    await _comment(client, task, headers_for(ann))

    resp = await client.delete(f"/v1/tasks/{task_id}", headers=headers_for(ann))
    assert resp.status_code == 204

    result = await session.execute(select(TaskComment).where(TaskComment.task_id == task_id))
    assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_deleting_organization_removes_comments(
    client: AsyncClient, session, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    admin = await make_user("root@portal.com", role=Role.ADMIN)
    task = await _task(session, acme, admin)
    task_id = task.id
    await _comment(client, task, headers_for(admin), "Kickoff notes", is_internal=True)

    resp = await client.delete(f"/v1/organizations/{acme.id}", headers=headers_for(admin))
    assert resp.status_code == 204

    result = await session.execute(select(TaskComment).where(TaskComment.task_id == task_id))
    assert result.scalars().all() == []
