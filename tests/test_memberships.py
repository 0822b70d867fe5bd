"""Tests for membership lifecycle and primary organization handling."""

import logging
import uuid

import pytest
from httpx import AsyncClient
from sqlmodel import select

from portal.core.access import InvalidMembership, Role
from portal.models.membership import OrganizationMembership
from portal.models.profile import Profile
from portal.services.memberships import (
    MembershipExists,
    add_membership,
    get_primary_membership,
    list_user_memberships,
    remove_membership,
    repair_primary,
    set_primary_organization,
)


async def _primary_flags(session, user_id: uuid.UUID) -> dict[uuid.UUID, bool]:
    result = await session.execute(
        select(OrganizationMembership)
        .where(OrganizationMembership.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return {m.id: m.is_primary for m in result.scalars().all()}


async def _membership(session, user_id, org_id) -> OrganizationMembership:
    result = await session.execute(
        select(OrganizationMembership).where(
            OrganizationMembership.user_id == user_id,
            OrganizationMembership.org_id == org_id,
        )
    )
    return result.scalar_one()


# ── Service ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_first_membership_becomes_primary(session, make_org, make_user):
    acme = await make_org("acme")
    globex = await make_org("globex")
    user = await make_user("ann@acme.com", orgs=[acme, globex])

    primary = await get_primary_membership(session, user.id)
    assert primary is not None
    assert primary.org_id == acme.id
    assert user.org_id == acme.id


@pytest.mark.asyncio
async def test_duplicate_membership_rejected(session, make_org, make_user):
    acme = await make_org("acme")
    user = await make_user("ann@acme.com", orgs=[acme])
    user_id, org_id = user.id, acme.id

    with pytest.raises(MembershipExists):
        await add_membership(session, user_id, org_id)
    assert len(await list_user_memberships(session, user_id)) == 1


@pytest.mark.asyncio
async def test_set_primary_moves_flag(session, make_org, make_user):
    acme = await make_org("acme")
    globex = await make_org("globex")
    user = await make_user("ann@acme.com", orgs=[acme, globex])
    m1 = await _membership(session, user.id, acme.id)
    m2 = await _membership(session, user.id, globex.id)

    await set_primary_organization(session, user.id, m2.id)

    assert await _primary_flags(session, user.id) == {m1.id: False, m2.id: True}
    profile = await session.get(Profile, user.id, populate_existing=True)
    assert profile.org_id == globex.id


@pytest.mark.asyncio
async def test_set_primary_is_idempotent(session, make_org, make_user):
    acme = await make_org("acme")
    globex = await make_org("globex")
    user = await make_user("ann@acme.com", orgs=[acme, globex])
    m2 = await _membership(session, user.id, globex.id)

    await set_primary_organization(session, user.id, m2.id)
    first = await _primary_flags(session, user.id)
    await set_primary_organization(session, user.id, m2.id)
    assert await _primary_flags(session, user.id) == first


@pytest.mark.asyncio
async def test_set_primary_rejects_foreign_membership(session, make_org, make_user):
    acme = await make_org("acme")
    ann = await make_user("ann@acme.com", orgs=[acme])
    bob = await make_user("bob@acme.com", orgs=[acme])
    bobs = await _membership(session, bob.id, acme.id)
    # The failed call rolls back, which expires every loaded instance
    ann_id, bob_id, bobs_id = ann.id, bob.id, bobs.id
    before = await _primary_flags(session, ann_id)

    with pytest.raises(InvalidMembership) as exc_info:
        await set_primary_organization(session, ann_id, bobs_id)
    assert exc_info.value.membership_id == bobs_id

    assert await _primary_flags(session, ann_id) == before
    assert (await _primary_flags(session, bob_id))[bobs_id] is True


@pytest.mark.asyncio
async def test_removing_primary_promotes_oldest(session, make_org, make_user):
    acme = await make_org("acme")
    globex = await make_org("globex")
    initech = await make_org("initech")
    user = await make_user("ann@acme.com", orgs=[acme, globex, initech])
    m1 = await _membership(session, user.id, acme.id)
    m2 = await _membership(session, user.id, globex.id)

    await remove_membership(session, user.id, m1.id)

    flags = await _primary_flags(session, user.id)
    assert m1.id not in flags
    assert flags[m2.id] is True
    assert sum(flags.values()) == 1


@pytest.mark.asyncio
async def test_removing_last_membership_clears_legacy_org(session, make_org, make_user):
    acme = await make_org("acme")
    user = await make_user("ann@acme.com", orgs=[acme])
    m1 = await _membership(session, user.id, acme.id)

    await remove_membership(session, user.id, m1.id)

    profile = await session.get(Profile, user.id, populate_existing=True)
    assert profile.org_id is None
    assert await get_primary_membership(session, user.id) is None


@pytest.mark.asyncio
async def test_inconsistent_state_resolves_and_logs(session, make_org, make_user, caplog):
    acme = await make_org("acme")
    globex = await make_org("globex")
    user = await make_user("ann@acme.com", orgs=[acme, globex])
    m1 = await _membership(session, user.id, acme.id)
    # Legacy data: no primary at all
    m1.is_primary = False
    session.add(m1)
    await session.commit()

    with caplog.at_level(logging.WARNING, logger="portal.services.memberships"):
        primary = await get_primary_membership(session, user.id)
    assert primary.id == m1.id
    assert "needs repair" in caplog.text

    repaired = await repair_primary(session, user.id)
    assert repaired.id == m1.id
    flags = await _primary_flags(session, user.id)
    assert flags[m1.id] is True
    assert sum(flags.values()) == 1


# ── API ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_user_sets_own_primary(client: AsyncClient, session, make_org, make_user, headers_for):
    acme = await make_org("acme")
    globex = await make_org("globex")
    user = await make_user("ann@acme.com", orgs=[acme, globex])
    m2 = await _membership(session, user.id, globex.id)

    resp = await client.post(
        f"/v1/users/{user.id}/organizations/{m2.id}/primary",
        headers=headers_for(user),
    )
    assert resp.status_code == 200
    assert resp.json()["is_primary"] is True

    resp = await client.get("/v1/auth/me", headers=headers_for(user))
    assert resp.json()["primary_membership"]["org_id"] == str(globex.id)


@pytest.mark.asyncio
async def test_set_primary_with_foreign_membership_is_404(
    client: AsyncClient, session, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    ann = await make_user("ann@acme.com", orgs=[acme])
    bob = await make_user("bob@acme.com", orgs=[acme])
    bobs = await _membership(session, bob.id, acme.id)

    resp = await client.post(
        f"/v1/users/{ann.id}/organizations/{bobs.id}/primary",
        headers=headers_for(ann),
    )
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Membership not found for this user"


@pytest.mark.asyncio
async def test_client_cannot_set_peer_primary(
    client: AsyncClient, session, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    ann = await make_user("ann@acme.com", orgs=[acme])
    bob = await make_user("bob@acme.com", orgs=[acme])
    bobs = await _membership(session, bob.id, acme.id)

    resp = await client.post(
        f"/v1/users/{bob.id}/organizations/{bobs.id}/primary",
        headers=headers_for(ann),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_manager_adds_and_removes_membership(
    client: AsyncClient, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    globex = await make_org("globex")
    manager = await make_user("mia@portal.com", role=Role.MANAGER)
    user = await make_user("ann@acme.com", orgs=[acme])
    # The 409 below rolls the shared session back and expires loaded instances
    url = f"/v1/users/{user.id}/organizations"
    headers = headers_for(manager)
    acme_id, globex_id = str(acme.id), str(globex.id)

    resp = await client.post(
        url, json={"org_id": globex_id, "is_primary": True}, headers=headers
    )
    assert resp.status_code == 201
    added = resp.json()
    assert added["is_primary"] is True

    resp = await client.post(url, json={"org_id": globex_id}, headers=headers)
    assert resp.status_code == 409

    resp = await client.delete(f"{url}/{added['id']}", headers=headers)
    assert resp.status_code == 204

    resp = await client.get(url, headers=headers)
    memberships = resp.json()
    assert [m["org_id"] for m in memberships] == [acme_id]
    assert memberships[0]["is_primary"] is True
    assert memberships[0]["organization"]["slug"] == "acme"


@pytest.mark.asyncio
async def test_client_cannot_add_memberships(client: AsyncClient, make_org, make_user, headers_for):
    acme = await make_org("acme")
    ann = await make_user("ann@acme.com", orgs=[acme])
    contact = await make_user("cal@acme.com", role=Role.CLIENT_NO_ACCESS, orgs=[acme])

    resp = await client.post(
        f"/v1/users/{contact.id}/organizations",
        json={"org_id": str(acme.id)},
        headers=headers_for(ann),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_client_sees_only_shared_memberships(
    client: AsyncClient, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    globex = await make_org("globex")
    ann = await make_user("ann@acme.com", orgs=[acme])
    consultant = await make_user("kim@acme.com", orgs=[acme, globex])

    resp = await client.get(
        f"/v1/users/{consultant.id}/organizations", headers=headers_for(ann)
    )
    assert resp.status_code == 200
    assert [m["org_id"] for m in resp.json()] == [str(acme.id)]


@pytest.mark.asyncio
async def test_repair_endpoint(client: AsyncClient, session, make_org, make_user, headers_for):
    acme = await make_org("acme")
    globex = await make_org("globex")
    mia = await make_user("mia@portal.com", role=Role.MANAGER)
    user = await make_user("ann@acme.com", orgs=[acme, globex])
    m1 = await _membership(session, user.id, acme.id)
    m1.is_primary = False
    session.add(m1)
    await session.commit()

    resp = await client.post(
        f"/v1/users/{user.id}/organizations/repair-primary", headers=headers_for(mia)
    )
    assert resp.status_code == 200
    assert resp.json()["id"] == str(m1.id)
    assert resp.json()["is_primary"] is True

    resp = await client.post(
        f"/v1/users/{user.id}/organizations/repair-primary", headers=headers_for(user)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_removing_foreign_membership_is_404(
    client: AsyncClient, session, make_org, make_user, headers_for
):
    acme = await make_org("acme")
    admin = await make_user("root@portal.com", role=Role.ADMIN)
    ann = await make_user("ann@acme.com", orgs=[acme])
    bob = await make_user("bob@acme.com", orgs=[acme])
    bobs = await _membership(session, bob.id, acme.id)
    url = f"/v1/users/{ann.id}/organizations/{bobs.id}"

    resp = await client.delete(url, headers=headers_for(admin))
    assert resp.status_code == 404
