"""Shared test fixtures: async SQLite in-memory DB, test client and record factories."""

from collections.abc import AsyncGenerator, Iterable

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

# Import all models so metadata is populated
import portal.models  # noqa: F401
from portal.core.access import Role
from portal.core.database import get_session
from portal.core.security import create_jwt, hash_password
from portal.main import app
from portal.models.organization import Organization
from portal.models.profile import Profile
from portal.services.memberships import add_membership


@pytest.fixture
async def engine():
    # One fresh database per test: bootstrap only works while no admin exists.
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
async def client(session) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session override."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_org(session):
    """Factory: insert an organization directly."""

    async def _make(slug: str, name: str | None = None) -> Organization:
        org = Organization(name=name or f"{slug.title()} Co", slug=slug)
        session.add(org)
        await session.commit()
        await session.refresh(org)
        return org

    return _make


@pytest.fixture
def make_user(session):
    """Factory: insert a profile and attach it to organizations, first one primary."""

    async def _make(
        email: str,
        role: Role = Role.CLIENT,
        orgs: Iterable[Organization] = (),
        password: str | None = None,
        is_active: bool = True,
        invited_by: Profile | None = None,
    ) -> Profile:
        profile = Profile(
            email=email,
            full_name=email.split("@")[0].title(),
            role=role,
            password_hash=hash_password(password) if password else None,
            is_active=is_active,
            invited_by=invited_by.id if invited_by else None,
        )
        session.add(profile)
        await session.commit()
        await session.refresh(profile)
        for org in orgs:
            await add_membership(session, profile.id, org.id)
        await session.refresh(profile)
        return profile

    return _make


@pytest.fixture
def headers_for():
    """Bearer headers for a profile, minted the same way login does."""

    def _headers(profile: Profile) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_jwt(subject=str(profile.id))}"}

    return _headers
