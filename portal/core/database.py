"""Async database engine and session factory."""

from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from portal.core.config import get_settings

settings = get_settings()


def _engine_options(database_url: str) -> dict:
    # SQLite (local runs) uses its own pool class and rejects sizing arguments.
    if make_url(database_url).get_backend_name() == "sqlite":
        return {}
    return {"pool_size": 20, "max_overflow": 10, "pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=False,
    **_engine_options(settings.database_url),
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request.

    Routers and services commit explicitly; anything left uncommitted when the
    request ends is rolled back when the session closes.
    """
    async with async_session_factory() as session:
        yield session


async def init_db() -> None:
    """Create missing tables for local runs. Deployed databases use Alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
