"""System health endpoint: database connectivity and portal statistics."""

import platform
import sys
import time
from urllib.parse import urlparse, urlunparse

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import case, func, text
from sqlmodel import select

from portal.api.deps import Auth, Session, require_capability
from portal.core.access import Capability
from portal.core.config import get_settings
from portal.models.membership import OrganizationMembership
from portal.models.organization import Organization
from portal.models.profile import Profile
from portal.models.task import Task

router = APIRouter(prefix="/system", tags=["system"])

settings = get_settings()
_start_time = time.time()


class ServiceHealth(BaseModel):
    status: str  # "ok" or "error"
    detail: str | None = None
    version: str | None = None
    latency_ms: int | None = None


class HealthResponse(BaseModel):
    status: str
    database: ServiceHealth


class DetailedHealthResponse(BaseModel):
    status: str
    uptime_seconds: int
    python_version: str
    platform: str
    database: ServiceHealth
    db_stats: dict
    config: dict


@router.get("/health", response_model=HealthResponse)
async def system_health(session: Session) -> HealthResponse:
    """Check connectivity to the database."""
    db = await _check_database(session)
    return HealthResponse(status="ok" if db.status == "ok" else "degraded", database=db)


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def system_health_detailed(auth: Auth, session: Session) -> DetailedHealthResponse:
    """Health plus record counts and users whose primary organization needs repair."""
    require_capability(
        auth,
        Capability.VIEW_ALL_ORGS,
        "Only team members can view system details",
    )
    db = await _check_database(session)

    return DetailedHealthResponse(
        status="ok" if db.status == "ok" else "degraded",
        uptime_seconds=int(time.time() - _start_time),
        python_version=sys.version.split()[0],
        platform=platform.platform(),
        database=db,
        db_stats=await _get_db_stats(session),
        config={
            "database_url": _mask_url(settings.database_url),
            "jwt_configured": settings.jwt_secret_key != "CHANGE_ME_IN_PRODUCTION",
            "jwt_expire_minutes": settings.jwt_expire_minutes,
            "cors_origins": settings.allowed_origins,
            "log_level": settings.log_level,
        },
    )


def _mask_url(url: str) -> str:
    """Mask credentials in database URLs."""
    parsed = urlparse(url)
    if not parsed.password:
        return url
    masked = parsed._replace(
        netloc=f"{parsed.username}:***@{parsed.hostname}"
        + (f":{parsed.port}" if parsed.port else "")
    )
    return urlunparse(masked)


async def _check_database(session) -> ServiceHealth:
    try:
        t0 = time.monotonic()
        await session.execute(text("SELECT 1"))
        latency = int((time.monotonic() - t0) * 1000)
        return ServiceHealth(
            status="ok",
            version=session.bind.dialect.name,
            latency_ms=latency,
        )
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])


async def _get_db_stats(session) -> dict:
    """Gather record counts across the portal."""
    org_count = (await session.execute(
        select(func.count()).select_from(Organization)
    )).scalar_one()

    role_result = await session.execute(
        select(Profile.role, func.count())
        .where(Profile.is_active == True)  # noqa: E712
        .group_by(Profile.role)
    )
    users_by_role = {str(row[0]): row[1] for row in role_result.all()}

    membership_count = (await session.execute(
        select(func.count()).select_from(OrganizationMembership)
    )).scalar_one()

    status_result = await session.execute(
        select(Task.status, func.count()).group_by(Task.status)
    )
    tasks_by_status = {str(row[0]): row[1] for row in status_result.all()}

    # Users with memberships but not exactly one primary flag
    primaries = func.sum(case((OrganizationMembership.is_primary == True, 1), else_=0))  # noqa: E712
    anomaly_stmt = (
        select(OrganizationMembership.user_id)
        .group_by(OrganizationMembership.user_id)
        .having(primaries != 1)
    )
    anomalies = (await session.execute(anomaly_stmt)).scalars().all()

    return {
        "organizations": org_count,
        "active_users_by_role": users_by_role,
        "memberships": membership_count,
        "tasks_by_status": tasks_by_status,
        "users_needing_primary_repair": [str(u) for u in anomalies],
    }
