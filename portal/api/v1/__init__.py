"""V1 API router aggregation."""

from fastapi import APIRouter

from portal.api.v1.auth import router as auth_router
from portal.api.v1.comments import router as comments_router
from portal.api.v1.memberships import router as memberships_router
from portal.api.v1.organizations import router as organizations_router
from portal.api.v1.system import router as system_router
from portal.api.v1.tasks import router as tasks_router
from portal.api.v1.users import router as users_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(auth_router)
v1_router.include_router(organizations_router)
v1_router.include_router(memberships_router)
v1_router.include_router(users_router)
v1_router.include_router(tasks_router)
v1_router.include_router(comments_router)
v1_router.include_router(system_router)
