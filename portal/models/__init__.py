"""Import all models so SQLModel.metadata picks them up."""

from portal.models.comment import CommentCreate, CommentRead, CommentUpdate, TaskComment
from portal.models.membership import (
    MembershipCreate,
    MembershipRead,
    OrganizationMembership,
    OrgMemberRead,
    UserMembershipRead,
)
from portal.models.organization import (
    Organization,
    OrganizationCreate,
    OrganizationRead,
    OrganizationUpdate,
)
from portal.models.profile import Profile, ProfileInvite, ProfileRead, ProfileUpdate
from portal.models.task import Task, TaskCreate, TaskPriority, TaskRead, TaskStatus, TaskUpdate

__all__ = [
    "CommentCreate",
    "CommentRead",
    "CommentUpdate",
    "MembershipCreate",
    "MembershipRead",
    "Organization",
    "OrganizationCreate",
    "OrganizationMembership",
    "OrganizationRead",
    "OrganizationUpdate",
    "OrgMemberRead",
    "Profile",
    "ProfileInvite",
    "ProfileRead",
    "ProfileUpdate",
    "Task",
    "TaskComment",
    "TaskCreate",
    "TaskPriority",
    "TaskRead",
    "TaskStatus",
    "TaskUpdate",
    "UserMembershipRead",
]
