"""Role-based access control for the client portal.

Every visibility and mutation rule lives here. Routers and services build an
``Actor`` from the current request and a ``Resource`` describing the record
they are about to show or change, then ask one of the decision functions
below. The functions are pure: no database access, no caching.

Roles come in two disjoint tiers:

- team: ``admin`` ⊇ ``manager`` ⊇ ``user``: internal staff, cross-tenant
- client: ``client`` ⊇ ``client_no_access``: scoped to member organizations
"""

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Flag, StrEnum, auto
from typing import Protocol, TypeVar

logger = logging.getLogger(__name__)


class Role(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"
    CLIENT = "client"
    CLIENT_NO_ACCESS = "client_no_access"


class Capability(Flag):
    NONE = 0
    LOGIN = auto()
    VIEW_ALL_ORGS = auto()
    MUTATE_ANY = auto()
    MUTATE_OWN = auto()
    MUTATE_OWN_IN_ORG = auto()
    MANAGE_CONTACTS = auto()
    INVITE_USERS = auto()
    MANAGE_ORGANIZATIONS = auto()
    DELETE_ORGANIZATIONS = auto()
    INTERNAL_COMMENTS = auto()


_TEAM = Capability.LOGIN | Capability.VIEW_ALL_ORGS | Capability.INTERNAL_COMMENTS

ROLE_CAPABILITIES: dict[Role, Capability] = {
    Role.ADMIN: (
        _TEAM
        | Capability.MUTATE_ANY
        | Capability.MUTATE_OWN
        | Capability.INVITE_USERS
        | Capability.MANAGE_ORGANIZATIONS
        | Capability.DELETE_ORGANIZATIONS
    ),
    Role.MANAGER: (
        _TEAM
        | Capability.MUTATE_ANY
        | Capability.MUTATE_OWN
        | Capability.INVITE_USERS
        | Capability.MANAGE_ORGANIZATIONS
    ),
    Role.USER: _TEAM | Capability.MUTATE_OWN,
    Role.CLIENT: (
        Capability.LOGIN
        | Capability.MUTATE_OWN_IN_ORG
        | Capability.MANAGE_CONTACTS
        | Capability.INVITE_USERS
    ),
    Role.CLIENT_NO_ACCESS: Capability.NONE,
}

# Managers cannot mint admins or managers; clients never mint team roles.
INVITABLE_ROLES: dict[Role, frozenset[Role]] = {
    Role.ADMIN: frozenset(Role),
    Role.MANAGER: frozenset({Role.USER, Role.CLIENT, Role.CLIENT_NO_ACCESS}),
    Role.USER: frozenset(),
    Role.CLIENT: frozenset({Role.CLIENT, Role.CLIENT_NO_ACCESS}),
    Role.CLIENT_NO_ACCESS: frozenset(),
}

TEAM_ROLES = frozenset({Role.ADMIN, Role.MANAGER, Role.USER})
CLIENT_ROLES = frozenset({Role.CLIENT, Role.CLIENT_NO_ACCESS})


def _verify_tables() -> None:
    """Fail at import time if a role is missing from any decision table."""
    roles = set(Role)
    for name, table in (
        ("ROLE_CAPABILITIES", ROLE_CAPABILITIES),
        ("INVITABLE_ROLES", INVITABLE_ROLES),
    ):
        missing = roles - table.keys()
        if missing:
            raise RuntimeError(
                f"{name} has no entry for: {', '.join(sorted(missing))}"
            )
    if TEAM_ROLES | CLIENT_ROLES != roles or TEAM_ROLES & CLIENT_ROLES:
        raise RuntimeError("Every role must belong to exactly one tier")


_verify_tables()


# ── Errors ────────────────────────────────────────────────────

class AccessError(Exception):
    """Base class for authorization failures."""


class Forbidden(AccessError):
    """An authorization decision came back negative at a server boundary."""


class InvalidMembership(AccessError):
    """A membership id does not belong to the user it was used for."""

    def __init__(self, user_id: uuid.UUID, membership_id: uuid.UUID) -> None:
        super().__init__(f"Membership {membership_id} does not belong to user {user_id}")
        self.user_id = user_id
        self.membership_id = membership_id


class InconsistentPrimaryState(AccessError):
    """A user has zero or several primary memberships."""

    def __init__(self, primary_count: int, total: int) -> None:
        super().__init__(
            f"Expected exactly one primary membership, found {primary_count} of {total}"
        )
        self.primary_count = primary_count
        self.total = total


# ── Decision inputs ───────────────────────────────────────────

@dataclass(frozen=True)
class Actor:
    """The caller, as loaded from the database for the current request."""

    user_id: uuid.UUID
    role: Role
    org_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Resource:
    """What a decision is being made about.

    ``owner_id`` is the creator, ``assignee_id`` the user a record is assigned
    to, ``subject_id``/``subject_role`` the profile a record describes (when the
    record is a user or a membership).
    """

    org_id: uuid.UUID | None
    owner_id: uuid.UUID | None = None
    assignee_id: uuid.UUID | None = None
    subject_id: uuid.UUID | None = None
    subject_role: Role | None = None


# ── Capability lookups ────────────────────────────────────────

def capabilities(role: Role) -> Capability:
    return ROLE_CAPABILITIES[Role(role)]


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in capabilities(role)


def is_team_role(role: Role) -> bool:
    return Role(role) in TEAM_ROLES


# ── Invitations ───────────────────────────────────────────────

def can_invite_users(role: Role) -> bool:
    """True for admin, manager and client."""
    return has_capability(role, Capability.INVITE_USERS)


def get_allowed_invite_roles(role: Role) -> frozenset[Role]:
    """Roles an actor with ``role`` may hand out to a new or existing user."""
    return INVITABLE_ROLES[Role(role)]


def can_invite(actor: Actor, role: Role, org_id: uuid.UUID | None) -> bool:
    """Full invitation check: the role tier and, for clients, the target org."""
    if not can_invite_users(actor.role):
        return False
    if Role(role) not in get_allowed_invite_roles(actor.role):
        return False
    if has_capability(actor.role, Capability.VIEW_ALL_ORGS):
        return True
    return org_id is not None and org_id in actor.org_ids


def can_assign_role(actor: Actor, current_role: Role, new_role: Role) -> bool:
    """Whether ``actor`` may change a user's role from ``current_role`` to ``new_role``.

    Both ends must be within the roles the actor can hand out, so a manager
    can neither promote to nor demote from admin/manager.
    """
    allowed = get_allowed_invite_roles(actor.role)
    return Role(current_role) in allowed and Role(new_role) in allowed


# ── Visibility ────────────────────────────────────────────────

def visible_org_ids(actor: Actor) -> frozenset[uuid.UUID] | None:
    """Organizations the actor may read from, or ``None`` for all of them."""
    if has_capability(actor.role, Capability.VIEW_ALL_ORGS):
        return None
    return actor.org_ids


def can_view_resource(actor: Actor, resource: Resource) -> bool:
    if has_capability(actor.role, Capability.VIEW_ALL_ORGS):
        if resource.org_id is None:
            logger.warning(
                "Resource without organization viewed by %s (%s)",
                actor.user_id,
                actor.role,
            )
        return True
    # Client roles: untagged resources stay hidden.
    if resource.org_id is None:
        return False
    return resource.org_id in actor.org_ids


def can_view_any(actor: Actor, resources: Iterable[Resource]) -> bool:
    return any(can_view_resource(actor, r) for r in resources)


def can_use_internal_comments(role: Role) -> bool:
    """Team-only notes on a task: reading them and marking a comment internal."""
    return has_capability(role, Capability.INTERNAL_COMMENTS)


# ── Mutation ──────────────────────────────────────────────────

def _belongs_to(actor: Actor, resource: Resource) -> bool:
    return actor.user_id in (resource.owner_id, resource.assignee_id, resource.subject_id)


def can_mutate_resource(actor: Actor, resource: Resource) -> bool:
    caps = capabilities(actor.role)

    if Capability.MUTATE_ANY in caps:
        return True

    # A profile is only ever editable by someone who could hand out its
    # current role, whoever invited it.
    if (
        resource.subject_role is not None
        and resource.subject_id != actor.user_id
        and Role(resource.subject_role) not in get_allowed_invite_roles(actor.role)
    ):
        return False

    if Capability.MUTATE_OWN in caps:
        return _belongs_to(actor, resource)

    if Capability.MUTATE_OWN_IN_ORG in caps:
        if resource.org_id is None or resource.org_id not in actor.org_ids:
            return False
        if _belongs_to(actor, resource):
            return True
        # Clients look after the no-login contacts of their own organizations.
        return (
            Capability.MANAGE_CONTACTS in caps
            and resource.subject_role == Role.CLIENT_NO_ACCESS
        )

    return False


def can_mutate_any(actor: Actor, resources: Iterable[Resource]) -> bool:
    return any(can_mutate_resource(actor, r) for r in resources)


# ── Primary organization ──────────────────────────────────────

class MembershipLike(Protocol):
    id: uuid.UUID
    is_primary: bool
    created_at: datetime


M = TypeVar("M", bound=MembershipLike)


def _stable_order(membership: MembershipLike) -> tuple[datetime, str]:
    return (membership.created_at, str(membership.id))


def check_primary_state(memberships: Sequence[MembershipLike]) -> None:
    """Raise ``InconsistentPrimaryState`` unless exactly one membership is primary.

    A user without memberships is consistent.
    """
    if not memberships:
        return
    primaries = sum(1 for m in memberships if m.is_primary)
    if primaries != 1:
        raise InconsistentPrimaryState(primaries, len(memberships))


def resolve_primary_organization(memberships: Sequence[M]) -> M | None:
    """Return the user's primary membership.

    Never raises. With several primaries the earliest created one wins; with
    none the earliest membership overall is used. Ties break on id, so the
    same input always resolves to the same membership.
    """
    if not memberships:
        return None
    primaries = [m for m in memberships if m.is_primary]
    candidates = primaries or list(memberships)
    return min(candidates, key=_stable_order)
