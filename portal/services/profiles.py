"""Access decisions about profiles, which can span several organizations."""

import uuid

from portal.core.access import (
    Actor,
    Resource,
    can_mutate_any,
    can_view_any,
    visible_org_ids,
)
from portal.models.profile import Profile


def profile_resources(profile: Profile, org_ids: frozenset[uuid.UUID]) -> list[Resource]:
    """One decision input per organization the profile belongs to."""
    return [
        Resource(
            org_id=org_id,
            owner_id=profile.invited_by,
            subject_id=profile.id,
            subject_role=profile.role,
        )
        for org_id in (org_ids or {None})
    ]


def can_view_profile(actor: Actor, profile: Profile, org_ids: frozenset[uuid.UUID]) -> bool:
    if profile.id == actor.user_id or visible_org_ids(actor) is None:
        return True
    return can_view_any(actor, profile_resources(profile, org_ids))


def can_mutate_profile(actor: Actor, profile: Profile, org_ids: frozenset[uuid.UUID]) -> bool:
    return can_mutate_any(actor, profile_resources(profile, org_ids))
