"""Role and team-scoping rules for leave requests and user records.

Every service asks these predicates instead of comparing roles and team
ids inline. Nothing here touches the database.
"""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from leavetrack.common.constants import EDITABLE_STATUSES, LeaveStatus, UserRole
from leavetrack.common.exceptions import ForbiddenException

# Fields hidden from viewers outside the owner's management chain
PRIVATE_LEAVE_FIELDS: tuple[str, ...] = ("reason", "manager_comment")


class Actor(BaseModel):
    """The authenticated caller, reduced to the facts policy needs."""

    model_config = ConfigDict(frozen=True)

    user_id: uuid.UUID
    role: UserRole
    team_id: Optional[uuid.UUID] = None

    @classmethod
    def from_user(cls, user: Any) -> "Actor":
        return cls(user_id=user.id, role=user.role, team_id=user.team_id)


# ── Role predicates ─────────────────────────────────────────────────

def is_admin(role: UserRole) -> bool:
    return role == UserRole.admin


def is_manager(role: UserRole) -> bool:
    """True for MANAGER only; admins are checked with :func:`is_admin`."""
    return role == UserRole.manager


def is_manager_or_admin(role: UserRole) -> bool:
    return role in (UserRole.manager, UserRole.admin)


def require_manager(role: UserRole) -> None:
    if not is_manager_or_admin(role):
        raise ForbiddenException("Manager or admin role required.")


def require_admin(role: UserRole) -> None:
    if not is_admin(role):
        raise ForbiddenException("Admin role required.")


# ── Team scoping ────────────────────────────────────────────────────

def is_same_team(
    actor_team_id: Optional[uuid.UUID],
    target_team_id: Optional[uuid.UUID],
) -> bool:
    """Both users belong to the same team. Unaffiliated users share no team."""
    return actor_team_id is not None and actor_team_id == target_team_id


def manages(actor: Actor, target_team_id: Optional[uuid.UUID]) -> bool:
    """Actor is a manager whose team matches the target's."""
    return is_manager(actor.role) and is_same_team(actor.team_id, target_team_id)


def can_access_user(
    actor: Actor,
    target_user_id: uuid.UUID,
    target_team_id: Optional[uuid.UUID],
) -> bool:
    """Admin, the user themselves, or a same-team manager."""
    return (
        is_admin(actor.role)
        or actor.user_id == target_user_id
        or manages(actor, target_team_id)
    )


def ensure_can_access_user(
    actor: Actor,
    target_user_id: uuid.UUID,
    target_team_id: Optional[uuid.UUID],
) -> None:
    if not can_access_user(actor, target_user_id, target_team_id):
        raise ForbiddenException("You can only access users in your own team.")


def ensure_team_scope(actor: Actor, target_team_id: Optional[uuid.UUID]) -> None:
    """A non-admin manager may only act within their own team."""
    if is_admin(actor.role):
        return
    if not manages(actor, target_team_id):
        raise ForbiddenException("You can only act on members of your own team.")


# ── Leave requests ──────────────────────────────────────────────────

def can_edit_request(
    request_owner_id: uuid.UUID,
    request_status: LeaveStatus,
    actor_id: uuid.UUID,
    actor_role: UserRole,
    same_team: bool,
) -> bool:
    if is_admin(actor_role):
        return True
    if is_manager(actor_role):
        return same_team
    return actor_id == request_owner_id and request_status in EDITABLE_STATUSES


def can_view_private_fields(
    actor: Actor,
    owner_id: uuid.UUID,
    owner_team_id: Optional[uuid.UUID],
) -> bool:
    return can_access_user(actor, owner_id, owner_team_id)


def redact_leave_fields(
    payload: Mapping[str, Any],
    actor: Actor,
    owner_id: uuid.UUID,
    owner_team_id: Optional[uuid.UUID],
) -> dict[str, Any]:
    """Copy of *payload* with private fields nulled for outside viewers."""
    redacted = dict(payload)
    if not can_view_private_fields(actor, owner_id, owner_team_id):
        for field in PRIVATE_LEAVE_FIELDS:
            if field in redacted:
                redacted[field] = None
    return redacted
