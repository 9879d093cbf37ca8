"""User and Team services — scoped reads, admin CRUD, dependent-row guards."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import false, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.policy import (
    Actor,
    ensure_can_access_user,
    ensure_team_scope,
    is_admin,
    is_manager,
    require_admin,
)
from leavetrack.common.audit import record_audit, snapshot
from leavetrack.common.constants import AuditAction, UserRole
from leavetrack.common.exceptions import (
    ConflictError,
    FailedPreconditionException,
    ForbiddenException,
    NotFoundException,
)
from leavetrack.common.pagination import PaginatedResponse, PaginationParams, paginate
from leavetrack.entitlement.models import LeaveBalance
from leavetrack.leave.models import LeaveRequest
from leavetrack.notifications.models import Notification
from leavetrack.users.models import Team, User
from leavetrack.users.schemas import (
    TeamCreate,
    TeamResponse,
    TeamUpdate,
    UserCreate,
    UserResponse,
    UserUpdate,
)

logger = logging.getLogger(__name__)

_USER_AUDIT_FIELDS = (
    "email",
    "name",
    "role",
    "team_id",
    "birth_date",
    "has_child",
    "employment_start_date",
    "manual_leave_allowance_hours",
    "is_active",
)
_TEAM_AUDIT_FIELDS = ("name", "max_concurrent_leaves")

# Entitlement facts a same-team manager may maintain for their employees
MANAGER_EDITABLE_FIELDS = frozenset({
    "birth_date",
    "has_child",
    "employment_start_date",
    "manual_leave_allowance_hours",
})


async def _ensure_team_exists(db: AsyncSession, team_id: Optional[uuid.UUID]) -> None:
    if team_id is not None and await db.get(Team, team_id) is None:
        raise NotFoundException("Team", team_id)


async def _ensure_email_free(
    db: AsyncSession, email: str, exclude_user_id: Optional[uuid.UUID] = None,
) -> None:
    query = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_user_id is not None:
        query = query.where(User.id != exclude_user_id)
    if await db.scalar(query) is not None:
        raise ConflictError("email", email)


# ═════════════════════════════════════════════════════════════════════
# Users
# ═════════════════════════════════════════════════════════════════════


class UserService:

    @staticmethod
    async def list_users(
        db: AsyncSession,
        actor: Actor,
        pagination: PaginationParams,
        *,
        team_id: Optional[uuid.UUID] = None,
        is_active: Optional[bool] = None,
    ) -> PaginatedResponse:
        """Admins see everyone, managers their team, employees themselves."""
        query = select(User).order_by(User.name)
        if is_admin(actor.role):
            pass
        elif is_manager(actor.role):
            if actor.team_id is None:
                query = query.where(false())
            else:
                query = query.where(User.team_id == actor.team_id)
        else:
            query = query.where(User.id == actor.user_id)

        if team_id is not None:
            query = query.where(User.team_id == team_id)
        if is_active is not None:
            query = query.where(User.is_active.is_(is_active))

        page = await paginate(db, query, pagination, model=User)
        return PaginatedResponse[UserResponse](
            data=[UserResponse.model_validate(u) for u in page.data],
            meta=page.meta,
        )

    @staticmethod
    async def get_user(db: AsyncSession, user_id: uuid.UUID, actor: Actor) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", user_id)
        ensure_can_access_user(actor, user.id, user.team_id)
        return user

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_user(db: AsyncSession, data: UserCreate, actor: Actor) -> User:
        require_admin(actor.role)

        email = data.email.lower()
        await _ensure_email_free(db, email)
        team_id = None if data.role == UserRole.admin else data.team_id
        await _ensure_team_exists(db, team_id)

        user = User(**data.model_dump(exclude={"email", "team_id"}), email=email, team_id=team_id)
        try:
            async with db.begin_nested():
                db.add(user)
        except IntegrityError:
            raise ConflictError("email", email)

        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="user",
            entity_id=user.id,
            action=AuditAction.create,
            after=snapshot(user, _USER_AUDIT_FIELDS),
            subject_user_id=user.id,
        )
        logger.info("User %s created by %s", user.id, actor.user_id)
        return user

    # ── Update ──────────────────────────────────────────────────────

    @staticmethod
    async def update_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        data: UserUpdate,
        actor: Actor,
    ) -> User:
        """Admins edit anything; same-team managers edit entitlement facts only."""
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", user_id)

        changes: dict[str, Any] = data.model_dump(exclude_unset=True)
        if not is_admin(actor.role):
            if not is_manager(actor.role):
                raise ForbiddenException("Only managers and admins can edit users.")
            ensure_team_scope(actor, user.team_id)
            forbidden = sorted(set(changes) - MANAGER_EDITABLE_FIELDS)
            if forbidden:
                raise ForbiddenException(f"Managers cannot change: {', '.join(forbidden)}.")

        # Only these two may be cleared explicitly
        changes = {
            k: v for k, v in changes.items()
            if v is not None or k in ("team_id", "manual_leave_allowance_hours")
        }
        if not changes:
            return user

        if "email" in changes:
            changes["email"] = changes["email"].lower()
            await _ensure_email_free(db, changes["email"], exclude_user_id=user.id)
        if changes.get("role", user.role) == UserRole.admin:
            changes["team_id"] = None
        if "team_id" in changes:
            await _ensure_team_exists(db, changes["team_id"])

        before = snapshot(user, _USER_AUDIT_FIELDS)
        for field, value in changes.items():
            setattr(user, field, value)
        try:
            await db.flush()
        except IntegrityError:
            raise ConflictError("email", changes.get("email", user.email))

        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="user",
            entity_id=user.id,
            action=AuditAction.update,
            before=before,
            after=snapshot(user, _USER_AUDIT_FIELDS),
            subject_user_id=user.id,
        )
        return user

    # ── Deactivate / delete ─────────────────────────────────────────

    @staticmethod
    async def deactivate_user(db: AsyncSession, user_id: uuid.UUID, actor: Actor) -> User:
        """Soft delete: the account stays for history but can no longer sign in."""
        require_admin(actor.role)
        if user_id == actor.user_id:
            raise ForbiddenException("You cannot deactivate your own account.")
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", user_id)

        if user.is_active:
            user.is_active = False
            await db.flush()
            await record_audit(
                db,
                actor_id=actor.user_id,
                entity_type="user",
                entity_id=user.id,
                action=AuditAction.deactivate,
                before={"is_active": True},
                after={"is_active": False},
                subject_user_id=user.id,
            )
        return user

    @staticmethod
    async def delete_user(db: AsyncSession, user_id: uuid.UUID, actor: Actor) -> None:
        """Hard delete, refused while the user owns leave data or notifications."""
        require_admin(actor.role)
        if user_id == actor.user_id:
            raise ForbiddenException("You cannot delete your own account.")
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", user_id)

        dependents = {
            "leave_requests": select(func.count()).select_from(LeaveRequest).where(
                LeaveRequest.user_id == user_id
            ),
            "leave_balances": select(func.count()).select_from(LeaveBalance).where(
                LeaveBalance.user_id == user_id
            ),
            "notifications": select(func.count()).select_from(Notification).where(
                Notification.recipient_id == user_id
            ),
            # Requests of other users this user decided or booked
            "approved_requests": select(func.count()).select_from(LeaveRequest).where(
                LeaveRequest.approved_by == user_id,
                LeaveRequest.user_id != user_id,
            ),
            "booked_requests": select(func.count()).select_from(LeaveRequest).where(
                LeaveRequest.created_by == user_id,
                LeaveRequest.user_id != user_id,
            ),
        }
        blocking = [name for name, query in dependents.items() if await db.scalar(query)]
        if blocking:
            raise FailedPreconditionException(
                "User has dependent records; deactivate the account instead.",
                errors={"dependents": blocking},
            )

        before = snapshot(user, _USER_AUDIT_FIELDS)
        await db.delete(user)
        await db.flush()
        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="user",
            entity_id=user_id,
            action=AuditAction.delete,
            before=before,
            subject_user_id=user_id,
        )


# ═════════════════════════════════════════════════════════════════════
# Teams
# ═════════════════════════════════════════════════════════════════════


def _team_response(team: Team, member_count: int) -> TeamResponse:
    response = TeamResponse.model_validate(team)
    response.member_count = member_count
    return response


async def _member_count(db: AsyncSession, team_id: uuid.UUID) -> int:
    return await db.scalar(
        select(func.count()).select_from(User).where(User.team_id == team_id)
    ) or 0


async def _ensure_team_name_free(
    db: AsyncSession, name: str, exclude_team_id: Optional[uuid.UUID] = None,
) -> None:
    query = select(Team.id).where(Team.name == name)
    if exclude_team_id is not None:
        query = query.where(Team.id != exclude_team_id)
    if await db.scalar(query) is not None:
        raise ConflictError("name", name)


class TeamService:

    @staticmethod
    async def list_teams(db: AsyncSession) -> list[TeamResponse]:
        result = await db.execute(
            select(Team, func.count(User.id))
            .outerjoin(User, User.team_id == Team.id)
            .group_by(Team.id)
            .order_by(Team.name)
        )
        return [_team_response(team, count) for team, count in result.all()]

    @staticmethod
    async def get_team(db: AsyncSession, team_id: uuid.UUID) -> TeamResponse:
        team = await db.get(Team, team_id)
        if team is None:
            raise NotFoundException("Team", team_id)
        return _team_response(team, await _member_count(db, team_id))

    @staticmethod
    async def create_team(db: AsyncSession, data: TeamCreate, actor: Actor) -> TeamResponse:
        require_admin(actor.role)
        name = data.name.strip()
        await _ensure_team_name_free(db, name)

        team = Team(name=name, max_concurrent_leaves=data.max_concurrent_leaves)
        try:
            async with db.begin_nested():
                db.add(team)
        except IntegrityError:
            raise ConflictError("name", name)

        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="team",
            entity_id=team.id,
            action=AuditAction.create,
            after=snapshot(team, _TEAM_AUDIT_FIELDS),
        )
        return _team_response(team, 0)

    @staticmethod
    async def update_team(
        db: AsyncSession,
        team_id: uuid.UUID,
        data: TeamUpdate,
        actor: Actor,
    ) -> TeamResponse:
        """``max_concurrent_leaves`` may be set to null to remove the cap."""
        require_admin(actor.role)
        team = await db.get(Team, team_id)
        if team is None:
            raise NotFoundException("Team", team_id)

        changes = data.model_dump(exclude_unset=True)
        before = snapshot(team, _TEAM_AUDIT_FIELDS)
        if changes.get("name") is not None:
            name = changes["name"].strip()
            await _ensure_team_name_free(db, name, exclude_team_id=team.id)
            team.name = name
        if "max_concurrent_leaves" in changes:
            team.max_concurrent_leaves = changes["max_concurrent_leaves"]
        try:
            await db.flush()
        except IntegrityError:
            raise ConflictError("name", team.name)

        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="team",
            entity_id=team.id,
            action=AuditAction.update,
            before=before,
            after=snapshot(team, _TEAM_AUDIT_FIELDS),
        )
        return _team_response(team, await _member_count(db, team.id))

    @staticmethod
    async def delete_team(db: AsyncSession, team_id: uuid.UUID, actor: Actor) -> None:
        require_admin(actor.role)
        team = await db.get(Team, team_id)
        if team is None:
            raise NotFoundException("Team", team_id)

        members = await _member_count(db, team_id)
        if members:
            raise FailedPreconditionException(
                f"Team still has {members} member(s); reassign them first.",
            )

        before = snapshot(team, _TEAM_AUDIT_FIELDS)
        await db.delete(team)
        await db.flush()
        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="team",
            entity_id=team_id,
            action=AuditAction.delete,
            before=before,
        )
