"""Leave request service layer — lifecycle state machine and calendar view.

Business logic:
  - DRAFT → PENDING → APPROVED / REJECTED; DRAFT / PENDING / APPROVED → CANCELLED
  - Working hours recomputed from dates, times, half-day flags and active holidays
  - Overlap, team concurrent-leave cap and annual-leave balance checks
  - Team-scoped authorization for managers, redaction on the shared calendar
  - Audit entry and best-effort notification for every transition
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import false, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.policy import (
    Actor,
    can_edit_request,
    ensure_can_access_user,
    ensure_team_scope,
    is_admin,
    is_manager,
    is_manager_or_admin,
    is_same_team,
    redact_leave_fields,
    require_manager,
)
from leavetrack.calendar.dates import compute_working_hours, validate_range
from leavetrack.common.audit import record_audit, snapshot
from leavetrack.common.constants import (
    BOOKED_STATUSES,
    CALENDAR_HIDDEN_STATUSES,
    AuditAction,
    LeaveStatus,
    LeaveType,
)
from leavetrack.common.exceptions import (
    AppException,
    FailedPreconditionException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leavetrack.common.locking import lock_team, lock_user
from leavetrack.common.pagination import PaginatedResponse, PaginationParams, paginate
from leavetrack.config import settings
from leavetrack.entitlement.service import ensure_balance
from leavetrack.holidays.schemas import HolidayResponse
from leavetrack.holidays.service import HolidayService, active_holiday_dates
from leavetrack.leave.models import LeaveRequest
from leavetrack.leave.schemas import (
    BulkApproveFailure,
    BulkApproveResult,
    CalendarEvent,
    CalendarResponse,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveRequestUpdate,
)
from leavetrack.notifications.service import (
    notify_leave_approved,
    notify_leave_cancelled,
    notify_leave_rejected,
    notify_leave_submitted,
    notify_leave_updated_by_manager,
)
from leavetrack.users.models import Team, User
from leavetrack.vacation_policy.service import PolicySettingsService

logger = logging.getLogger(__name__)

ENTITY_TYPE = "leave_request"

_AUDITED_FIELDS = (
    "user_id",
    "type",
    "start_date",
    "end_date",
    "start_time",
    "end_time",
    "is_half_day_start",
    "is_half_day_end",
    "status",
    "reason",
    "manager_comment",
    "approved_by",
    "approved_at",
    "computed_hours",
    "attachment_url",
)

# Any change to these re-derives computed_hours
_DURATION_FIELDS = frozenset({
    "start_date",
    "end_date",
    "start_time",
    "end_time",
    "is_half_day_start",
    "is_half_day_end",
})


# ═════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _load_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> tuple[LeaveRequest, User]:
    """Return the request and its owner; row-locked when *for_update*."""
    query = select(LeaveRequest).where(LeaveRequest.id == request_id)
    if for_update:
        query = query.with_for_update()
    leave_req = (await db.execute(query)).scalars().first()
    if leave_req is None:
        raise NotFoundException("LeaveRequest", request_id)

    owner = await db.get(User, leave_req.user_id)
    if owner is None:
        raise NotFoundException("User", leave_req.user_id)
    return leave_req, owner


def _ensure_not_in_past(start: date, actor: Actor, owner_id: uuid.UUID) -> None:
    """Start dates in the past are refused unless a manager or admin books
    for someone else and backdating is enabled."""
    if start >= date.today():
        return
    on_behalf = actor.user_id != owner_id and is_manager_or_admin(actor.role)
    if on_behalf and settings.ALLOW_MANAGER_BACKDATED_REQUESTS:
        return
    raise ValidationException({"start_date": ["Start date must not be in the past."]})


async def _compute_hours(
    db: AsyncSession,
    start: date,
    end: date,
    is_half_day_start: bool,
    is_half_day_end: bool,
    start_time,
    end_time,
) -> Decimal:
    holidays = await active_holiday_dates(db, start, end)
    return compute_working_hours(
        start, end, is_half_day_start, is_half_day_end, holidays, start_time, end_time,
    )


async def _ensure_no_overlap(
    db: AsyncSession,
    user_id: uuid.UUID,
    start: date,
    end: date,
    exclude_request_id: Optional[uuid.UUID] = None,
) -> None:
    """Refuse if the user already has a PENDING/APPROVED request touching ``[start, end]``."""
    query = select(LeaveRequest.id, LeaveRequest.start_date, LeaveRequest.end_date).where(
        LeaveRequest.user_id == user_id,
        LeaveRequest.status.in_(BOOKED_STATUSES),
        LeaveRequest.start_date <= end,
        LeaveRequest.end_date >= start,
    )
    if exclude_request_id is not None:
        query = query.where(LeaveRequest.id != exclude_request_id)
    clash = (await db.execute(query.limit(1))).first()
    if clash is not None:
        logger.info("Overlap for user %s: %s..%s clashes with %s", user_id, start, end, clash.id)
        raise FailedPreconditionException(
            f"Request overlaps an existing request ({clash.start_date} – {clash.end_date}).",
            errors={"conflicting_request_id": str(clash.id)},
        )


async def _ensure_team_capacity(
    db: AsyncSession,
    leave_req: LeaveRequest,
    owner: User,
) -> None:
    """Refuse approval when the owner's team already has its cap of
    APPROVED leaves overlapping this request."""
    if owner.team_id is None:
        return
    team = await db.get(Team, owner.team_id)
    if team is None or team.max_concurrent_leaves is None:
        return

    await lock_team(db, team.id)
    approved = await db.scalar(
        select(func.count())
        .select_from(LeaveRequest)
        .join(User, User.id == LeaveRequest.user_id)
        .where(
            User.team_id == team.id,
            LeaveRequest.id != leave_req.id,
            LeaveRequest.status == LeaveStatus.approved,
            LeaveRequest.start_date <= leave_req.end_date,
            LeaveRequest.end_date >= leave_req.start_date,
        )
    ) or 0
    if approved >= team.max_concurrent_leaves:
        logger.info(
            "Team %s at capacity (%d/%d) for request %s",
            team.id, approved, team.max_concurrent_leaves, leave_req.id,
        )
        raise FailedPreconditionException(
            f"Team '{team.name}' already has {approved} approved leave(s) in this "
            f"period; the limit is {team.max_concurrent_leaves}.",
        )


def _ensure_team_scope_for_others(actor: Actor, owner: User) -> None:
    """Non-owners must be an admin or a manager of the owner's team."""
    if actor.user_id == owner.id:
        return
    require_manager(actor.role)
    ensure_team_scope(actor, owner.team_id)


async def _audit(
    db: AsyncSession,
    actor: Actor,
    leave_req: LeaveRequest,
    action: AuditAction,
    before: Optional[dict[str, Any]],
    after: Optional[dict[str, Any]],
) -> None:
    await record_audit(
        db,
        actor_id=actor.user_id,
        entity_type=ENTITY_TYPE,
        entity_id=leave_req.id,
        action=action,
        before=before,
        after=after,
        subject_user_id=leave_req.user_id,
    )


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave request operations."""

    # ─────────────────────────────────────────────────────────────────
    # Create (→ DRAFT)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_request(
        db: AsyncSession,
        data: LeaveRequestCreate,
        actor: Actor,
    ) -> LeaveRequest:
        """Create a DRAFT for the actor, or for a team member when the actor
        is a manager or admin."""

        # ── Resolve owner ───────────────────────────────────────────
        owner_id = data.user_id or actor.user_id
        owner = await db.get(User, owner_id)
        if owner is None:
            raise NotFoundException("User", owner_id)
        _ensure_team_scope_for_others(actor, owner)
        if not owner.is_active:
            raise FailedPreconditionException("Cannot create requests for an inactive user.")

        # ── Validate dates ──────────────────────────────────────────
        validate_range(data.start_date, data.end_date)
        _ensure_not_in_past(data.start_date, actor, owner.id)

        await lock_user(db, owner.id)

        # ── Derive duration ─────────────────────────────────────────
        hours = await _compute_hours(
            db,
            data.start_date,
            data.end_date,
            data.is_half_day_start,
            data.is_half_day_end,
            data.start_time,
            data.end_time,
        )

        # ── Balance ─────────────────────────────────────────────────
        if data.type == LeaveType.annual_leave:
            await ensure_balance(db, owner.id, data.start_date, hours)

        leave_req = LeaveRequest(
            **data.model_dump(exclude={"user_id"}),
            user_id=owner.id,
            status=LeaveStatus.draft,
            computed_hours=hours,
            created_by=actor.user_id,
        )
        db.add(leave_req)
        await db.flush()

        await _audit(db, actor, leave_req, AuditAction.create, None, snapshot(leave_req, _AUDITED_FIELDS))
        logger.info(
            "Leave request %s created for %s by %s (%s h)",
            leave_req.id, owner.id, actor.user_id, hours,
        )
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Submit (DRAFT → PENDING)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
    ) -> LeaveRequest:
        leave_req, owner = await _load_request(db, request_id, for_update=True)
        _ensure_team_scope_for_others(actor, owner)

        if leave_req.status != LeaveStatus.draft:
            raise FailedPreconditionException(
                f"Only draft requests can be submitted; this one is {leave_req.status.value}."
            )

        await lock_user(db, owner.id)
        await _ensure_no_overlap(
            db, owner.id, leave_req.start_date, leave_req.end_date, leave_req.id,
        )

        before = snapshot(leave_req, _AUDITED_FIELDS)
        leave_req.status = LeaveStatus.pending
        await db.flush()

        await _audit(db, actor, leave_req, AuditAction.submit, before, snapshot(leave_req, _AUDITED_FIELDS))
        logger.info("Leave request %s submitted by %s", leave_req.id, actor.user_id)

        await notify_leave_submitted(db, leave_req, owner)
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Approve (PENDING → APPROVED)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
        *,
        comment: Optional[str] = None,
        bulk: bool = False,
    ) -> LeaveRequest:
        """Approve after re-checking overlap, team capacity and balance,
        any of which may have changed since submission."""
        require_manager(actor.role)
        leave_req, owner = await _load_request(db, request_id, for_update=True)
        ensure_team_scope(actor, owner.team_id)

        if leave_req.status != LeaveStatus.pending:
            raise FailedPreconditionException(
                f"Only pending requests can be approved; this one is {leave_req.status.value}."
            )

        await lock_user(db, owner.id)
        await _ensure_no_overlap(
            db, owner.id, leave_req.start_date, leave_req.end_date, leave_req.id,
        )
        await _ensure_team_capacity(db, leave_req, owner)
        if leave_req.type == LeaveType.annual_leave:
            await ensure_balance(
                db, owner.id, leave_req.start_date, leave_req.computed_hours, leave_req.id,
            )

        before = snapshot(leave_req, _AUDITED_FIELDS)
        leave_req.status = LeaveStatus.approved
        leave_req.approved_by = actor.user_id
        leave_req.approved_at = _utcnow()
        if comment:
            leave_req.manager_comment = comment.strip()
        await db.flush()

        action = AuditAction.bulk_approve if bulk else AuditAction.approve
        await _audit(db, actor, leave_req, action, before, snapshot(leave_req, _AUDITED_FIELDS))
        logger.info("Leave request %s approved by %s", leave_req.id, actor.user_id)

        await notify_leave_approved(db, leave_req, owner)
        return leave_req

    @staticmethod
    async def bulk_approve(
        db: AsyncSession,
        request_ids: list[uuid.UUID],
        actor: Actor,
        *,
        comment: Optional[str] = None,
    ) -> BulkApproveResult:
        """Approve each request independently; one failure does not undo the others."""
        require_manager(actor.role)
        approved: list[LeaveRequestResponse] = []
        failed: list[BulkApproveFailure] = []

        for request_id in dict.fromkeys(request_ids):
            try:
                async with db.begin_nested():
                    leave_req = await LeaveService.approve_request(
                        db, request_id, actor, comment=comment, bulk=True,
                    )
            except AppException as exc:
                failed.append(BulkApproveFailure(id=request_id, error=exc.error_type, detail=exc.detail))
                continue
            approved.append(LeaveRequestResponse.model_validate(leave_req))

        logger.info(
            "Bulk approval by %s: %d approved, %d failed",
            actor.user_id, len(approved), len(failed),
        )
        return BulkApproveResult(approved=approved, failed=failed)

    # ─────────────────────────────────────────────────────────────────
    # Reject (PENDING → REJECTED)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reject_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
        comment: Optional[str],
    ) -> LeaveRequest:
        require_manager(actor.role)
        comment = (comment or "").strip()
        if not comment:
            raise ValidationException({"comment": ["A comment is required when rejecting a request."]})

        leave_req, owner = await _load_request(db, request_id, for_update=True)
        ensure_team_scope(actor, owner.team_id)

        if leave_req.status != LeaveStatus.pending:
            raise FailedPreconditionException(
                f"Only pending requests can be rejected; this one is {leave_req.status.value}."
            )

        before = snapshot(leave_req, _AUDITED_FIELDS)
        leave_req.status = LeaveStatus.rejected
        leave_req.approved_by = actor.user_id
        leave_req.approved_at = _utcnow()
        leave_req.manager_comment = comment
        await db.flush()

        await _audit(db, actor, leave_req, AuditAction.reject, before, snapshot(leave_req, _AUDITED_FIELDS))
        logger.info("Leave request %s rejected by %s", leave_req.id, actor.user_id)

        await notify_leave_rejected(db, leave_req, owner)
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Update
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        data: LeaveRequestUpdate,
        actor: Actor,
    ) -> LeaveRequest:
        """Edit a request while its status allows it.

        Date changes re-validate range, past dates and overlap. Any change
        to a duration field recomputes ``computed_hours``; annual leave is
        re-checked against the balance, excluding this request's own booking.
        """
        leave_req, owner = await _load_request(db, request_id, for_update=True)

        # ── Authorization ───────────────────────────────────────────
        is_owner = actor.user_id == owner.id
        if not is_owner and is_manager(actor.role):
            ensure_team_scope(actor, owner.team_id)
        same_team = is_owner or is_same_team(actor.team_id, owner.team_id)
        if not can_edit_request(owner.id, leave_req.status, actor.user_id, actor.role, same_team):
            raise ForbiddenException("You cannot edit this leave request.")
        if leave_req.status in (LeaveStatus.rejected, LeaveStatus.cancelled):
            raise FailedPreconditionException(
                f"A {leave_req.status.value} request can no longer be edited."
            )

        changes = {
            k: v for k, v in data.model_dump(exclude_unset=True).items()
            if v is not None or k in ("start_time", "end_time", "reason", "attachment_url")
        }
        if not changes:
            return leave_req

        # ── Effective values ────────────────────────────────────────
        start = changes.get("start_date", leave_req.start_date)
        end = changes.get("end_date", leave_req.end_date)
        leave_type = changes.get("type", leave_req.type)

        await lock_user(db, owner.id)

        if "start_date" in changes or "end_date" in changes:
            validate_range(start, end)
            _ensure_not_in_past(start, actor, owner.id)
            await _ensure_no_overlap(db, owner.id, start, end, leave_req.id)

        hours = leave_req.computed_hours
        if _DURATION_FIELDS.intersection(changes):
            hours = await _compute_hours(
                db,
                start,
                end,
                changes.get("is_half_day_start", leave_req.is_half_day_start),
                changes.get("is_half_day_end", leave_req.is_half_day_end),
                changes.get("start_time", leave_req.start_time),
                changes.get("end_time", leave_req.end_time),
            )

        if leave_type == LeaveType.annual_leave:
            await ensure_balance(db, owner.id, start, hours, leave_req.id)

        # ── Apply ───────────────────────────────────────────────────
        before = snapshot(leave_req, _AUDITED_FIELDS)
        for field, value in changes.items():
            setattr(leave_req, field, value)
        leave_req.computed_hours = hours
        await db.flush()

        await _audit(db, actor, leave_req, AuditAction.update, before, snapshot(leave_req, _AUDITED_FIELDS))

        if not is_owner and is_manager_or_admin(actor.role):
            await notify_leave_updated_by_manager(db, leave_req, owner)
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Cancel (DRAFT / PENDING / APPROVED → CANCELLED)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
    ) -> LeaveRequest:
        leave_req, owner = await _load_request(db, request_id, for_update=True)

        if leave_req.status == LeaveStatus.cancelled:
            raise FailedPreconditionException("Leave request is already cancelled.")
        if leave_req.status == LeaveStatus.rejected:
            raise FailedPreconditionException("A rejected request cannot be cancelled.")

        if actor.user_id != owner.id:
            if not is_manager_or_admin(actor.role):
                raise ForbiddenException("You can only cancel your own requests.")
            ensure_team_scope(actor, owner.team_id)

        before = snapshot(leave_req, _AUDITED_FIELDS)
        leave_req.status = LeaveStatus.cancelled
        await db.flush()

        await _audit(db, actor, leave_req, AuditAction.cancel, before, snapshot(leave_req, _AUDITED_FIELDS))
        logger.info("Leave request %s cancelled by %s", leave_req.id, actor.user_id)

        await notify_leave_cancelled(db, leave_req, owner, cancelled_by=actor.user_id)
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Delete (hard)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
    ) -> None:
        """Managers and admins only; employees cancel instead."""
        if not is_manager_or_admin(actor.role):
            raise ForbiddenException("Employees cannot delete requests; cancel the request instead.")

        leave_req, owner = await _load_request(db, request_id, for_update=True)
        ensure_team_scope(actor, owner.team_id)

        before = snapshot(leave_req, _AUDITED_FIELDS)
        await db.delete(leave_req)
        await db.flush()

        await _audit(db, actor, leave_req, AuditAction.delete, before, None)
        logger.info("Leave request %s deleted by %s", request_id, actor.user_id)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Actor,
    ) -> LeaveRequest:
        leave_req, owner = await _load_request(db, request_id)
        ensure_can_access_user(actor, owner.id, owner.team_id)
        return leave_req

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        actor: Actor,
        pagination: PaginationParams,
        *,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        user_id: Optional[uuid.UUID] = None,
        year: Optional[int] = None,
    ) -> PaginatedResponse:
        """List requests visible to the actor.

        Scopes:
          - admin: everything
          - manager: members of their team (nothing without a team)
          - employee: own requests only
        """
        query = select(LeaveRequest).order_by(LeaveRequest.start_date.desc(), LeaveRequest.created_at.desc())

        if is_admin(actor.role):
            pass
        elif is_manager(actor.role):
            if actor.team_id is None:
                query = query.where(false())
            else:
                query = query.join(User, User.id == LeaveRequest.user_id).where(
                    User.team_id == actor.team_id
                )
        else:
            query = query.where(LeaveRequest.user_id == actor.user_id)

        if status is not None:
            query = query.where(LeaveRequest.status == status)
        if leave_type is not None:
            query = query.where(LeaveRequest.type == leave_type)
        if user_id is not None:
            query = query.where(LeaveRequest.user_id == user_id)
        if year is not None:
            query = query.where(
                LeaveRequest.start_date >= date(year, 1, 1),
                LeaveRequest.start_date <= date(year, 12, 31),
            )

        page = await paginate(db, query, pagination, model=LeaveRequest)
        return PaginatedResponse[LeaveRequestResponse](
            data=[LeaveRequestResponse.model_validate(r) for r in page.data],
            meta=page.meta,
        )

    # ─────────────────────────────────────────────────────────────────
    # Calendar
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_calendar(
        db: AsyncSession,
        actor: Actor,
        start: date,
        end: date,
        *,
        team_id: Optional[uuid.UUID] = None,
    ) -> CalendarResponse:
        """Leaves and holidays in ``[start, end]``.

        Employees see their own leaves, or their team's when the company
        setting allows it. Managers and admins see everyone and may filter
        by team. Reason and manager comment are hidden on other people's
        leaves unless the viewer may see them.
        """
        validate_range(start, end)

        query = (
            select(LeaveRequest, User.name, User.team_id)
            .join(User, User.id == LeaveRequest.user_id)
            .where(
                LeaveRequest.status.not_in(CALENDAR_HIDDEN_STATUSES),
                LeaveRequest.start_date <= end,
                LeaveRequest.end_date >= start,
            )
            .order_by(LeaveRequest.start_date, User.name)
        )

        if is_manager_or_admin(actor.role):
            if team_id is not None:
                query = query.where(User.team_id == team_id)
        else:
            policy = await PolicySettingsService.get_settings(db)
            if policy.show_team_calendar_for_employees and actor.team_id is not None:
                query = query.where(User.team_id == actor.team_id)
            else:
                query = query.where(LeaveRequest.user_id == actor.user_id)

        events: list[CalendarEvent] = []
        for leave_req, user_name, owner_team_id in (await db.execute(query)).all():
            payload = LeaveRequestResponse.model_validate(leave_req).model_dump()
            payload = redact_leave_fields(payload, actor, leave_req.user_id, owner_team_id)
            events.append(CalendarEvent(**payload, user_name=user_name, team_id=owner_team_id))

        holidays = await HolidayService.list_holidays(db, start=start, end=end)
        return CalendarResponse(
            start_date=start,
            end_date=end,
            events=events,
            holidays=[HolidayResponse.model_validate(h) for h in holidays],
        )
