"""Balance ledger, allowance resolution and the annual-leave balance check."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.policy import Actor, ensure_can_access_user, require_admin
from leavetrack.calendar.dates import round_hours
from leavetrack.common.audit import record_audit, snapshot
from leavetrack.common.constants import BOOKED_STATUSES, AuditAction, LeaveType
from leavetrack.common.exceptions import InsufficientBalanceException, NotFoundException
from leavetrack.entitlement.models import LeaveBalance
from leavetrack.entitlement.rules import compute_allowance, compute_carry_over, group_allowance
from leavetrack.entitlement.schemas import (
    AllowanceBreakdown,
    LeaveBalanceOverride,
    LeaveBalanceSummary,
)
from leavetrack.leave.models import LeaveRequest
from leavetrack.users.models import User
from leavetrack.vacation_policy.models import CompanySettings
from leavetrack.vacation_policy.service import PolicySettingsService

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


# ── Ledger collaborator ─────────────────────────────────────────────

async def booked_annual_hours(
    db: AsyncSession,
    user_id: uuid.UUID,
    year: int,
    exclude_request_id: Optional[uuid.UUID] = None,
) -> Decimal:
    """Hours of PENDING/APPROVED annual leave starting in *year*."""
    query = select(func.coalesce(func.sum(LeaveRequest.computed_hours), 0)).where(
        LeaveRequest.user_id == user_id,
        LeaveRequest.type == LeaveType.annual_leave,
        LeaveRequest.status.in_(BOOKED_STATUSES),
        LeaveRequest.start_date >= date(year, 1, 1),
        LeaveRequest.start_date <= date(year, 12, 31),
    )
    if exclude_request_id is not None:
        query = query.where(LeaveRequest.id != exclude_request_id)
    total = (await db.execute(query)).scalar_one()
    return round_hours(Decimal(str(total)))


async def get_override(db: AsyncSession, user_id: uuid.UUID, year: int) -> Optional[LeaveBalance]:
    result = await db.execute(
        select(LeaveBalance).where(LeaveBalance.user_id == user_id, LeaveBalance.year == year)
    )
    return result.scalars().first()


async def used_hours(
    db: AsyncSession,
    user_id: uuid.UUID,
    year: int,
    override: Optional[LeaveBalance] = None,
    exclude_request_id: Optional[uuid.UUID] = None,
) -> Decimal:
    """Booked hours plus any usage recorded on the override row."""
    booked = await booked_annual_hours(db, user_id, year, exclude_request_id)
    if override is not None:
        booked += Decimal(override.used_hours)
    return booked


# ── Allowance resolution ────────────────────────────────────────────

def _computed_allowance(user: User, year: int, policy: CompanySettings) -> Decimal:
    return compute_allowance(
        user.birth_date,
        user.has_child,
        year,
        user.employment_start_date,
        user.manual_leave_allowance_hours,
        policy.annual_leave_accrual_policy,
    )


async def resolve_user_allowance(
    db: AsyncSession,
    user: User,
    year: int,
    policy: Optional[CompanySettings] = None,
) -> AllowanceBreakdown:
    """
    Allowance for *user* in *year*.

    An override row for the year wins outright. Otherwise the policy
    allowance applies, plus carry-over from the previous year when
    enabled. The previous year is resolved one level deep only: its
    override row if present, else its computed allowance.
    """
    override = await get_override(db, user.id, year)
    if override is not None:
        return AllowanceBreakdown(base_hours=Decimal(override.allowance_hours), overridden=True)

    if policy is None:
        policy = await PolicySettingsService.get_settings(db)

    base = _computed_allowance(user, year, policy)
    if not policy.carry_over_enabled:
        return AllowanceBreakdown(base_hours=base)

    previous_year = year - 1
    previous_override = await get_override(db, user.id, previous_year)
    if previous_override is not None:
        previous_allowance = Decimal(previous_override.allowance_hours)
    else:
        previous_allowance = _computed_allowance(user, previous_year, policy)
    previous_used = await used_hours(db, user.id, previous_year, previous_override)

    limit = group_allowance(user.birth_date, user.has_child, year)
    if policy.carry_over_limit_hours and policy.carry_over_limit_hours > 0:
        limit = min(limit, Decimal(policy.carry_over_limit_hours))

    carry_over = compute_carry_over(previous_allowance, previous_used, limit)
    return AllowanceBreakdown(base_hours=base, carry_over_hours=carry_over)


async def _load_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundException("User", user_id)
    return user


# ── Balance check ───────────────────────────────────────────────────

async def ensure_balance(
    db: AsyncSession,
    user_id: uuid.UUID,
    start_date: date,
    requested_hours: Decimal,
    exclude_request_id: Optional[uuid.UUID] = None,
) -> None:
    """Raise ``InsufficientBalanceException`` if *requested_hours* of annual
    leave starting on *start_date* exceed what is left for that year."""
    if requested_hours <= 0:
        return

    user = await _load_user(db, user_id)
    year = start_date.year
    allowance = await resolve_user_allowance(db, user, year)
    override = await get_override(db, user_id, year)
    booked = await used_hours(db, user_id, year, override, exclude_request_id)
    remaining = round_hours(allowance.total_hours - booked)

    if requested_hours > remaining:
        logger.info(
            "Balance check failed for user %s in %d: requested %s, remaining %s",
            user_id, year, requested_hours, remaining,
        )
        raise InsufficientBalanceException(remaining_hours=remaining, requested_hours=requested_hours)


# ── Service ─────────────────────────────────────────────────────────

class LeaveBalanceService:

    @staticmethod
    async def get_summary(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
        actor: Actor,
    ) -> LeaveBalanceSummary:
        user = await _load_user(db, user_id)
        ensure_can_access_user(actor, user.id, user.team_id)

        allowance = await resolve_user_allowance(db, user, year)
        override = await get_override(db, user.id, year)
        used = await used_hours(db, user.id, year, override)
        total = allowance.total_hours
        return LeaveBalanceSummary(
            user_id=user.id,
            year=year,
            allowance_hours=total,
            base_allowance_hours=allowance.base_hours,
            carry_over_hours=allowance.carry_over_hours,
            used_hours=used,
            remaining_hours=round_hours(total - used),
            overridden=allowance.overridden,
        )

    @staticmethod
    async def set_override(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
        data: LeaveBalanceOverride,
        actor: Actor,
    ) -> LeaveBalance:
        """Create or replace the allowance override for *user_id* in *year*."""
        require_admin(actor.role)
        await _load_user(db, user_id)

        row = await get_override(db, user_id, year)
        fields = ("user_id", "year", "allowance_hours", "used_hours")
        before = snapshot(row, fields) if row is not None else None
        if row is None:
            row = LeaveBalance(user_id=user_id, year=year)
            db.add(row)
        row.allowance_hours = data.allowance_hours
        row.used_hours = data.used_hours
        await db.flush()

        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="leave_balance",
            entity_id=row.id,
            action=AuditAction.update if before else AuditAction.create,
            before=before,
            after=snapshot(row, fields),
            subject_user_id=user_id,
        )
        return row
