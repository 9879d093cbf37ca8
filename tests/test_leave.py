"""Leave module test suite — creation, the submit/approve/reject/cancel state
machine, overlap and team-capacity rules, balance enforcement, editing,
deletion, bulk approval, scoped listing and the team calendar.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.common.audit import AuditLog
from leavetrack.common.constants import LeaveStatus, LeaveType, NotificationType, UserRole
from leavetrack.common.exceptions import (
    FailedPreconditionException,
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from leavetrack.common.pagination import PaginationParams
from leavetrack.leave.models import LeaveRequest
from leavetrack.leave.schemas import LeaveRequestCreate, LeaveRequestUpdate
from leavetrack.leave.service import LeaveService
from leavetrack.notifications.models import Notification
from leavetrack.users.models import Team, User
from leavetrack.vacation_policy.service import PolicySettingsService
from tests.conftest import (
    actor_of,
    future_monday,
    make_holiday,
    make_leave,
    make_team,
    make_user,
)


# ═════════════════════════════════════════════════════════════════════
# Helpers: seed data for leave tests
# ═════════════════════════════════════════════════════════════════════


async def _seed_team(
    db: AsyncSession,
    *,
    max_concurrent_leaves: Optional[int] = None,
) -> tuple[Team, User, User]:
    """A team with one employee and one manager."""
    team = await make_team(db, max_concurrent_leaves=max_concurrent_leaves)
    employee = await make_user(db, team=team, name="Eva Employee")
    manager = await make_user(db, role=UserRole.manager, team=team, name="Martin Manager")
    return team, employee, manager


def _create_body(
    start: date,
    end: Optional[date] = None,
    *,
    type: LeaveType = LeaveType.annual_leave,
    user_id: Optional[uuid.UUID] = None,
    **kwargs,
) -> LeaveRequestCreate:
    return LeaveRequestCreate(
        user_id=user_id,
        type=type,
        start_date=start,
        end_date=end or start,
        **kwargs,
    )


async def _notifications_for(db: AsyncSession, user: User) -> list[Notification]:
    result = await db.execute(
        select(Notification).where(Notification.recipient_id == user.id)
    )
    return list(result.scalars().all())


# ═════════════════════════════════════════════════════════════════════
# 1. Create (→ DRAFT)
# ═════════════════════════════════════════════════════════════════════


class TestCreateRequest:

    async def test_create_happy_path(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()

        leave_req = await LeaveService.create_request(
            db, _create_body(monday, monday + timedelta(days=4), reason="Holiday"), actor_of(employee),
        )

        assert leave_req.status == LeaveStatus.draft
        assert leave_req.computed_hours == Decimal("40.00")
        assert leave_req.user_id == employee.id
        assert leave_req.created_by == employee.id

    async def test_hours_skip_active_holidays_only(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()
        await make_holiday(db, monday + timedelta(days=2))
        await make_holiday(db, monday + timedelta(days=3), is_active=False)

        leave_req = await LeaveService.create_request(
            db, _create_body(monday, monday + timedelta(days=4)), actor_of(employee),
        )
        assert leave_req.computed_hours == Decimal("32.00")

    async def test_half_day_and_partial_time(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()

        half = await LeaveService.create_request(
            db, _create_body(monday, monday + timedelta(days=1), is_half_day_end=True), actor_of(employee),
        )
        assert half.computed_hours == Decimal("12.00")

        partial = await LeaveService.create_request(
            db,
            _create_body(monday + timedelta(weeks=1), type=LeaveType.home_office,
                         start_time="09:00", end_time="11:30"),
            actor_of(employee),
        )
        assert partial.computed_hours == Decimal("2.50")

    async def test_end_before_start_rejected(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()

        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.create_request(
                db, _create_body(monday, monday - timedelta(days=1)), actor_of(employee),
            )
        assert "end_date" in exc_info.value.errors

    async def test_past_start_rejected_for_employee(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        last_week = date.today() - timedelta(days=7)

        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.create_request(
                db, _create_body(last_week, type=LeaveType.sick_leave), actor_of(employee),
            )
        assert "start_date" in exc_info.value.errors

    async def test_manager_may_backdate_for_team_member(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        last_week = date.today() - timedelta(days=7)

        leave_req = await LeaveService.create_request(
            db,
            _create_body(last_week, type=LeaveType.sick_leave, user_id=employee.id),
            actor_of(manager),
        )
        assert leave_req.user_id == employee.id
        assert leave_req.created_by == manager.id

    async def test_manager_may_not_backdate_own_request(self, db: AsyncSession):
        _, _, manager = await _seed_team(db)
        last_week = date.today() - timedelta(days=7)

        with pytest.raises(ValidationException):
            await LeaveService.create_request(
                db, _create_body(last_week, type=LeaveType.sick_leave), actor_of(manager),
            )

    async def test_employee_cannot_create_for_someone_else(self, db: AsyncSession):
        team, employee, _ = await _seed_team(db)
        colleague = await make_user(db, team=team)

        with pytest.raises(ForbiddenException):
            await LeaveService.create_request(
                db, _create_body(future_monday(), user_id=colleague.id), actor_of(employee),
            )

    async def test_manager_cannot_create_for_other_team(self, db: AsyncSession):
        _, _, manager = await _seed_team(db)
        _, outsider, _ = await _seed_team(db)

        with pytest.raises(ForbiddenException):
            await LeaveService.create_request(
                db, _create_body(future_monday(), user_id=outsider.id), actor_of(manager),
            )

    async def test_annual_leave_over_balance_rejected(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()

        # Five full weeks = 200 h against a 160 h allowance
        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveService.create_request(
                db, _create_body(monday, monday + timedelta(weeks=4, days=4)), actor_of(employee),
            )
        assert exc_info.value.remaining_hours == Decimal("160.00")

    async def test_other_types_skip_balance(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()

        leave_req = await LeaveService.create_request(
            db,
            _create_body(monday, monday + timedelta(weeks=4, days=4), type=LeaveType.unpaid_leave),
            actor_of(employee),
        )
        assert leave_req.computed_hours == Decimal("200.00")


# ═════════════════════════════════════════════════════════════════════
# 2. Submit (DRAFT → PENDING)
# ═════════════════════════════════════════════════════════════════════


class TestSubmitRequest:

    async def test_submit_notifies_team_managers(self, db: AsyncSession):
        team, employee, manager = await _seed_team(db)
        other_manager = await make_user(db, role=UserRole.manager, team=await make_team(db))
        draft = await make_leave(db, employee, start_date=future_monday(), status=LeaveStatus.draft)

        result = await LeaveService.submit_request(db, draft.id, actor_of(employee))

        assert result.status == LeaveStatus.pending
        inbox = await _notifications_for(db, manager)
        assert [n.type for n in inbox] == [NotificationType.new_pending_request]
        assert inbox[0].dedupe_key == f"leave_request:{draft.id}:submitted:{manager.id}"
        assert await _notifications_for(db, other_manager) == []

    async def test_unaffiliated_requester_notifies_all_managers(self, db: AsyncSession):
        loner = await make_user(db)
        manager_a = await make_user(db, role=UserRole.manager, team=await make_team(db))
        manager_b = await make_user(db, role=UserRole.manager, team=await make_team(db))
        draft = await make_leave(db, loner, start_date=future_monday(), status=LeaveStatus.draft)

        await LeaveService.submit_request(db, draft.id, actor_of(loner))

        assert len(await _notifications_for(db, manager_a)) == 1
        assert len(await _notifications_for(db, manager_b)) == 1

    async def test_submit_requires_draft(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        pending = await make_leave(db, employee, start_date=future_monday())

        with pytest.raises(FailedPreconditionException):
            await LeaveService.submit_request(db, pending.id, actor_of(employee))

    async def test_overlap_rejected(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()
        await make_leave(db, employee, start_date=monday, end_date=monday + timedelta(days=2))
        draft = await make_leave(
            db, employee, start_date=monday + timedelta(days=2), end_date=monday + timedelta(days=4),
            status=LeaveStatus.draft,
        )

        with pytest.raises(FailedPreconditionException):
            await LeaveService.submit_request(db, draft.id, actor_of(employee))

    async def test_adjacent_range_accepted(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()
        await make_leave(db, employee, start_date=monday, end_date=monday + timedelta(days=1))
        draft = await make_leave(
            db, employee, start_date=monday + timedelta(days=2), end_date=monday + timedelta(days=3),
            status=LeaveStatus.draft,
        )

        result = await LeaveService.submit_request(db, draft.id, actor_of(employee))
        assert result.status == LeaveStatus.pending

    async def test_cancelled_requests_do_not_overlap(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()
        await make_leave(db, employee, start_date=monday, status=LeaveStatus.cancelled)
        draft = await make_leave(db, employee, start_date=monday, status=LeaveStatus.draft)

        result = await LeaveService.submit_request(db, draft.id, actor_of(employee))
        assert result.status == LeaveStatus.pending

    async def test_unknown_request(self, db: AsyncSession):
        employee = await make_user(db)
        with pytest.raises(NotFoundException):
            await LeaveService.submit_request(db, uuid.uuid4(), actor_of(employee))


# ═════════════════════════════════════════════════════════════════════
# 3. Approve / Reject
# ═════════════════════════════════════════════════════════════════════


class TestApproveRequest:

    async def test_approve_happy_path(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        pending = await make_leave(db, employee, start_date=future_monday())

        result = await LeaveService.approve_request(db, pending.id, actor_of(manager), comment=" Enjoy ")

        assert result.status == LeaveStatus.approved
        assert result.approved_by == manager.id
        assert result.approved_at is not None
        assert result.manager_comment == "Enjoy"
        inbox = await _notifications_for(db, employee)
        assert [n.type for n in inbox] == [NotificationType.request_approved]

    async def test_admin_approves_any_team(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        admin = await make_user(db, role=UserRole.admin)
        pending = await make_leave(db, employee, start_date=future_monday())

        result = await LeaveService.approve_request(db, pending.id, actor_of(admin))
        assert result.status == LeaveStatus.approved

    @pytest.mark.parametrize("status", [LeaveStatus.draft, LeaveStatus.approved, LeaveStatus.rejected])
    async def test_approve_requires_pending(self, db: AsyncSession, status: LeaveStatus):
        _, employee, manager = await _seed_team(db)
        leave_req = await make_leave(db, employee, start_date=future_monday(), status=status)

        with pytest.raises(FailedPreconditionException):
            await LeaveService.approve_request(db, leave_req.id, actor_of(manager))

    async def test_employee_cannot_approve(self, db: AsyncSession):
        team, employee, _ = await _seed_team(db)
        colleague = await make_user(db, team=team)
        pending = await make_leave(db, employee, start_date=future_monday())

        with pytest.raises(ForbiddenException):
            await LeaveService.approve_request(db, pending.id, actor_of(colleague))

    async def test_other_team_manager_cannot_approve(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        _, _, outsider_manager = await _seed_team(db)
        pending = await make_leave(db, employee, start_date=future_monday())

        with pytest.raises(ForbiddenException):
            await LeaveService.approve_request(db, pending.id, actor_of(outsider_manager))

    async def test_team_cap_blocks_overlapping_approval(self, db: AsyncSession):
        team, employee, manager = await _seed_team(db, max_concurrent_leaves=1)
        colleague = await make_user(db, team=team)
        monday = future_monday()
        await make_leave(db, colleague, start_date=monday, end_date=monday + timedelta(days=4),
                         status=LeaveStatus.approved)
        pending = await make_leave(db, employee, start_date=monday + timedelta(days=4))

        with pytest.raises(FailedPreconditionException):
            await LeaveService.approve_request(db, pending.id, actor_of(manager))

    async def test_team_cap_ignores_non_overlapping_and_pending(self, db: AsyncSession):
        team, employee, manager = await _seed_team(db, max_concurrent_leaves=1)
        colleague = await make_user(db, team=team)
        monday = future_monday()
        await make_leave(db, colleague, start_date=monday, status=LeaveStatus.approved)
        await make_leave(db, colleague, start_date=monday + timedelta(days=1), status=LeaveStatus.pending)
        pending = await make_leave(db, employee, start_date=monday + timedelta(days=1))

        result = await LeaveService.approve_request(db, pending.id, actor_of(manager))
        assert result.status == LeaveStatus.approved

    async def test_balance_rechecked_on_approval(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        monday = future_monday()
        await make_leave(db, employee, start_date=monday, computed_hours=Decimal("156"),
                         status=LeaveStatus.approved)
        pending = await make_leave(db, employee, start_date=monday + timedelta(weeks=6))

        with pytest.raises(InsufficientBalanceException):
            await LeaveService.approve_request(db, pending.id, actor_of(manager))

    async def test_approve_rechecks_overlap(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        monday = future_monday()
        await make_leave(db, employee, start_date=monday, status=LeaveStatus.approved)
        pending = await make_leave(db, employee, start_date=monday, type=LeaveType.home_office)

        with pytest.raises(FailedPreconditionException):
            await LeaveService.approve_request(db, pending.id, actor_of(manager))


class TestRejectRequest:

    async def test_reject_requires_comment(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        pending = await make_leave(db, employee, start_date=future_monday())

        with pytest.raises(ValidationException):
            await LeaveService.reject_request(db, pending.id, actor_of(manager), "   ")

    async def test_reject_happy_path(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        pending = await make_leave(db, employee, start_date=future_monday())

        result = await LeaveService.reject_request(db, pending.id, actor_of(manager), "Busy week")

        assert result.status == LeaveStatus.rejected
        assert result.manager_comment == "Busy week"
        inbox = await _notifications_for(db, employee)
        assert [n.type for n in inbox] == [NotificationType.request_rejected]

    async def test_reject_requires_pending(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        approved = await make_leave(db, employee, start_date=future_monday(), status=LeaveStatus.approved)

        with pytest.raises(FailedPreconditionException):
            await LeaveService.reject_request(db, approved.id, actor_of(manager), "No")


class TestSideEffectFailures:
    """Audit and notification writes must never undo the transition they describe."""

    async def test_approval_survives_audit_failure(self, db: AsyncSession, caplog):
        _, employee, manager = await _seed_team(db)
        pending = await make_leave(db, employee, start_date=future_monday())
        request_id = pending.id
        await db.execute(text("DROP TABLE audit_logs"))

        await LeaveService.approve_request(db, request_id, actor_of(manager))
        await db.commit()

        refreshed = await db.get(LeaveRequest, request_id, populate_existing=True)
        assert refreshed.status == LeaveStatus.approved
        assert refreshed.approved_by == manager.id
        assert "Audit write failed" in caplog.text
        inbox = await _notifications_for(db, employee)
        assert [n.type for n in inbox] == [NotificationType.request_approved]

    async def test_approval_survives_notification_failure(self, db: AsyncSession, caplog):
        _, employee, manager = await _seed_team(db)
        pending = await make_leave(db, employee, start_date=future_monday())
        request_id = pending.id
        await db.execute(text("DROP TABLE notifications"))

        await LeaveService.approve_request(db, request_id, actor_of(manager))
        await db.commit()

        refreshed = await db.get(LeaveRequest, request_id, populate_existing=True)
        assert refreshed.status == LeaveStatus.approved
        assert "Failed to store request_approved notification" in caplog.text
        audit_actions = (await db.execute(
            select(AuditLog.action).where(AuditLog.entity_id == request_id)
        )).scalars().all()
        assert audit_actions == ["approve"]

    async def test_rejection_survives_notification_failure(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        pending = await make_leave(db, employee, start_date=future_monday())
        request_id = pending.id
        await db.execute(text("DROP TABLE notifications"))

        await LeaveService.reject_request(db, request_id, actor_of(manager), "Busy week")
        await db.commit()

        refreshed = await db.get(LeaveRequest, request_id, populate_existing=True)
        assert refreshed.status == LeaveStatus.rejected
        assert refreshed.manager_comment == "Busy week"


# ═════════════════════════════════════════════════════════════════════
# 4. Cancel / Delete
# ═════════════════════════════════════════════════════════════════════


class TestCancelRequest:

    @pytest.mark.parametrize("status", [LeaveStatus.draft, LeaveStatus.pending, LeaveStatus.approved])
    async def test_owner_cancels(self, db: AsyncSession, status: LeaveStatus):
        _, employee, _ = await _seed_team(db)
        leave_req = await make_leave(db, employee, start_date=future_monday(), status=status)

        result = await LeaveService.cancel_request(db, leave_req.id, actor_of(employee))
        assert result.status == LeaveStatus.cancelled

    async def test_cancel_twice_fails(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        leave_req = await make_leave(db, employee, start_date=future_monday())
        await LeaveService.cancel_request(db, leave_req.id, actor_of(employee))

        with pytest.raises(FailedPreconditionException):
            await LeaveService.cancel_request(db, leave_req.id, actor_of(employee))

    async def test_rejected_cannot_be_cancelled(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        leave_req = await make_leave(db, employee, start_date=future_monday(), status=LeaveStatus.rejected)

        with pytest.raises(FailedPreconditionException):
            await LeaveService.cancel_request(db, leave_req.id, actor_of(employee))

    async def test_colleague_cannot_cancel(self, db: AsyncSession):
        team, employee, _ = await _seed_team(db)
        colleague = await make_user(db, team=team)
        leave_req = await make_leave(db, employee, start_date=future_monday())

        with pytest.raises(ForbiddenException):
            await LeaveService.cancel_request(db, leave_req.id, actor_of(colleague))

    async def test_manager_cancel_notifies_other_managers(self, db: AsyncSession):
        team, employee, manager = await _seed_team(db)
        deputy = await make_user(db, role=UserRole.manager, team=team)
        leave_req = await make_leave(db, employee, start_date=future_monday(), status=LeaveStatus.approved)

        await LeaveService.cancel_request(db, leave_req.id, actor_of(manager))

        assert await _notifications_for(db, manager) == []
        inbox = await _notifications_for(db, deputy)
        assert [n.type for n in inbox] == [NotificationType.request_cancelled]


class TestDeleteRequest:

    async def test_employee_cannot_delete_own_request(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        leave_req = await make_leave(db, employee, start_date=future_monday(), status=LeaveStatus.draft)

        with pytest.raises(ForbiddenException):
            await LeaveService.delete_request(db, leave_req.id, actor_of(employee))

    async def test_manager_deletes(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        leave_req = await make_leave(db, employee, start_date=future_monday())
        request_id = leave_req.id

        await LeaveService.delete_request(db, request_id, actor_of(manager))

        assert await db.get(LeaveRequest, request_id) is None


# ═════════════════════════════════════════════════════════════════════
# 5. Update
# ═════════════════════════════════════════════════════════════════════


class TestUpdateRequest:

    async def test_owner_edit_recomputes_hours(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()
        leave_req = await LeaveService.create_request(db, _create_body(monday), actor_of(employee))

        result = await LeaveService.update_request(
            db, leave_req.id,
            LeaveRequestUpdate(end_date=monday + timedelta(days=2), is_half_day_start=True),
            actor_of(employee),
        )
        assert result.end_date == monday + timedelta(days=2)
        assert result.computed_hours == Decimal("20.00")

    async def test_owner_cannot_edit_approved(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        approved = await make_leave(db, employee, start_date=future_monday(), status=LeaveStatus.approved)

        with pytest.raises(ForbiddenException):
            await LeaveService.update_request(
                db, approved.id, LeaveRequestUpdate(reason="changed"), actor_of(employee),
            )

    async def test_manager_edit_notifies_owner(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        approved = await make_leave(db, employee, start_date=future_monday(), status=LeaveStatus.approved)

        result = await LeaveService.update_request(
            db, approved.id, LeaveRequestUpdate(reason="Moved by manager"), actor_of(manager),
        )

        assert result.reason == "Moved by manager"
        inbox = await _notifications_for(db, employee)
        assert [n.type for n in inbox] == [NotificationType.request_updated_by_manager]

    async def test_terminal_request_cannot_be_edited(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        admin = await make_user(db, role=UserRole.admin)
        cancelled = await make_leave(db, employee, start_date=future_monday(), status=LeaveStatus.cancelled)

        with pytest.raises(FailedPreconditionException):
            await LeaveService.update_request(
                db, cancelled.id, LeaveRequestUpdate(reason="x"), actor_of(admin),
            )

    async def test_balance_excludes_own_booking(self, db: AsyncSession):
        """A request using the whole allowance can still be edited."""
        _, employee, _ = await _seed_team(db)
        monday = future_monday()
        full = await make_leave(db, employee, start_date=monday, end_date=monday + timedelta(weeks=3, days=4),
                                computed_hours=Decimal("160"))

        result = await LeaveService.update_request(
            db, full.id, LeaveRequestUpdate(reason="Long trip"), actor_of(employee),
        )
        assert result.reason == "Long trip"

    async def test_switch_to_annual_checks_balance(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()
        await make_leave(db, employee, start_date=monday, computed_hours=Decimal("160"),
                         status=LeaveStatus.approved)
        other = await make_leave(db, employee, start_date=monday + timedelta(weeks=2),
                                 type=LeaveType.unpaid_leave, status=LeaveStatus.draft)

        with pytest.raises(InsufficientBalanceException):
            await LeaveService.update_request(
                db, other.id, LeaveRequestUpdate(type=LeaveType.annual_leave), actor_of(employee),
            )

    async def test_date_change_checks_overlap(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()
        await make_leave(db, employee, start_date=monday + timedelta(days=3))
        draft = await make_leave(db, employee, start_date=monday, status=LeaveStatus.draft)

        with pytest.raises(FailedPreconditionException):
            await LeaveService.update_request(
                db, draft.id, LeaveRequestUpdate(end_date=monday + timedelta(days=3)), actor_of(employee),
            )


# ═════════════════════════════════════════════════════════════════════
# 6. Bulk approval
# ═════════════════════════════════════════════════════════════════════


class TestBulkApprove:

    async def test_partial_success(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        monday = future_monday()
        first = await make_leave(db, employee, start_date=monday)
        second = await make_leave(db, employee, start_date=monday + timedelta(days=1))
        draft = await make_leave(db, employee, start_date=monday + timedelta(days=2), status=LeaveStatus.draft)
        missing = uuid.uuid4()

        result = await LeaveService.bulk_approve(
            db, [first.id, second.id, draft.id, missing], actor_of(manager),
        )

        assert {r.id for r in result.approved} == {first.id, second.id}
        failures = {f.id: f.error for f in result.failed}
        assert failures == {draft.id: "failed-precondition", missing: "not-found"}

    async def test_employee_denied(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        with pytest.raises(ForbiddenException):
            await LeaveService.bulk_approve(db, [uuid.uuid4()], actor_of(employee))


# ═════════════════════════════════════════════════════════════════════
# 7. Reads: scoped list, single get, calendar
# ═════════════════════════════════════════════════════════════════════


class TestReads:

    async def test_list_scopes(self, db: AsyncSession):
        team, employee, manager = await _seed_team(db)
        colleague = await make_user(db, team=team)
        _, outsider, _ = await _seed_team(db)
        admin = await make_user(db, role=UserRole.admin)
        monday = future_monday()
        for user in (employee, colleague, outsider):
            await make_leave(db, user, start_date=monday)

        params = PaginationParams(page=1, page_size=50, sort=None)
        own = await LeaveService.list_requests(db, actor_of(employee), params)
        team_view = await LeaveService.list_requests(db, actor_of(manager), params)
        everything = await LeaveService.list_requests(db, actor_of(admin), params)

        assert {r.user_id for r in own.data} == {employee.id}
        assert {r.user_id for r in team_view.data} == {employee.id, colleague.id}
        assert everything.meta.total == 3

    async def test_list_filters(self, db: AsyncSession):
        _, employee, _ = await _seed_team(db)
        monday = future_monday()
        await make_leave(db, employee, start_date=monday, status=LeaveStatus.approved)
        await make_leave(db, employee, start_date=monday + timedelta(days=1), type=LeaveType.sick_leave)

        params = PaginationParams(page=1, page_size=50, sort=None)
        approved = await LeaveService.list_requests(db, actor_of(employee), params, status=LeaveStatus.approved)
        sick = await LeaveService.list_requests(db, actor_of(employee), params, leave_type=LeaveType.sick_leave)
        other_year = await LeaveService.list_requests(db, actor_of(employee), params, year=monday.year + 1)

        assert approved.meta.total == 1
        assert sick.meta.total == 1
        assert other_year.meta.total == 0

    async def test_get_scoped(self, db: AsyncSession):
        _, employee, manager = await _seed_team(db)
        _, _, outsider_manager = await _seed_team(db)
        leave_req = await make_leave(db, employee, start_date=future_monday())

        assert (await LeaveService.get_request(db, leave_req.id, actor_of(manager))).id == leave_req.id
        with pytest.raises(ForbiddenException):
            await LeaveService.get_request(db, leave_req.id, actor_of(outsider_manager))


class TestCalendar:

    async def _seed(self, db: AsyncSession):
        team, employee, manager = await _seed_team(db)
        colleague = await make_user(db, team=team, name="Carl Colleague")
        monday = future_monday()
        await make_leave(db, employee, start_date=monday, status=LeaveStatus.approved,
                         reason="Dentist", manager_comment="Get well")
        await make_leave(db, colleague, start_date=monday, reason="Wedding")
        await make_leave(db, colleague, start_date=monday + timedelta(days=1), status=LeaveStatus.draft)
        await make_holiday(db, monday + timedelta(days=3), name="Founders Day")
        return team, employee, manager, colleague, monday

    async def test_employee_sees_own_events_by_default(self, db: AsyncSession):
        _, employee, _, _, monday = await self._seed(db)

        calendar = await LeaveService.get_calendar(db, actor_of(employee), monday, monday + timedelta(days=4))

        assert [e.user_id for e in calendar.events] == [employee.id]
        assert calendar.events[0].reason == "Dentist"
        assert [h.name for h in calendar.holidays] == ["Founders Day"]

    async def test_team_calendar_redacts_colleagues(self, db: AsyncSession):
        _, employee, _, colleague, monday = await self._seed(db)
        policy = await PolicySettingsService.get_settings(db)
        policy.show_team_calendar_for_employees = True
        await db.flush()

        calendar = await LeaveService.get_calendar(db, actor_of(employee), monday, monday + timedelta(days=4))

        events = {e.user_id: e for e in calendar.events}
        assert set(events) == {employee.id, colleague.id}
        assert events[employee.id].reason == "Dentist"
        assert events[colleague.id].reason is None
        assert events[colleague.id].user_name == "Carl Colleague"

    async def test_manager_sees_private_fields_of_team(self, db: AsyncSession):
        _, employee, manager, colleague, monday = await self._seed(db)

        calendar = await LeaveService.get_calendar(db, actor_of(manager), monday, monday + timedelta(days=4))

        events = {e.user_id: e for e in calendar.events}
        assert events[colleague.id].reason == "Wedding"
        assert events[employee.id].manager_comment == "Get well"

    async def test_other_team_manager_sees_redacted_events(self, db: AsyncSession):
        team, employee, _, _, monday = await self._seed(db)
        _, _, outsider_manager = await _seed_team(db)

        calendar = await LeaveService.get_calendar(
            db, actor_of(outsider_manager), monday, monday, team_id=team.id,
        )

        events = {e.user_id: e for e in calendar.events}
        assert events[employee.id].reason is None
        assert events[employee.id].manager_comment is None
