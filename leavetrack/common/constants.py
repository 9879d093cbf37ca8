"""Enums and constants for LeaveTrack — matching the database ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    annual_leave = "annual_leave"
    sick_leave = "sick_leave"
    home_office = "home_office"
    unpaid_leave = "unpaid_leave"
    other = "other"


class LeaveStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class AccrualPolicy(str, enum.Enum):
    year_start = "year_start"
    pro_rata = "pro_rata"


# Statuses that count against overlap checks, the team cap and the balance ledger
BOOKED_STATUSES: tuple[LeaveStatus, ...] = (LeaveStatus.pending, LeaveStatus.approved)

# Statuses the owner may still edit
EDITABLE_STATUSES: tuple[LeaveStatus, ...] = (LeaveStatus.draft, LeaveStatus.pending)

# Statuses hidden from the shared calendar
CALENDAR_HIDDEN_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.draft,
    LeaveStatus.rejected,
    LeaveStatus.cancelled,
)


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    new_pending_request = "new_pending_request"
    request_approved = "request_approved"
    request_rejected = "request_rejected"
    request_updated_by_manager = "request_updated_by_manager"
    request_cancelled = "request_cancelled"


# ── Audit ───────────────────────────────────────────────────────────

class AuditAction(str, enum.Enum):
    create = "create"
    update = "update"
    delete = "delete"
    submit = "submit"
    approve = "approve"
    bulk_approve = "bulk_approve"
    reject = "reject"
    cancel = "cancel"
    deactivate = "deactivate"


# ── Working time / entitlement ──────────────────────────────────────

HOURS_PER_WORKDAY = Decimal("8")
HALF_DAY = Decimal("0.5")

BASE_ALLOWANCE_DAYS = 20
SENIOR_ALLOWANCE_DAYS = 25
SENIOR_AGE_THRESHOLD = 33

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
AUDIT_LOG_LIMIT = 100
