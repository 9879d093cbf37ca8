"""Common module — shared utilities for LeaveTrack."""

from leavetrack.common.audit import AuditLog, record_audit, snapshot
from leavetrack.common.constants import (
    BOOKED_STATUSES,
    DATE_FORMAT,
    DEFAULT_PAGE_SIZE,
    HOURS_PER_WORKDAY,
    MAX_PAGE_SIZE,
    AccrualPolicy,
    AuditAction,
    LeaveStatus,
    LeaveType,
    NotificationType,
    UserRole,
)
from leavetrack.common.exceptions import (
    AppException,
    ConflictError,
    FailedPreconditionException,
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    UnauthenticatedException,
    ValidationException,
    register_exception_handlers,
)
from leavetrack.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditLog",
    "record_audit",
    "snapshot",
    # Constants / Enums
    "AccrualPolicy",
    "AuditAction",
    "LeaveStatus",
    "LeaveType",
    "NotificationType",
    "UserRole",
    "BOOKED_STATUSES",
    "DATE_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "HOURS_PER_WORKDAY",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "FailedPreconditionException",
    "ForbiddenException",
    "InsufficientBalanceException",
    "NotFoundException",
    "UnauthenticatedException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
