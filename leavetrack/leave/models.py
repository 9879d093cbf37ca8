"""LeaveRequest ORM model."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leavetrack.common.constants import LeaveStatus, LeaveType
from leavetrack.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_requests_date_range"),
        sa.CheckConstraint("computed_hours >= 0", name="ck_leave_requests_hours"),
        sa.Index("ix_leave_requests_user_dates", "user_id", "start_date", "end_date"),
        sa.Index("ix_leave_requests_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False,
    )
    type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    start_time: Mapped[Optional[time]] = mapped_column(sa.Time)
    end_time: Mapped[Optional[time]] = mapped_column(sa.Time)
    is_half_day_start: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    is_half_day_end: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.draft,
    )
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    manager_comment: Mapped[Optional[str]] = mapped_column(sa.Text)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    # Derived from the date/time/half-day fields; never taken from input
    computed_hours: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"),
    )
    attachment_url: Mapped[Optional[str]] = mapped_column(sa.String(500))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_utcnow,
        server_default=sa.func.now(),
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} {self.type.value} "
            f"{self.start_date}..{self.end_date} {self.status.value}>"
        )
