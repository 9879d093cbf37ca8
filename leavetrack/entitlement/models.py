"""LeaveBalance ORM model: optional per-user, per-year allowance override."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leavetrack.database import Base


class LeaveBalance(Base):
    """When present, ``allowance_hours`` replaces the computed allowance."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "year", name="uq_leave_balance_user_year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False,
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    allowance_hours: Mapped[Decimal] = mapped_column(sa.Numeric(7, 2), nullable=False)
    used_hours: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
