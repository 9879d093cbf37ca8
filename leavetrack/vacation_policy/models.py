"""CompanySettings ORM model: the single process-wide policy row."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from leavetrack.common.constants import AccrualPolicy
from leavetrack.database import Base

SETTINGS_ROW_ID = 1


class CompanySettings(Base):
    __tablename__ = "company_settings"
    __table_args__ = (
        sa.CheckConstraint(f"id = {SETTINGS_ROW_ID}", name="ck_company_settings_singleton"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, default=SETTINGS_ROW_ID)
    annual_leave_accrual_policy: Mapped[AccrualPolicy] = mapped_column(
        sa.Enum(AccrualPolicy, name="accrual_policy"),
        nullable=False,
        default=AccrualPolicy.year_start,
    )
    carry_over_enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    # 0 = cap only by the current-year group allowance
    carry_over_limit_hours: Mapped[Decimal] = mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"),
    )
    show_team_calendar_for_employees: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
