"""Pydantic v2 schemas for company leave policy settings."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leavetrack.common.constants import AccrualPolicy


class PolicySettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    annual_leave_accrual_policy: AccrualPolicy
    carry_over_enabled: bool
    carry_over_limit_hours: Decimal
    show_team_calendar_for_employees: bool
    updated_at: Optional[datetime] = None


class PolicySettingsUpdate(BaseModel):
    annual_leave_accrual_policy: Optional[AccrualPolicy] = None
    carry_over_enabled: Optional[bool] = None
    carry_over_limit_hours: Optional[Decimal] = Field(default=None, ge=0, max_digits=7, decimal_places=2)
    show_team_calendar_for_employees: Optional[bool] = None
