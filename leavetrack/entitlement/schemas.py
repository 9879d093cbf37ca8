"""Pydantic v2 schemas for leave balances."""

from __future__ import annotations

import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class AllowanceBreakdown(BaseModel):
    """How a user's annual-leave allowance for one year was resolved."""

    base_hours: Decimal
    carry_over_hours: Decimal = Decimal("0")
    overridden: bool = False

    @property
    def total_hours(self) -> Decimal:
        return self.base_hours + self.carry_over_hours


class LeaveBalanceSummary(BaseModel):
    user_id: uuid.UUID
    year: int
    allowance_hours: Decimal
    base_allowance_hours: Decimal
    carry_over_hours: Decimal
    used_hours: Decimal
    remaining_hours: Decimal
    overridden: bool


class LeaveBalanceOverride(BaseModel):
    allowance_hours: Decimal = Field(..., ge=0, max_digits=7, decimal_places=2)
    used_hours: Decimal = Field(default=Decimal("0"), ge=0, max_digits=7, decimal_places=2)


class LeaveBalanceOverrideResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    year: int
    allowance_hours: Decimal
    used_hours: Decimal
