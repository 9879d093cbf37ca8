"""Leave balance endpoints."""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import get_current_actor
from leavetrack.auth.policy import Actor
from leavetrack.database import get_db
from leavetrack.entitlement.schemas import (
    LeaveBalanceOverride,
    LeaveBalanceOverrideResponse,
    LeaveBalanceSummary,
)
from leavetrack.entitlement.service import LeaveBalanceService

router = APIRouter(prefix="", tags=["leave-balances"])


@router.get("/me", response_model=LeaveBalanceSummary)
async def my_balance(
    year: Optional[int] = Query(default=None, ge=1900, le=2200),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Annual-leave balance of the authenticated user (current year by default)."""
    return await LeaveBalanceService.get_summary(
        db, actor.user_id, year or date.today().year, actor,
    )


@router.get("/{user_id}", response_model=LeaveBalanceSummary)
async def user_balance(
    user_id: uuid.UUID,
    year: Optional[int] = Query(default=None, ge=1900, le=2200),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveBalanceService.get_summary(
        db, user_id, year or date.today().year, actor,
    )


@router.put("/{user_id}/{year}", response_model=LeaveBalanceOverrideResponse)
async def set_balance_override(
    user_id: uuid.UUID,
    data: LeaveBalanceOverride,
    year: int = Path(ge=1900, le=2200),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Admin only."""
    row = await LeaveBalanceService.set_override(db, user_id, year, data, actor)
    return LeaveBalanceOverrideResponse.model_validate(row)
