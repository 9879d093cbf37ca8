"""Holiday calendar endpoints."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import get_current_actor, get_current_user
from leavetrack.auth.policy import Actor
from leavetrack.config import settings
from leavetrack.database import get_db
from leavetrack.holidays.schemas import (
    HolidayCreate,
    HolidayResponse,
    HolidaySeedResult,
    HolidayUpdate,
)
from leavetrack.holidays.service import HolidayService
from leavetrack.users.models import User

router = APIRouter(prefix="", tags=["holidays"])


@router.get("", response_model=list[HolidayResponse])
async def list_holidays(
    year: Optional[int] = Query(default=None, ge=1900, le=2200),
    include_inactive: bool = Query(default=False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    holidays = await HolidayService.list_holidays(
        db, year=year, include_inactive=include_inactive,
    )
    return [HolidayResponse.model_validate(h) for h in holidays]


@router.post("", response_model=HolidayResponse, status_code=201)
async def create_holiday(
    data: HolidayCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    holiday = await HolidayService.create_holiday(db, data, actor)
    return HolidayResponse.model_validate(holiday)


# NOTE: registered before /{holiday_id} routes
@router.post("/seed/{year}", response_model=HolidaySeedResult, status_code=201)
async def seed_holidays(
    year: int = Path(ge=1900, le=2200),
    country: str = Query(default=settings.HOLIDAY_SEED_COUNTRY, min_length=2, max_length=2),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Insert the statutory holidays of *year* (admin only)."""
    created, skipped = await HolidayService.seed_year(db, year, country, actor)
    return HolidaySeedResult(
        year=year,
        created=[HolidayResponse.model_validate(h) for h in created],
        skipped=skipped,
    )


@router.patch("/{holiday_id}", response_model=HolidayResponse)
async def update_holiday(
    holiday_id: uuid.UUID,
    data: HolidayUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    holiday = await HolidayService.update_holiday(db, holiday_id, data, actor)
    return HolidayResponse.model_validate(holiday)


@router.delete("/{holiday_id}", status_code=204)
async def delete_holiday(
    holiday_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await HolidayService.delete_holiday(db, holiday_id, actor)
    return Response(status_code=204)
