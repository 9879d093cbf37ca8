"""Company leave-policy settings endpoints."""


from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import get_current_actor, get_current_user
from leavetrack.auth.policy import Actor
from leavetrack.database import get_db
from leavetrack.users.models import User
from leavetrack.vacation_policy.schemas import PolicySettingsResponse, PolicySettingsUpdate
from leavetrack.vacation_policy.service import PolicySettingsService

router = APIRouter(prefix="", tags=["settings"])


@router.get("", response_model=PolicySettingsResponse)
async def get_settings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await PolicySettingsService.get_settings(db)
    return PolicySettingsResponse.model_validate(row)


@router.put("", response_model=PolicySettingsResponse)
async def update_settings(
    data: PolicySettingsUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Admin only."""
    row = await PolicySettingsService.update_settings(db, data, actor)
    return PolicySettingsResponse.model_validate(row)
