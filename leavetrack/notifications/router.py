"""Notification endpoints — list, mark read, mark all read."""


import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import get_current_user
from leavetrack.common.pagination import PaginationParams
from leavetrack.database import get_db
from leavetrack.notifications.schemas import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
)
from leavetrack.notifications.service import NotificationService
from leavetrack.users.models import User

router = APIRouter(prefix="", tags=["notifications"])


# ── GET /: list current user's notifications ───────────────────────

@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(default=False, description="Only unread notifications"),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List notifications for the authenticated user (paginated)."""
    return await NotificationService.get_notifications(
        db,
        user.id,
        pagination,
        unread_only=unread_only,
    )


# ── POST /read-all: bulk mark all as read ──────────────────────────
# NOTE: registered before /{notification_id}/read so "read-all" is not
# parsed as a UUID path parameter.

@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.mark_all_read(db, user.id)
    return MarkAllReadResponse(updated=count)


# ── POST /{notification_id}/read: mark single as read ──────────────

@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService.mark_read(db, notification_id, user.id)
    return NotificationResponse.model_validate(notification)
