"""Pydantic v2 schemas for the Notifications module."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from leavetrack.common.constants import NotificationType
from leavetrack.common.pagination import PaginationMeta


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    payload: Optional[dict[str, Any]] = None
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationListMeta(PaginationMeta):
    """Pagination meta plus the unread badge count."""

    unread: int


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse]
    meta: NotificationListMeta


class MarkAllReadResponse(BaseModel):
    updated: int
