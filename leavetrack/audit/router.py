"""Audit log endpoint (manager/admin)."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.audit.schemas import AuditLogResponse
from leavetrack.audit.service import AuditLogService
from leavetrack.auth.dependencies import require_role
from leavetrack.auth.policy import Actor
from leavetrack.common.constants import AUDIT_LOG_LIMIT, UserRole
from leavetrack.database import get_db
from leavetrack.users.models import User

router = APIRouter(prefix="", tags=["audit"])


@router.get("", response_model=list[AuditLogResponse])
async def list_audit_logs(
    entity_type: Optional[str] = Query(None, max_length=50),
    entity_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(AUDIT_LOG_LIMIT, ge=1, le=AUDIT_LOG_LIMIT),
    user: User = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
):
    """Newest first. Managers only see entries about their own team."""
    return await AuditLogService.list_entries(
        db,
        Actor.from_user(user),
        entity_type=entity_type,
        entity_id=entity_id,
        limit=limit,
    )
