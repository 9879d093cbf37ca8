"""Audit log reads, scoped by role and redacted for outside viewers."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.audit.schemas import AuditLogResponse
from leavetrack.auth.policy import Actor, is_admin, redact_leave_fields, require_manager
from leavetrack.common.audit import AuditLog
from leavetrack.common.constants import AUDIT_LOG_LIMIT
from leavetrack.leave.service import ENTITY_TYPE as LEAVE_ENTITY_TYPE
from leavetrack.users.models import User


class AuditLogService:

    @staticmethod
    async def list_entries(
        db: AsyncSession,
        actor: Actor,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        limit: int = AUDIT_LOG_LIMIT,
    ) -> list[AuditLogResponse]:
        """Newest entries first.

        Admins see everything. Managers see entries about members of their
        own team; a manager without a team sees nothing.
        """
        require_manager(actor.role)
        limit = max(1, min(limit, AUDIT_LOG_LIMIT))

        query = (
            select(AuditLog, User.team_id)
            .outerjoin(User, User.id == AuditLog.subject_user_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id)
            .limit(limit)
        )
        if not is_admin(actor.role):
            if actor.team_id is None:
                return []
            query = query.where(User.team_id == actor.team_id)
        if entity_type is not None:
            query = query.where(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(AuditLog.entity_id == entity_id)

        entries: list[AuditLogResponse] = []
        for entry, subject_team_id in (await db.execute(query)).all():
            item = AuditLogResponse.model_validate(entry)
            if entry.entity_type == LEAVE_ENTITY_TYPE and entry.subject_user_id is not None:
                update = {}
                for side in ("before", "after"):
                    data = getattr(item, side)
                    if data is not None:
                        update[side] = redact_leave_fields(
                            data, actor, entry.subject_user_id, subject_team_id,
                        )
                item = item.model_copy(update=update)
            entries.append(item)
        return entries
