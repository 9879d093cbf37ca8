"""Audit log model and async helper for recording entity changes."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import sqlalchemy as sa
from fastapi.encoders import jsonable_encoder
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from leavetrack.common.constants import AuditAction
from leavetrack.database import Base

logger = logging.getLogger(__name__)


# ── Append-only audit table ─────────────────────────────────────────

class AuditLog(Base):
    """Immutable log of every state-mutating operation."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    action: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    # Owner of the affected record, used to team-scope audit reads
    subject_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    before: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    after: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=sa.func.now(),
    )

    __table_args__ = (
        sa.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        sa.Index("ix_audit_logs_subject_user_id", "subject_user_id"),
        sa.Index("ix_audit_logs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLog {self.action} {self.entity_type}"
            f"/{self.entity_id} by {self.actor_id}>"
        )


# ── Helpers ─────────────────────────────────────────────────────────

def snapshot(obj: Any, fields: tuple[str, ...]) -> dict[str, Any]:
    """Return a JSON-safe dict of *fields* read from an ORM instance."""
    return jsonable_encoder({name: getattr(obj, name) for name in fields})


async def record_audit(
    session: AsyncSession,
    *,
    actor_id: Optional[uuid.UUID],
    entity_type: str,
    entity_id: uuid.UUID,
    action: AuditAction | str,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    subject_user_id: Optional[uuid.UUID] = None,
) -> Optional[AuditLog]:
    """
    Write an audit entry inside a savepoint of the caller's transaction.

    A failed write is logged and swallowed so the mutation it describes
    still commits.

    Args:
        session: Async SQLAlchemy session.
        actor_id: UUID of the user performing the action.
        entity_type: e.g. "user", "leave_request".
        entity_id: UUID of the affected entity.
        action: create | update | delete | submit | approve | etc.
        before: Previous state (for updates/deletes).
        after: New state (for creates/updates).
        subject_user_id: Owner of the affected entity, if any.
    """
    entry = AuditLog(
        actor_id=actor_id,
        action=action.value if isinstance(action, AuditAction) else action,
        entity_type=entity_type,
        entity_id=entity_id,
        subject_user_id=subject_user_id,
        before=before,
        after=after,
    )
    # Pending mutations flush outside the guard so their errors propagate
    await session.flush()
    try:
        async with session.begin_nested():
            session.add(entry)
    except SQLAlchemyError:
        logger.exception(
            "Audit write failed: %s %s/%s by %s",
            entry.action, entity_type, entity_id, actor_id,
        )
        return None
    return entry
