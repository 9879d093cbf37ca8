"""User and Team ORM models.

SQLAlchemy 2.0 async-compatible models with Mapped[] annotations.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leavetrack.common.constants import UserRole
from leavetrack.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# Team
# ═════════════════════════════════════════════════════════════════════


class Team(Base):
    """Group of users sharing a manager and a concurrent-leave cap."""

    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    # Cap on APPROVED team leaves overlapping a new approval; NULL = no cap
    max_concurrent_leaves: Mapped[Optional[int]] = mapped_column(sa.Integer)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_utcnow,
        server_default=sa.func.now(),
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<Team {self.name}>"


# ═════════════════════════════════════════════════════════════════════
# User
# ═════════════════════════════════════════════════════════════════════


class User(Base):
    """Application user. Never hard-deleted while dependent rows exist."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.employee,
    )
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("teams.id"), index=True,
    )

    # Entitlement facts
    birth_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    has_child: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    employment_start_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    manual_leave_allowance_hours: Mapped[Optional[Decimal]] = mapped_column(
        sa.Numeric(7, 2),
    )

    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_utcnow,
        server_default=sa.func.now(),
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"
