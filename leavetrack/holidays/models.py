"""Holiday ORM model."""

from __future__ import annotations

import datetime as dt
import uuid

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leavetrack.database import Base


class Holiday(Base):
    """A non-working day. Inactive rows stay listed but count as working days."""

    __tablename__ = "holidays"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    date: Mapped[dt.date] = mapped_column(sa.Date, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    is_company_holiday: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: dt.datetime.now(dt.timezone.utc),
        server_default=sa.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Holiday {self.date} {self.name}>"
