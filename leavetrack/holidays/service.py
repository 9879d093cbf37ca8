"""Holiday calendar: lookup for working-time computation, CRUD and seeding."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.policy import Actor, require_admin
from leavetrack.calendar.dates import format_date
from leavetrack.common.audit import record_audit, snapshot
from leavetrack.common.constants import AuditAction
from leavetrack.common.exceptions import ConflictError, NotFoundException, ValidationException
from leavetrack.holidays.models import Holiday
from leavetrack.holidays.schemas import HolidayCreate, HolidayUpdate
from leavetrack.holidays.seeds import holiday_seeds

logger = logging.getLogger(__name__)

_AUDITED_FIELDS = ("date", "name", "is_company_holiday", "is_active")


# ── Lookup collaborator ─────────────────────────────────────────────

async def active_holiday_dates(db: AsyncSession, start: date, end: date) -> set[str]:
    """ISO dates of active holidays in ``[start, end]``."""
    result = await db.execute(
        select(Holiday.date).where(
            Holiday.date >= start,
            Holiday.date <= end,
            Holiday.is_active.is_(True),
        )
    )
    return {format_date(day) for day in result.scalars().all()}


class HolidayService:

    @staticmethod
    async def list_holidays(
        db: AsyncSession,
        *,
        year: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        include_inactive: bool = False,
    ) -> list[Holiday]:
        query = select(Holiday).order_by(Holiday.date)
        if year is not None:
            query = query.where(Holiday.date >= date(year, 1, 1), Holiday.date <= date(year, 12, 31))
        if start is not None:
            query = query.where(Holiday.date >= start)
        if end is not None:
            query = query.where(Holiday.date <= end)
        if not include_inactive:
            query = query.where(Holiday.is_active.is_(True))
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def get_holiday(db: AsyncSession, holiday_id: uuid.UUID) -> Holiday:
        holiday = await db.get(Holiday, holiday_id)
        if holiday is None:
            raise NotFoundException("Holiday", holiday_id)
        return holiday

    @staticmethod
    async def create_holiday(db: AsyncSession, data: HolidayCreate, actor: Actor) -> Holiday:
        require_admin(actor.role)

        existing = await db.scalar(select(Holiday.id).where(Holiday.date == data.date))
        if existing is not None:
            raise ConflictError("date", data.date.isoformat())

        holiday = Holiday(**data.model_dump())
        try:
            async with db.begin_nested():
                db.add(holiday)
        except IntegrityError:
            raise ConflictError("date", data.date.isoformat())

        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="holiday",
            entity_id=holiday.id,
            action=AuditAction.create,
            after=snapshot(holiday, _AUDITED_FIELDS),
        )
        return holiday

    @staticmethod
    async def update_holiday(
        db: AsyncSession,
        holiday_id: uuid.UUID,
        data: HolidayUpdate,
        actor: Actor,
    ) -> Holiday:
        require_admin(actor.role)
        holiday = await HolidayService.get_holiday(db, holiday_id)
        before = snapshot(holiday, _AUDITED_FIELDS)

        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and changes["name"] is None:
            raise ValidationException({"name": ["Name must not be empty."]})
        for field, value in changes.items():
            if value is not None:
                setattr(holiday, field, value)
        await db.flush()

        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="holiday",
            entity_id=holiday.id,
            action=AuditAction.update,
            before=before,
            after=snapshot(holiday, _AUDITED_FIELDS),
        )
        return holiday

    @staticmethod
    async def delete_holiday(db: AsyncSession, holiday_id: uuid.UUID, actor: Actor) -> None:
        require_admin(actor.role)
        holiday = await HolidayService.get_holiday(db, holiday_id)
        before = snapshot(holiday, _AUDITED_FIELDS)

        await db.delete(holiday)
        await db.flush()

        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="holiday",
            entity_id=holiday_id,
            action=AuditAction.delete,
            before=before,
        )

    @staticmethod
    async def seed_year(
        db: AsyncSession,
        year: int,
        country: str,
        actor: Optional[Actor] = None,
    ) -> tuple[list[Holiday], list[date]]:
        """Insert the statutory holidays of *year*, skipping dates already present.

        *actor* is None when run from the command line.
        """
        if actor is not None:
            require_admin(actor.role)
        try:
            seeds = holiday_seeds(year, country)
        except ValueError as exc:
            raise ValidationException({"country": [str(exc)]})

        existing = set(
            (await db.execute(
                select(Holiday.date).where(
                    Holiday.date >= date(year, 1, 1),
                    Holiday.date <= date(year, 12, 31),
                )
            )).scalars().all()
        )

        created: list[Holiday] = []
        skipped: list[date] = []
        for seed in seeds:
            if seed.date in existing:
                skipped.append(seed.date)
                continue
            holiday = Holiday(
                date=seed.date,
                name=seed.name,
                is_company_holiday=seed.is_company_holiday,
                is_active=True,
            )
            db.add(holiday)
            created.append(holiday)
        await db.flush()

        for holiday in created:
            await record_audit(
                db,
                actor_id=actor.user_id if actor is not None else None,
                entity_type="holiday",
                entity_id=holiday.id,
                action=AuditAction.create,
                after=snapshot(holiday, _AUDITED_FIELDS),
            )
        logger.info("Seeded %d holidays for %s %d (%d skipped)", len(created), country, year, len(skipped))
        return created, skipped
