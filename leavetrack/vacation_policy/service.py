"""Read and update the singleton company leave-policy row."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.policy import Actor, require_admin
from leavetrack.common.audit import record_audit, snapshot
from leavetrack.common.constants import AuditAction
from leavetrack.vacation_policy.models import SETTINGS_ROW_ID, CompanySettings
from leavetrack.vacation_policy.schemas import PolicySettingsUpdate

logger = logging.getLogger(__name__)

# Audit entries need a UUID; the singleton row has an integer key
_SETTINGS_ENTITY_ID = uuid.UUID(int=SETTINGS_ROW_ID)

_AUDITED_FIELDS = (
    "annual_leave_accrual_policy",
    "carry_over_enabled",
    "carry_over_limit_hours",
    "show_team_calendar_for_employees",
)


class PolicySettingsService:

    @staticmethod
    async def get_settings(db: AsyncSession) -> CompanySettings:
        """Return the settings row, inserting the defaults on first use."""
        row = await db.get(CompanySettings, SETTINGS_ROW_ID)
        if row is None:
            row = CompanySettings(id=SETTINGS_ROW_ID)
            db.add(row)
            await db.flush()
            logger.info("Initialised company settings with defaults")
        return row

    @staticmethod
    async def update_settings(
        db: AsyncSession,
        data: PolicySettingsUpdate,
        actor: Actor,
    ) -> CompanySettings:
        require_admin(actor.role)
        row = await PolicySettingsService.get_settings(db)
        before = snapshot(row, _AUDITED_FIELDS)

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(row, field, value)
        await db.flush()

        await record_audit(
            db,
            actor_id=actor.user_id,
            entity_type="settings",
            entity_id=_SETTINGS_ENTITY_ID,
            action=AuditAction.update,
            before=before,
            after=snapshot(row, _AUDITED_FIELDS),
        )
        return row
