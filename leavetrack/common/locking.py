"""Transaction-scoped advisory locks for lifecycle transitions.

Overlap, team-capacity and balance checks are read-then-write. Taking a
``pg_advisory_xact_lock`` keyed by the affected user (and team, for the
concurrent-leave cap) serialises competing transitions until the
surrounding transaction ends. Other dialects have no equivalent and the
helpers return without locking.
"""

from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

# Namespaces keep user and team keys from colliding
USER_LOCK_NAMESPACE = 1
TEAM_LOCK_NAMESPACE = 2


def _lock_key(entity_id: uuid.UUID) -> int:
    # Signed 32-bit slice of the UUID for the two-int advisory lock form
    raw = entity_id.int & 0xFFFFFFFF
    return raw - (1 << 32) if raw >= (1 << 31) else raw


async def _advisory_xact_lock(
    db: AsyncSession, namespace: int, entity_id: uuid.UUID,
) -> None:
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(
        select(func.pg_advisory_xact_lock(namespace, _lock_key(entity_id)))
    )


async def lock_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Serialise leave transitions touching *user_id*'s bookings."""
    await _advisory_xact_lock(db, USER_LOCK_NAMESPACE, user_id)


async def lock_team(db: AsyncSession, team_id: uuid.UUID) -> None:
    """Serialise approvals counted against *team_id*'s concurrent-leave cap."""
    await _advisory_xact_lock(db, TEAM_LOCK_NAMESPACE, team_id)
