#!/usr/bin/env python3
"""Create every LeaveTrack table in the configured database.

Usage:
    python scripts/init_db.py          # create missing tables
    python scripts/init_db.py --drop   # drop everything first (destructive)

Reads DATABASE_URL and JWT_SECRET from the environment or .env.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# ── Path setup ────────────────────────────────────────────────────────
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from leavetrack.database import Base, engine

# Model modules register their tables on Base.metadata when imported
import leavetrack.common.audit  # noqa: F401
import leavetrack.entitlement.models  # noqa: F401
import leavetrack.holidays.models  # noqa: F401
import leavetrack.leave.models  # noqa: F401
import leavetrack.notifications.models  # noqa: F401
import leavetrack.users.models  # noqa: F401
import leavetrack.vacation_policy.models  # noqa: F401

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("init_db")


async def init_db(drop: bool) -> None:
    async with engine.begin() as conn:
        if drop:
            logger.warning("Dropping all tables")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Schema ready: %s", ", ".join(sorted(Base.metadata.tables)))


def main():
    parser = argparse.ArgumentParser(description="Create LeaveTrack tables")
    parser.add_argument("--drop", action="store_true", help="Drop all tables before creating them")
    args = parser.parse_args()

    asyncio.run(init_db(args.drop))


if __name__ == "__main__":
    main()
