#!/usr/bin/env python3
"""Seed the statutory public holidays of one or more years.

Dates already present in the holidays table are left untouched, so the
script can be re-run safely.

Usage:
    python scripts/seed_holidays.py --year 2026
    python scripts/seed_holidays.py --year 2026 --year 2027 --country SK
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

from leavetrack.config import settings
from leavetrack.database import async_session_factory, engine
from leavetrack.holidays.service import HolidayService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("seed_holidays")


async def seed(years: list[int], country: str) -> int:
    total = 0
    async with async_session_factory() as session:
        async with session.begin():
            for year in years:
                created, skipped = await HolidayService.seed_year(session, year, country)
                for holiday in created:
                    logger.info("  + %s  %s", holiday.date.isoformat(), holiday.name)
                if skipped:
                    logger.info("  %d date(s) already present in %d", len(skipped), year)
                total += len(created)
    await engine.dispose()
    return total


def main():
    parser = argparse.ArgumentParser(
        description="Seed statutory public holidays",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--year", type=int, action="append", required=True,
                        help="Year to seed (repeatable)")
    parser.add_argument("--country", default=settings.HOLIDAY_SEED_COUNTRY,
                        help="Holiday table to use (default: %(default)s)")
    args = parser.parse_args()

    total = asyncio.run(seed(args.year, args.country.upper()))
    logger.info("Done: %d holiday(s) created", total)


if __name__ == "__main__":
    main()
