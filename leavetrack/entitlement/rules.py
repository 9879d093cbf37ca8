"""Annual-leave entitlement rules.

Pure functions: callers supply the user facts and policy values, the
ledger and override lookups live in :mod:`leavetrack.entitlement.service`.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from leavetrack.calendar.dates import parse_date, round_hours
from leavetrack.common.constants import (
    BASE_ALLOWANCE_DAYS,
    HOURS_PER_WORKDAY,
    SENIOR_AGE_THRESHOLD,
    SENIOR_ALLOWANCE_DAYS,
    AccrualPolicy,
)

_ZERO = Decimal("0")


def group_allowance(
    birth_date: date | str | None,
    has_child: bool,
    year: int,
) -> Decimal:
    """Full-year allowance in hours for the user's entitlement group.

    Parents, and anyone born in or before ``year - 33``, get the senior
    tier. A parent gets it whatever their age.
    """
    if has_child:
        days = SENIOR_ALLOWANCE_DAYS
    elif birth_date is not None and parse_date(birth_date, "birth_date").year <= year - SENIOR_AGE_THRESHOLD:
        days = SENIOR_ALLOWANCE_DAYS
    else:
        days = BASE_ALLOWANCE_DAYS
    return Decimal(days) * HOURS_PER_WORKDAY


def compute_allowance(
    birth_date: date | str | None,
    has_child: bool,
    year: int,
    employment_start_date: date | str | None = None,
    manual_allowance_hours: Optional[Decimal] = None,
    accrual_policy: AccrualPolicy = AccrualPolicy.year_start,
) -> Decimal:
    """Allowance for *year* before carry-over.

    - employment starting after *year*: nothing
    - employment starting during *year*: the manual override if set,
      otherwise pro-rata by remaining months (``pro_rata``) or the full
      group allowance (``year_start``)
    - earlier or unknown start: the full group allowance
    """
    base = group_allowance(birth_date, has_child, year)
    if employment_start_date is None:
        return base

    start = parse_date(employment_start_date, "employment_start_date")
    if start.year > year:
        return _ZERO
    if start.year == year:
        if manual_allowance_hours is not None:
            return Decimal(manual_allowance_hours)
        if accrual_policy == AccrualPolicy.pro_rata:
            months_employed = 12 - start.month + 1
            return round_hours(base * Decimal(months_employed) / Decimal(12))
    return base


def compute_carry_over(
    previous_allowance: Decimal,
    previous_used: Decimal,
    carry_over_limit: Decimal,
) -> Decimal:
    """Unused hours from last year, capped at *carry_over_limit*."""
    unused = max(_ZERO, Decimal(previous_allowance) - Decimal(previous_used))
    return min(unused, max(_ZERO, Decimal(carry_over_limit)))
