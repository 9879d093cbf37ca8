"""Working-time arithmetic against a holiday calendar.

Pure functions, no I/O. Holidays are passed in as a set of ISO
``YYYY-MM-DD`` strings built by the holiday lookup
(:func:`leavetrack.holidays.service.active_holiday_dates`).
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import AbstractSet, Iterator, Optional

from leavetrack.common.constants import DATE_FORMAT, HALF_DAY, HOURS_PER_WORKDAY, TIME_FORMAT
from leavetrack.common.exceptions import ValidationException

_ZERO = Decimal("0")
_CENT = Decimal("0.01")


# ── Parsing ─────────────────────────────────────────────────────────

def parse_date(value: date | str, field: str = "date") -> date:
    """Coerce *value* to a ``date``; malformed strings raise ``ValidationException``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError):
        raise ValidationException({field: ["invalid date"]})


def parse_time(value: time | str | None) -> Optional[time]:
    """Parse ``HH:MM``. Returns None for missing or malformed input."""
    if value is None or isinstance(value, time):
        return value
    try:
        return datetime.strptime(value, TIME_FORMAT).time()
    except ValueError:
        return None


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def round_hours(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


# ── Day classification ──────────────────────────────────────────────

def is_weekend(day: date) -> bool:
    """Saturday or Sunday."""
    return day.weekday() >= 5


def is_holiday(day: date, holidays: AbstractSet[str]) -> bool:
    return format_date(day) in holidays


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day in ``[start, end]``."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def count_working_days(start: date, end: date, holidays: AbstractSet[str]) -> int:
    return sum(
        1 for day in iter_days(start, end)
        if not is_weekend(day) and not is_holiday(day, holidays)
    )


# ── Duration ────────────────────────────────────────────────────────

def compute_working_hours(
    start_date: date | str,
    end_date: date | str,
    is_half_day_start: bool,
    is_half_day_end: bool,
    holidays: AbstractSet[str],
    start_time: time | str | None = None,
    end_time: time | str | None = None,
) -> Decimal:
    """
    Leave duration in working hours.

    Same-day requests with both times set are measured by the clock
    (zero on a weekend or holiday). Everything else counts working
    days in the inclusive range, takes half a day off for each
    half-day flag and converts at ``HOURS_PER_WORKDAY``.
    """
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")

    if start == end and start_time is not None and end_time is not None:
        if is_weekend(start) or is_holiday(start, holidays):
            return round_hours(_ZERO)
        t_start = parse_time(start_time)
        t_end = parse_time(end_time)
        if t_start is None or t_end is None:
            return round_hours(_ZERO)
        minutes = (t_end.hour * 60 + t_end.minute) - (t_start.hour * 60 + t_start.minute)
        return round_hours(Decimal(max(0, minutes)) / Decimal(60))

    working_days = Decimal(count_working_days(start, end, holidays))
    for flag in (is_half_day_start, is_half_day_end):
        if flag:
            working_days = max(_ZERO, working_days - HALF_DAY)

    return round_hours(max(_ZERO, working_days * HOURS_PER_WORKDAY))


# ── Ranges ──────────────────────────────────────────────────────────

def dates_overlap(start1: date, end1: date, start2: date, end2: date) -> bool:
    """Closed-interval overlap: sharing a single day counts."""
    return start1 <= end2 and start2 <= end1


def validate_range(start: date, end: date) -> None:
    if end < start:
        raise ValidationException({"end_date": ["End date must not be before start date."]})
