"""Statutory public holidays used to seed the holiday calendar."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Callable, NamedTuple


class HolidaySeed(NamedTuple):
    date: date
    name: str
    is_company_holiday: bool = True


def easter_sunday(year: int) -> date:
    """Gregorian Easter Sunday (anonymous Gregorian algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7  # noqa: E741
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def slovak_holidays(year: int) -> list[HolidaySeed]:
    easter = easter_sunday(year)
    fixed = [
        ((1, 1), "Day of the Establishment of the Slovak Republic"),
        ((1, 6), "Epiphany"),
        ((5, 1), "Labour Day"),
        ((5, 8), "Day of Victory over Fascism"),
        ((7, 5), "St. Cyril and Methodius Day"),
        ((8, 29), "Slovak National Uprising Anniversary"),
        ((9, 1), "Constitution Day"),
        ((9, 15), "Our Lady of Seven Sorrows"),
        ((11, 1), "All Saints' Day"),
        ((11, 17), "Struggle for Freedom and Democracy Day"),
        ((12, 24), "Christmas Eve"),
        ((12, 25), "Christmas Day"),
        ((12, 26), "St. Stephen's Day"),
    ]
    seeds = [HolidaySeed(date(year, month, day), name) for (month, day), name in fixed]
    seeds.append(HolidaySeed(easter - timedelta(days=2), "Good Friday"))
    seeds.append(HolidaySeed(easter + timedelta(days=1), "Easter Monday"))
    return sorted(seeds, key=lambda seed: seed.date)


SEED_TABLES: dict[str, Callable[[int], list[HolidaySeed]]] = {
    "SK": slovak_holidays,
}


def holiday_seeds(year: int, country: str) -> list[HolidaySeed]:
    try:
        table = SEED_TABLES[country.upper()]
    except KeyError:
        raise ValueError(f"No holiday seed table for country '{country}'")
    return table(year)
