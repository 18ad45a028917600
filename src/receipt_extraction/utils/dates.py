"""
Date helpers shared by the date scanner and the field disambiguator.
"""

import calendar
from typing import Optional

MONTH_NAMES = {
    'es': ('enero', 'febrero', 'marzo', 'abril', 'mayo', 'junio',
           'julio', 'agosto', 'septiembre', 'octubre', 'noviembre', 'diciembre'),
    'en': ('january', 'february', 'march', 'april', 'may', 'june',
           'july', 'august', 'september', 'october', 'november', 'december'),
}

# Regex alternation of every month name, Spanish first
MONTH_NAME_PATTERN = '|'.join(MONTH_NAMES['es'] + MONTH_NAMES['en'])

MIN_YEAR = 1900
MAX_YEAR = 2100


def month_index(name: str) -> Optional[int]:
    """
    Resolve a month name (Spanish or English, any case) to 1-12.

    Returns None for unknown names.
    """
    lowered = name.strip().lower()
    for lang in ('es', 'en'):
        if lowered in MONTH_NAMES[lang]:
            return MONTH_NAMES[lang].index(lowered) + 1
    return None


def is_valid_date(year: int, month: int, day: int) -> bool:
    """Check year range, month range and the real length of the month."""
    if year < MIN_YEAR or year > MAX_YEAR:
        return False
    if month < 1 or month > 12:
        return False
    if day < 1 or day > 31:
        return False
    return day <= calendar.monthrange(year, month)[1]


def order_day_month(first: int, second: int, day_first: bool = False) -> tuple[int, int]:
    """
    Resolve an ambiguous D/M or M/D pair into (day, month).

    A first number above 12 can only be a day. Otherwise month-first
    (US) is assumed unless the caller says the locale is day-first and
    the second number can be a month.
    """
    if first > 12:
        return first, second
    if day_first and second <= 12:
        return first, second
    return second, first


def to_iso(year: int, month: int, day: int) -> Optional[str]:
    """Format as YYYY-MM-DD, or None if it is not a real calendar date."""
    if not is_valid_date(year, month, day):
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"
