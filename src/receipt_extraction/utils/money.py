"""
Shared money parsing utilities with multi-locale support.

Receipts mix separator conventions with no reliable marker:
- US: 1,234.56
- European / Latin American: 1.234,56
- Grouping only: 12.345 or 12,345 → 12345

The deciding signal is the length of the trailing group: one or two
digits after the last separator means a decimal fraction.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional
import re


DEFAULT_CURRENCY = 'USD'

# Regex fragment matching one currency token. Codes need word boundaries
# so "Bs" inside a word is not taken as bolivianos.
CURRENCY_PATTERN = r'(?:[$€£¥₹]|\b(?:Bs\.?|USD|EUR|GBP|JPY|INR|BOB)\b)'

# A number with optional thousands groups and optional 1-2 digit fraction.
# Grouped form is tried first so "1.234,56" is taken whole.
NUMBER_PATTERN = r'(?:\d{1,3}(?:[.,]\d{3})+|\d+)(?:[.,]\d{1,2})?'

# Same as NUMBER_PATTERN but the fraction is mandatory.
DECIMAL_PATTERN = r'(?:\d{1,3}(?:[.,]\d{3})+|\d+)[.,]\d{2}'

# Guards for bare numbers: never start or stop inside a longer numeric
# token, and never take a piece of a slash or dash date.
NUMBER_LEFT_GUARD = r'(?<![\d.,/])(?<!\d-)'
NUMBER_RIGHT_GUARD = r'(?![.,]?\d|[/-]\d)'

_NUMERIC_RESIDUE = re.compile(r'^[\d.,]+$')
_SEPARATORS = re.compile(r'[.,]')


def normalize_amount(amount_str: str) -> Optional[Decimal]:
    """
    Turn a raw numeric substring with mixed separators into a Decimal.

    Args:
        amount_str: Digits, dots and commas only (currency already stripped)

    Returns:
        Decimal value, or None if there are no digits or anything else
        is left in the string

    Examples:
        >>> normalize_amount("1,234.56")
        Decimal('1234.56')
        >>> normalize_amount("1.234,56")
        Decimal('1234.56')
        >>> normalize_amount("12.345")
        Decimal('12345')
    """
    if not amount_str or not isinstance(amount_str, str):
        return None

    cleaned = amount_str.strip()
    if not _NUMERIC_RESIDUE.match(cleaned) or not re.search(r'\d', cleaned):
        return None

    parts = _SEPARATORS.split(cleaned)

    if len(parts) == 1:
        integer_part, fraction = parts[0], ''
    elif len(parts[-1]) <= 2:
        # Short trailing group: decimal fraction, everything before is grouping
        integer_part, fraction = ''.join(parts[:-1]), parts[-1]
    else:
        integer_part, fraction = ''.join(parts), ''

    number = integer_part or '0'
    if fraction:
        number = f"{number}.{fraction}"

    try:
        return Decimal(number)
    except (InvalidOperation, ValueError):
        return None


def clean_currency(raw: Optional[str]) -> Optional[str]:
    """
    Normalise a captured currency token ("Bs." → "Bs", " $ " → "$").

    Returns None for an empty capture.
    """
    if not raw:
        return None
    token = raw.strip().rstrip('.')
    return token or None
