"""
Repair pass for extracted fields.

Runs on every result, heuristic or AI-derived, before it reaches the
caller. Two jobs:
- Recover amount/provider/date when everything collapsed into one long
  description.
- Strip amounts, dates and the provider name out of the description.

Applying the pass to its own output changes nothing.
"""

import re
import logging
from decimal import Decimal
from typing import Optional

from receipt_extraction.models.receipt import ExtractedFields, FieldConfidence
from receipt_extraction.utils.dates import order_day_month, to_iso
from receipt_extraction.utils.money import CURRENCY_PATTERN, normalize_amount
from receipt_extraction.utils.patterns import BUSINESS_NAME_RE, collapse_whitespace

logger = logging.getLogger(__name__)

COLLAPSE_MIN_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 100
MIN_DESCRIPTION_LENGTH = 5

GENERAL_DESCRIPTION = 'Compra general'

# Scores for repaired values, matching the description fallbacks of the parser
RECOVERED_CONFIDENCE = 0.1
PROVIDER_FALLBACK_CONFIDENCE = 0.5
GENERAL_FALLBACK_CONFIDENCE = 0.3

# Descriptions produced by fallbacks; scrubbing must leave these alone
CANONICAL_DESCRIPTIONS = frozenset({GENERAL_DESCRIPTION, 'Gasto registrado'})

_NUMBER_RE = re.compile(r'\d+(?:[.,]\d+)*')
_SHORT_DATE_RE = re.compile(r'\b(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})\b')
_DATE_SHAPES_RE = re.compile(
    r'\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b|\b\d{4}[/-]\d{1,2}[/-]\d{1,2}\b'
)
_AMOUNT_SHAPES_RE = re.compile(
    rf'{CURRENCY_PATTERN}?\s*\d+(?:[.,]\d+)*\s*{CURRENCY_PATTERN}?'
)
_EDGE_PUNCTUATION = ' -:,;|'


def _provider_description(provider: str) -> str:
    return f"Compra en {provider}"


def _fallback_description(provider: Optional[str]) -> tuple[str, float]:
    if provider:
        return _provider_description(provider), PROVIDER_FALLBACK_CONFIDENCE
    return GENERAL_DESCRIPTION, GENERAL_FALLBACK_CONFIDENCE


def _provider_pattern(provider: str) -> re.Pattern:
    """Case-insensitive provider matcher that accepts any whitespace run between words."""
    return re.compile(r'\s+'.join(map(re.escape, provider.split())), re.IGNORECASE)


def _is_canonical(description: str, provider: Optional[str]) -> bool:
    if description in CANONICAL_DESCRIPTIONS:
        return True
    return bool(provider) and description == _provider_description(provider)


def _strip_numbers(text: str) -> str:
    """Replace date-shaped, then amount-shaped, substrings with spaces."""
    # Dates first, so their numbers are not eaten one by one as amounts
    cleaned = _DATE_SHAPES_RE.sub(' ', text)
    return _AMOUNT_SHAPES_RE.sub(' ', cleaned)


def _largest_amount(description: str) -> Optional[Decimal]:
    """Largest positive number in the text, ignoring pieces of dates."""
    without_dates = _DATE_SHAPES_RE.sub(' ', description)
    amounts = [normalize_amount(m.group(0)) for m in _NUMBER_RE.finditer(without_dates)]
    amounts = [a for a in amounts if a is not None and a > 0]
    return max(amounts) if amounts else None


def _business_name(description: str) -> Optional[str]:
    match = BUSINESS_NAME_RE.search(collapse_whitespace(_strip_numbers(description)))
    if match:
        return collapse_whitespace(match.group(1))
    return None


def _first_short_date(description: str) -> Optional[str]:
    """First D/M/Y date with a 2- or 4-digit year; 2-digit years are 20xx."""
    for match in _SHORT_DATE_RE.finditer(description):
        year_str = match.group(3)
        if len(year_str) == 2:
            year_str = '20' + year_str
        day, month = order_day_month(int(match.group(1)), int(match.group(2)))
        iso_date = to_iso(int(year_str), month, day)
        if iso_date:
            return iso_date
    return None


def scrub_description(description: str, provider: Optional[str]) -> str:
    """
    Remove date-shaped and amount-shaped text and the provider name.

    Falls back to "Compra en {provider}" / "Compra general" when too
    little is left.
    """
    if _is_canonical(description, provider):
        return description

    provider_re = _provider_pattern(provider) if provider and provider.strip() else None

    # Removing one piece can expose another ("Tienda Tienda Luna Luna")
    cleaned = description
    while True:
        scrubbed = _strip_numbers(cleaned)
        if provider_re is not None:
            scrubbed = provider_re.sub(' ', collapse_whitespace(scrubbed))
        scrubbed = collapse_whitespace(scrubbed).strip(_EDGE_PUNCTUATION)
        if scrubbed == cleaned:
            break
        cleaned = scrubbed

    if len(cleaned) < MIN_DESCRIPTION_LENGTH:
        return _fallback_description(provider)[0]
    return cleaned


def disambiguate_fields(fields: ExtractedFields) -> ExtractedFields:
    """
    Repair collapsed extractions and cross-field contamination.

    Trigger: description longer than 50 chars while provider and amount
    are both missing. Each repair (amount, provider, date) is skipped
    when its pattern finds nothing. The description is scrubbed every
    time, trigger or not.

    Confidence rules:
    - A recovered field scores at least RECOVERED_CONFIDENCE (0.1)
    - A description replaced by a fallback text scores no more than that
      fallback (0.5 with a provider, 0.3 without)

    Args:
        fields: Result from the heuristic engine or the AI extractor

    Returns:
        New ExtractedFields
    """
    description = fields.description
    provider = fields.provider
    amount = fields.amount
    date = fields.date
    confidence = fields.confidence.model_dump()

    collapsed = (
        description is not None
        and len(description) > COLLAPSE_MIN_LENGTH
        and not provider
        and not amount
    )

    if collapsed:
        logger.info("Description holds all fields (%d chars), re-deriving", len(description))

        recovered_amount = _largest_amount(description)
        if recovered_amount is not None:
            amount = recovered_amount
            confidence['amount'] = max(confidence['amount'], RECOVERED_CONFIDENCE)
            logger.debug("Recovered amount from description: %s", amount)

        recovered_provider = _business_name(description)
        if recovered_provider:
            provider = recovered_provider
            confidence['provider'] = max(confidence['provider'], RECOVERED_CONFIDENCE)
            logger.debug("Recovered provider from description: %r", provider)

        recovered_date = _first_short_date(description)
        if recovered_date:
            date = recovered_date
            confidence['date'] = max(confidence['date'], RECOVERED_CONFIDENCE)
            logger.debug("Recovered date from description: %s", date)

    if description is not None:
        scrubbed = scrub_description(description, provider)

        if scrubbed != description and _is_canonical(scrubbed, provider):
            fallback_confidence = _fallback_description(provider)[1]
            confidence['description'] = min(confidence['description'], fallback_confidence)
        description = scrubbed

        if collapsed and len(description) > MAX_DESCRIPTION_LENGTH:
            description = description[:MAX_DESCRIPTION_LENGTH] + '...'

    return fields.model_copy(update={
        'description': description,
        'provider': provider,
        'amount': amount,
        'date': date,
        'confidence': FieldConfidence(**confidence),
    })
