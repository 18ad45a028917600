"""
Receipt parser service for extracting structured data from OCR text.

Every scanner follows the same two stages: propose candidates from an
ordered rule table, then select the best one. Nothing here raises for a
missing field; absent values come back with confidence 0.
"""

import re
import logging
from typing import List, Optional
from decimal import Decimal

from receipt_extraction.models.receipt import (
    ExtractedFields,
    ExtractionResult,
    FieldConfidence,
)
from receipt_extraction.services.disambiguation import disambiguate_fields
from receipt_extraction.utils.candidates import (
    AmountCandidate,
    TextCandidate,
    create_amount_candidate,
    create_text_candidate,
)
from receipt_extraction.utils.dates import (
    MONTH_NAME_PATTERN,
    month_index,
    order_day_month,
    to_iso,
)
from receipt_extraction.utils.money import (
    CURRENCY_PATTERN,
    DECIMAL_PATTERN,
    NUMBER_LEFT_GUARD as L,
    NUMBER_PATTERN,
    NUMBER_RIGHT_GUARD as R,
    clean_currency,
    normalize_amount,
)
from receipt_extraction.utils.patterns import (
    BUSINESS_NAME_PATTERN,
    LETTERS,
    UPPER,
    PatternSpec,
    collapse_whitespace,
    contains_stop_word,
)
from receipt_extraction.utils.scoring import (
    ESCALATION_THRESHOLD,
    calculate_overall_confidence,
    rank_amount_candidates,
    requires_escalation,
    resolve_currency,
    select_best_text,
    select_top_amounts,
)

logger = logging.getLogger(__name__)

CUR = CURRENCY_PATTERN

# Amount rules, highest intrinsic trust first. Every rule captures
# (?P<amount>...) and optionally (?P<currency>...).
AMOUNT_PATTERNS = (
    PatternSpec(
        name='currency_prefix',
        pattern=rf'(?P<currency>{CUR})\s*{L}(?P<amount>{NUMBER_PATTERN}){R}',
        example='$1.234,56',
        confidence=0.98,
        notes='Currency symbol or code before the number',
    ),
    PatternSpec(
        name='labeled_total',
        pattern=(
            r'(?i:\b(?:total|suma|subtotal|monto|importe|precio|valor))\s*:?\s*'
            rf'(?P<currency>{CUR})?\s*{L}(?P<amount>{NUMBER_PATTERN}){R}'
        ),
        example='Total: $150.00',
        confidence=0.95,
    ),
    PatternSpec(
        name='amount_then_currency',
        pattern=rf'{L}(?P<amount>{NUMBER_PATTERN}){R}\s*(?P<currency>{CUR})',
        example='1,234.56 €',
        confidence=0.90,
    ),
    PatternSpec(
        name='decimal_amount',
        pattern=rf'{L}(?P<amount>{DECIMAL_PATTERN}){R}\s*(?P<currency>{CUR})?',
        example='99.99',
        confidence=0.85,
    ),
    PatternSpec(
        name='large_number',
        pattern=rf'{L}(?P<amount>\d{{2,4}}(?:[.,]\d{{3}})*(?:[.,]\d{{2}})?){R}',
        example='2500',
        confidence=0.70,
        notes='Bare numbers that look like totals',
    ),
    PatternSpec(
        name='any_decimal',
        pattern=rf'{L}(?P<amount>\d+[.,]\d{{2}}){R}',
        example='3,50',
        confidence=0.60,
    ),
    PatternSpec(
        name='simple_number',
        pattern=rf'{L}(?P<amount>{NUMBER_PATTERN}){R}',
        example='7',
        confidence=0.40,
        notes='Last resort',
    ),
)


def _day_month_year(match: re.Match, day_first: bool) -> Optional[str]:
    day, month = order_day_month(int(match.group(1)), int(match.group(2)), day_first)
    return to_iso(int(match.group(3)), month, day)


def _year_month_day(match: re.Match, day_first: bool) -> Optional[str]:
    return to_iso(int(match.group(1)), int(match.group(2)), int(match.group(3)))


def _day_named_month_year(match: re.Match, day_first: bool) -> Optional[str]:
    month = month_index(match.group(2))
    if month is None:
        return None
    return to_iso(int(match.group(3)), month, int(match.group(1)))


def _named_month_day_year(match: re.Match, day_first: bool) -> Optional[str]:
    month = month_index(match.group(1))
    if month is None:
        return None
    return to_iso(int(match.group(3)), month, int(match.group(2)))


# Date families, tried in order; the first valid date anywhere wins.
# Rules inside one family are merged by position in the text.
DATE_PATTERNS = (
    ('numeric_dmy', (
        (PatternSpec(
            name='numeric_dmy',
            pattern=r'\b(\d{1,2})[/-](\d{1,2})[/-](\d{4})\b',
            example='15/01/2025',
            notes='D/M/Y or M/D/Y, resolved by the day>12 rule',
        ), _day_month_year),
    )),
    ('numeric_ymd', (
        (PatternSpec(
            name='numeric_ymd',
            pattern=r'\b(\d{4})[/-](\d{1,2})[/-](\d{1,2})\b',
            example='2025-01-15',
        ), _year_month_day),
    )),
    ('month_name', (
        (PatternSpec(
            name='day_month_name_year',
            pattern=(
                rf'\b(\d{{1,2}})\s+(?:de\s+)?({MONTH_NAME_PATTERN})\.?,?\s+'
                r'(?:del?\s+)?(\d{4})\b'
            ),
            example='15 de enero de 2025',
            flags=re.IGNORECASE,
        ), _day_named_month_year),
        (PatternSpec(
            name='month_name_day_year',
            pattern=rf'\b({MONTH_NAME_PATTERN})\s+(\d{{1,2}}),?\s+(\d{{4}})\b',
            example='January 15, 2025',
            flags=re.IGNORECASE,
        ), _named_month_day_year),
    )),
)

DATE_CONFIDENCE = 0.9

NAME_CHARS = f"[{LETTERS}&' ]"

PROVIDER_PATTERNS = (
    PatternSpec(
        name='business_suffix',
        pattern=BUSINESS_NAME_PATTERN,
        example='Supermercado ABC S.A.',
        confidence=0.9,
    ),
    PatternSpec(
        name='labeled_provider',
        pattern=(
            r'\b(?:raz[oó]n\s*social|business\s*name|company|proveedor|vendor)'
            rf'\s*:?\s*([{LETTERS}]{NAME_CHARS}{{3,40}})'
        ),
        example='Razón Social: Distribuidora Norte',
        confidence=0.85,
        flags=re.IGNORECASE,
    ),
    PatternSpec(
        name='before_receipt_noun',
        pattern=(
            rf'\b([{UPPER}]{NAME_CHARS}{{3,30}})\s*'
            r'(?i:receipt|factura|ticket|recibo|comprobante)\b'
        ),
        example='Tienda Luna Factura',
        confidence=0.8,
    ),
    PatternSpec(
        name='capitalized_phrase',
        pattern=rf'\b([{UPPER}][a-záéíóúñ]+(?: +[{UPPER}][a-záéíóúñ]+){{1,4}})\b',
        example='Panaderia Central',
        confidence=0.6,
        notes='Generic fallback',
    ),
    PatternSpec(
        name='before_address',
        pattern=(
            rf'\b([{UPPER}]{NAME_CHARS}{{4,25}})\s*'
            r'(?i:Av\.|Avenida|Calle|Street|Avenue|Road)'
        ),
        example='Ferreteria Lopez Calle 5',
        confidence=0.7,
    ),
)

DESCRIPTION_CHARS = rf'[{LETTERS}0-9 \-,.]'

DESCRIPTION_PATTERNS = (
    PatternSpec(
        name='labeled_item',
        pattern=(
            r'\b(?:concepto|description|descripci[oó]n|item|art[ií]culo|producto|servicio)\b'
            rf'\s*:?\s*([{LETTERS}0-9 \-,.()]{{5,60}})'
        ),
        example='Concepto: Servicio de limpieza',
        confidence=0.9,
        flags=re.IGNORECASE,
    ),
    PatternSpec(
        name='item_line',
        pattern=rf'\b\d+\s+([{LETTERS}]{DESCRIPTION_CHARS}{{5,40}})\s+[\d.,]+\s*{CUR}?',
        example='2 Leche entera 1L 3.50',
        confidence=0.8,
    ),
    PatternSpec(
        name='generic_phrase',
        pattern=rf'\b([{LETTERS}]{DESCRIPTION_CHARS}{{8,50}})\b',
        example='Compra de alimentos',
        confidence=0.6,
    ),
)

PURCHASE_WORDS = ('compra', 'purchase', 'producto', 'servicio')
PROPER_NAME_RE = re.compile(r'^[A-Z][a-z]+(?:\s+[A-Z][a-z]+){1,3}$')

GENERIC_DESCRIPTION = 'Gasto registrado'


def _provider_fallback_description(provider: str) -> str:
    return f"Compra en {provider}"


class ReceiptParser:
    """Heuristic extractor for receipt text."""

    amount_patterns = AMOUNT_PATTERNS
    date_patterns = DATE_PATTERNS
    provider_patterns = PROVIDER_PATTERNS
    description_patterns = DESCRIPTION_PATTERNS

    def parse(
        self,
        text: str,
        day_first: bool = False,
        escalation_threshold: float = ESCALATION_THRESHOLD
    ) -> ExtractionResult:
        """
        Extract all four fields and decide whether to escalate.

        Args:
            text: OCR-extracted text from receipt
            day_first: Locale hint for ambiguous numeric dates
            escalation_threshold: Minimum weighted confidence to keep the
                heuristic result

        Returns:
            ExtractionResult with repaired fields and the escalation flag
        """
        amount, currency, amount_conf = self.extract_amount(text)
        date, date_conf = self.extract_date(text, day_first=day_first)
        provider, provider_conf = self.extract_provider(text)
        description, description_conf = self.extract_description(text, provider)

        fields = ExtractedFields(
            description=description,
            provider=provider,
            amount=amount,
            currency=currency,
            date=date,
            confidence=FieldConfidence(
                amount=amount_conf,
                date=date_conf,
                provider=provider_conf,
                description=description_conf,
            ),
        )
        fields = disambiguate_fields(fields)

        overall = calculate_overall_confidence(fields.confidence)
        should_use_llm = requires_escalation(fields, overall, escalation_threshold)

        logger.info(
            "Heuristic extraction: overall=%.2f escalate=%s (amount=%.2f date=%.2f provider=%.2f description=%.2f)",
            overall, should_use_llm,
            amount_conf, date_conf, provider_conf, description_conf,
        )

        return ExtractionResult(
            fields=fields,
            should_use_llm=should_use_llm,
            overall_confidence=overall,
        )

    # Amount

    def propose_amount_candidates(self, text: str) -> List[AmountCandidate]:
        """Run every amount rule and return all positive candidates in rule order."""
        candidates: List[AmountCandidate] = []

        for spec in self.amount_patterns:
            for match in spec.compiled.finditer(text):
                amount = normalize_amount(match.group('amount'))

                # Malformed or non-positive numbers are dropped
                if amount is None or amount <= 0:
                    continue

                currency = clean_currency(match.groupdict().get('currency'))

                candidates.append(create_amount_candidate(
                    value=amount,
                    currency=currency,
                    pattern_name=spec.name,
                    match_span=match.span(),
                    raw_text=match.group(0),
                    base_confidence=spec.confidence,
                    text=text,
                ))

        return candidates

    def extract_amount(self, text: str) -> tuple[Optional[Decimal], Optional[str], float]:
        """
        Extract the receipt total.

        Returns:
            (amount, currency, confidence); (None, None, 0.0) if nothing
            parses to a positive number
        """
        candidates = self.propose_amount_candidates(text)
        ranked = rank_amount_candidates(candidates)

        if not ranked:
            return None, None, 0.0

        best, score = ranked[0]
        currency = best.currency or resolve_currency(ranked)

        if logger.isEnabledFor(logging.DEBUG):
            top = [
                (str(c.value), c.currency, round(s, 2), c.pattern_name)
                for c, s in select_top_amounts(candidates)
            ]
            logger.debug(
                "Amount extraction: %d candidates, chose %s %s (%.2f); top: %s",
                len(candidates), best.value, currency, score, top,
            )

        return best.value, currency, score

    # Date

    def extract_date(self, text: str, day_first: bool = False) -> tuple[Optional[str], float]:
        """
        Extract the first valid date.

        Args:
            text: Receipt text
            day_first: Treat ambiguous D/M pairs as day-first

        Returns:
            (YYYY-MM-DD, 0.9) or (None, 0.0)
        """
        for family, rules in self.date_patterns:
            matches = []
            for spec, convert in rules:
                for match in spec.compiled.finditer(text):
                    matches.append((match.start(), match, convert))
            matches.sort(key=lambda item: item[0])

            for _, match, convert in matches:
                iso_date = convert(match, day_first)
                if iso_date is None:
                    # Not a real calendar date, keep scanning
                    continue
                logger.debug("Date extraction: %s from %r via %s", iso_date, match.group(0), family)
                return iso_date, DATE_CONFIDENCE

        return None, 0.0

    # Provider

    def propose_provider_candidates(self, text: str) -> List[TextCandidate]:
        """Run every provider rule and keep the matches that look like business names."""
        candidates: List[TextCandidate] = []

        for spec in self.provider_patterns:
            for match in spec.compiled.finditer(text):
                provider = collapse_whitespace(match.group(1))

                if len(provider) < 3 or len(provider) > 50:
                    continue
                if contains_stop_word(provider):
                    continue
                # Too number-heavy to be a business name
                if re.search(r'\d', provider) and len(provider) < 8:
                    continue

                candidates.append(create_text_candidate(
                    value=provider,
                    pattern_name=spec.name,
                    match_span=match.span(1),
                    raw_text=match.group(0),
                    base_confidence=spec.confidence,
                ))

        return candidates

    def extract_provider(self, text: str) -> tuple[Optional[str], float]:
        """
        Extract vendor name.

        Returns:
            (provider, confidence) or (None, 0.0)
        """
        best = select_best_text(self.propose_provider_candidates(text))
        if best is None:
            return None, 0.0

        candidate, confidence = best
        logger.debug("Provider extraction: %r (%.2f) via %s", candidate.value, confidence, candidate.pattern_name)
        return candidate.value, confidence

    # Description

    def propose_description_candidates(
        self,
        text: str,
        provider: Optional[str] = None
    ) -> List[TextCandidate]:
        """Run every description rule, filter out names and receipt labels, apply the purchase bonus."""
        candidates: List[TextCandidate] = []
        provider_lower = provider.lower() if provider else None

        for spec in self.description_patterns:
            for match in spec.compiled.finditer(text):
                description = collapse_whitespace(match.group(1))

                if len(description) < 5 or len(description) > 100:
                    continue

                lowered = description.lower()

                # Looks like a proper name, most likely the vendor
                if PROPER_NAME_RE.match(description) and 'compra' not in lowered:
                    continue
                if contains_stop_word(description):
                    continue
                if provider_lower and provider_lower in lowered:
                    continue

                confidence = spec.confidence
                if any(word in lowered for word in PURCHASE_WORDS):
                    confidence += 0.1

                candidates.append(create_text_candidate(
                    value=description,
                    pattern_name=spec.name,
                    match_span=match.span(1),
                    raw_text=match.group(0),
                    base_confidence=min(confidence, 1.0),
                ))

        return candidates

    def extract_description(self, text: str, provider: Optional[str] = None) -> tuple[str, float]:
        """
        Extract what was bought.

        Never absent: falls back to "Compra en {provider}" (0.5) or
        "Gasto registrado" (0.3).
        """
        best = select_best_text(self.propose_description_candidates(text, provider))
        if best is not None:
            candidate, confidence = best
            logger.debug(
                "Description extraction: %r (%.2f) via %s",
                candidate.value, confidence, candidate.pattern_name,
            )
            return candidate.value, confidence

        if provider:
            return _provider_fallback_description(provider), 0.5
        return GENERIC_DESCRIPTION, 0.3


_default_parser = ReceiptParser()


def heuristic_extract(
    text: str,
    day_first: bool = False,
    escalation_threshold: float = ESCALATION_THRESHOLD
) -> ExtractionResult:
    """
    Core entry point: extract fields from raw receipt text.

    Pure function of its input; safe to call from any number of threads.
    """
    return _default_parser.parse(
        text,
        day_first=day_first,
        escalation_threshold=escalation_threshold,
    )
