"""
AI extractor for receipts the heuristic engine could not handle.

Talks to any OpenAI-compatible chat endpoint (OpenRouter by default).
The reply is coerced into ExtractedFields and goes through the same
repair pass as heuristic results.
"""

import re
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from openai import OpenAI

from receipt_extraction.config import settings
from receipt_extraction.models.receipt import ExtractedFields, FieldConfidence
from receipt_extraction.services.disambiguation import (
    RECOVERED_CONFIDENCE,
    disambiguate_fields,
)
from receipt_extraction.utils.dates import to_iso
from receipt_extraction.utils.json_tools import extract_json_object
from receipt_extraction.utils.money import normalize_amount

logger = logging.getLogger(__name__)

DEFAULT_FIELD_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = RECOVERED_CONFIDENCE
FALLBACK_DESCRIPTION_LENGTH = 100

SYSTEM_PROMPT = (
    "You are an expert at reading invoices and receipts. Keep every field "
    "separate: never put the vendor, the amount or the date inside "
    "\"description\". Reply with valid JSON only, no explanations."
)

USER_PROMPT_TEMPLATE = """Extract these fields from the receipt text below:

- description: what was bought, in a few words (no vendor, amount or date)
- provider: the business name only
- amount: the final total as a number, no currency symbol
- currency: the currency symbol or ISO code
- date: the purchase date as YYYY-MM-DD
- confidence: an object with a 0-1 score for amount, date, provider and description

Use null for anything you cannot find.

Receipt text:
{text}

Return ONLY the JSON object:"""

_ISO_DATE_RE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')
_AMOUNT_NOISE_RE = re.compile(r'[^\d.,]')


class LLMExtractionError(Exception):
    """The AI extractor returned something that cannot be used."""


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_amount(value: Any) -> Optional[Decimal]:
    """Accept numbers or strings like "$1.234,56"; non-positive values are dropped."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            return None
    else:
        amount = normalize_amount(_AMOUNT_NOISE_RE.sub('', str(value)))

    if amount is None or not amount.is_finite() or amount <= 0:
        return None
    return amount


def _coerce_date(value: Any) -> Optional[str]:
    text = _clean_text(value)
    if text is None:
        return None
    match = _ISO_DATE_RE.match(text)
    if not match:
        return None
    return to_iso(int(match.group(1)), int(match.group(2)), int(match.group(3)))


def _coerce_confidence(raw: Any, present: bool) -> float:
    if not present:
        return 0.0
    if raw is None or isinstance(raw, bool):
        return DEFAULT_FIELD_CONFIDENCE
    try:
        score = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_FIELD_CONFIDENCE
    if score != score:  # NaN
        return DEFAULT_FIELD_CONFIDENCE
    return max(0.0, min(1.0, score))


def fields_from_payload(payload: dict) -> ExtractedFields:
    """
    Build ExtractedFields from the model's JSON object.

    Empty strings count as absent. A missing confidence score defaults
    to 0.8 for a present field; an absent field always scores 0.
    """
    description = _clean_text(payload.get('description'))
    provider = _clean_text(payload.get('provider'))
    amount = _coerce_amount(payload.get('amount'))
    currency = _clean_text(payload.get('currency'))
    date = _coerce_date(payload.get('date'))

    scores = payload.get('confidence')
    if not isinstance(scores, dict):
        scores = {}

    confidence = FieldConfidence(
        amount=_coerce_confidence(scores.get('amount'), amount is not None),
        date=_coerce_confidence(scores.get('date'), date is not None),
        provider=_coerce_confidence(scores.get('provider'), provider is not None),
        description=_coerce_confidence(scores.get('description'), description is not None),
    )

    return ExtractedFields(
        description=description,
        provider=provider,
        amount=amount,
        currency=currency,
        date=date,
        confidence=confidence,
    )


def fallback_fields(text: str) -> ExtractedFields:
    """
    Degraded result used when the AI extractor fails.

    The start of the raw text becomes the description and the repair
    pass gets a chance to pull the other fields out of it.
    """
    stripped = text.strip()
    description = stripped[:FALLBACK_DESCRIPTION_LENGTH]
    if len(stripped) > FALLBACK_DESCRIPTION_LENGTH:
        description += '...'

    fields = ExtractedFields(
        description=description or None,
        confidence=FieldConfidence(
            description=FALLBACK_CONFIDENCE if description else 0.0,
        ),
    )
    return disambiguate_fields(fields)


class LLMExtractor:
    """Receipt field extraction through an OpenAI-compatible chat model."""

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ):
        if client is None:
            if not settings.LLM_API_KEY:
                raise ValueError("LLM_API_KEY must be set to use the AI extractor")
            client = OpenAI(
                api_key=settings.LLM_API_KEY,
                base_url=settings.LLM_BASE_URL,
                timeout=settings.LLM_TIMEOUT_SECONDS,
            )
            logger.info("AI extractor client initialized for %s", settings.LLM_BASE_URL)

        self.client = client
        self.model = model or settings.LLM_MODEL
        self.temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.LLM_MAX_TOKENS

    def extract(self, text: str) -> ExtractedFields:
        """
        Ask the model for the four fields and repair its answer.

        Args:
            text: Raw receipt text

        Returns:
            Disambiguated ExtractedFields

        Raises:
            LLMExtractionError: Empty reply or no JSON object in it
            openai.OpenAIError: Transport or API failure, left to the caller
        """
        logger.info("Calling AI extractor with model: %s", self.model)

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": USER_PROMPT_TEMPLATE.format(text=text)},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        if not response.choices:
            raise LLMExtractionError("AI extractor returned no choices")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise LLMExtractionError("AI extractor returned an empty reply")

        payload = extract_json_object(content)
        if payload is None:
            logger.debug("Unparseable AI reply: %r", content[:500])
            raise LLMExtractionError("No JSON object in AI extractor reply")

        fields = disambiguate_fields(fields_from_payload(payload))
        logger.debug(
            "AI extraction: amount=%s currency=%s date=%s provider=%r",
            fields.amount, fields.currency, fields.date, fields.provider,
        )
        return fields


# Shared extractor; one OpenAI client (and connection pool) per process
_extractor: Optional[LLMExtractor] = None


def get_llm_extractor() -> Optional[LLMExtractor]:
    """Configured extractor, or None when the AI path is disabled or has no key."""
    global _extractor
    if not settings.LLM_ENABLED or not settings.LLM_API_KEY:
        return None
    if _extractor is None:
        _extractor = LLMExtractor()
    return _extractor
