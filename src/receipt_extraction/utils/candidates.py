"""
Candidate dataclasses for extraction scoring.

Each candidate represents a potential extracted value with metadata
used for scoring and selection. Candidates only live for the duration
of a single scan call.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class Candidate:
    """Base class for extraction candidates."""
    value: object
    pattern_name: str
    match_span: tuple[int, int]  # (start, end) character positions
    base_confidence: float = 0.0  # Fixed trust of the rule that matched
    raw_text: str = ""  # Original matched text


@dataclass(frozen=True)
class AmountCandidate(Candidate):
    """
    Candidate for extracted amount.

    Scoring factors:
    - base_confidence: Rule trust (0.98 symbol-prefixed ... 0.40 bare number)
    - currency: Symbol or code captured with the number
    - near_total_keyword: "total"/"suma" within 20 chars of the match
    - value magnitude: larger values look more like totals
    """
    value: Decimal
    currency: Optional[str] = None
    near_total_keyword: bool = False


@dataclass(frozen=True)
class TextCandidate(Candidate):
    """Candidate for a free-text field (provider or description)."""
    value: str


TOTAL_KEYWORDS = ('total', 'suma')


def create_amount_candidate(
    value: Decimal,
    currency: Optional[str],
    pattern_name: str,
    match_span: tuple[int, int],
    raw_text: str,
    base_confidence: float,
    text: str
) -> AmountCandidate:
    """
    Create AmountCandidate with computed context flags.

    Args:
        value: Normalized amount
        currency: Captured currency token, if any
        pattern_name: Name of pattern that matched
        match_span: Character span of match
        raw_text: Original matched text
        base_confidence: Rule confidence before adjustment
        text: Full text for context analysis

    Returns:
        AmountCandidate with computed flags
    """
    start, end = match_span
    context_before = text[max(0, start - 20):start].lower()
    # From the match start, so a label inside the match ("Total: $5") counts
    context_after = text[start:end + 20].lower()

    near_total_keyword = any(
        kw in context_before or kw in context_after
        for kw in TOTAL_KEYWORDS
    )

    return AmountCandidate(
        value=value,
        currency=currency,
        pattern_name=pattern_name,
        match_span=match_span,
        base_confidence=base_confidence,
        raw_text=raw_text,
        near_total_keyword=near_total_keyword,
    )


def create_text_candidate(
    value: str,
    pattern_name: str,
    match_span: tuple[int, int],
    raw_text: str,
    base_confidence: float
) -> TextCandidate:
    """Create TextCandidate for provider/description rules."""
    return TextCandidate(
        value=value,
        pattern_name=pattern_name,
        match_span=match_span,
        base_confidence=base_confidence,
        raw_text=raw_text,
    )
