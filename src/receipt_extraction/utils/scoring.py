"""
Scoring functions for extraction candidates.

Each score is a confidence from 0.0 (worst) to 1.0 (best). Selection is
kept separate from candidate generation so normalization, scoring and
ranking can be tested on their own.
"""

from decimal import Decimal
from functools import cmp_to_key
from typing import List, Optional, Sequence

from .candidates import AmountCandidate, TextCandidate
from .money import DEFAULT_CURRENCY

__all__ = [
    'adjust_amount_confidence', 'score_amount_candidate',
    'rank_amount_candidates', 'select_best_amount', 'select_top_amounts',
    'resolve_currency', 'select_best_text',
    'FIELD_WEIGHTS', 'ESCALATION_THRESHOLD',
    'calculate_overall_confidence', 'requires_escalation',
]

# Candidates whose confidences differ by less than this are treated as tied
TIE_MARGIN = 0.05

# Field weights (sum to 1.0). Description is always recoverable via fallback.
FIELD_WEIGHTS = {
    'amount': 0.4,
    'date': 0.3,
    'provider': 0.2,
    'description': 0.1,
}

ESCALATION_THRESHOLD = 0.6


def adjust_amount_confidence(
    base_confidence: float,
    value: Decimal,
    has_currency: bool = False,
    near_total_keyword: bool = False
) -> float:
    """
    Apply contextual adjustments to a rule's base confidence.

    Adjustments:
    - Currency captured: +0.05
    - Magnitude: +0.02 (>50), +0.03 (>100), +0.02 (>1000), cumulative
    - Small value: -0.2 (<1), further -0.3 (<0.1)
    - "total"/"suma" within 20 chars: +0.1

    Returns:
        Confidence clamped to [0.0, 1.0]
    """
    confidence = base_confidence

    if has_currency:
        confidence += 0.05

    if value > 50:
        confidence += 0.02
    if value > 100:
        confidence += 0.03
    if value > 1000:
        confidence += 0.02

    if value < 1:
        confidence -= 0.2
    if value < Decimal('0.1'):
        confidence -= 0.3

    if near_total_keyword:
        confidence += 0.1

    return max(0.0, min(1.0, confidence))


def score_amount_candidate(candidate: AmountCandidate) -> float:
    """Score amount candidate from its rule confidence and context flags."""
    return adjust_amount_confidence(
        candidate.base_confidence,
        candidate.value,
        has_currency=bool(candidate.currency),
        near_total_keyword=candidate.near_total_keyword,
    )


def _compare_scored_amounts(a: tuple[AmountCandidate, float], b: tuple[AmountCandidate, float]) -> int:
    candidate_a, score_a = a
    candidate_b, score_b = b
    if abs(score_a - score_b) < TIE_MARGIN:
        # Totals are more often printed legibly than line items: prefer larger
        if candidate_a.value == candidate_b.value:
            return 0
        return -1 if candidate_a.value > candidate_b.value else 1
    return -1 if score_a > score_b else 1


def rank_amount_candidates(
    candidates: Sequence[AmountCandidate]
) -> List[tuple[AmountCandidate, float]]:
    """
    Score and rank amount candidates.

    Sorted by confidence descending; candidates within TIE_MARGIN of each
    other are ordered by larger amount first. Equal entries keep proposal
    order, so earlier (more trusted) rules win exact ties.

    Returns:
        List of (candidate, score) tuples, best first
    """
    scored = [(candidate, score_amount_candidate(candidate)) for candidate in candidates]
    scored.sort(key=cmp_to_key(_compare_scored_amounts))
    return scored


def select_top_amounts(
    candidates: Sequence[AmountCandidate],
    top_n: int = 3
) -> List[tuple[AmountCandidate, float]]:
    """Select top N amount candidates with scores."""
    return rank_amount_candidates(candidates)[:top_n]


def select_best_amount(
    candidates: Sequence[AmountCandidate]
) -> Optional[tuple[AmountCandidate, float]]:
    """
    Select best amount candidate.

    Returns:
        (candidate, score) for the winner, or None if there are no candidates
    """
    ranked = rank_amount_candidates(candidates)
    if not ranked:
        return None
    return ranked[0]


def resolve_currency(ranked: Sequence[tuple[AmountCandidate, float]]) -> str:
    """
    Pick the currency for the winning amount.

    The winner's own currency, else the best-ranked candidate that has
    one, else DEFAULT_CURRENCY.
    """
    for candidate, _ in ranked:
        if candidate.currency:
            return candidate.currency
    return DEFAULT_CURRENCY


def select_best_text(candidates: Sequence[TextCandidate]) -> Optional[tuple[TextCandidate, float]]:
    """
    Select the highest-confidence text candidate; the first seen wins ties.

    Returns:
        (candidate, confidence) or None for an empty list
    """
    best: Optional[TextCandidate] = None
    for candidate in candidates:
        if best is None or candidate.base_confidence > best.base_confidence:
            best = candidate
    if best is None:
        return None
    return best, best.base_confidence


def calculate_overall_confidence(confidence) -> float:
    """
    Combine the four per-field confidences into one weighted score.

    Args:
        confidence: FieldConfidence (or any object with amount/date/
            provider/description attributes)

    Returns:
        Weighted confidence between 0.0 and 1.0
    """
    score = 0.0
    for field, weight in FIELD_WEIGHTS.items():
        score += weight * getattr(confidence, field)
    return max(0.0, min(1.0, score))


def requires_escalation(
    fields,
    overall_confidence: float,
    threshold: float = ESCALATION_THRESHOLD
) -> bool:
    """
    Decide whether the heuristic result must go to the AI extractor.

    Returns True if ANY of:
    - Weighted confidence below threshold
    - Amount missing (or zero)
    - Both date and provider missing (too little structural anchor)

    Args:
        fields: ExtractedFields to check
        overall_confidence: Output of calculate_overall_confidence
        threshold: Minimum acceptable weighted confidence

    Returns:
        True if the result should be escalated
    """
    if overall_confidence < threshold:
        return True

    if fields.amount is None or fields.amount <= 0:
        return True

    if fields.date is None and fields.provider is None:
        return True

    return False
