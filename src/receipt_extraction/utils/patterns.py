"""
Pattern tables shared by the scanners and the field disambiguator.

All tables are built once at import time and never mutated.
"""

import re
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class PatternSpec:
    """A named regex rule with its base confidence and an example for documentation."""
    name: str
    pattern: str
    example: str
    confidence: float = 0.0
    notes: Optional[str] = None
    flags: int = 0
    compiled: re.Pattern = field(default=None, init=False, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, 'compiled', re.compile(self.pattern, self.flags))


# Words that mark receipt structure rather than a vendor or an item
STOP_WORDS = frozenset({
    'TOTAL', 'SUBTOTAL', 'IVA', 'DESCUENTO', 'PAGO', 'FECHA',
    'HORA', 'CANTIDAD', 'PRECIO', 'ITEM',
})

UPPER = 'A-ZÁÉÍÓÚÑ'
LETTERS = 'A-Za-zÁÉÍÓÚÑáéíóúñ'

# Legal-entity and business-type words that close a vendor name
BUSINESS_SUFFIX_PATTERN = (
    r'(?:Store|Shop|Tienda|Empresa|Company|Corp|Inc|Ltd|LLC|'
    r'S\.A\.?|S\.L\.?|Restaurante|Restaurant|Café|Cafe|Supermercado|Farmacia)'
)

# Capitalized phrase ending in a business suffix ("Supermercado ABC S.A.").
# The name part is bounded so long single-line text cannot backtrack for seconds.
BUSINESS_NAME_PATTERN = rf"\b([{UPPER}][{LETTERS}&' ]{{1,60}}{BUSINESS_SUFFIX_PATTERN})(?!\w)"

BUSINESS_NAME_RE = re.compile(BUSINESS_NAME_PATTERN)


def contains_stop_word(text: str) -> bool:
    """True if any structural receipt word appears in text (case-insensitive)."""
    upper = text.upper()
    return any(word in upper for word in STOP_WORDS)


def collapse_whitespace(text: str) -> str:
    return re.sub(r'\s+', ' ', text).strip()
