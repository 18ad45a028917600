"""
Pydantic models for extracted receipt fields.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional
from decimal import Decimal


class FieldConfidence(BaseModel):
    """Per-field confidence; always all four entries, 0.0 when the field is absent."""
    model_config = ConfigDict(frozen=True)

    amount: float = Field(default=0.0, ge=0.0, le=1.0)
    date: float = Field(default=0.0, ge=0.0, le=1.0)
    provider: float = Field(default=0.0, ge=0.0, le=1.0)
    description: float = Field(default=0.0, ge=0.0, le=1.0)


class ExtractedFields(BaseModel):
    """
    Fields extracted from one receipt text.

    Shared contract between the heuristic engine and the AI extractor.
    Every field is independently optional.
    """
    model_config = ConfigDict(frozen=True)

    description: Optional[str] = None
    provider: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    date: Optional[str] = None  # YYYY-MM-DD
    confidence: FieldConfidence = Field(default_factory=FieldConfidence)


class ExtractionResult(BaseModel):
    """Extracted fields plus the escalation decision."""
    model_config = ConfigDict(frozen=True)

    fields: ExtractedFields
    should_use_llm: bool
    overall_confidence: float


class ExtractRequest(BaseModel):
    """Request body for text extraction."""
    text: str
    # Reported by the OCR/PDF step; passed through, never scored
    ocr_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    day_first: bool = False


class ProcessedReceipt(BaseModel):
    """Outcome of the full extraction path (heuristic, possibly escalated)."""
    model_config = ConfigDict(frozen=True)

    fields: ExtractedFields
    should_use_llm: bool
    overall_confidence: float
    source: Literal['heuristic', 'llm']
    ocr_confidence: float = 0.0
