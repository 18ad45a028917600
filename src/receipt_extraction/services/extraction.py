"""
Extraction service: heuristic engine first, AI extractor on escalation.
"""

import logging
from typing import Optional

from openai import OpenAIError

from receipt_extraction.config import settings
from receipt_extraction.models.receipt import ProcessedReceipt
from receipt_extraction.services.llm import (
    LLMExtractionError,
    LLMExtractor,
    fallback_fields,
)
from receipt_extraction.services.parser import heuristic_extract
from receipt_extraction.utils.scoring import calculate_overall_confidence

logger = logging.getLogger(__name__)


class ExtractionService:
    """Routes one receipt text through the heuristic engine and, if needed, the AI extractor."""

    def __init__(
        self,
        llm_extractor: Optional[LLMExtractor] = None,
        escalation_threshold: Optional[float] = None
    ):
        self.llm_extractor = llm_extractor
        self.escalation_threshold = (
            settings.ESCALATION_THRESHOLD if escalation_threshold is None else escalation_threshold
        )

    def process(
        self,
        text: str,
        ocr_confidence: float = 0.0,
        day_first: bool = False
    ) -> ProcessedReceipt:
        """
        Extract fields from receipt text.

        Args:
            text: Text from the OCR or PDF step
            ocr_confidence: Reported by the OCR step, returned untouched
            day_first: Locale hint for ambiguous numeric dates

        Returns:
            ProcessedReceipt

        Raises:
            ValueError: If text is empty
        """
        if not text or not text.strip():
            raise ValueError("Receipt text is empty")

        result = heuristic_extract(
            text,
            day_first=day_first,
            escalation_threshold=self.escalation_threshold,
        )

        if not result.should_use_llm:
            return ProcessedReceipt(
                fields=result.fields,
                should_use_llm=False,
                overall_confidence=result.overall_confidence,
                source='heuristic',
                ocr_confidence=ocr_confidence,
            )

        if self.llm_extractor is None:
            logger.info(
                "Escalation requested (overall=%.2f) but no AI extractor configured, keeping heuristic result",
                result.overall_confidence,
            )
            return ProcessedReceipt(
                fields=result.fields,
                should_use_llm=True,
                overall_confidence=result.overall_confidence,
                source='heuristic',
                ocr_confidence=ocr_confidence,
            )

        logger.info("Escalating to AI extractor (overall=%.2f)", result.overall_confidence)

        try:
            fields = self.llm_extractor.extract(text)
        except (LLMExtractionError, OpenAIError):
            logger.warning("AI extraction failed, using raw-text fallback", exc_info=True)
            fields = fallback_fields(text)

        return ProcessedReceipt(
            fields=fields,
            should_use_llm=True,
            overall_confidence=calculate_overall_confidence(fields.confidence),
            source='llm',
            ocr_confidence=ocr_confidence,
        )
