"""
Extraction API router.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from receipt_extraction.config import settings
from receipt_extraction.models.receipt import ExtractRequest, ProcessedReceipt
from receipt_extraction.services.extraction import ExtractionService
from receipt_extraction.services.llm import get_llm_extractor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/extract", tags=["extract"])


def get_extraction_service() -> ExtractionService:
    return ExtractionService(
        llm_extractor=get_llm_extractor(),
        escalation_threshold=settings.ESCALATION_THRESHOLD,
    )


@router.post("", response_model=ProcessedReceipt)
def extract_receipt(
    request: ExtractRequest,
    service: ExtractionService = Depends(get_extraction_service)
):
    """
    Extract description, provider, amount, currency and date from receipt text.

    Low-confidence results are escalated to the AI extractor when one
    is configured.
    """
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="No text provided")

    try:
        return service.process(
            request.text,
            ocr_confidence=request.ocr_confidence,
            day_first=request.day_first,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Receipt extraction failed: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to extract receipt fields")
