"""OCR services package."""

from expense_tracker.services.ocr.tesseract_service import (
    ExtractionFailedError,
    OCRError,
    OCRUnavailableError,
    TesseractOCRService,
)

__all__ = [
    "ExtractionFailedError",
    "OCRError",
    "OCRUnavailableError",
    "TesseractOCRService",
]
