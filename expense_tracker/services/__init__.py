"""Services package."""

from expense_tracker.services.ocr import (
    ExtractionFailedError,
    OCRError,
    OCRUnavailableError,
    TesseractOCRService,
)
from expense_tracker.services.storage import (
    AuditStorageInterface,
    BackendInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsBackend,
    GoogleSheetsClient,
    InMemoryAuditStorage,
    InMemoryBackend,
    NotFoundError,
    StorageError,
)

__all__ = [
    # OCR services
    "ExtractionFailedError",
    "OCRError",
    "OCRUnavailableError",
    "TesseractOCRService",
    # Storage services
    "AuditStorageInterface",
    "BackendInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBackend",
    "GoogleSheetsClient",
    "InMemoryAuditStorage",
    "InMemoryBackend",
    "NotFoundError",
    "StorageError",
]
