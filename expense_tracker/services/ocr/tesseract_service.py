"""
OCR Service using Tesseract

DESIGN DECISION: We use Tesseract (via pytesseract) because:
1. Free and runs locally - receipts never leave the household
2. Returns raw text, which is exactly what the receipt parser consumes
3. Good enough on printed shop receipts after light preprocessing

This service handles:
1. Opening and preprocessing the uploaded image (Pillow)
2. Running Tesseract
3. Returning best-effort multi-line text

CRITICAL: This service does NOT interpret the text. Structure is derived
by the receipt parser, and the user corrects it before anything is saved.
"""

import asyncio
from io import BytesIO
from typing import Optional

import pytesseract
import structlog
from PIL import Image, ImageEnhance, ImageFilter, UnidentifiedImageError

from expense_tracker.config import get_settings


logger = structlog.get_logger(__name__)

# PSM 6 = assume a uniform block of text, which suits narrow till receipts
TESSERACT_CONFIG = r"--oem 3 --psm 6"
MAX_IMAGE_SIDE = 2000


class OCRError(Exception):
    """Base exception for OCR errors."""
    pass


class OCRUnavailableError(OCRError):
    """The tesseract binary is missing or unusable."""
    pass


class ExtractionFailedError(OCRError):
    """Failed to extract text from the image."""
    pass


class TesseractOCRService:
    """
    Text extraction for receipt photos.

    IMPORTANT BOUNDARIES:
    1. This service ONLY extracts text
    2. Empty text is a valid result; the flow reports it to the user
    """

    def __init__(self):
        self._settings = get_settings().tesseract
        self._app_settings = get_settings().app
        if self._settings.cmd:
            pytesseract.pytesseract.tesseract_cmd = self._settings.cmd

    def check_available(self) -> bool:
        """Return True when the tesseract binary can be invoked."""
        try:
            pytesseract.get_tesseract_version()
            return True
        except pytesseract.TesseractNotFoundError:
            logger.error("tesseract_not_found", cmd=self._settings.cmd)
            return False

    def _preprocess_image(self, image_bytes: bytes) -> Image.Image:
        """Grayscale, contrast and sharpen the photo before OCR."""
        if len(image_bytes) > self._app_settings.max_upload_size_bytes:
            raise ExtractionFailedError(
                f"Image is larger than {self._app_settings.max_upload_size_mb} MB"
            )

        try:
            img = Image.open(BytesIO(image_bytes))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ExtractionFailedError(f"Unsupported image format: {e}") from e

        if img.mode != "RGB":
            img = img.convert("RGB")

        if max(img.size) > MAX_IMAGE_SIDE:
            ratio = MAX_IMAGE_SIDE / max(img.size)
            new_size = (int(img.size[0] * ratio), int(img.size[1] * ratio))
            img = img.resize(new_size, Image.Resampling.LANCZOS)

        img = img.convert("L")
        img = ImageEnhance.Contrast(img).enhance(1.5)
        return img.filter(ImageFilter.SHARPEN)

    def _run_tesseract(self, image: Image.Image) -> str:
        try:
            return pytesseract.image_to_string(
                image,
                lang=self._settings.lang,
                config=TESSERACT_CONFIG,
            )
        except pytesseract.TesseractNotFoundError as e:
            raise OCRUnavailableError(
                "Tesseract OCR is not installed. "
                "Install it with your package manager (e.g. apt-get install tesseract-ocr)."
            ) from e
        except pytesseract.TesseractError as e:
            raise ExtractionFailedError(f"Tesseract failed: {e}") from e

    async def extract_text(
        self,
        image_bytes: bytes,
        filename: Optional[str] = None,
    ) -> str:
        """
        Extract raw text from a receipt image.

        Args:
            image_bytes: Uploaded image content
            filename: Original filename, for logging only

        Returns:
            OCR text (possibly empty)

        Raises:
            OCRUnavailableError: If tesseract is not installed
            ExtractionFailedError: If the image cannot be read or OCR fails
        """
        image = self._preprocess_image(image_bytes)
        # Tesseract is a blocking subprocess call
        text = await asyncio.to_thread(self._run_tesseract, image)
        logger.info(
            "ocr_text_extracted",
            filename=filename,
            characters=len(text),
            lines=len(text.splitlines()),
        )
        return text
