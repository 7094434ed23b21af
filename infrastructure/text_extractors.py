# infrastructure/text_extractors.py
"""Text extraction from stored uploads: plain text, PDF text layer, OCR"""
import asyncio
import logging
from pathlib import Path
from typing import Any, List, Optional

import fitz  # PyMuPDF
from PIL import Image

from core.domain import ExtractionResult
from core.enums import ErrorCode
from core.errors import DocumentProcessingError
from core.interfaces import IPdfToImageConverter, ITextExtractor
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

# Pages with fewer characters than this in their text layer are OCR'd
MIN_PAGE_TEXT_CHARS = 20


class TesseractOCR:
    """Thin async wrapper around pytesseract."""

    def __init__(self, lang: str = settings.OCR_LANGUAGES, timeout: float = settings.OCR_TIMEOUT_SECONDS):
        self.lang = lang
        self.timeout = timeout

    def _image_to_text(self, image: Image.Image) -> str:
        import pytesseract  # local import: the tesseract binary is only needed for scans
        return pytesseract.image_to_string(image, lang=self.lang)

    async def image_to_text(self, image: Image.Image) -> str:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._image_to_text, image), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise DocumentProcessingError(
                f"OCR timed out after {self.timeout} seconds", ErrorCode.EXTRACTION_ERROR
            )
        except Exception as e:
            # pytesseract raises its own TesseractNotFoundError / TesseractError types
            raise DocumentProcessingError(f"OCR failed: {e}", ErrorCode.EXTRACTION_ERROR)


class PlainTextExtractor(ITextExtractor):

    async def extract(self, file_path: str) -> ExtractionResult:
        raw = await asyncio.to_thread(Path(file_path).read_bytes)
        text = raw.decode("utf-8", errors="replace")
        return ExtractionResult(text=text, method="direct", confidence=1.0, pages=[text])


class PdfTextExtractor(ITextExtractor):
    """
    Reads each page's text layer with PyMuPDF. Pages without usable text are
    rendered and OCR'd, so scanned PDFs still yield text.
    """

    def __init__(self, pdf_converter: IPdfToImageConverter, ocr: Optional[TesseractOCR] = None):
        self.pdf_converter = pdf_converter
        self.ocr = ocr or TesseractOCR()

    def _read_text_layer(self, file_path: str) -> List[str]:
        try:
            with fitz.open(file_path) as doc:
                return [page.get_text("text") for page in doc]
        except (RuntimeError, ValueError) as e:
            # fitz raises FileDataError (a RuntimeError) on corrupt input
            raise DocumentProcessingError(f"Cannot open PDF: {e}", ErrorCode.INVALID_FORMAT)

    async def extract(self, file_path: str) -> ExtractionResult:
        pages = await asyncio.to_thread(self._read_text_layer, file_path)
        needs_ocr = [i for i, text in enumerate(pages) if len(text.strip()) < MIN_PAGE_TEXT_CHARS]

        method = "pdf_text"
        confidence = 0.95
        if needs_ocr:
            logger.info(f"OCR fallback for {len(needs_ocr)}/{len(pages)} pages of {file_path}")
            images = await asyncio.to_thread(
                self.pdf_converter.convert, file_path, settings.OCR_DPI, needs_ocr
            )
            for page_index, image in zip(needs_ocr, images):
                pages[page_index] = await self.ocr.image_to_text(image)
            method = "ocr" if len(needs_ocr) == len(pages) else "pdf_text+ocr"
            confidence = 0.8 if method == "ocr" else 0.9

        text = "\n\n".join(p.strip() for p in pages if p.strip())
        return ExtractionResult(text=text, method=method, confidence=confidence, pages=pages)


class ImageOcrExtractor(ITextExtractor):

    def __init__(self, ocr: Optional[TesseractOCR] = None):
        self.ocr = ocr or TesseractOCR()

    def _open(self, file_path: str) -> Any:
        try:
            with Image.open(file_path) as img:
                return img.convert("RGB")
        except OSError as e:
            raise DocumentProcessingError(f"Cannot open image: {e}", ErrorCode.INVALID_FORMAT)

    async def extract(self, file_path: str) -> ExtractionResult:
        image = await asyncio.to_thread(self._open, file_path)
        text = (await self.ocr.image_to_text(image)).strip()
        return ExtractionResult(text=text, method="ocr", confidence=0.8, pages=[text])
