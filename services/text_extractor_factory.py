# services/text_extractor_factory.py
"""Chooses a text extractor by MIME type"""
import logging
from typing import Callable, Dict

from core.enums import ErrorCode
from core.errors import DocumentProcessingError
from core.interfaces import ITextExtractor
from infrastructure.pdf_converters import PyMuPDFConverter
from infrastructure.text_extractors import (
    ImageOcrExtractor,
    PdfTextExtractor,
    PlainTextExtractor,
    TesseractOCR,
)
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


class TextExtractorFactory:
    """
    Maps a document's MIME type to the extractor that can read it.
    Add a format by registering another builder.
    """

    def __init__(self, pdf_converter_class=None):
        self.pdf_converter_class = pdf_converter_class or PyMuPDFConverter
        self._builders: Dict[str, Callable[[], ITextExtractor]] = {
            "text/plain": PlainTextExtractor,
            "text/csv": PlainTextExtractor,
            "text/markdown": PlainTextExtractor,
            "application/pdf": self._build_pdf_extractor,
            "image/png": ImageOcrExtractor,
            "image/jpeg": ImageOcrExtractor,
        }

    def _build_pdf_extractor(self) -> ITextExtractor:
        return PdfTextExtractor(
            pdf_converter=self.pdf_converter_class(default_dpi=settings.OCR_DPI),
            ocr=TesseractOCR(),
        )

    def supports(self, mime_type: str) -> bool:
        return mime_type in self._builders

    def get_extractor(self, mime_type: str) -> ITextExtractor:
        builder = self._builders.get(mime_type)
        if builder is None:
            raise DocumentProcessingError(
                f"No text extractor for MIME type '{mime_type}'", ErrorCode.INVALID_FORMAT
            )
        logger.debug(f"Using {getattr(builder, '__name__', 'extractor')} for {mime_type}")
        return builder()
