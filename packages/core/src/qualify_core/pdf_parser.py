"""Text acquisition for uploaded income documents.

This module turns raw uploaded bytes into text:
- MIME sniffing for the supported upload formats (PDF, JPEG, PNG)
- Direct PDF text extraction with PyPDF2, falling back to pdfplumber
- OCR through Tesseract (pdf2image for PDFs, Pillow for images)

OCR is hidden behind the OCREngine protocol so callers can substitute an
engine (or a fake in tests) without touching extraction logic.
"""

import io
import mimetypes
import re
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

import pdfplumber
import pytesseract
import structlog
from pdf2image import convert_from_bytes
from PIL import Image
from PyPDF2 import PdfReader

from .exceptions import ExtractionError, IngestionError
from .models.documents import ProcessingMethod

logger = structlog.get_logger()


PDF_MIME = "application/pdf"
JPEG_MIME = "image/jpeg"
PNG_MIME = "image/png"

SUPPORTED_MIME_TYPES = frozenset({PDF_MIME, JPEG_MIME, PNG_MIME})
IMAGE_MIME_TYPES = frozenset({JPEG_MIME, PNG_MIME})

# Magic bytes -> MIME type
_SIGNATURES = (
    (b"%PDF", PDF_MIME),
    (b"\xff\xd8\xff", JPEG_MIME),
    (b"\x89PNG\r\n\x1a\n", PNG_MIME),
)

# Below this many characters per page a PDF is treated as scanned
DEFAULT_MIN_CHARS_PER_PAGE = 50


def sniff_mime_type(
    content: bytes,
    file_name: Optional[str] = None,
    declared: Optional[str] = None,
    *,
    document_id: Optional[str] = None,
) -> str:
    """Determine the MIME type of an upload from its content.

    The file signature is authoritative; the declared type and file
    extension are only used to report what was rejected.

    Raises:
        IngestionError: If the content is empty or not a supported format.
    """
    if not content:
        raise IngestionError(
            "Uploaded file is empty",
            document_id=document_id,
            mime_type=declared,
            reason="empty_file",
        )

    for signature, mime_type in _SIGNATURES:
        if content.startswith(signature):
            return mime_type

    guessed = declared
    if guessed is None and file_name:
        guessed, _ = mimetypes.guess_type(file_name)
    raise IngestionError(
        f"Unsupported file type: {guessed or 'unknown'}",
        document_id=document_id,
        mime_type=guessed,
        reason="unsupported_mime",
        details={"supported": sorted(SUPPORTED_MIME_TYPES)},
    )


@dataclass
class DocumentText:
    """Text read from a document, with how it was obtained."""
    pages: list[str]
    method: ProcessingMethod
    ocr_used: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n\n".join(self.pages)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def char_count(self) -> int:
        return len(self.text.strip())

    def chars_per_page(self) -> float:
        if not self.pages:
            return 0.0
        return self.char_count / len(self.pages)


@runtime_checkable
class OCREngine(Protocol):
    """Anything that can turn a PDF or image into per-page text."""

    def extract_text(self, content: bytes, mime_type: str) -> list[str]:
        """Return OCR text for each page of the document."""
        ...


class TesseractOCREngine:
    """
    OCR engine backed by Tesseract.

    PDFs are rasterised with pdf2image; images are opened with Pillow.
    """

    def __init__(
        self,
        dpi: int = 200,
        language: str = "eng",
        tesseract_cmd: Optional[str] = None,
    ):
        self.dpi = dpi
        self.language = language
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def extract_text(self, content: bytes, mime_type: str) -> list[str]:
        """
        Run OCR over every page.

        Raises:
            ExtractionError: If rasterisation or Tesseract fails.
        """
        try:
            if mime_type == PDF_MIME:
                images = convert_from_bytes(content, dpi=self.dpi)
            else:
                images = [Image.open(io.BytesIO(content))]
            pages = [pytesseract.image_to_string(img, lang=self.language) for img in images]
        except Exception as e:
            raise ExtractionError(
                f"OCR failed: {e}",
                details={"mime_type": mime_type, "engine": "tesseract"},
            ) from e

        logger.info("ocr_completed", pages=len(pages), chars=sum(len(p) for p in pages))
        return pages


class PDFTextReader:
    """
    Direct text extraction for digital PDFs.

    PyPDF2 is tried first; when it yields less than the per-page minimum,
    pdfplumber is tried and the better of the two results is kept.
    """

    def __init__(self, min_chars_per_page: int = DEFAULT_MIN_CHARS_PER_PAGE):
        self.min_chars_per_page = min_chars_per_page

    def read(self, content: bytes, *, document_id: Optional[str] = None) -> DocumentText:
        """
        Read text from PDF bytes.

        Raises:
            IngestionError: If the bytes cannot be opened as a PDF.
        """
        try:
            reader = PdfReader(io.BytesIO(content))
            page_objects = list(reader.pages)
        except Exception as e:
            raise IngestionError(
                f"Failed to read PDF: {e}",
                document_id=document_id,
                mime_type=PDF_MIME,
                reason="unreadable",
            ) from e

        pages: list[str] = []
        for page_num, page in enumerate(page_objects, start=1):
            try:
                pages.append(page.extract_text() or "")
            except Exception as e:
                logger.warning("page_extraction_failed", page=page_num, error=str(e))
                pages.append("")

        result = DocumentText(pages=pages, method=ProcessingMethod.DIRECT_TEXT)
        if result.chars_per_page() >= self.min_chars_per_page:
            return result

        logger.info(
            "pypdf2_fallback_pdfplumber",
            document_id=document_id,
            pypdf2_chars=result.char_count,
        )
        plumber = self._read_with_pdfplumber(content)
        if plumber is not None and plumber.char_count > result.char_count:
            return plumber
        return result

    def _read_with_pdfplumber(self, content: bytes) -> Optional[DocumentText]:
        try:
            with pdfplumber.open(io.BytesIO(content)) as pdf:
                pages: list[str] = []
                for page_num, page in enumerate(pdf.pages, start=1):
                    try:
                        text = page.extract_text() or ""
                        pages.append(normalize_spaced_numbers(text))
                    except Exception as e:
                        logger.warning("pdfplumber_page_failed", page=page_num, error=str(e))
                        pages.append("")
        except Exception as e:
            logger.warning("pdfplumber_fallback_failed", error=str(e))
            return None
        return DocumentText(pages=pages, method=ProcessingMethod.PDFPLUMBER)


def normalize_spaced_numbers(text: str) -> str:
    """
    Repair pdfplumber output where digit groups are space-separated.

    "$6 136 38" becomes "$6136.38". Dates such as "09/14/2025" are left alone.
    """
    def join_groups(match: re.Match) -> str:
        parts = match.group(1).split()
        if len(parts[-1]) == 2:
            return f"${''.join(parts[:-1])}.{parts[-1]}"
        return f"${''.join(parts)}"

    result = re.sub(
        r'\$(\d{1,3}(?:\s\d{2,3})+)\b(?![/\-])',
        join_groups,
        text,
    )
    # Drop "(cid:X)" garbage from corrupted fonts
    return re.sub(r'\(cid:\d+\)', '', result)
