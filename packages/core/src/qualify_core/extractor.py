"""Structured field extraction for income documents.

The extractor reads document text (directly or through OCR), parses the
fields for the document's final type, and scores the result:

    confidence = completeness
                 x (1 - OCR penalty)        when OCR text was used
                 x 0.8 per failed consistency check

Direct parsing falls back to OCR when too few required fields are found or
the text is too sparse to be a digital PDF. Extraction never raises on
malformed input; a document with no usable fields is reported with
confidence 0.0 and ``failure_kind=extraction_empty``.

DocumentProcessor ties ingestion, classification and extraction together
and drives the document's OCR status state machine.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from .classifier import ClassificationResult, DocumentClassifier
from .exceptions import ExtractionError, IngestionError, QualifyError
from .models.documents import (
    FIELDS_BY_TYPE,
    DocumentType,
    ExtractedFields,
    FailureKind,
    IncomeDocument,
    ParserDiagnostics,
    PayFrequency,
    ProcessingMethod,
)
from .pdf_parser import (
    DEFAULT_MIN_CHARS_PER_PAGE,
    IMAGE_MIME_TYPES,
    PDF_MIME,
    DocumentText,
    OCREngine,
    PDFTextReader,
    sniff_mime_type,
)

logger = structlog.get_logger()


DEFAULT_OCR_PENALTY = 0.15
CHECK_FAILURE_FACTOR = 0.8

# Share of a type's required fields that must be found before OCR fallback is skipped
MIN_REQUIRED_SHARE = 0.5


# =============================================================================
# VALUE PATTERNS
# =============================================================================

# Parenthesised or signed amounts, with optional $ and thousands separators
AMOUNT = r'(\(\s*\$?\s*\d[\d,]*(?:\.\d{1,2})?\s*\)|-?\s*\$?\s*-?\d[\d,]*(?:\.\d{1,2})?)'

# Text between a label and its value: skips separators and "(line 11)" style notes
FILLER = r'(?:\([^)\n]*[A-Za-z][^)\n]*\)|[^\n\d$(\-])*?'

DATE = (
    r'(\d{1,2}/\d{1,2}/\d{2,4}|\d{1,2}-\d{1,2}-\d{4}|\d{4}-\d{2}-\d{2}'
    r'|(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2},?\s+\d{4})'
)

DATE_FORMATS = (
    '%m/%d/%Y',
    '%m/%d/%y',
    '%m-%d-%Y',
    '%Y-%m-%d',
    '%B %d, %Y',
    '%B %d %Y',
    '%b %d, %Y',
    '%b %d %Y',
    '%b. %d, %Y',
)

FREQUENCY_WORDS = {
    "weekly": PayFrequency.WEEKLY,
    "week": PayFrequency.WEEKLY,
    "biweekly": PayFrequency.BIWEEKLY,
    "bi-weekly": PayFrequency.BIWEEKLY,
    "semimonthly": PayFrequency.SEMIMONTHLY,
    "semi-monthly": PayFrequency.SEMIMONTHLY,
    "monthly": PayFrequency.MONTHLY,
    "month": PayFrequency.MONTHLY,
    "annual": PayFrequency.ANNUAL,
    "annually": PayFrequency.ANNUAL,
    "year": PayFrequency.ANNUAL,
    "yearly": PayFrequency.ANNUAL,
    "hourly": PayFrequency.HOURLY,
    "hour": PayFrequency.HOURLY,
}

FREQUENCY_PATTERN = (
    r'(bi-?weekly|semi-?monthly|weekly|monthly|annually|annual|yearly|hourly)'
)


def parse_amount(value: str) -> Optional[Decimal]:
    """Parse a monetary string into a Decimal; parentheses mean negative."""
    if value is None:
        return None
    raw = value.strip()
    negative = raw.startswith("(") or "-" in raw
    cleaned = re.sub(r'[^\d.]', '', raw)
    if not cleaned or cleaned == '.':
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    return -amount if negative else amount


def parse_date(value: str) -> Optional[date]:
    """Parse a date string into a date object."""
    if not value:
        return None
    value = re.sub(r'\s+', ' ', value.strip())
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def parse_frequency(value: Optional[str]) -> Optional[PayFrequency]:
    if not value:
        return None
    return FREQUENCY_WORDS.get(value.lower().replace(" ", ""))


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class ExtractionResult:
    """Outcome of extracting one document."""
    fields: Optional[ExtractedFields]
    confidence: float
    processing_method: ProcessingMethod
    ocr_used: bool = False
    checks_failed: list[str] = field(default_factory=list)
    page_count: int = 0
    text_chars: int = 0
    failure_kind: Optional[FailureKind] = None

    @property
    def is_empty(self) -> bool:
        return self.fields is None


@dataclass
class ProcessingOutcome:
    """A processed copy of a document plus the error that failed it, if any."""
    document: IncomeDocument
    error: Optional[QualifyError] = None
    classification: Optional[ClassificationResult] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


# =============================================================================
# EXTRACTOR
# =============================================================================

class IncomeDocumentExtractor:
    """
    Extract typed fields from income document text.

    Each document type has a parser that looks up labelled values; the
    parsed values are validated through the type's ExtractedFields variant.
    """

    def __init__(
        self,
        pdf_reader: Optional[PDFTextReader] = None,
        ocr_engine: Optional[OCREngine] = None,
        ocr_penalty: float = DEFAULT_OCR_PENALTY,
        min_chars_per_page: int = DEFAULT_MIN_CHARS_PER_PAGE,
    ):
        self.pdf_reader = pdf_reader or PDFTextReader(min_chars_per_page=min_chars_per_page)
        self.ocr_engine = ocr_engine
        self.ocr_penalty = ocr_penalty
        self.min_chars_per_page = min_chars_per_page
        self._parsers: dict[DocumentType, Callable[[str], dict[str, Any]]] = {
            DocumentType.PAY_STUB: self._parse_pay_stub,
            DocumentType.W2: self._parse_w2,
            DocumentType.FORM_1099: self._parse_1099,
            DocumentType.FORM_1040: self._parse_1040,
            DocumentType.SCHEDULE_C: self._parse_schedule_c,
            DocumentType.SCHEDULE_E: self._parse_schedule_e,
            DocumentType.SCHEDULE_F: self._parse_schedule_f,
            DocumentType.K1: self._parse_k1,
            DocumentType.FORM_1065: self._parse_business_return,
            DocumentType.FORM_1120S: self._parse_business_return,
            DocumentType.VOE: self._parse_voe,
            DocumentType.OTHER: self._parse_other,
        }

    # -------------------------------------------------------------------------
    # Text acquisition
    # -------------------------------------------------------------------------

    def load_text(
        self,
        content: bytes,
        mime_type: str,
        force_ocr: bool = False,
        *,
        document_id: Optional[str] = None,
    ) -> DocumentText:
        """
        Read the document's text, using OCR when needed.

        Images always go through OCR. PDFs are read directly unless OCR is
        forced or the text density is too low for a digital PDF.

        Raises:
            IngestionError: If the PDF cannot be opened.
            ExtractionError: If OCR is required but unavailable or fails.
        """
        if mime_type in IMAGE_MIME_TYPES:
            return self._ocr(content, mime_type, document_id=document_id)

        if force_ocr:
            return self._ocr(content, PDF_MIME, document_id=document_id)

        direct = self.pdf_reader.read(content, document_id=document_id)
        if direct.chars_per_page() >= self.min_chars_per_page or self.ocr_engine is None:
            return direct

        logger.info(
            "low_text_density_ocr",
            document_id=document_id,
            chars_per_page=round(direct.chars_per_page(), 1),
        )
        try:
            ocr_text = self._ocr(content, PDF_MIME, document_id=document_id)
        except ExtractionError as e:
            logger.warning("ocr_fallback_failed", document_id=document_id, error=str(e))
            return direct
        return ocr_text if ocr_text.char_count > direct.char_count else direct

    def _ocr(self, content: bytes, mime_type: str, *, document_id: Optional[str]) -> DocumentText:
        if self.ocr_engine is None:
            raise ExtractionError(
                "OCR required but no OCR engine is configured",
                document_id=document_id,
                details={"mime_type": mime_type},
            )
        pages = self.ocr_engine.extract_text(content, mime_type)
        return DocumentText(pages=list(pages), method=ProcessingMethod.OCR, ocr_used=True)

    # -------------------------------------------------------------------------
    # Extraction
    # -------------------------------------------------------------------------

    def extract(
        self,
        document: IncomeDocument,
        final_type: DocumentType,
        source: DocumentText,
        content: Optional[bytes] = None,
        mime_type: Optional[str] = None,
    ) -> ExtractionResult:
        """
        Extract fields for ``final_type`` from the document text.

        Falls back to OCR when fewer than the type's minimum required fields
        were parsed from direct text and the original bytes are available.

        Args:
            document: Document being processed (used for logging context)
            final_type: Classification to parse as
            source: Text already read from the document
            content: Original bytes, needed for the OCR fallback
            mime_type: MIME type of ``content``

        Returns:
            ExtractionResult; ``fields`` is None when nothing usable was found.
        """
        text = source
        fields = self.parse_fields(text.text, final_type)

        if (
            self._insufficient(fields, final_type)
            and not text.ocr_used
            and content is not None
            and self.ocr_engine is not None
        ):
            logger.info(
                "ocr_fallback_insufficient_fields",
                document_id=document.id,
                document_type=final_type.value,
                missing=fields.missing_required() if fields else None,
            )
            try:
                ocr_text = self._ocr(content, mime_type or PDF_MIME, document_id=document.id)
            except ExtractionError as e:
                logger.warning("ocr_fallback_failed", document_id=document.id, error=str(e))
            else:
                ocr_fields = self.parse_fields(ocr_text.text, final_type)
                if self._completeness(ocr_fields) > self._completeness(fields):
                    text, fields = ocr_text, ocr_fields

        if fields is None:
            logger.warning(
                "extraction_empty",
                document_id=document.id,
                document_type=final_type.value,
                ocr_used=text.ocr_used,
            )
            return ExtractionResult(
                fields=None,
                confidence=0.0,
                processing_method=text.method,
                ocr_used=text.ocr_used,
                page_count=text.page_count,
                text_chars=text.char_count,
                failure_kind=FailureKind.EXTRACTION_EMPTY,
            )

        checks_failed = self.consistency_checks(fields)
        confidence = self.score(fields, ocr_used=text.ocr_used, checks_failed=len(checks_failed))

        logger.info(
            "document_extracted",
            document_id=document.id,
            document_type=final_type.value,
            method=text.method.value,
            confidence=confidence,
            missing=fields.missing_required(),
            checks_failed=checks_failed,
        )
        return ExtractionResult(
            fields=fields,
            confidence=confidence,
            processing_method=text.method,
            ocr_used=text.ocr_used,
            checks_failed=checks_failed,
            page_count=text.page_count,
            text_chars=text.char_count,
        )

    def score(self, fields: ExtractedFields, *, ocr_used: bool, checks_failed: int) -> float:
        """Confidence from completeness, OCR use and failed checks."""
        confidence = fields.completeness()
        if ocr_used:
            confidence *= 1 - self.ocr_penalty
        confidence *= CHECK_FAILURE_FACTOR ** checks_failed
        return round(max(0.0, min(1.0, confidence)), 4)

    @staticmethod
    def _completeness(fields: Optional[ExtractedFields]) -> float:
        return fields.completeness() if fields is not None else -1.0

    @staticmethod
    def _insufficient(fields: Optional[ExtractedFields], doc_type: DocumentType) -> bool:
        if fields is None:
            return True
        required = FIELDS_BY_TYPE[doc_type].REQUIRED_FIELDS
        minimum = max(1, math.ceil(len(required) * MIN_REQUIRED_SHARE))
        found = len(required) - len(fields.missing_required())
        return found < minimum

    def parse_fields(self, text: str, doc_type: DocumentType) -> Optional[ExtractedFields]:
        """
        Parse the typed field variant for ``doc_type`` from text.

        Returns None when no required field could be found. Values that fail
        validation are dropped rather than failing the whole document.
        """
        if not text or not text.strip():
            return None

        values = {k: v for k, v in self._parsers[doc_type](text).items() if v is not None}
        model = FIELDS_BY_TYPE[doc_type]

        fields = None
        for _ in range(len(values) + 1):
            try:
                fields = model(document_type=doc_type, **values)
                break
            except PydanticValidationError as e:
                bad = {err["loc"][0] for err in e.errors() if err.get("loc")}
                if not bad & values.keys():
                    return None
                logger.debug("dropping_invalid_fields", fields=sorted(bad & values.keys()))
                for name in bad:
                    values.pop(name, None)

        if fields is None or fields.completeness() == 0.0:
            return None
        return fields

    def consistency_checks(self, fields: ExtractedFields) -> list[str]:
        """Names of failed cross-field consistency checks."""
        failed: list[str] = []

        if fields.period_start and fields.period_end and fields.period_end < fields.period_start:
            failed.append("period_end_before_start")

        gross_current = getattr(fields, "gross_current", None)
        hourly_rate = getattr(fields, "hourly_rate", None)
        hours = getattr(fields, "hours_current", None)
        if gross_current is not None and hourly_rate and hours:
            expected = hourly_rate * hours
            if gross_current < expected * Decimal("0.99"):
                failed.append("gross_below_hourly")

        gross_ytd = getattr(fields, "gross_ytd", None)
        if gross_current is not None and gross_ytd is not None and gross_ytd < gross_current:
            failed.append("ytd_below_current")

        if fields.document_type == DocumentType.SCHEDULE_E:
            rents = fields.rents_received
            expenses = fields.total_expenses
            net = fields.net_rental
            if rents is not None and expenses is not None and net is not None:
                tolerance = max(Decimal("1"), abs(rents) * Decimal("0.01"))
                if abs((rents - expenses) - net) > tolerance:
                    failed.append("schedule_e_net_mismatch")

        return failed

    # -------------------------------------------------------------------------
    # Lookup helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _amount(text: str, *labels: str) -> Optional[Decimal]:
        for label in labels:
            match = re.search(label + FILLER + AMOUNT, text, re.IGNORECASE)
            if match:
                amount = parse_amount(match.group(match.re.groups))
                if amount is not None:
                    return amount
        return None

    @staticmethod
    def _line_amounts(text: str, label: str) -> list[Decimal]:
        """All amounts on the first line matching ``label``, after the label."""
        match = re.search(label + r'([^\n]*)', text, re.IGNORECASE | re.MULTILINE)
        if not match:
            return []
        rest = match.group(match.re.groups)
        amounts = []
        for raw in re.findall(AMOUNT, rest):
            amount = parse_amount(raw)
            if amount is not None:
                amounts.append(amount)
        return amounts

    @staticmethod
    def _text(text: str, *labels: str) -> Optional[str]:
        for label in labels:
            match = re.search(label + r'\s*[:#]\s*([^\n]+)', text, re.IGNORECASE)
            if match:
                value = match.group(match.re.groups).strip().strip('.,')
                if value:
                    return value
        return None

    @staticmethod
    def _date(text: str, *labels: str) -> Optional[date]:
        for label in labels:
            match = re.search(label + r'[^\n\d]{0,20}?' + DATE, text, re.IGNORECASE)
            if match:
                parsed = parse_date(match.group(match.re.groups))
                if parsed is not None:
                    return parsed
        return None

    @staticmethod
    def _percentage(text: str, *labels: str) -> Optional[Decimal]:
        for label in labels:
            match = re.search(label + r'[^\n%\d]*(\d{1,3}(?:\.\d+)?)\s*%', text, re.IGNORECASE)
            if match:
                return Decimal(match.group(match.re.groups))
        return None

    @staticmethod
    def _tax_year(text: str) -> Optional[int]:
        match = re.search(
            r'(?:tax\s+year|calendar\s+year|for\s+year|year)\s*[:]?\s*((?:19|20)\d{2})\b',
            text,
            re.IGNORECASE,
        )
        if not match:
            # Form titles carry the year near the top of the page
            match = re.search(r'\b((?:19|20)\d{2})\b', text[:400])
        return int(match.group(1)) if match else None

    # -------------------------------------------------------------------------
    # Per-type parsers
    # -------------------------------------------------------------------------

    def _parse_pay_stub(self, text: str) -> dict[str, Any]:
        gross_line = self._line_amounts(text, r'gross\s+(?:pay|earnings|wages)(?!\s+ytd)')
        gross_current = gross_line[0] if gross_line else None
        gross_ytd = self._amount(
            text,
            r'(?:ytd|year[\s-]to[\s-]date)\s+gross(?:\s+(?:pay|earnings|wages))?',
            r'gross\s+(?:pay|earnings|wages)\s+(?:ytd|year[\s-]to[\s-]date)',
        )
        if gross_ytd is None and len(gross_line) >= 2:
            gross_ytd = gross_line[-1]

        period_start, period_end = None, None
        period = re.search(
            r'pay\s+period[^\n\d]*' + DATE + r'\s*(?:-|to|through|–)\s*' + DATE,
            text,
            re.IGNORECASE,
        )
        if period:
            period_start = parse_date(period.group(1))
            period_end = parse_date(period.group(2))
        period_start = period_start or self._date(text, r'period\s+(?:start|begin)(?:ning)?')
        period_end = period_end or self._date(text, r'period\s+end(?:ing)?')

        frequency_text = self._text(text, r'pay\s+frequency', r'frequency', r'pay\s+schedule')
        word = re.search(FREQUENCY_PATTERN, frequency_text or "", re.IGNORECASE)
        if word is None:
            word = re.search(FREQUENCY_PATTERN + r'\s+(?:pay|payroll)', text, re.IGNORECASE)
        frequency = parse_frequency(word.group(1)) if word else None

        return {
            "employer_name": self._text(text, r'employer(?:\s+name)?', r'company(?:\s+name)?'),
            "pay_frequency": frequency,
            "pay_date": self._date(text, r'pay\s+date', r'check\s+date'),
            "period_start": period_start,
            "period_end": period_end,
            "gross_current": gross_current,
            "gross_ytd": gross_ytd,
            "hourly_rate": self._amount(text, r'\b(?:hourly\s+)?rate\b(?:\s+of\s+pay)?'),
            "hours_current": self._amount(text, r'\bhours(?:\s+worked)?\b(?!\s+per)'),
            "overtime_ytd": self._ytd_amount(text, r'overtime'),
            "bonus_ytd": self._ytd_amount(text, r'bonus'),
            "commission_ytd": self._ytd_amount(text, r'commissions?'),
        }

    def _ytd_amount(self, text: str, label: str) -> Optional[Decimal]:
        explicit = self._amount(
            text,
            label + r'\s+(?:ytd|year[\s-]to[\s-]date)',
            r'(?:ytd|year[\s-]to[\s-]date)\s+' + label,
        )
        if explicit is not None:
            return explicit
        amounts = self._line_amounts(text, r'^\s*' + label + r'\b')
        return amounts[-1] if len(amounts) >= 2 else None

    def _parse_w2(self, text: str) -> dict[str, Any]:
        return {
            "employer_name": self._text(text, r"employer['’]?s\s+name", r'employer'),
            "tax_year": self._tax_year(text),
            "wages": self._amount(
                text,
                r'wages,?\s+tips,?\s+(?:and\s+)?other\s+comp(?:ensation)?',
                r'box\s*1\b',
            ),
            "federal_tax_withheld": self._amount(
                text, r'federal\s+income\s+tax\s+withheld', r'box\s*2\b'
            ),
            "medicare_wages": self._amount(
                text, r'medicare\s+wages(?:\s+and\s+tips)?', r'box\s*5\b'
            ),
        }

    def _parse_1099(self, text: str) -> dict[str, Any]:
        subtype = re.search(r'form\s+1099-?([a-z]+)', text, re.IGNORECASE)
        return {
            "payer_name": self._text(text, r"payer['’]?s\s+name", r'payer'),
            "form_subtype": subtype.group(1) if subtype else None,
            "tax_year": self._tax_year(text),
            "gross_amount": self._amount(
                text,
                r'nonemployee\s+compensation',
                r'gross\s+(?:amount|distribution|payments?)',
                r'total\s+(?:compensation|amount)',
                r'box\s*1a?\b',
            ),
        }

    def _parse_1040(self, text: str) -> dict[str, Any]:
        return {
            "tax_year": self._tax_year(text),
            "wages": self._amount(
                text, r'wages,?\s+salaries,?\s+tips(?:,?\s+etc\.?)?', r'total\s+wages'
            ),
            "total_income": self._amount(text, r'total\s+income'),
            "adjusted_gross_income": self._amount(text, r'adjusted\s+gross\s+income'),
            "business_income": self._amount(text, r'business\s+income\s+or\s+\(?loss\)?'),
        }

    def _parse_schedule_c(self, text: str) -> dict[str, Any]:
        return {
            "business_name": self._text(
                text, r'business\s+name', r'name\s+of\s+(?:business|proprietor)'
            ),
            "tax_year": self._tax_year(text),
            "gross_receipts": self._amount(text, r'gross\s+receipts(?:\s+or\s+sales)?'),
            "net_profit": self._amount(text, r'net\s+profit\s+or\s+\(?loss\)?', r'net\s+profit'),
            "depreciation": self._amount(text, r'depreciation(?:\s+and\s+section\s+179)?'),
            "depletion": self._amount(text, r'depletion'),
            "business_use_of_home": self._amount(
                text, r'business\s+use\s+of\s+(?:your\s+)?home'
            ),
            "meals": self._amount(text, r'(?:non-?deductible\s+)?meals'),
        }

    def _parse_schedule_e(self, text: str) -> dict[str, Any]:
        properties = set(re.findall(r'property\s+([A-C])\b', text))
        count_match = re.search(r'number\s+of\s+properties\s*:?\s*(\d+)', text, re.IGNORECASE)
        return {
            "tax_year": self._tax_year(text),
            "rents_received": self._amount(text, r'rents\s+received'),
            "total_expenses": self._amount(text, r'total\s+expenses'),
            "depreciation": self._amount(text, r'depreciation(?:\s+expense)?(?:\s+or\s+depletion)?'),
            "net_rental": self._amount(
                text,
                r'net\s+rental\s+(?:income|loss)(?:\s+or\s+\(?loss\)?)?',
                r'total\s+rental\s+real\s+estate\s+and\s+royalty\s+income\s+or\s+\(?loss\)?',
            ),
            "property_count": int(count_match.group(1)) if count_match else (len(properties) or None),
        }

    def _parse_schedule_f(self, text: str) -> dict[str, Any]:
        return {
            "tax_year": self._tax_year(text),
            "gross_income": self._amount(text, r'gross\s+income'),
            "net_farm_profit": self._amount(text, r'net\s+farm\s+profit(?:\s+or\s+\(?loss\)?)?'),
            "depreciation": self._amount(text, r'depreciation'),
        }

    def _parse_k1(self, text: str) -> dict[str, Any]:
        form_type = None
        if re.search(r'form\s+1120-?s', text, re.IGNORECASE):
            form_type = "1120S"
        elif re.search(r'form\s+1065', text, re.IGNORECASE):
            form_type = "1065"
        return {
            "entity_name": self._text(
                text,
                r"(?:partnership|corporation)['’]?s\s+name",
                r'entity(?:\s+name)?',
            ),
            "form_type": form_type,
            "tax_year": self._tax_year(text),
            "ordinary_income": self._amount(
                text, r'ordinary\s+business\s+income\s+\(?loss\)?', r'ordinary\s+income'
            ),
            "guaranteed_payments": self._amount(
                text, r'guaranteed\s+payments(?:\s+for\s+services)?'
            ),
            "ownership_percentage": self._percentage(
                text,
                r'ownership',
                r'percentage\s+of\s+stock',
                r'(?:profit|capital)\s+share',
            ),
        }

    def _parse_business_return(self, text: str) -> dict[str, Any]:
        return {
            "entity_name": self._text(
                text,
                r'name\s+of\s+(?:partnership|corporation)',
                r'entity(?:\s+name)?',
                r'business\s+name',
            ),
            "tax_year": self._tax_year(text),
            "ordinary_business_income": self._amount(
                text, r'ordinary\s+business\s+income\s+\(?loss\)?', r'ordinary\s+income'
            ),
            "depreciation": self._amount(text, r'depreciation'),
            "ownership_percentage": self._percentage(text, r'ownership'),
        }

    def _parse_voe(self, text: str) -> dict[str, Any]:
        period = None
        base_line = re.search(r'base\s+pay[^\n]*', text, re.IGNORECASE)
        if base_line:
            word = re.search(
                r'(?:per\s+)?(hour|week|month|year|annual|' + FREQUENCY_PATTERN[1:-1] + r')',
                base_line.group(0),
                re.IGNORECASE,
            )
            period = parse_frequency(word.group(1)) if word else None
        return {
            "employer_name": self._text(text, r'employer(?:\s+name)?', r'company(?:\s+name)?'),
            "base_pay_amount": self._amount(text, r'(?:present\s+|current\s+)?base\s+pay'),
            "base_pay_period": period,
            "hours_per_week": self._amount(text, r'(?:average\s+)?hours\s+per\s+week'),
            "ytd_earnings": self._amount(
                text, r'(?:ytd|year[\s-]to[\s-]date)\s+(?:earnings|base\s+pay|total)'
            ),
            "prior_year_earnings": self._amount(
                text, r'(?:prior|past|last)\s+year\s+(?:earnings|total)'
            ),
            "prior_year2_earnings": self._amount(
                text, r'(?:two\s+years\s+prior|prior\s+year\s+2|second\s+prior\s+year)\s+(?:earnings|total)?'
            ),
            "employment_start_date": self._date(
                text, r'date\s+of\s+employment', r'employment\s+start\s+date', r'hire\s+date'
            ),
        }

    def _parse_other(self, text: str) -> dict[str, Any]:
        return {
            "amount": self._amount(text, r'(?:total|amount|income)'),
            "tax_year": self._tax_year(text),
        }


# =============================================================================
# PROCESSOR
# =============================================================================

class DocumentProcessor:
    """
    Run one document through ingestion, classification and extraction.

    Works on a copy of the document and returns it; the caller persists
    the copy. Diagnostics are recorded whether or not processing succeeds.
    """

    def __init__(
        self,
        classifier: Optional[DocumentClassifier] = None,
        extractor: Optional[IncomeDocumentExtractor] = None,
    ):
        self.classifier = classifier or DocumentClassifier()
        self.extractor = extractor or IncomeDocumentExtractor()

    def process(
        self,
        document: IncomeDocument,
        content: bytes,
        force_ocr: bool = False,
        mime_type: Optional[str] = None,
    ) -> ProcessingOutcome:
        """
        Process a document from its current state to success or failed.

        Raises:
            InvalidTransitionError: If the document is already processing.
        """
        doc = document.model_copy(deep=True)
        doc.start_processing(force_ocr=force_ocr)
        log = logger.bind(document_id=doc.id, borrower_id=doc.borrower_id, force_ocr=force_ocr)

        diagnostics = ParserDiagnostics(
            file_size_bytes=len(content or b""),
            mime_type=mime_type,
            forced_ocr=force_ocr,
            attempts=doc.diagnostics.attempts,
        )

        try:
            detected = sniff_mime_type(content, doc.file_name, mime_type, document_id=doc.id)
            diagnostics = diagnostics.model_copy(update={"mime_type": detected})
            text = self.extractor.load_text(content, detected, force_ocr, document_id=doc.id)
        except IngestionError as e:
            log.warning("document_ingestion_failed", reason=e.reason, error=e.message)
            doc.mark_failed(
                e.message,
                failure_kind=FailureKind.INGESTION_ERROR,
                stage="ingestion",
                diagnostics=diagnostics,
            )
            return ProcessingOutcome(document=doc, error=e)
        except ExtractionError as e:
            log.warning("document_text_failed", error=e.message)
            doc.mark_failed(
                e.message,
                failure_kind=FailureKind.EXTRACTION_EMPTY,
                stage="ocr",
                diagnostics=diagnostics,
            )
            return ProcessingOutcome(document=doc, error=e)

        classification = self.classifier.classify(text.text, doc.declared_type, doc.file_name)
        result = self.extractor.extract(doc, classification.final_type, text, content, detected)

        # Rebuilt through the constructor so the override invariant is validated
        diagnostics = ParserDiagnostics(
            **{
                **diagnostics.model_dump(),
                "ocr_used": result.ocr_used,
                "processing_method": result.processing_method,
                "anchors_found": list(classification.anchors_found),
                "classification_override": classification.override,
                "original_classification": (
                    classification.original_classification
                    if classification.override
                    else doc.declared_type
                ),
                "final_classification": classification.final_type,
                "page_count": result.page_count,
                "text_chars": result.text_chars,
                "checks_failed": list(result.checks_failed),
            }
        )

        if result.fields is None:
            error = ExtractionError(
                "No required fields found",
                document_id=doc.id,
                document_type=classification.final_type.value,
                details={"ocr_used": result.ocr_used},
            )
            doc.mark_failed(
                error.message,
                failure_kind=FailureKind.EXTRACTION_EMPTY,
                stage="extraction",
                diagnostics=diagnostics,
            )
            return ProcessingOutcome(document=doc, error=error, classification=classification)

        doc.mark_success(result.fields, result.confidence, diagnostics)
        log.info(
            "document_processed",
            final_type=classification.final_type.value,
            override=classification.override,
            confidence=result.confidence,
        )
        return ProcessingOutcome(document=doc, classification=classification)
