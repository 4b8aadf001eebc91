"""Income document models.

An IncomeDocument is one uploaded file belonging to one borrower. Extracted
data is stored as a tagged union keyed by document type: every variant
declares its own required-field set, which drives extraction confidence.

The OCR status lifecycle is an explicit state machine:

    pending ──► processing ──► success
                   ▲    │
                   │    └────► failed
                   └── failed / success (reprocess)
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, ClassVar, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from qualify_core.exceptions import InvalidTransitionError


def _utc_now() -> datetime:
    """Return current UTC datetime with timezone info."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class DocumentType(str, Enum):
    """Income document types recognised by the classifier."""
    PAY_STUB = "pay_stub"
    W2 = "w2"
    FORM_1099 = "form_1099"
    FORM_1040 = "form_1040"
    SCHEDULE_C = "schedule_c"
    SCHEDULE_E = "schedule_e"
    SCHEDULE_F = "schedule_f"
    K1 = "k1"
    FORM_1065 = "form_1065"
    FORM_1120S = "form_1120s"
    VOE = "voe"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value):
        # Bare form numbers such as "1040" or "1120S"
        if isinstance(value, str):
            key = value.strip().lower()
            return cls._value2member_map_.get(f"form_{key}")
        return None


class OcrStatus(str, Enum):
    """Processing status of a document."""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class ProcessingMethod(str, Enum):
    """How the document text was obtained."""
    DIRECT_TEXT = "direct_text"
    PDFPLUMBER = "pdfplumber"
    OCR = "ocr"
    NONE = "none"


class FailureKind(str, Enum):
    """Distinguishes unreadable files from files with no usable data."""
    INGESTION_ERROR = "ingestion_error"
    EXTRACTION_EMPTY = "extraction_empty"


class PayFrequency(str, Enum):
    """Pay period frequency reported on a pay stub or VOE."""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    SEMIMONTHLY = "semimonthly"
    MONTHLY = "monthly"
    ANNUAL = "annual"
    HOURLY = "hourly"

    @property
    def periods_per_year(self) -> Optional[int]:
        """Number of pay periods per year, None for hourly."""
        return _PERIODS_PER_YEAR.get(self)


_PERIODS_PER_YEAR = {
    PayFrequency.WEEKLY: 52,
    PayFrequency.BIWEEKLY: 26,
    PayFrequency.SEMIMONTHLY: 24,
    PayFrequency.MONTHLY: 12,
    PayFrequency.ANNUAL: 1,
}


# =============================================================================
# EXTRACTED FIELDS (tagged union)
# =============================================================================

class ExtractedFields(BaseModel):
    """Fields common to every document type.

    Subclasses narrow ``document_type`` to a literal and declare
    ``REQUIRED_FIELDS``; completeness is the share of those populated.
    ``AMOUNT_FIELD`` names the variant field mirrored into ``amount``.
    """
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("amount",)
    AMOUNT_FIELD: ClassVar[Optional[str]] = None

    document_type: DocumentType
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    amount: Optional[Decimal] = None
    ytd_flag: bool = False
    tax_year: Optional[int] = Field(default=None, ge=1990, le=2100)

    @model_validator(mode="after")
    def fill_common_fields(self) -> "ExtractedFields":
        """Mirror the primary amount and derive the period from the tax year."""
        if self.amount is None and self.AMOUNT_FIELD:
            self.amount = getattr(self, self.AMOUNT_FIELD)
        if self.tax_year is not None:
            if self.period_start is None:
                self.period_start = date(self.tax_year, 1, 1)
            if self.period_end is None:
                self.period_end = date(self.tax_year, 12, 31)
        return self

    def missing_required(self) -> list[str]:
        """Names of required fields that are not populated."""
        return [name for name in self.REQUIRED_FIELDS if getattr(self, name) in (None, "")]

    def completeness(self) -> float:
        """Fraction of required fields populated (0.0 to 1.0)."""
        if not self.REQUIRED_FIELDS:
            return 1.0
        found = len(self.REQUIRED_FIELDS) - len(self.missing_required())
        return found / len(self.REQUIRED_FIELDS)


class PayStubFields(ExtractedFields):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = (
        "employer_name", "gross_current", "gross_ytd", "pay_frequency", "period_end",
    )
    AMOUNT_FIELD: ClassVar[Optional[str]] = "gross_current"

    document_type: Literal[DocumentType.PAY_STUB] = DocumentType.PAY_STUB
    employer_name: Optional[str] = None
    pay_frequency: Optional[PayFrequency] = None
    pay_date: Optional[date] = None
    gross_current: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None
    hours_current: Optional[Decimal] = None
    gross_ytd: Optional[Decimal] = None
    overtime_ytd: Optional[Decimal] = None
    bonus_ytd: Optional[Decimal] = None
    commission_ytd: Optional[Decimal] = None

    @model_validator(mode="after")
    def set_ytd_flag(self) -> "PayStubFields":
        if self.gross_ytd is not None:
            self.ytd_flag = True
        return self

    @property
    def variable_ytd(self) -> Decimal:
        """Overtime, bonus and commission year-to-date combined."""
        return sum(
            (v for v in (self.overtime_ytd, self.bonus_ytd, self.commission_ytd) if v is not None),
            Decimal("0"),
        )


class W2Fields(ExtractedFields):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("employer_name", "tax_year", "wages")
    AMOUNT_FIELD: ClassVar[Optional[str]] = "wages"

    document_type: Literal[DocumentType.W2] = DocumentType.W2
    employer_name: Optional[str] = None
    wages: Optional[Decimal] = None
    federal_tax_withheld: Optional[Decimal] = None
    medicare_wages: Optional[Decimal] = None


class Form1099Fields(ExtractedFields):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("payer_name", "tax_year", "gross_amount")
    AMOUNT_FIELD: ClassVar[Optional[str]] = "gross_amount"

    document_type: Literal[DocumentType.FORM_1099] = DocumentType.FORM_1099
    payer_name: Optional[str] = None
    form_subtype: Optional[str] = None
    gross_amount: Optional[Decimal] = None

    @field_validator("form_subtype")
    @classmethod
    def normalize_subtype(cls, v: Optional[str]) -> Optional[str]:
        """Store subtypes as upper-case suffixes (NEC, MISC, K, INT...)."""
        if v is None:
            return v
        return v.upper().replace("1099-", "").strip()


class Form1040Fields(ExtractedFields):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("tax_year", "wages", "adjusted_gross_income")
    AMOUNT_FIELD: ClassVar[Optional[str]] = "wages"

    document_type: Literal[DocumentType.FORM_1040] = DocumentType.FORM_1040
    wages: Optional[Decimal] = None
    total_income: Optional[Decimal] = None
    adjusted_gross_income: Optional[Decimal] = None
    business_income: Optional[Decimal] = None


class ScheduleCFields(ExtractedFields):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("tax_year", "gross_receipts", "net_profit")
    AMOUNT_FIELD: ClassVar[Optional[str]] = "net_profit"

    document_type: Literal[DocumentType.SCHEDULE_C] = DocumentType.SCHEDULE_C
    business_name: Optional[str] = None
    gross_receipts: Optional[Decimal] = None
    net_profit: Optional[Decimal] = None
    depreciation: Optional[Decimal] = None
    depletion: Optional[Decimal] = None
    business_use_of_home: Optional[Decimal] = None
    meals: Optional[Decimal] = None


class ScheduleEFields(ExtractedFields):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("tax_year", "net_rental")
    AMOUNT_FIELD: ClassVar[Optional[str]] = "net_rental"

    document_type: Literal[DocumentType.SCHEDULE_E] = DocumentType.SCHEDULE_E
    rents_received: Optional[Decimal] = None
    total_expenses: Optional[Decimal] = None
    depreciation: Optional[Decimal] = None
    net_rental: Optional[Decimal] = None
    property_count: Optional[int] = Field(default=None, ge=0)


class ScheduleFFields(ExtractedFields):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("tax_year", "net_farm_profit")
    AMOUNT_FIELD: ClassVar[Optional[str]] = "net_farm_profit"

    document_type: Literal[DocumentType.SCHEDULE_F] = DocumentType.SCHEDULE_F
    gross_income: Optional[Decimal] = None
    net_farm_profit: Optional[Decimal] = None
    depreciation: Optional[Decimal] = None


class K1Fields(ExtractedFields):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("tax_year", "entity_name", "ordinary_income")
    AMOUNT_FIELD: ClassVar[Optional[str]] = "ordinary_income"

    document_type: Literal[DocumentType.K1] = DocumentType.K1
    entity_name: Optional[str] = None
    form_type: Optional[str] = None
    ordinary_income: Optional[Decimal] = None
    guaranteed_payments: Optional[Decimal] = None
    ownership_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)


class BusinessReturnFields(ExtractedFields):
    """Partnership (1065) or S-corporation (1120-S) return."""
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = (
        "tax_year", "entity_name", "ordinary_business_income",
    )
    AMOUNT_FIELD: ClassVar[Optional[str]] = "ordinary_business_income"

    document_type: Literal[DocumentType.FORM_1065, DocumentType.FORM_1120S]
    entity_name: Optional[str] = None
    ordinary_business_income: Optional[Decimal] = None
    depreciation: Optional[Decimal] = None
    ownership_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)


class VOEFields(ExtractedFields):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = (
        "employer_name", "base_pay_amount", "base_pay_period",
    )
    AMOUNT_FIELD: ClassVar[Optional[str]] = "base_pay_amount"

    document_type: Literal[DocumentType.VOE] = DocumentType.VOE
    employer_name: Optional[str] = None
    base_pay_amount: Optional[Decimal] = None
    base_pay_period: Optional[PayFrequency] = None
    hours_per_week: Optional[Decimal] = None
    ytd_earnings: Optional[Decimal] = None
    prior_year_earnings: Optional[Decimal] = None
    prior_year2_earnings: Optional[Decimal] = None
    employment_start_date: Optional[date] = None


class OtherFields(ExtractedFields):
    document_type: Literal[DocumentType.OTHER] = DocumentType.OTHER


DocumentFields = Annotated[
    Union[
        PayStubFields,
        W2Fields,
        Form1099Fields,
        Form1040Fields,
        ScheduleCFields,
        ScheduleEFields,
        ScheduleFFields,
        K1Fields,
        BusinessReturnFields,
        VOEFields,
        OtherFields,
    ],
    Field(discriminator="document_type"),
]


FIELDS_BY_TYPE: dict[DocumentType, type[ExtractedFields]] = {
    DocumentType.PAY_STUB: PayStubFields,
    DocumentType.W2: W2Fields,
    DocumentType.FORM_1099: Form1099Fields,
    DocumentType.FORM_1040: Form1040Fields,
    DocumentType.SCHEDULE_C: ScheduleCFields,
    DocumentType.SCHEDULE_E: ScheduleEFields,
    DocumentType.SCHEDULE_F: ScheduleFFields,
    DocumentType.K1: K1Fields,
    DocumentType.FORM_1065: BusinessReturnFields,
    DocumentType.FORM_1120S: BusinessReturnFields,
    DocumentType.VOE: VOEFields,
    DocumentType.OTHER: OtherFields,
}


# =============================================================================
# DOCUMENT
# =============================================================================

class ParserDiagnostics(BaseModel):
    """How a document was read and classified.

    Persisted on every processing attempt, successful or not.
    """
    ocr_used: bool = False
    processing_method: ProcessingMethod = ProcessingMethod.NONE
    anchors_found: list[str] = Field(default_factory=list)
    classification_override: bool = False
    original_classification: Optional[DocumentType] = None
    final_classification: Optional[DocumentType] = None
    file_size_bytes: Optional[int] = Field(default=None, ge=0)
    mime_type: Optional[str] = None
    page_count: Optional[int] = Field(default=None, ge=0)
    text_chars: Optional[int] = Field(default=None, ge=0)
    failure_kind: Optional[FailureKind] = None
    failure_stage: Optional[str] = None
    forced_ocr: bool = False
    attempts: int = Field(default=0, ge=0)
    checks_failed: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_override(self) -> "ParserDiagnostics":
        """An override must name two different types and carry its anchors."""
        if self.classification_override:
            if self.original_classification == self.final_classification:
                raise ValueError(
                    "classification_override requires original and final "
                    "classification to differ"
                )
            if not self.anchors_found:
                raise ValueError("classification_override requires anchors_found")
        return self


_ALLOWED_TRANSITIONS: dict[OcrStatus, frozenset[OcrStatus]] = {
    OcrStatus.PENDING: frozenset({OcrStatus.PROCESSING}),
    OcrStatus.PROCESSING: frozenset({OcrStatus.SUCCESS, OcrStatus.FAILED}),
    OcrStatus.SUCCESS: frozenset({OcrStatus.PROCESSING}),
    OcrStatus.FAILED: frozenset({OcrStatus.PROCESSING}),
}


class IncomeDocument(BaseModel):
    """One uploaded income document for a borrower."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    borrower_id: str
    file_name: str
    declared_type: Optional[DocumentType] = None
    ocr_status: OcrStatus = OcrStatus.PENDING
    fields: Optional[DocumentFields] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    diagnostics: ParserDiagnostics = Field(default_factory=ParserDiagnostics)
    failure_reason: Optional[str] = None
    removed: bool = False
    uploaded_at: datetime = Field(default_factory=_utc_now)
    processed_at: Optional[datetime] = None

    @property
    def effective_type(self) -> DocumentType:
        """Final classification when known, else the declared type, else OTHER."""
        if self.diagnostics.final_classification is not None:
            return self.diagnostics.final_classification
        return self.declared_type or DocumentType.OTHER

    @property
    def is_terminal(self) -> bool:
        return self.ocr_status in (OcrStatus.SUCCESS, OcrStatus.FAILED)

    @property
    def is_usable(self) -> bool:
        """Successfully extracted and not soft-removed."""
        return self.ocr_status == OcrStatus.SUCCESS and not self.removed and self.fields is not None

    def _transition(self, target: OcrStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.ocr_status]:
            raise InvalidTransitionError(
                self.ocr_status.value, target.value, document_id=self.id
            )
        self.ocr_status = target

    def start_processing(self, force_ocr: bool = False) -> None:
        """Begin a (re)processing attempt.

        Raises:
            InvalidTransitionError: If the document is already processing.
        """
        self._transition(OcrStatus.PROCESSING)
        self.diagnostics = self.diagnostics.model_copy(
            update={
                "forced_ocr": force_ocr,
                "attempts": self.diagnostics.attempts + 1,
                "failure_kind": None,
                "failure_stage": None,
            }
        )
        self.failure_reason = None

    def mark_success(
        self,
        fields: ExtractedFields,
        confidence: float,
        diagnostics: ParserDiagnostics,
    ) -> None:
        """Finish the attempt with extracted fields."""
        self._transition(OcrStatus.SUCCESS)
        self.fields = fields
        self.confidence = confidence
        self.diagnostics = diagnostics
        self.processed_at = _utc_now()

    def mark_failed(
        self,
        reason: str,
        *,
        failure_kind: FailureKind,
        stage: str,
        diagnostics: Optional[ParserDiagnostics] = None,
    ) -> None:
        """Finish the attempt without usable data. Fields are cleared."""
        self._transition(OcrStatus.FAILED)
        base = diagnostics or self.diagnostics
        self.diagnostics = base.model_copy(
            update={"failure_kind": failure_kind, "failure_stage": stage}
        )
        self.fields = None
        self.confidence = 0.0
        self.failure_reason = reason
        self.processed_at = _utc_now()
