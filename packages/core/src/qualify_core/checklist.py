"""Loan program document checklists.

Each loan program lists the income documents an underwriter expects. The
checklist compares a borrower's uploaded documents against that list and
reports per-requirement status and overall completion of the required items.
"""

from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from .exceptions import ConfigurationError
from .models.documents import DocumentType, IncomeDocument, OcrStatus


class RequirementStatus(str, Enum):
    MISSING = "missing"
    PARTIAL = "partial"
    PROCESSING = "processing"
    ERROR = "error"
    COMPLETE = "complete"


class DocumentRequirement(BaseModel):
    """One expected document for a loan program."""
    document_type: DocumentType
    label: str
    description: str
    required: bool
    quantity: Optional[int] = None
    period: Optional[str] = None

    @property
    def counts_years(self) -> bool:
        return self.quantity is not None and self.period == "years"


class LoanProgram(BaseModel):
    program: str
    label: str
    description: str
    documents: list[DocumentRequirement]

    @property
    def required_documents(self) -> list[DocumentRequirement]:
        return [d for d in self.documents if d.required]


def _req(
    document_type: DocumentType,
    label: str,
    description: str,
    required: bool,
    quantity: Optional[int] = None,
    period: Optional[str] = None,
) -> DocumentRequirement:
    return DocumentRequirement(
        document_type=document_type,
        label=label,
        description=description,
        required=required,
        quantity=quantity,
        period=period,
    )


_W2 = _req(DocumentType.W2, "W-2", "Wage and Tax Statement", True, 2, "years")
_PAY_STUBS = _req(DocumentType.PAY_STUB, "Pay Stubs", "Most recent 30 days", True, 30, "days")
_K1 = _req(DocumentType.K1, "K-1", "Partnership/S-Corp income", False, 2, "years")
_1120S = _req(DocumentType.FORM_1120S, "1120-S", "S-Corporation tax returns", False, 2, "years")
_SCHEDULE_C = _req(DocumentType.SCHEDULE_C, "Schedule C", "Sole proprietor business income", False)
_SCHEDULE_E = _req(DocumentType.SCHEDULE_E, "Schedule E", "Rental property income", False)


LOAN_PROGRAMS: dict[str, LoanProgram] = {
    "conventional": LoanProgram(
        program="conventional",
        label="Conventional",
        description="Standard Fannie Mae/Freddie Mac conforming loans",
        documents=[
            _W2,
            _PAY_STUBS,
            _req(DocumentType.FORM_1040, "1040 Tax Returns", "Personal tax returns (if self-employed)",
                 False, 2, "years"),
            _SCHEDULE_C,
            _SCHEDULE_E,
            _K1,
            _1120S,
            _req(DocumentType.VOE, "VOE", "Verification of Employment (for gaps)", False),
        ],
    ),
    "fha": LoanProgram(
        program="fha",
        label="FHA",
        description="Federal Housing Administration insured loans",
        documents=[
            _W2,
            _PAY_STUBS,
            _req(DocumentType.FORM_1040, "1040 Tax Returns", "Personal tax returns (if self-employed)",
                 False, 2, "years"),
            _req(DocumentType.VOE, "VOE", "Verification of Employment (required for gaps)", True),
            _SCHEDULE_C,
            _K1,
            _1120S,
        ],
    ),
    "va": LoanProgram(
        program="va",
        label="VA",
        description="Veterans Affairs guaranteed loans",
        documents=[
            _W2,
            _PAY_STUBS,
            _req(DocumentType.VOE, "VOE", "Verification of Employment", True),
            _req(DocumentType.FORM_1040, "1040 Tax Returns", "Personal tax returns (if self-employed)",
                 False, 2, "years"),
            _K1,
            _1120S,
        ],
    ),
    "usda": LoanProgram(
        program="usda",
        label="USDA",
        description="Rural Development loans",
        documents=[
            _W2,
            _PAY_STUBS,
            _req(DocumentType.FORM_1040, "1040 Tax Returns", "Personal tax returns (all household members)",
                 True, 2, "years"),
            _req(DocumentType.VOE, "VOE", "Verification of Employment", True),
            _K1,
            _1120S,
        ],
    ),
    "jumbo": LoanProgram(
        program="jumbo",
        label="Jumbo",
        description="Non-conforming loans exceeding conventional limits",
        documents=[
            _W2,
            _PAY_STUBS,
            _req(DocumentType.FORM_1040, "1040 Tax Returns", "Full personal tax returns with all schedules",
                 True, 2, "years"),
            _SCHEDULE_C,
            _SCHEDULE_E,
            _req(DocumentType.K1, "K-1", "Partnership/S-Corp income", False),
            _req(DocumentType.FORM_1065, "Form 1065", "Partnership returns", False),
            _req(DocumentType.FORM_1120S, "Form 1120S", "S-Corporation returns", False),
            _req(DocumentType.VOE, "VOE", "Verification of Employment", True),
        ],
    ),
}


class RequirementStatusItem(BaseModel):
    requirement: DocumentRequirement
    status: RequirementStatus
    uploaded: int = 0
    document_ids: list[str] = Field(default_factory=list)


class DocumentChecklist(BaseModel):
    program: str
    label: str
    items: list[RequirementStatusItem]
    completion_percentage: int = Field(ge=0, le=100)

    @property
    def missing_required(self) -> list[DocumentRequirement]:
        return [
            item.requirement for item in self.items
            if item.requirement.required and item.status != RequirementStatus.COMPLETE
        ]


def get_loan_program(program: str) -> LoanProgram:
    """
    Raises:
        ConfigurationError: If the program is unknown
    """
    try:
        return LOAN_PROGRAMS[program]
    except KeyError:
        raise ConfigurationError(
            f"Unknown loan program: {program}",
            config_key="program",
            expected=", ".join(LOAN_PROGRAMS),
            actual=program,
        ) from None


def requirement_status(
    requirement: DocumentRequirement,
    documents: list[IncomeDocument],
) -> RequirementStatus:
    """Status of one requirement given the documents of its type."""
    if not documents:
        return RequirementStatus.MISSING
    if requirement.counts_years and len(documents) < requirement.quantity:
        return RequirementStatus.PARTIAL
    if any(d.ocr_status == OcrStatus.FAILED for d in documents):
        return RequirementStatus.ERROR
    if not all(d.ocr_status == OcrStatus.SUCCESS for d in documents):
        return RequirementStatus.PROCESSING
    return RequirementStatus.COMPLETE


def build_checklist(program: str, documents: Iterable[IncomeDocument]) -> DocumentChecklist:
    """
    Compare a borrower's documents against a loan program's requirements.

    Documents are matched on their effective type; soft-removed documents
    are ignored. Completion counts required items that have enough uploads,
    whatever their processing state.
    """
    loan_program = get_loan_program(program)

    by_type: dict[DocumentType, list[IncomeDocument]] = {}
    for doc in documents:
        if doc.removed:
            continue
        by_type.setdefault(doc.effective_type, []).append(doc)

    items = []
    for requirement in loan_program.documents:
        uploaded = by_type.get(requirement.document_type, [])
        items.append(RequirementStatusItem(
            requirement=requirement,
            status=requirement_status(requirement, uploaded),
            uploaded=len(uploaded),
            document_ids=[d.id for d in uploaded],
        ))

    required = [item for item in items if item.requirement.required]
    satisfied = [
        item for item in required
        if item.uploaded > 0
        and (not item.requirement.counts_years or item.uploaded >= item.requirement.quantity)
    ]
    percentage = round(len(satisfied) / len(required) * 100) if required else 100

    return DocumentChecklist(
        program=loan_program.program,
        label=loan_program.label,
        items=items,
        completion_percentage=percentage,
    )
