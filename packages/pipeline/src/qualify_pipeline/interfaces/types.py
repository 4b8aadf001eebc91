"""Pipeline data types for borrower income runs.

Data flows through two stages:
1. Document processing (DocumentJob -> IncomeDocument)
2. Income calculation (all borrower documents -> IncomeCalculation)

The document stage runs per document and concurrently; the calculation
stage runs once per borrower after every document reaches a terminal state.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from qualify_core.models.documents import IncomeDocument
from qualify_core.models.income import Agency, IncomeCalculation


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentJob(BaseModel):
    """One document queued for processing."""

    document: IncomeDocument
    content: bytes
    mime_type: Optional[str] = None
    force_ocr: bool = False

    @property
    def document_id(self) -> str:
        return self.document.id


class CalculationRequest(BaseModel):
    """Terminal documents of one borrower, ready for calculation."""

    borrower_id: str
    agency: Agency
    documents: list[IncomeDocument] = Field(default_factory=list)


class DocumentFailure(BaseModel):
    """A document that did not produce usable fields in this run."""

    document_id: str
    file_name: str
    stage: Optional[str] = None
    reason: str


class BorrowerRunResult(BaseModel):
    """Outcome of one borrower pipeline run."""

    borrower_id: str
    agency: Agency
    calculation: Optional[IncomeCalculation] = None
    processed_document_ids: list[str] = Field(default_factory=list)
    failures: list[DocumentFailure] = Field(default_factory=list)
    crm_updated: bool = False
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None

    @property
    def result_monthly_income(self) -> Optional[Decimal]:
        return self.calculation.result_monthly_income if self.calculation else None

    @property
    def is_success(self) -> bool:
        return self.calculation is not None and self.error is None


class ReprocessResult(BaseModel):
    """Outcome of a forced reprocess of one document."""

    document_id: str
    borrower_id: str
    succeeded: bool
    document: IncomeDocument
    error: Optional[str] = None
    run: Optional[BorrowerRunResult] = None


__all__ = [
    "DocumentJob",
    "CalculationRequest",
    "DocumentFailure",
    "BorrowerRunResult",
    "ReprocessResult",
]
