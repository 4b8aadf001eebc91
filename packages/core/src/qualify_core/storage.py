"""Document store and CRM record boundaries.

InMemoryDocumentStore keeps uploaded content, document state, calculations
and audit events per borrower. Reads return deep copies so callers never
share mutable state with the store; a document is only changed through
``save_document`` by the stage currently processing it.
"""

import threading
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

import structlog

from .exceptions import DocumentInUseError, DocumentNotFoundError, IngestionError
from .models.audit import AuditEvent, AuditTrail
from .models.documents import DocumentType, IncomeDocument
from .models.income import IncomeCalculation
from .pdf_parser import sniff_mime_type

logger = structlog.get_logger()


class InMemoryDocumentStore:
    """Thread-safe in-memory document store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._documents: dict[str, IncomeDocument] = {}
        self._content: dict[str, bytes] = {}
        self._mime_types: dict[str, Optional[str]] = {}
        self._calculations: dict[str, list[IncomeCalculation]] = {}
        self._trails: dict[str, AuditTrail] = {}

    def _trail(self, borrower_id: str) -> AuditTrail:
        if borrower_id not in self._trails:
            self._trails[borrower_id] = AuditTrail(borrower_id=borrower_id)
        return self._trails[borrower_id]

    def _require(self, document_id: str) -> IncomeDocument:
        try:
            return self._documents[document_id]
        except KeyError:
            raise DocumentNotFoundError(document_id) from None

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def upload(
        self,
        borrower_id: str,
        file_name: str,
        content: bytes,
        declared_type: Optional[DocumentType] = None,
        *,
        actor: Optional[str] = None,
    ) -> str:
        """
        Store an uploaded file as a pending document.

        The MIME type is sniffed here for the record, but an unsupported file
        is still accepted: it fails at ingestion so the reason is kept on the
        document.

        Returns:
            The new document id
        """
        document = IncomeDocument(
            borrower_id=borrower_id,
            file_name=file_name,
            declared_type=declared_type,
        )
        try:
            mime_type = sniff_mime_type(content, file_name)
        except IngestionError:
            mime_type = None

        with self._lock:
            self._documents[document.id] = document
            self._content[document.id] = bytes(content)
            self._mime_types[document.id] = mime_type
            self._trail(borrower_id).add_event(
                "document_uploaded",
                document_id=document.id,
                actor=actor,
                file_name=file_name,
                declared_type=declared_type.value if declared_type else None,
                size=len(content),
            )

        logger.info(
            "document_uploaded",
            borrower_id=borrower_id,
            document_id=document.id,
            file_name=file_name,
            mime_type=mime_type,
        )
        return document.id

    def get_documents(self, borrower_id: str, *, include_removed: bool = False) -> list[IncomeDocument]:
        """All documents for a borrower in upload order."""
        with self._lock:
            documents = [
                d for d in self._documents.values()
                if d.borrower_id == borrower_id and (include_removed or not d.removed)
            ]
            return [d.model_copy(deep=True) for d in documents]

    def get_document(self, document_id: str) -> IncomeDocument:
        with self._lock:
            return self._require(document_id).model_copy(deep=True)

    def get_content(self, document_id: str) -> tuple[bytes, Optional[str]]:
        """Uploaded bytes and sniffed MIME type for a document."""
        with self._lock:
            self._require(document_id)
            return self._content[document_id], self._mime_types[document_id]

    def save_document(self, document: IncomeDocument, *, action: Optional[str] = None) -> None:
        """Replace the stored state of an existing document."""
        with self._lock:
            self._require(document.id)
            self._documents[document.id] = document.model_copy(deep=True)
            if action:
                self._trail(document.borrower_id).add_event(
                    action,
                    document_id=document.id,
                    status=document.ocr_status.value,
                    failure_reason=document.failure_reason,
                )

    def soft_remove(self, document_id: str, *, actor: Optional[str] = None) -> None:
        """Hide a document from future calculations while keeping it for audit."""
        with self._lock:
            document = self._require(document_id)
            self._documents[document_id] = document.model_copy(update={"removed": True})
            self._trail(document.borrower_id).add_event(
                "document_removed", document_id=document_id, actor=actor
            )
        logger.info("document_removed", document_id=document_id)

    def delete(self, document_id: str) -> None:
        """
        Permanently delete a document.

        Raises:
            DocumentNotFoundError: If the document does not exist
            DocumentInUseError: If a saved calculation references it
        """
        with self._lock:
            document = self._require(document_id)
            referencing = [
                calc.id
                for calc in self._calculations.get(document.borrower_id, [])
                if document_id in calc.document_ids
            ]
            if referencing:
                raise DocumentInUseError(document_id, referencing)
            del self._documents[document_id]
            del self._content[document_id]
            del self._mime_types[document_id]
            self._trail(document.borrower_id).add_event("document_deleted", document_id=document_id)
        logger.info("document_deleted", document_id=document_id)

    # -------------------------------------------------------------------------
    # Calculations and audit
    # -------------------------------------------------------------------------

    def save_calculation(self, calculation: IncomeCalculation) -> None:
        with self._lock:
            self._calculations.setdefault(calculation.borrower_id, []).append(calculation)
            self._trail(calculation.borrower_id).add_event(
                "calculation_saved",
                calculation_id=calculation.id,
                agency=calculation.agency.value,
                result_monthly_income=str(calculation.result_monthly_income),
                confidence=calculation.confidence,
            )

    def get_calculations(self, borrower_id: str) -> list[IncomeCalculation]:
        """Calculations for a borrower, oldest first."""
        with self._lock:
            return list(self._calculations.get(borrower_id, []))

    def latest_calculation(self, borrower_id: str) -> Optional[IncomeCalculation]:
        calculations = self.get_calculations(borrower_id)
        return calculations[-1] if calculations else None

    def record_event(
        self,
        borrower_id: str,
        action: str,
        *,
        document_id: Optional[str] = None,
        calculation_id: Optional[str] = None,
        actor: Optional[str] = None,
        **payload,
    ) -> AuditEvent:
        with self._lock:
            return self._trail(borrower_id).add_event(
                action,
                document_id=document_id,
                calculation_id=calculation_id,
                actor=actor,
                **payload,
            )

    def get_audit_trail(self, borrower_id: str) -> AuditTrail:
        with self._lock:
            return self._trail(borrower_id).model_copy(deep=True)


@runtime_checkable
class CRMRecordWriter(Protocol):
    """Writes the qualifying monthly income figure to a borrower's CRM record."""

    def update_qualifying_income(self, borrower_id: str, monthly_income: Decimal) -> None:
        ...


class InMemoryCRMRecords:
    """CRM record writer that keeps one figure per borrower."""

    def __init__(self):
        self._lock = threading.Lock()
        self.records: dict[str, Decimal] = {}

    def update_qualifying_income(self, borrower_id: str, monthly_income: Decimal) -> None:
        with self._lock:
            self.records[borrower_id] = monthly_income
        logger.info(
            "crm_income_updated",
            borrower_id=borrower_id,
            qualifying_monthly_income=str(monthly_income),
        )

    def get(self, borrower_id: str) -> Optional[Decimal]:
        with self._lock:
            return self.records.get(borrower_id)
