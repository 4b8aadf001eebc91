"""Tests for the in-memory document store and CRM records."""

from decimal import Decimal

import pytest

from qualify_core.exceptions import DocumentInUseError, DocumentNotFoundError
from qualify_core.models import Agency, DocumentType, IncomeCalculation, OcrStatus
from qualify_core.storage import CRMRecordWriter, InMemoryCRMRecords, InMemoryDocumentStore


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def uploaded(store, pdf_bytes) -> str:
    return store.upload("b-1", "w2_2024.pdf", pdf_bytes("Form W-2"), DocumentType.W2)


class TestUpload:
    """Accepting files for a borrower."""

    def test_upload_creates_pending_document(self, store, uploaded):
        """New uploads are pending and belong to the borrower."""
        document = store.get_document(uploaded)

        assert document.borrower_id == "b-1"
        assert document.declared_type == DocumentType.W2
        assert document.ocr_status == OcrStatus.PENDING

    def test_content_and_mime_type_are_kept(self, store, uploaded, pdf_bytes):
        """The uploaded bytes are returned with the sniffed MIME type."""
        content, mime_type = store.get_content(uploaded)

        assert content == pdf_bytes("Form W-2")
        assert mime_type == "application/pdf"

    def test_unsupported_file_is_still_accepted(self, store):
        """Unsupported uploads are stored so they can fail at ingestion."""
        document_id = store.upload("b-1", "export.csv", b"a,b,c\n1,2,3\n")

        _, mime_type = store.get_content(document_id)
        assert mime_type is None
        assert store.get_document(document_id).ocr_status == OcrStatus.PENDING

    def test_upload_is_audited(self, store, uploaded):
        """Uploads appear in the borrower's audit trail."""
        trail = store.get_audit_trail("b-1")

        assert trail.with_action("document_uploaded")[0].document_id == uploaded


class TestReads:
    """Reads never share state with the store."""

    def test_documents_are_scoped_to_borrower(self, store, uploaded, pdf_bytes):
        """Each borrower sees only their own documents."""
        store.upload("b-2", "stub.pdf", pdf_bytes("Earnings Statement"))

        assert [d.id for d in store.get_documents("b-1")] == [uploaded]

    def test_returned_documents_are_copies(self, store, uploaded):
        """Mutating a returned document does not change the store."""
        document = store.get_document(uploaded)
        document.start_processing()

        assert store.get_document(uploaded).ocr_status == OcrStatus.PENDING

    def test_save_document_persists_state(self, store, uploaded):
        """Saved state replaces the stored document and is audited."""
        document = store.get_document(uploaded)
        document.start_processing()
        store.save_document(document, action="document_processing")

        assert store.get_document(uploaded).ocr_status == OcrStatus.PROCESSING
        assert store.get_audit_trail("b-1").with_action("document_processing")

    def test_unknown_document(self, store):
        """Unknown ids raise DocumentNotFoundError."""
        with pytest.raises(DocumentNotFoundError):
            store.get_document("missing")


class TestRemoval:
    """Soft removal and permanent deletion."""

    def test_soft_remove_hides_document(self, store, uploaded):
        """Removed documents are hidden unless asked for."""
        store.soft_remove(uploaded)

        assert store.get_documents("b-1") == []
        assert store.get_documents("b-1", include_removed=True)[0].removed is True

    def test_delete_unreferenced_document(self, store, uploaded):
        """Documents no calculation uses can be deleted."""
        store.delete(uploaded)

        with pytest.raises(DocumentNotFoundError):
            store.get_document(uploaded)

    def test_delete_referenced_document_is_refused(self, store, uploaded):
        """A document behind a saved calculation cannot be deleted."""
        calculation = IncomeCalculation(
            borrower_id="b-1",
            agency=Agency.FANNIE_MAE,
            result_monthly_income=Decimal("4833.33"),
            confidence=0.9,
            document_ids=(uploaded,),
        )
        store.save_calculation(calculation)

        with pytest.raises(DocumentInUseError) as exc_info:
            store.delete(uploaded)

        assert exc_info.value.calculation_ids == [calculation.id]
        assert store.get_document(uploaded).id == uploaded

    def test_delete_unknown_document(self, store):
        """Deleting an unknown id raises DocumentNotFoundError."""
        with pytest.raises(DocumentNotFoundError):
            store.delete("missing")


class TestCalculations:
    """Saved calculations and audit events."""

    def test_latest_calculation(self, store):
        """The most recently saved calculation is the latest."""
        assert store.latest_calculation("b-1") is None

        for amount in ("4000", "5000"):
            store.save_calculation(IncomeCalculation(
                borrower_id="b-1",
                agency=Agency.FHA,
                result_monthly_income=Decimal(amount),
                confidence=1.0,
            ))

        assert store.latest_calculation("b-1").result_monthly_income == Decimal("5000")
        assert len(store.get_calculations("b-1")) == 2

    def test_record_event(self, store):
        """Arbitrary events are appended with their payload."""
        event = store.record_event("b-1", "reprocess_requested", document_id="doc-1", force_ocr=True)

        assert event.payload == {"force_ocr": True}
        assert store.get_audit_trail("b-1").summary()["actions"] == {"reprocess_requested": 1}


class TestCRMRecords:
    """CRM income writes."""

    def test_in_memory_records_satisfy_protocol(self):
        """The in-memory writer is a CRMRecordWriter."""
        assert isinstance(InMemoryCRMRecords(), CRMRecordWriter)

    def test_update_replaces_figure(self):
        """Each update overwrites the borrower's figure."""
        crm = InMemoryCRMRecords()
        crm.update_qualifying_income("b-1", Decimal("4000.00"))
        crm.update_qualifying_income("b-1", Decimal("5000.00"))

        assert crm.get("b-1") == Decimal("5000.00")
        assert crm.get("b-2") is None
