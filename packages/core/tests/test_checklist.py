"""Tests for loan program document checklists."""

import pytest

from qualify_core.checklist import (
    LOAN_PROGRAMS,
    RequirementStatus,
    build_checklist,
    get_loan_program,
)
from qualify_core.exceptions import ConfigurationError
from qualify_core.models import DocumentType, IncomeDocument, OcrStatus, W2Fields


def _doc(document_type: DocumentType, status: OcrStatus = OcrStatus.PENDING, **extra) -> IncomeDocument:
    return IncomeDocument(
        borrower_id="b-1",
        file_name=f"{document_type.value}.pdf",
        declared_type=document_type,
        ocr_status=status,
        **extra,
    )


def _item(checklist, document_type: DocumentType):
    return next(i for i in checklist.items if i.requirement.document_type == document_type)


class TestLoanPrograms:
    """Program lookup."""

    def test_all_programs_are_defined(self):
        """Every supported program has a requirement list."""
        assert set(LOAN_PROGRAMS) == {"conventional", "fha", "va", "usda", "jumbo"}

    def test_unknown_program(self):
        """Unknown programs raise a configuration error."""
        with pytest.raises(ConfigurationError):
            get_loan_program("reverse")

    def test_fha_requires_voe(self):
        """FHA lists verification of employment as required."""
        program = get_loan_program("fha")

        assert DocumentType.VOE in [r.document_type for r in program.required_documents]


class TestRequirementStatus:
    """Per-requirement status."""

    def test_nothing_uploaded(self):
        """An empty file set leaves every item missing."""
        checklist = build_checklist("conventional", [])

        assert all(item.status == RequirementStatus.MISSING for item in checklist.items)
        assert checklist.completion_percentage == 0

    def test_one_of_two_years_is_partial(self):
        """A two-year requirement with one upload is partial."""
        checklist = build_checklist("conventional", [_doc(DocumentType.W2, OcrStatus.SUCCESS)])

        assert _item(checklist, DocumentType.W2).status == RequirementStatus.PARTIAL

    def test_failed_document_is_error(self):
        """A failed upload marks its requirement as error."""
        failed = _doc(DocumentType.PAY_STUB, OcrStatus.FAILED, failure_reason="unreadable")
        checklist = build_checklist("conventional", [failed])

        assert _item(checklist, DocumentType.PAY_STUB).status == RequirementStatus.ERROR

    def test_pending_document_is_processing(self):
        """Uploads still being read are processing."""
        checklist = build_checklist("conventional", [_doc(DocumentType.PAY_STUB)])

        assert _item(checklist, DocumentType.PAY_STUB).status == RequirementStatus.PROCESSING

    def test_complete_requirement(self):
        """Enough successful uploads complete the requirement."""
        documents = [
            _doc(DocumentType.W2, OcrStatus.SUCCESS, fields=W2Fields(tax_year=year))
            for year in (2023, 2024)
        ]
        item = _item(build_checklist("conventional", documents), DocumentType.W2)

        assert item.status == RequirementStatus.COMPLETE
        assert item.uploaded == 2
        assert item.document_ids == [d.id for d in documents]

    def test_removed_documents_are_ignored(self):
        """Soft-removed uploads do not count."""
        checklist = build_checklist("conventional", [_doc(DocumentType.PAY_STUB, removed=True)])

        assert _item(checklist, DocumentType.PAY_STUB).status == RequirementStatus.MISSING

    def test_matches_on_final_classification(self):
        """A reclassified upload satisfies its actual type."""
        document = _doc(DocumentType.FORM_1040, OcrStatus.SUCCESS)
        document.diagnostics = document.diagnostics.model_copy(
            update={"final_classification": DocumentType.PAY_STUB}
        )
        checklist = build_checklist("conventional", [document])

        assert _item(checklist, DocumentType.PAY_STUB).status == RequirementStatus.COMPLETE
        assert _item(checklist, DocumentType.FORM_1040).status == RequirementStatus.MISSING


class TestCompletion:
    """Completion over required items."""

    def test_partial_completion(self):
        """Two W-2s out of the two conventional requirements is 50%."""
        documents = [_doc(DocumentType.W2), _doc(DocumentType.W2)]

        assert build_checklist("conventional", documents).completion_percentage == 50

    def test_completion_ignores_processing_state(self):
        """Failed uploads still count toward completion."""
        documents = [
            _doc(DocumentType.W2, OcrStatus.SUCCESS),
            _doc(DocumentType.W2, OcrStatus.SUCCESS),
            _doc(DocumentType.PAY_STUB, OcrStatus.FAILED),
        ]
        checklist = build_checklist("conventional", documents)

        assert checklist.completion_percentage == 100
        assert [r.document_type for r in checklist.missing_required] == [DocumentType.PAY_STUB]

    def test_fha_rounds_to_whole_percent(self):
        """One of three FHA requirements rounds to 33%."""
        checklist = build_checklist("fha", [_doc(DocumentType.VOE)])

        assert checklist.completion_percentage == 33
