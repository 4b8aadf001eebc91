"""End-to-end tests from raw documents to an income calculation."""

from decimal import Decimal

import pytest

from qualify_core.agency_rules import get_agency_rules_version
from qualify_core.exceptions import ConfigurationError
from qualify_core.models import (
    Agency,
    ComponentType,
    DocumentType,
    IncomeDocument,
    WarningCode,
)
from qualify_core.qualifier import IncomeQualifier


@pytest.fixture
def qualifier() -> IncomeQualifier:
    return IncomeQualifier()


@pytest.fixture
def processed(make_processor, pdf_bytes, pay_stub_text, w2_text, schedule_c_text):
    """Process a pay stub, a W-2 and a Schedule C mis-declared as a 1040."""
    processor = make_processor()
    uploads = [
        ("stub_2025_09.pdf", DocumentType.PAY_STUB, pay_stub_text),
        ("w2_2024.pdf", DocumentType.W2, w2_text),
        ("2024_tax_return.pdf", DocumentType.FORM_1040, schedule_c_text),
    ]
    documents = []
    for file_name, declared, text in uploads:
        document = IncomeDocument(borrower_id="b-1", file_name=file_name, declared_type=declared)
        outcome = processor.process(document, pdf_bytes(text))
        assert outcome.succeeded, outcome.error
        documents.append(outcome.document)
    return documents


class TestIncomeQualifier:
    """Calculations over processed documents."""

    def test_total_from_processed_documents(self, qualifier, processed):
        """Pay stub base and Schedule C income are summed."""
        calculation = qualifier.calculate("b-1", processed, Agency.FANNIE_MAE)

        by_type = {c.component_type: c for c in calculation.included_components}
        assert by_type[ComponentType.BASE_SALARY].monthly_amount == Decimal("5000.00")
        assert by_type[ComponentType.SELF_EMPLOYMENT].monthly_amount == Decimal("6500.00")
        assert calculation.result_monthly_income == Decimal("11500.00")

    def test_reclassified_return_is_counted_and_reported(self, qualifier, processed):
        """The mis-declared Schedule C counts and the override is surfaced."""
        calculation = qualifier.calculate("b-1", processed, Agency.FANNIE_MAE)

        codes = [w.code for w in calculation.warning_details]
        assert WarningCode.RECLASSIFIED_DOCUMENT in codes
        assert WarningCode.SINGLE_YEAR_SELF_EMPLOYMENT in codes
        assert processed[2].effective_type == DocumentType.SCHEDULE_C

    def test_calculation_metadata(self, qualifier, processed):
        """Calculations carry the rules version and the documents used."""
        calculation = qualifier.calculate("b-1", processed, "fannie_mae")

        assert calculation.agency == Agency.FANNIE_MAE
        assert calculation.rules_version == get_agency_rules_version()
        assert calculation.document_ids == tuple(sorted(d.id for d in processed))
        assert calculation.audit_log[-1].step == "confidence"
        assert 0.0 < calculation.confidence <= 1.0

    def test_recalculation_is_idempotent(self, qualifier, processed):
        """The same documents always give the same figure in a new calculation."""
        first = qualifier.calculate("b-1", processed, Agency.FANNIE_MAE)
        second = qualifier.calculate("b-1", processed, Agency.FANNIE_MAE)

        assert first.id != second.id
        assert first.result_monthly_income == second.result_monthly_income
        assert first.warnings == second.warnings
        assert first.confidence == second.confidence

    def test_fha_excludes_single_year_self_employment(self, qualifier, processed):
        """Under FHA only the pay stub base qualifies."""
        calculation = qualifier.calculate("b-1", processed, Agency.FHA)

        assert calculation.result_monthly_income == Decimal("5000.00")
        assert [c.component_type for c in calculation.excluded_components] == [
            ComponentType.SELF_EMPLOYMENT
        ]

    def test_no_documents(self, qualifier):
        """A borrower with nothing on file qualifies for zero."""
        calculation = qualifier.calculate("b-1", [], Agency.VA)

        assert calculation.result_monthly_income == Decimal("0")
        assert calculation.confidence == 0.0
        assert calculation.warning_details[0].code == WarningCode.NO_QUALIFYING_INCOME

    def test_unknown_agency(self, qualifier, processed):
        """Unknown agencies are rejected before any calculation."""
        with pytest.raises(ConfigurationError):
            qualifier.calculate("b-1", processed, "hud")
