"""Tests for agency-driven income aggregation."""

from decimal import Decimal
from typing import Optional

import pytest

from qualify_core.aggregator import NO_QUALIFYING_INCOME_MESSAGE, IncomeAggregator
from qualify_core.exceptions import ConfigurationError
from qualify_core.models import (
    Agency,
    ComponentType,
    DocumentType,
    FailureKind,
    IncomeComponent,
    IncomeDocument,
    ParserDiagnostics,
    ScheduleCFields,
    WarningCode,
)
from qualify_core.trend import apply_trends


def _component(
    component_type: ComponentType,
    monthly: str,
    *,
    year1: Optional[str] = None,
    year2: Optional[str] = None,
    years_of_history: int = 0,
    **extra,
) -> IncomeComponent:
    component = IncomeComponent(
        component_type=component_type,
        calculation_method="24-month average" if year1 else "12-month average",
        monthly_amount=Decimal(monthly),
        year1_amount=Decimal(year1) if year1 else None,
        year2_amount=Decimal(year2) if year2 else None,
        years_of_history=years_of_history,
        source_label="Test Source",
        **extra,
    )
    return apply_trends([component])[0]


@pytest.fixture
def aggregator() -> IncomeAggregator:
    return IncomeAggregator()


@pytest.fixture
def base_salary() -> IncomeComponent:
    return _component(ComponentType.BASE_SALARY, "5000")


class TestTotals:
    """Summing included components."""

    def test_total_is_sum_of_included(self, aggregator, base_salary):
        """Included monthly amounts are summed."""
        rental = _component(ComponentType.RENTAL_INCOME, "1500", year2="18000", years_of_history=1)
        result = aggregator.aggregate([base_salary, rental], Agency.FANNIE_MAE)

        assert result.result_monthly_income == Decimal("6500.00")
        assert result.warnings == []

    def test_no_components(self, aggregator):
        """No components means zero income and a critical warning."""
        result = aggregator.aggregate([], Agency.FANNIE_MAE)

        assert result.result_monthly_income == Decimal("0")
        assert result.warning_messages == [NO_QUALIFYING_INCOME_MESSAGE]
        assert result.warnings[0].code == WarningCode.NO_QUALIFYING_INCOME

    def test_aggregation_is_deterministic(self, aggregator, base_salary):
        """The same inputs give the same total and warnings."""
        components = [
            base_salary,
            _component(ComponentType.SELF_EMPLOYMENT, "6000", year2="72000", years_of_history=1),
        ]
        first = aggregator.aggregate(components, Agency.FANNIE_MAE)
        second = aggregator.aggregate(components, Agency.FANNIE_MAE)

        assert first.result_monthly_income == second.result_monthly_income
        assert first.warning_messages == second.warning_messages
        assert [e.step for e in first.audit_log] == [e.step for e in second.audit_log]

    def test_unknown_agency_is_rejected(self, aggregator, base_salary):
        """An agency outside the rules table raises a configuration error."""
        with pytest.raises(ConfigurationError):
            aggregator.aggregate([base_salary], "hud-unknown")


class TestSingleYearSelfEmployment:
    """History requirements differ by agency."""

    @pytest.fixture
    def single_year(self) -> IncomeComponent:
        return _component(ComponentType.SELF_EMPLOYMENT, "6000", year2="72000", years_of_history=1)

    def test_fannie_mae_counts_with_warning(self, aggregator, single_year):
        """Fannie Mae counts one year of self-employment but warns."""
        result = aggregator.aggregate([single_year], Agency.FANNIE_MAE)

        assert result.result_monthly_income == Decimal("6000.00")
        assert any(
            m.startswith("self-employment income based on a single year only")
            for m in result.warning_messages
        )

    def test_fha_excludes(self, aggregator, single_year):
        """FHA excludes single-year self-employment entirely."""
        result = aggregator.aggregate([single_year], Agency.FHA)

        assert result.result_monthly_income == Decimal("0")
        assert result.components[0].excluded is True
        assert NO_QUALIFYING_INCOME_MESSAGE in result.warning_messages


class TestDecliningIncome:
    """Trended components that fell year over year."""

    def test_moderate_decline_uses_recent_year(self, aggregator):
        """A 30% decline replaces the average with the recent year."""
        component = _component(
            ComponentType.SELF_EMPLOYMENT, "7083.33",
            year1="100000", year2="70000", years_of_history=2,
        )
        result = aggregator.aggregate([component], Agency.FANNIE_MAE)

        adjusted = result.components[0]
        assert adjusted.excluded is False
        assert adjusted.monthly_amount == Decimal("5833.33")
        assert adjusted.calculation_method.startswith("Most recent year only")
        assert result.warnings[0].code == WarningCode.DECLINING_TREND

    def test_severe_decline_is_excluded(self, aggregator, base_salary):
        """A decline over 50% excludes the component."""
        component = _component(
            ComponentType.SELF_EMPLOYMENT, "2916.67",
            year1="50000", year2="20000", years_of_history=2,
        )
        result = aggregator.aggregate([base_salary, component], Agency.FANNIE_MAE)

        assert result.components[1].excluded is True
        assert result.result_monthly_income == Decimal("5000.00")

    def test_small_decline_keeps_average(self, aggregator):
        """A decline under the threshold keeps the two-year average."""
        component = _component(
            ComponentType.SELF_EMPLOYMENT, "5700.00",
            year1="72000", year2="64800", years_of_history=2,
        )
        result = aggregator.aggregate([component], Agency.FANNIE_MAE)

        assert result.result_monthly_income == Decimal("5700.00")
        assert result.warnings == []


class TestComponentWarnings:
    """Warnings that accompany included or excluded components."""

    def test_negative_rental_reduces_total(self, aggregator, base_salary):
        """Rental losses reduce income and are called out."""
        rental = _component(ComponentType.RENTAL_INCOME, "-300", year2="-3600", years_of_history=1)
        result = aggregator.aggregate([base_salary, rental], Agency.FANNIE_MAE)

        assert result.result_monthly_income == Decimal("4700.00")
        assert "negative rental income reducing total: -300.00/mo" in result.warning_messages

    def test_other_income_is_excluded_by_agency(self, aggregator, base_salary):
        """Unclassified income never counts."""
        other = _component(ComponentType.OTHER, "800")
        result = aggregator.aggregate([base_salary, other], Agency.FANNIE_MAE)

        assert result.result_monthly_income == Decimal("5000.00")
        assert result.warnings[0].code == WarningCode.EXCLUDED_BY_AGENCY

    def test_ytd_variable_pay_by_agency(self, aggregator, base_salary):
        """YTD-only variable pay counts for Fannie Mae but not for VA."""
        variable = _component(ComponentType.VARIABLE_INCOME_YTD, "555.56")

        fannie = aggregator.aggregate([base_salary, variable], Agency.FANNIE_MAE)
        va = aggregator.aggregate([base_salary, variable], Agency.VA)

        assert fannie.result_monthly_income == Decimal("5555.56")
        assert va.result_monthly_income == Decimal("5000.00")
        assert fannie.warnings[0].code == WarningCode.INSUFFICIENT_HISTORY
        assert va.warnings[0].code == WarningCode.INSUFFICIENT_HISTORY

    def test_low_confidence_ocr_source(self, aggregator):
        """Components from low-confidence OCR documents are flagged but counted."""
        component = _component(
            ComponentType.BASE_SALARY, "5000", confidence=0.5, ocr_used=True,
            source_document_ids=("doc-1",),
        )
        result = aggregator.aggregate([component], Agency.FANNIE_MAE)

        assert result.result_monthly_income == Decimal("5000.00")
        warning = result.warnings[0]
        assert warning.code == WarningCode.LOW_CONFIDENCE_DOCUMENT
        assert "OCR-derived data" in warning.message
        assert warning.document_id == "doc-1"

    def test_confidence_floor_override(self, base_salary):
        """A stricter floor flags otherwise acceptable documents."""
        component = base_salary.model_copy(update={"confidence": 0.7})
        result = IncomeAggregator(confidence_floor=0.9).aggregate([component], Agency.FANNIE_MAE)

        assert result.warnings[0].code == WarningCode.LOW_CONFIDENCE_DOCUMENT


class TestDocumentWarnings:
    """Warnings derived from the borrower's documents."""

    def test_failed_document_suggests_ocr(self, aggregator, base_salary):
        """A failed document is reported with a reprocessing hint."""
        doc = IncomeDocument(borrower_id="b-1", file_name="scan.pdf")
        doc.start_processing()
        doc.mark_failed(
            "No required fields found",
            failure_kind=FailureKind.EXTRACTION_EMPTY,
            stage="extraction",
        )
        result = aggregator.aggregate([base_salary], Agency.FANNIE_MAE, [doc])

        assert result.warnings[0].code == WarningCode.FAILED_DOCUMENT
        assert "scan.pdf" in result.warnings[0].message
        assert "retry with OCR" in result.warnings[0].message

    def test_reclassified_document_is_reported(self, aggregator, base_salary, make_document):
        """Overridden classifications are surfaced for review."""
        doc = make_document(ScheduleCFields(tax_year=2024, net_profit=Decimal("72000")))
        doc.diagnostics = ParserDiagnostics(
            classification_override=True,
            original_classification=DocumentType.FORM_1040,
            final_classification=DocumentType.SCHEDULE_C,
            anchors_found=["Schedule C"],
        )
        result = aggregator.aggregate([base_salary], Agency.FANNIE_MAE, [doc])

        assert result.warnings[0].code == WarningCode.RECLASSIFIED_DOCUMENT
        assert "reclassified from form_1040 to schedule_c" in result.warnings[0].message

    def test_removed_documents_are_silent(self, aggregator, base_salary):
        """Soft-removed documents produce no warnings."""
        doc = IncomeDocument(borrower_id="b-1", file_name="old.pdf", removed=True)
        result = aggregator.aggregate([base_salary], Agency.FANNIE_MAE, [doc])

        assert result.warnings == []


class TestAuditLog:
    """Every decision is recorded."""

    def test_included_and_excluded_steps(self, aggregator, base_salary):
        """Inclusions, exclusions and the total all appear in the audit log."""
        other = _component(ComponentType.OTHER, "800")
        result = aggregator.aggregate([base_salary, other], Agency.FANNIE_MAE)

        steps = [entry.step for entry in result.audit_log]
        assert steps[0] == "agency_rules"
        assert "include_base_salary" in steps
        assert "exclude_other" in steps
        assert steps[-1] == "total_monthly_income"
        assert result.audit_log[-1].output_value == "5000.00"
