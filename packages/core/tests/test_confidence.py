"""Tests for calculation confidence scoring."""

from decimal import Decimal

import pytest

from qualify_core.confidence import MIN_CONFIDENCE, ConfidenceScorer
from qualify_core.models import (
    Agency,
    ComponentType,
    IncomeCalculation,
    IncomeComponent,
    IncomeWarning,
    WarningCode,
)


def _component(monthly: str, confidence: float, **extra) -> IncomeComponent:
    return IncomeComponent(
        component_type=ComponentType.BASE_SALARY,
        calculation_method="YTD annualized",
        monthly_amount=Decimal(monthly),
        confidence=confidence,
        **extra,
    )


@pytest.fixture
def scorer() -> ConfidenceScorer:
    return ConfidenceScorer()


class TestConfidenceScorer:
    """Weighted document confidence with warning penalties."""

    def test_no_included_components_scores_zero(self, scorer):
        """Nothing included means no confidence at all."""
        excluded = _component("5000", 1.0, excluded=True, exclusion_reason="test")

        assert scorer.score([], [excluded]) == 0.0

    def test_weighted_by_monthly_amount(self, scorer):
        """Larger components weigh more."""
        components = [_component("3000", 1.0), _component("1000", 0.6)]

        assert scorer.score([], components) == 0.9

    def test_equal_weights(self, scorer):
        """Equal amounts average their confidence."""
        components = [_component("5000", 1.0), _component("5000", 0.5)]

        assert scorer.score([], components) == 0.75

    def test_error_warning_applies_penalty(self, scorer):
        """Warnings at error severity reduce the score."""
        warnings = [IncomeWarning.create(WarningCode.DECLINING_TREND, "declined")]

        assert scorer.score(warnings, [_component("5000", 1.0)]) == 0.85

    def test_repeated_code_penalized_once(self, scorer):
        """Each distinct code is counted once."""
        warnings = [
            IncomeWarning.create(WarningCode.DECLINING_TREND, "first"),
            IncomeWarning.create(WarningCode.DECLINING_TREND, "second"),
        ]

        assert scorer.score(warnings, [_component("5000", 1.0)]) == 0.85

    def test_distinct_codes_compound(self, scorer):
        """Different serious codes compound."""
        warnings = [
            IncomeWarning.create(WarningCode.DECLINING_TREND, "declined"),
            IncomeWarning.create(WarningCode.LOW_CONFIDENCE_DOCUMENT, "ocr"),
        ]

        assert scorer.score(warnings, [_component("5000", 1.0)]) == pytest.approx(0.7225, abs=1e-4)

    def test_informational_warnings_do_not_penalize(self, scorer):
        """Warnings below error severity leave the score alone."""
        warnings = [
            IncomeWarning.create(WarningCode.NEGATIVE_RENTAL, "rental loss"),
            IncomeWarning.create(WarningCode.RECLASSIFIED_DOCUMENT, "reclassified"),
        ]

        assert scorer.score(warnings, [_component("5000", 1.0)]) == 1.0

    def test_minimum_applies(self, scorer):
        """Included income never scores below the minimum."""
        assert scorer.score([], [_component("5000", 0.01)]) == MIN_CONFIDENCE

    def test_scores_a_calculation(self, scorer):
        """A calculation supplies its own warnings and components."""
        calculation = IncomeCalculation(
            borrower_id="b-1",
            agency=Agency.FANNIE_MAE,
            result_monthly_income=Decimal("5000"),
            confidence=0.0,
            warning_details=(IncomeWarning.create(WarningCode.INSUFFICIENT_HISTORY, "short"),),
            components=(_component("5000", 0.8),),
        )

        assert scorer.score(calculation) == 0.68
