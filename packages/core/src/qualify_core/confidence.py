"""Confidence scoring for income calculations."""

from decimal import Decimal
from typing import Iterable, Union

import structlog

from .models.audit import AuditSeverity, IncomeWarning, WarningCode
from .models.income import IncomeCalculation, IncomeComponent

logger = structlog.get_logger()


# Multiplier applied once per distinct warning code at or above the threshold
WARNING_PENALTY = 0.85
PENALTY_SEVERITY = AuditSeverity.ERROR
MIN_CONFIDENCE = 0.05


class ConfidenceScorer:
    """
    Score how much an underwriter can trust a calculated figure.

    The base score weights each included component's document confidence by
    its share of income (by absolute monthly amount, so a rental loss still
    carries weight). Serious warnings then reduce the score multiplicatively.
    """

    def __init__(
        self,
        penalty: float = WARNING_PENALTY,
        penalty_severity: AuditSeverity = PENALTY_SEVERITY,
        minimum: float = MIN_CONFIDENCE,
    ):
        self.penalty = penalty
        self.penalty_severity = penalty_severity
        self.minimum = minimum

    def score(
        self,
        calculation_or_warnings: Union[IncomeCalculation, Iterable[IncomeWarning]],
        components: Iterable[IncomeComponent] | None = None,
    ) -> float:
        """
        Compute a confidence in [0.0, 1.0].

        Args:
            calculation_or_warnings: A calculation (its warnings and
                components are used) or the warnings alone
            components: Components to weigh; defaults to the calculation's

        Returns:
            0.0 when no component is included, otherwise at least the minimum
        """
        if isinstance(calculation_or_warnings, IncomeCalculation):
            warnings = list(calculation_or_warnings.warning_details)
            if components is None:
                components = calculation_or_warnings.components
        else:
            warnings = list(calculation_or_warnings)
        included = [c for c in (components or []) if not c.excluded]

        if not included:
            return 0.0

        weights = [abs(c.monthly_amount) for c in included]
        total_weight = sum(weights, Decimal("0"))
        if total_weight == 0:
            base = sum(c.confidence for c in included) / len(included)
        else:
            base = float(sum(
                (Decimal(str(c.confidence)) * w for c, w in zip(included, weights)),
                Decimal("0"),
            ) / total_weight)

        penalized: set[WarningCode] = {
            w.code for w in warnings if w.severity.rank >= self.penalty_severity.rank
        }
        score = base * (self.penalty ** len(penalized))
        score = min(1.0, max(self.minimum, score))

        logger.debug(
            "confidence_scored",
            base=round(base, 4),
            penalized_codes=sorted(code.value for code in penalized),
            score=round(score, 4),
        )
        return round(score, 4)
