"""Borrower-level income qualification.

IncomeQualifier runs the calculation stages over a borrower's documents:
component building, trend analysis, agency aggregation and confidence
scoring. Each call produces a new IncomeCalculation.
"""

from typing import Iterable, Optional

import structlog

from .agency_rules import get_agency_rules, get_agency_rules_version
from .aggregator import IncomeAggregator
from .component_builder import ComponentBuilder
from .confidence import ConfidenceScorer
from .models.audit import AuditEntry
from .models.documents import IncomeDocument
from .models.income import Agency, IncomeCalculation
from .trend import apply_trends

logger = structlog.get_logger()


class IncomeQualifier:
    """Calculate qualifying monthly income for one borrower under one agency."""

    def __init__(
        self,
        confidence_floor: Optional[float] = None,
        scorer: Optional[ConfidenceScorer] = None,
    ):
        self.confidence_floor = confidence_floor
        self.scorer = scorer or ConfidenceScorer()

    def calculate(
        self,
        borrower_id: str,
        documents: Iterable[IncomeDocument],
        agency: Agency | str,
    ) -> IncomeCalculation:
        """
        Calculate qualifying income from a borrower's documents.

        Documents that failed or were removed are reported in warnings
        but never contribute income.

        Args:
            borrower_id: Borrower the documents belong to
            documents: Every document on file for the borrower
            agency: Agency rule set

        Returns:
            IncomeCalculation with components, warnings and audit log
        """
        documents = list(documents)
        rules = get_agency_rules(agency, confidence_floor=self.confidence_floor)

        builder = ComponentBuilder(rules)
        components = apply_trends(builder.build_components(documents), rules.trended_types)

        aggregation = IncomeAggregator(self.confidence_floor).aggregate(
            components, rules.agency, documents
        )
        warnings = builder.warnings + aggregation.warnings
        confidence = self.scorer.score(warnings, aggregation.components)

        audit_log: list[AuditEntry] = list(aggregation.audit_log)
        audit_log.append(AuditEntry(
            step="confidence",
            input_value=f"{len(aggregation.components)} components, {len(warnings)} warnings",
            output_value=str(confidence),
            source="Confidence scorer",
        ))

        calculation = IncomeCalculation(
            borrower_id=borrower_id,
            agency=rules.agency,
            result_monthly_income=aggregation.result_monthly_income,
            confidence=confidence,
            warnings=tuple(w.message for w in warnings),
            warning_details=tuple(warnings),
            components=tuple(aggregation.components),
            document_ids=tuple(sorted(d.id for d in documents if d.is_usable)),
            rules_version=get_agency_rules_version(),
            audit_log=tuple(audit_log),
        )

        logger.info(
            "income_calculated",
            borrower_id=borrower_id,
            calculation_id=calculation.id,
            agency=rules.agency.value,
            result_monthly_income=str(calculation.result_monthly_income),
            confidence=confidence,
            warnings=len(warnings),
        )
        return calculation
