"""Agency-driven aggregation of income components.

The aggregator decides, per agency rule set, which components count toward
qualifying income and at what amount, and emits the underwriting warnings
that accompany the figure. It is pure: the same components, documents and
agency always produce the same total, warnings and audit steps (audit
timestamps aside).
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from .agency_rules import AgencyRules, get_agency_rules
from .models.audit import AuditEntry, IncomeWarning, WarningCode
from .models.documents import DocumentType, IncomeDocument, OcrStatus
from .models.income import (
    ZERO,
    Agency,
    ComponentCategory,
    ComponentType,
    IncomeComponent,
    TrendDirection,
    quantize_money,
)

logger = structlog.get_logger()


NO_QUALIFYING_INCOME_MESSAGE = "no qualifying income found"


@dataclass
class AggregationResult:
    """Total qualifying income with the component set that produced it."""
    result_monthly_income: Decimal
    warnings: list[IncomeWarning] = field(default_factory=list)
    components: list[IncomeComponent] = field(default_factory=list)
    audit_log: list[AuditEntry] = field(default_factory=list)

    @property
    def warning_messages(self) -> list[str]:
        return [w.message for w in self.warnings]


class IncomeAggregator:
    """
    Sum qualifying income under an agency's rules.

    Processing per component:
    1. Excluded types for the agency (always ``other``)
    2. Components already excluded by the builder (verification only)
    3. Declining trend on trended types: recent year only, or exclusion
    4. Insufficient history: single-year self-employment and YTD-only
       variable pay are counted with a warning or excluded, per agency
    5. Negative rental income kept, with a warning
    6. Low-confidence source documents, with a warning

    Every decision is recorded with ``_log_step``.
    """

    def __init__(self, confidence_floor: Optional[float] = None):
        self.confidence_floor = confidence_floor
        self._audit_log: list[AuditEntry] = []
        self._warnings: list[IncomeWarning] = []

    def _log_step(
        self,
        step: str,
        input_value: str,
        output_value: str,
        source: str,
        notes: Optional[str] = None,
    ) -> None:
        """Add an entry to the audit log."""
        entry = AuditEntry(
            step=step,
            input_value=input_value,
            output_value=output_value,
            source=source,
            notes=notes,
        )
        self._audit_log.append(entry)
        logger.info(
            "aggregation_step",
            step=step,
            input=input_value,
            output=output_value,
            source=source,
        )

    def _warn(
        self,
        code: WarningCode,
        message: str,
        *,
        component: Optional[IncomeComponent] = None,
        document_id: Optional[str] = None,
    ) -> None:
        self._warnings.append(IncomeWarning.create(
            code,
            message,
            component_type=component.component_type.value if component else None,
            document_id=document_id,
        ))

    def aggregate(
        self,
        components: Iterable[IncomeComponent],
        agency: Agency | str,
        documents: Optional[Iterable[IncomeDocument]] = None,
    ) -> AggregationResult:
        """
        Aggregate components into monthly qualifying income.

        Args:
            components: Components from the builder, with trends applied
            agency: Rule set to apply
            documents: The borrower's documents, for document-level warnings

        Returns:
            AggregationResult with the final component set (excluded
            components kept and flagged), warnings and audit log
        """
        rules = get_agency_rules(agency, confidence_floor=self.confidence_floor)
        self._audit_log = []
        self._warnings = []

        self._log_step(
            step="agency_rules",
            input_value=rules.agency.value,
            output_value=rules.display_name,
            source="Agency rules table",
            notes="; ".join(rules.notes) or None,
        )

        if documents is not None:
            self._document_warnings(list(documents))

        final: list[IncomeComponent] = []
        for component in components:
            final.append(self._apply_rules(component, rules))

        included = [c for c in final if not c.excluded]
        total = sum((c.monthly_amount for c in included), ZERO)

        if not included:
            self._warn(WarningCode.NO_QUALIFYING_INCOME, NO_QUALIFYING_INCOME_MESSAGE)
            total = ZERO

        self._log_step(
            step="total_monthly_income",
            input_value=" + ".join(str(c.monthly_amount) for c in included) or "0",
            output_value=str(total),
            source=f"{rules.display_name} qualifying income",
            notes=f"{len(included)} included, {len(final) - len(included)} excluded",
        )

        logger.info(
            "aggregation_completed",
            agency=rules.agency.value,
            result_monthly_income=str(total),
            warnings=len(self._warnings),
        )

        return AggregationResult(
            result_monthly_income=total,
            warnings=list(self._warnings),
            components=final,
            audit_log=list(self._audit_log),
        )

    # -------------------------------------------------------------------------
    # Component rules
    # -------------------------------------------------------------------------

    def _exclude(self, component: IncomeComponent, reason: str, source: str) -> IncomeComponent:
        self._log_step(
            step=f"exclude_{component.component_type.value}",
            input_value=str(component.monthly_amount),
            output_value="0",
            source=source,
            notes=reason,
        )
        return component.model_copy(update={"excluded": True, "exclusion_reason": reason})

    def _apply_rules(self, component: IncomeComponent, rules: AgencyRules) -> IncomeComponent:
        label = self._label(component)

        if component.excluded:
            return self._exclude(component, component.exclusion_reason or "excluded", "Component builder")

        if rules.is_excluded_type(component.component_type):
            self._warn(
                WarningCode.EXCLUDED_BY_AGENCY,
                f"{label} not counted under {rules.display_name} rules",
                component=component,
            )
            return self._exclude(
                component,
                f"{component.component_type.value} not eligible under {rules.display_name}",
                f"{rules.display_name} excluded types",
            )

        if rules.is_trended(component.component_type) and component.trend_direction == TrendDirection.DOWN:
            component = self._apply_decline(component, rules, label)
            if component.excluded:
                return component

        component = self._apply_history(component, rules, label)
        if component.excluded:
            return component

        if component.category == ComponentCategory.RENTAL and component.monthly_amount < ZERO:
            self._warn(
                WarningCode.NEGATIVE_RENTAL,
                f"negative rental income reducing total: {component.monthly_amount}/mo",
                component=component,
            )

        if component.confidence < rules.confidence_floor:
            source = "OCR-derived data" if component.ocr_used else "extracted data"
            self._warn(
                WarningCode.LOW_CONFIDENCE_DOCUMENT,
                f"{label} relies on {source} with confidence {component.confidence:.2f} "
                f"below the {rules.confidence_floor:.2f} floor",
                component=component,
                document_id=component.source_document_ids[0] if component.source_document_ids else None,
            )

        self._log_step(
            step=f"include_{component.component_type.value}",
            input_value=component.calculation_method,
            output_value=str(component.monthly_amount),
            source=label,
            notes=component.notes or None,
        )
        return component

    def _apply_decline(
        self,
        component: IncomeComponent,
        rules: AgencyRules,
        label: str,
    ) -> IncomeComponent:
        """Use the recent year only, or exclude, when income declined past a threshold."""
        if component.year1_amount is None or component.year2_amount is None:
            return component
        if component.trend_percentage is None:
            decline = Decimal("1")
        else:
            decline = Decimal(str(component.trend_percentage)) / 100

        if decline <= rules.decline_threshold:
            return component

        pct_text = f"{component.trend_percentage:.1f}%" if component.trend_percentage is not None else "from zero"
        if decline > rules.exclusion_threshold:
            self._warn(
                WarningCode.DECLINING_TREND,
                f"{label} declined {pct_text} year over year; excluded",
                component=component,
            )
            return self._exclude(
                component,
                f"declined more than {rules.exclusion_threshold * 100:.0f}%",
                f"{rules.display_name} declining income policy",
            )

        recent = (component.year2_amount + component.year2_adjustment) / 12
        method = f"Most recent year only (declined {pct_text})"
        self._log_step(
            step=f"declining_{component.component_type.value}",
            input_value=str(component.monthly_amount),
            output_value=str(recent),
            source=f"{rules.display_name} declining income policy",
            notes=method,
        )
        self._warn(
            WarningCode.DECLINING_TREND,
            f"{label} declined {pct_text} year over year; most recent year used",
            component=component,
        )
        return component.model_copy(update={
            "monthly_amount": quantize_money(recent),
            "calculation_method": method,
        }).with_note(f"two-year average {component.monthly_amount} replaced by recent year")

    def _apply_history(
        self,
        component: IncomeComponent,
        rules: AgencyRules,
        label: str,
    ) -> IncomeComponent:
        if rules.requires_history(component.component_type) and component.years_of_history < 2:
            if rules.allow_single_year_self_employment:
                self._warn(
                    WarningCode.SINGLE_YEAR_SELF_EMPLOYMENT,
                    f"self-employment income based on a single year only: {label}",
                    component=component,
                )
                return component
            self._warn(
                WarningCode.SINGLE_YEAR_SELF_EMPLOYMENT,
                f"self-employment income based on a single year only: {label}; "
                f"excluded under {rules.display_name}",
                component=component,
            )
            return self._exclude(
                component,
                "two years of self-employment history required",
                f"{rules.display_name} history requirement",
            )

        if component.component_type == ComponentType.VARIABLE_INCOME_YTD:
            if rules.allow_short_variable_history:
                self._warn(
                    WarningCode.INSUFFICIENT_HISTORY,
                    f"variable pay from {label} has no prior-year history; YTD projected",
                    component=component,
                )
                return component
            self._warn(
                WarningCode.INSUFFICIENT_HISTORY,
                f"variable pay from {label} has no prior-year history; "
                f"excluded under {rules.display_name}",
                component=component,
            )
            return self._exclude(
                component,
                "two-year history required for variable pay",
                f"{rules.display_name} history requirement",
            )
        return component

    # -------------------------------------------------------------------------
    # Document warnings
    # -------------------------------------------------------------------------

    def _document_warnings(self, documents: list[IncomeDocument]) -> None:
        for doc in sorted(documents, key=lambda d: d.id):
            if doc.removed:
                continue
            diagnostics = doc.diagnostics
            if doc.ocr_status == OcrStatus.FAILED:
                self._warn(
                    WarningCode.FAILED_DOCUMENT,
                    f"{doc.file_name} could not be processed ({doc.failure_reason or 'unknown'}); "
                    f"retry with OCR",
                    document_id=doc.id,
                )
            elif doc.ocr_status in (OcrStatus.PENDING, OcrStatus.PROCESSING):
                self._warn(
                    WarningCode.MISSING_DATA,
                    f"{doc.file_name} has not finished processing",
                    document_id=doc.id,
                )
            elif doc.effective_type == DocumentType.OTHER:
                self._warn(
                    WarningCode.UNCLASSIFIED_DOCUMENT,
                    f"{doc.file_name} could not be classified; not counted",
                    document_id=doc.id,
                )

            if diagnostics.classification_override:
                self._warn(
                    WarningCode.RECLASSIFIED_DOCUMENT,
                    f"{doc.file_name} reclassified from "
                    f"{diagnostics.original_classification.value} to "
                    f"{diagnostics.final_classification.value}",
                    document_id=doc.id,
                )

    @staticmethod
    def _label(component: IncomeComponent) -> str:
        name = component.component_type.value.replace("_", " ")
        if component.source_label:
            return f"{name} ({component.source_label})"
        return name
