"""Audit trail models for income qualification runs.

Every calculation records the steps that produced its figure, and every
underwriting concern is attached as a typed warning so that the worksheet
and any reviewer can see exactly why a number was included, discounted or
excluded.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    """Return current UTC datetime with timezone info."""
    return datetime.now(timezone.utc)


class AuditSeverity(str, Enum):
    """Severity levels for audit events and warnings."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric rank used for threshold comparisons."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AuditSeverity.INFO: 0,
    AuditSeverity.WARNING: 1,
    AuditSeverity.ERROR: 2,
    AuditSeverity.CRITICAL: 3,
}


class WarningCode(str, Enum):
    """Machine-readable codes for underwriting warnings."""
    RECLASSIFIED_DOCUMENT = "reclassified_document"
    UNCLASSIFIED_DOCUMENT = "unclassified_document"
    FAILED_DOCUMENT = "failed_document"
    DECLINING_TREND = "declining_trend"
    NEGATIVE_RENTAL = "negative_rental"
    SINGLE_YEAR_SELF_EMPLOYMENT = "single_year_self_employment"
    INSUFFICIENT_HISTORY = "insufficient_history"
    LOW_CONFIDENCE_DOCUMENT = "low_confidence_document"
    EXCLUDED_BY_AGENCY = "excluded_by_agency"
    MISSING_DATA = "missing_data"
    VERIFICATION_MISMATCH = "verification_mismatch"
    COVERED_BY_SCHEDULE_C = "covered_by_schedule_c"
    NO_QUALIFYING_INCOME = "no_qualifying_income"


# Default severity per code. Codes at ERROR or above reduce confidence.
WARNING_SEVERITY: dict[WarningCode, AuditSeverity] = {
    WarningCode.RECLASSIFIED_DOCUMENT: AuditSeverity.INFO,
    WarningCode.UNCLASSIFIED_DOCUMENT: AuditSeverity.WARNING,
    WarningCode.FAILED_DOCUMENT: AuditSeverity.WARNING,
    WarningCode.DECLINING_TREND: AuditSeverity.ERROR,
    WarningCode.NEGATIVE_RENTAL: AuditSeverity.WARNING,
    WarningCode.SINGLE_YEAR_SELF_EMPLOYMENT: AuditSeverity.ERROR,
    WarningCode.INSUFFICIENT_HISTORY: AuditSeverity.ERROR,
    WarningCode.LOW_CONFIDENCE_DOCUMENT: AuditSeverity.ERROR,
    WarningCode.EXCLUDED_BY_AGENCY: AuditSeverity.WARNING,
    WarningCode.MISSING_DATA: AuditSeverity.WARNING,
    WarningCode.VERIFICATION_MISMATCH: AuditSeverity.WARNING,
    WarningCode.COVERED_BY_SCHEDULE_C: AuditSeverity.INFO,
    WarningCode.NO_QUALIFYING_INCOME: AuditSeverity.CRITICAL,
}


class IncomeWarning(BaseModel):
    """Warning attached to a calculation for underwriting review.

    Attributes:
        code: Machine-readable warning code
        message: Human-readable warning text shown on the worksheet
        severity: Warning severity level
        component_type: Component the warning concerns (if any)
        document_id: Document the warning concerns (if any)
    """
    model_config = ConfigDict(frozen=True)

    code: WarningCode
    message: str
    severity: AuditSeverity = AuditSeverity.WARNING
    component_type: Optional[str] = None
    document_id: Optional[str] = None

    @classmethod
    def create(
        cls,
        code: WarningCode,
        message: str,
        *,
        component_type: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> "IncomeWarning":
        """Build a warning using the default severity for its code."""
        return cls(
            code=code,
            message=message,
            severity=WARNING_SEVERITY.get(code, AuditSeverity.WARNING),
            component_type=component_type,
            document_id=document_id,
        )


class AuditEntry(BaseModel):
    """Single calculation step.

    Attributes:
        timestamp: When this entry was created (UTC)
        step: Name of the processing step (e.g., "component_included")
        action: Human-readable description of what was done
        input_value: Value before processing
        output_value: Value after processing
        source: Rule or document the step relied on
        notes: Additional context or explanation
    """
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utc_now)
    step: str
    action: str = ""
    input_value: Optional[str] = None
    output_value: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None


class AuditEvent(BaseModel):
    """Persisted event about a document or calculation.

    Events are appended by the store and pipeline (upload, reprocess,
    calculation saved) and are never modified afterwards.
    """
    timestamp: datetime = Field(default_factory=_utc_now)
    borrower_id: str
    action: str
    document_id: Optional[str] = None
    calculation_id: Optional[str] = None
    actor: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)

    def model_post_init(self, __context) -> None:
        """Ensure timestamp is timezone-aware."""
        if self.timestamp.tzinfo is None:
            object.__setattr__(
                self,
                'timestamp',
                self.timestamp.replace(tzinfo=timezone.utc)
            )


class AuditTrail(BaseModel):
    """Ordered event history for one borrower."""
    borrower_id: str
    events: list[AuditEvent] = Field(default_factory=list)

    def add_event(
        self,
        action: str,
        document_id: Optional[str] = None,
        calculation_id: Optional[str] = None,
        actor: Optional[str] = None,
        **payload: Any,
    ) -> AuditEvent:
        """Append an event to the trail.

        Args:
            action: Event name (e.g. "document_uploaded", "reprocess_requested")
            document_id: Document concerned, if any
            calculation_id: Calculation concerned, if any
            actor: Acting user, if known
            **payload: Extra event data

        Returns:
            The created AuditEvent
        """
        event = AuditEvent(
            borrower_id=self.borrower_id,
            action=action,
            document_id=document_id,
            calculation_id=calculation_id,
            actor=actor,
            payload=payload,
        )
        self.events.append(event)
        return event

    def for_document(self, document_id: str) -> list[AuditEvent]:
        """Get all events for a single document."""
        return [e for e in self.events if e.document_id == document_id]

    def with_action(self, action: str) -> list[AuditEvent]:
        """Get all events with the given action name."""
        return [e for e in self.events if e.action == action]

    def summary(self) -> dict[str, object]:
        """Generate a summary of the trail."""
        actions: dict[str, int] = {}
        for event in self.events:
            actions[event.action] = actions.get(event.action, 0) + 1
        return {
            "borrower_id": self.borrower_id,
            "event_count": len(self.events),
            "actions": actions,
            "last_event_at": self.events[-1].timestamp.isoformat() if self.events else None,
        }
