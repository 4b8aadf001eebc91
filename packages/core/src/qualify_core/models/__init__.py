"""Data models for qualify-core.

This package provides:
- Income documents, extracted-field variants and the OCR state machine (documents.py)
- Income components and calculations (income.py)
- Warnings, calculation steps and audit events (audit.py)
"""

from qualify_core.models.audit import (
    AuditEntry,
    AuditEvent,
    AuditSeverity,
    AuditTrail,
    IncomeWarning,
    WARNING_SEVERITY,
    WarningCode,
)
from qualify_core.models.documents import (
    FIELDS_BY_TYPE,
    BusinessReturnFields,
    DocumentFields,
    DocumentType,
    ExtractedFields,
    FailureKind,
    Form1040Fields,
    Form1099Fields,
    IncomeDocument,
    K1Fields,
    OcrStatus,
    OtherFields,
    ParserDiagnostics,
    PayFrequency,
    PayStubFields,
    ProcessingMethod,
    ScheduleCFields,
    ScheduleEFields,
    ScheduleFFields,
    VOEFields,
    W2Fields,
)
from qualify_core.models.income import (
    COMPONENT_CATEGORIES,
    Agency,
    ComponentCategory,
    ComponentType,
    IncomeCalculation,
    IncomeComponent,
    TrendDirection,
    quantize_money,
)

__all__ = [
    # Audit
    "AuditEntry",
    "AuditEvent",
    "AuditSeverity",
    "AuditTrail",
    "IncomeWarning",
    "WARNING_SEVERITY",
    "WarningCode",
    # Documents
    "FIELDS_BY_TYPE",
    "BusinessReturnFields",
    "DocumentFields",
    "DocumentType",
    "ExtractedFields",
    "FailureKind",
    "Form1040Fields",
    "Form1099Fields",
    "IncomeDocument",
    "K1Fields",
    "OcrStatus",
    "OtherFields",
    "ParserDiagnostics",
    "PayFrequency",
    "PayStubFields",
    "ProcessingMethod",
    "ScheduleCFields",
    "ScheduleEFields",
    "ScheduleFFields",
    "VOEFields",
    "W2Fields",
    # Income
    "COMPONENT_CATEGORIES",
    "Agency",
    "ComponentCategory",
    "ComponentType",
    "IncomeCalculation",
    "IncomeComponent",
    "TrendDirection",
    "quantize_money",
]
