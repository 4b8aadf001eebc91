"""Tests for audit trail models."""

from datetime import datetime
import json

import pytest
from pydantic import ValidationError

from qualify_core.models.audit import (
    WARNING_SEVERITY,
    AuditEntry,
    AuditEvent,
    AuditSeverity,
    AuditTrail,
    IncomeWarning,
    WarningCode,
)


class TestAuditSeverity:
    """Tests for severity ranking."""

    def test_ranks_are_ordered(self):
        """Severities rank from info to critical."""
        ranks = [s.rank for s in AuditSeverity]
        assert ranks == sorted(ranks)

    def test_every_code_has_a_severity(self):
        """Each warning code maps to a default severity."""
        assert set(WARNING_SEVERITY) == set(WarningCode)


class TestIncomeWarning:
    """Tests for IncomeWarning model."""

    def test_create_uses_default_severity(self):
        """create() picks the severity for the code."""
        warning = IncomeWarning.create(
            WarningCode.DECLINING_TREND,
            "self_employment income declined 30.00%",
            component_type="self_employment",
        )
        assert warning.severity == AuditSeverity.ERROR
        assert warning.component_type == "self_employment"
        assert warning.document_id is None

    def test_no_income_is_critical(self):
        """Missing qualifying income is the most severe warning."""
        warning = IncomeWarning.create(WarningCode.NO_QUALIFYING_INCOME, "no qualifying income found")
        assert warning.severity == AuditSeverity.CRITICAL

    def test_is_frozen(self):
        """Warnings cannot be changed once created."""
        warning = IncomeWarning.create(WarningCode.MISSING_DATA, "missing tax year")
        with pytest.raises(ValidationError):
            warning.message = "changed"

    def test_serializes_to_json(self):
        """Should serialize to JSON cleanly."""
        warning = IncomeWarning.create(WarningCode.NEGATIVE_RENTAL, "rental loss", document_id="doc-1")
        data = json.loads(warning.model_dump_json())
        assert data["code"] == "negative_rental"
        assert data["severity"] == "warning"
        assert data["document_id"] == "doc-1"


class TestAuditEntry:
    """Tests for AuditEntry model."""

    def test_create_with_step_only(self):
        """Should create an entry with only the step name."""
        entry = AuditEntry(step="total_monthly_income")
        assert entry.action == ""
        assert entry.input_value is None
        assert entry.timestamp.tzinfo is not None

    def test_create_with_all_fields(self):
        """Should keep every provided field."""
        entry = AuditEntry(
            step="include_base_salary",
            action="Included base salary",
            input_value="5000.00",
            output_value="5000.00",
            source="Acme Widgets LLC",
            notes="YTD annualized",
        )
        assert entry.step == "include_base_salary"
        assert entry.source == "Acme Widgets LLC"
        assert entry.notes == "YTD annualized"


class TestAuditEvent:
    """Tests for AuditEvent model."""

    def test_naive_timestamp_becomes_utc(self):
        """Naive timestamps are treated as UTC."""
        event = AuditEvent(
            borrower_id="b-1",
            action="document_uploaded",
            timestamp=datetime(2025, 10, 1, 12, 0),
        )
        assert event.timestamp.tzinfo is not None
        assert event.timestamp.utcoffset().total_seconds() == 0


class TestAuditTrail:
    """Tests for AuditTrail model."""

    @pytest.fixture
    def trail(self) -> AuditTrail:
        trail = AuditTrail(borrower_id="b-1")
        trail.add_event("document_uploaded", document_id="doc-1", file_name="stub.pdf")
        trail.add_event("document_processed", document_id="doc-1", status="success")
        trail.add_event("calculation_saved", calculation_id="calc-1", agency="fha")
        return trail

    def test_add_event(self, trail):
        """Events keep their payload and borrower."""
        event = trail.events[0]
        assert event.borrower_id == "b-1"
        assert event.payload == {"file_name": "stub.pdf"}

    def test_for_document(self, trail):
        """Events can be filtered by document."""
        assert [e.action for e in trail.for_document("doc-1")] == [
            "document_uploaded",
            "document_processed",
        ]

    def test_with_action(self, trail):
        """Events can be filtered by action."""
        assert trail.with_action("calculation_saved")[0].calculation_id == "calc-1"

    def test_summary(self, trail):
        """Summary counts events per action."""
        summary = trail.summary()
        assert summary["event_count"] == 3
        assert summary["actions"]["document_processed"] == 1
        assert summary["last_event_at"] is not None

    def test_empty_summary(self):
        """An empty trail has no last event."""
        assert AuditTrail(borrower_id="b-2").summary()["last_event_at"] is None
