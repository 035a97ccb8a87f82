"""
Tests for PiggyBank models

Test strategy:
1. Unit tests for entity, transfer and audit models
2. Storage-record shape (camelCase keys, native datetimes)
3. No storage or network access
"""

import pytest
from datetime import datetime, timezone
from uuid import uuid4

from pydantic import ValidationError

from piggybank.models import (
    ALL_KINDS,
    DEFAULT_CATEGORIES,
    ENTITY_DATE_FIELDS,
    Account,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    Budget,
    Category,
    CreditCardDetails,
    EntityKind,
    ExportEnvelope,
    FieldError,
    ImportedCounts,
    ImportOutcome,
    ImportResult,
    Transaction,
    ValidationResult,
)


class TestEntityModels:
    """Tests for entity Pydantic models."""

    def test_account_defaults(self):
        """Test new accounts get an id, timestamps and USD."""
        account = Account(name="Checking", type="checking")
        assert len(account.id) == 36
        assert account.currency == "USD"
        assert account.balance == 0.0
        assert account.created_at.tzinfo is not None

    def test_account_keeps_name_as_given(self):
        """Test names are stored verbatim, whatever their length or padding."""
        assert Account(name="  Savings  ", type="savings").name == "  Savings  "
        assert Account(name="   ", type="savings").name == "   "
        assert len(Account(name="x" * 300, type="savings").name) == 300

    def test_account_rejects_unknown_type(self):
        """Test account type must be one of the enum values."""
        with pytest.raises(ValidationError):
            Account(name="Jar", type="mattress")

    def test_account_rejects_infinite_balance(self):
        """Test non-finite balances are rejected."""
        with pytest.raises(ValidationError):
            Account(name="Jar", type="checking", balance=float("inf"))

    def test_statement_day_bounds(self):
        """Test statement day must be 1-31."""
        with pytest.raises(ValidationError):
            CreditCardDetails(statement_day=0)
        assert CreditCardDetails(statement_day=31).statement_day == 31

    def test_to_record_uses_camel_case(self):
        """Test storage records use wire names and drop unset optionals."""
        record = Account(
            name="Card",
            type="credit",
            credit_card_details=CreditCardDetails(statement_day=5),
        ).to_record()

        assert record["type"] == "credit"
        assert "createdAt" in record
        assert record["creditCardDetails"] == {"statementDay": 5}
        assert "lastReviewedAt" not in record
        assert isinstance(record["updatedAt"], datetime)

    def test_parse_from_record(self):
        """Test models accept camelCase storage records."""
        transaction = Transaction.model_validate({
            "accountId": str(uuid4()),
            "categoryId": str(uuid4()),
            "amount": 10,
            "type": "income",
            "date": "2024-01-01T00:00:00.000Z",
            "vendor": "Employer",
            "tagIds": [],
            "unknownField": "ignored",
        })
        assert transaction.type == "income"
        assert transaction.date == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_budget_end_date_optional(self):
        """Test budgets without an end date."""
        budget = Budget(
            category_id=str(uuid4()),
            amount=100,
            period="weekly",
            start_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        assert budget.end_date is None

    def test_category_not_default(self):
        """Test categories are not defaults unless seeded."""
        assert Category(name="Pets", type="expense", color="#fff").is_default is False

    def test_default_categories_valid(self):
        """Test every seed category builds a valid model."""
        names = [Category(**seed).name for seed in DEFAULT_CATEGORIES]
        assert len(names) == len(set(names)) == 16

    def test_date_fields_cover_every_kind(self):
        """Test each kind declares its date fields."""
        assert set(ENTITY_DATE_FIELDS) == set(ALL_KINDS)
        assert ENTITY_DATE_FIELDS[EntityKind.TRANSACTIONS] == ("date", "createdAt", "updatedAt")


class TestTransferModels:
    """Tests for envelope, validation and import-result models."""

    def test_envelope_aliases(self):
        """Test the envelope reads and writes wire names."""
        envelope = ExportEnvelope.model_validate({
            "version": "1.0.0",
            "exportDate": "2024-01-01T00:00:00.000Z",
            "accounts": [{"id": "a"}],
        })
        assert envelope.export_date == "2024-01-01T00:00:00.000Z"
        assert envelope.records(EntityKind.ACCOUNTS) == [{"id": "a"}]
        assert envelope.to_dict()["exportDate"] == "2024-01-01T00:00:00.000Z"
        assert envelope.to_dict()["budgets"] == []

    def test_field_error_prefixed(self):
        """Test path qualification of field errors."""
        error = FieldError(field="accountId", message="Referenced account does not exist")
        qualified = error.prefixed("transactions[3]")
        assert str(qualified) == "transactions[3].accountId: Referenced account does not exist"
        assert error.field == "accountId"

    def test_validation_result_messages(self):
        """Test rendered messages and count."""
        result = ValidationResult(
            valid=False,
            errors=[FieldError(field="version", message="Invalid or missing version")],
        )
        assert result.messages == ["version: Invalid or missing version"]
        assert result.error_count == 1

    def test_counts_total(self):
        """Test total of imported counts."""
        assert ImportedCounts(accounts=2, tags=3).total == 5

    def test_failure_result(self):
        """Test failure results default errors to the message."""
        result = ImportResult.failure(ImportOutcome.WRITE_ERROR, "Disk full")
        assert not result.success
        assert result.errors == ["Disk full"]
        assert not result.data_loss_risk
        assert result.imported.total == 0

    def test_rollback_failure_flags_data_loss(self):
        """Test the rollback-failed outcome always carries data_loss_risk."""
        result = ImportResult.failure(
            ImportOutcome.ROLLBACK_FAILED,
            "Disk full",
            rollback_error="Still full",
        )
        assert result.data_loss_risk
        assert result.to_dict()["rollback_error"] == "Still full"
        assert result.to_dict()["outcome"] == "rollback_failed"


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.IMPORT_STARTED,
            description="Import started",
        )
        assert event.event_type == AuditEventType.IMPORT_STARTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.import_completed({"accounts": 2, "tags": 1}, uuid4())
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "import_completed"
        assert log_dict["details"]["counts"]["accounts"] == 2
        assert event.description == "Imported 3 records"

    def test_audit_event_to_row(self):
        """Test conversion to a flat row."""
        event = AuditEventBuilder.data_cleared({"accounts": 1})
        row = event.to_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "data_cleared"  # event_type
        assert row[10] == "True"  # is_user_action

    def test_rollback_failed_is_critical(self):
        """Test the data-loss event has the highest severity."""
        correlation_id = uuid4()
        event = AuditEventBuilder.import_rollback_failed(
            original_error="Disk full",
            rollback_error="Still full",
            correlation_id=correlation_id,
        )
        assert event.severity == AuditSeverity.CRITICAL
        assert event.correlation_id == correlation_id
        assert event.details["original_error"] == "Disk full"

    def test_entity_delete_refused_is_warning(self):
        """Test refused deletes are flagged."""
        event = AuditEventBuilder.entity_changed(
            AuditEventType.ENTITY_DELETE_REFUSED,
            kind="categories",
            entity_id="abc",
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == "abc"
        assert event.is_user_action is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
