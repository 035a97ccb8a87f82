"""
Data Models Package

This package contains all Pydantic models used by PiggyBank.
Everything stored or exchanged by the import/export pipeline is
described here.
"""

from piggybank.models.entities import (
    ALL_KINDS,
    DEFAULT_CATEGORIES,
    ENTITY_DATE_FIELDS,
    ENTITY_MODELS,
    Account,
    AccountType,
    Budget,
    BudgetPeriod,
    Category,
    CategoryType,
    CreditCardDetails,
    EntityBase,
    EntityKind,
    Tag,
    Transaction,
    TransactionType,
    new_entity_id,
    utc_now,
)
from piggybank.models.transfer import (
    CURRENT_VERSION,
    SUPPORTED_VERSIONS,
    ExportEnvelope,
    FieldError,
    ImportedCounts,
    ImportOutcome,
    ImportResult,
    ImportState,
    ValidationResult,
)
from piggybank.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Entities
    "ALL_KINDS",
    "DEFAULT_CATEGORIES",
    "ENTITY_DATE_FIELDS",
    "ENTITY_MODELS",
    "Account",
    "AccountType",
    "Budget",
    "BudgetPeriod",
    "Category",
    "CategoryType",
    "CreditCardDetails",
    "EntityBase",
    "EntityKind",
    "Tag",
    "Transaction",
    "TransactionType",
    "new_entity_id",
    "utc_now",
    # Transfer
    "CURRENT_VERSION",
    "SUPPORTED_VERSIONS",
    "ExportEnvelope",
    "FieldError",
    "ImportedCounts",
    "ImportOutcome",
    "ImportResult",
    "ImportState",
    "ValidationResult",
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
