"""
Import/Export Transfer Models

Types that cross the JSON boundary or describe the outcome of an
import: the versioned export envelope, field-level validation errors,
and the import result handed back to callers.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from piggybank.models.entities import EntityKind


CURRENT_VERSION = "1.0.0"

SUPPORTED_VERSIONS: tuple[str, ...] = ("1.0.0",)


# =============================================================================
# EXPORT ENVELOPE
# =============================================================================

class ExportEnvelope(BaseModel):
    """
    Top-level versioned object wrapping all exported collections.

    Entity lists hold storage records. In an export they carry ISO
    strings for every date field; in a pre-import snapshot they keep
    native datetimes.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: str = CURRENT_VERSION
    export_date: str = Field(..., description="ISO-8601 export timestamp")
    accounts: list[dict[str, Any]] = Field(default_factory=list)
    categories: list[dict[str, Any]] = Field(default_factory=list)
    tags: list[dict[str, Any]] = Field(default_factory=list)
    transactions: list[dict[str, Any]] = Field(default_factory=list)
    budgets: list[dict[str, Any]] = Field(default_factory=list)

    def records(self, kind: EntityKind) -> list[dict[str, Any]]:
        """Records of one collection."""
        return getattr(self, kind.value)

    def to_dict(self) -> dict[str, Any]:
        """Wire form: ``{version, exportDate, accounts, ...}``."""
        return self.model_dump(by_alias=True)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class FieldError(BaseModel):
    """A single validation failure, located by a dotted/indexed field path."""

    field: str = Field(
        ...,
        description="Field path, e.g. 'transactions[0].accountId'"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the problem"
    )
    value: Any = Field(
        default=None,
        description="The offending value, when there is one"
    )

    def prefixed(self, prefix: str) -> "FieldError":
        """Copy of this error with ``prefix.`` prepended to the field path."""
        return self.model_copy(update={"field": f"{prefix}.{self.field}"})

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ValidationResult(BaseModel):
    """Outcome of validating an export envelope."""

    valid: bool
    errors: list[FieldError] = Field(default_factory=list)

    @property
    def messages(self) -> list[str]:
        """Fully-qualified ``field: message`` strings."""
        return [str(error) for error in self.errors]

    @property
    def error_count(self) -> int:
        return len(self.errors)


# =============================================================================
# IMPORT RESULT MODELS
# =============================================================================

class ImportState(str, Enum):
    """States of the import state machine."""
    VALIDATING = "validating"
    BACKING_UP = "backing_up"
    WRITING = "writing"
    DONE = "done"
    ROLLED_BACK = "rolled_back"


class ImportOutcome(str, Enum):
    """
    How an import ended.

    ROLLBACK_FAILED is the worst case: the write failed and the snapshot
    could not be restored, so stored data may be incomplete.
    """
    SUCCESS = "success"
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    WRITE_ERROR = "write_error"
    ROLLBACK_FAILED = "rollback_failed"


class ImportedCounts(BaseModel):
    """Number of records per collection."""

    accounts: int = 0
    categories: int = 0
    tags: int = 0
    transactions: int = 0
    budgets: int = 0

    @property
    def total(self) -> int:
        return (
            self.accounts
            + self.categories
            + self.tags
            + self.transactions
            + self.budgets
        )


class ImportResult(BaseModel):
    """
    Result of an import attempt.

    Every expected failure mode comes back as one of these rather than
    as a raised exception.
    """

    success: bool
    message: str
    imported: ImportedCounts = Field(default_factory=ImportedCounts)
    errors: Optional[list[str]] = None
    outcome: ImportOutcome
    data_loss_risk: bool = Field(
        default=False,
        description="True when the rollback after a failed write also failed"
    )
    rollback_error: Optional[str] = None

    @classmethod
    def failure(
        cls,
        outcome: ImportOutcome,
        message: str,
        errors: Optional[list[str]] = None,
        rollback_error: Optional[str] = None,
    ) -> "ImportResult":
        return cls(
            success=False,
            message=message,
            errors=errors if errors is not None else [message],
            outcome=outcome,
            data_loss_risk=outcome == ImportOutcome.ROLLBACK_FAILED,
            rollback_error=rollback_error,
        )

    def to_dict(self) -> dict[str, Any]:
        """Wire form; ``errors`` is omitted on success."""
        data = self.model_dump(mode="json", by_alias=False)
        if self.errors is None:
            data.pop("errors")
        return data
