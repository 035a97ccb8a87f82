"""
Audit Models for PiggyBank

Every import, export and destructive data operation is recorded as an
audit event. Events sharing a correlation ID belong to one user action
(e.g. one import attempt), so a failed import can be reconstructed step
by step from its trail.

Audit logs are append-only.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Export
    EXPORT_COMPLETED = "export_completed"
    EXPORT_WRITTEN = "export_written"

    # Import pipeline
    IMPORT_STARTED = "import_started"
    IMPORT_READ_FAILED = "import_read_failed"
    IMPORT_PARSE_FAILED = "import_parse_failed"
    IMPORT_VALIDATION_FAILED = "import_validation_failed"
    IMPORT_BACKUP_CREATED = "import_backup_created"
    IMPORT_COMPLETED = "import_completed"
    IMPORT_WRITE_FAILED = "import_write_failed"
    IMPORT_ROLLED_BACK = "import_rolled_back"
    IMPORT_ROLLBACK_FAILED = "import_rollback_failed"
    DANGLING_TAG_REFERENCES = "dangling_tag_references"

    # Bulk operations
    DATA_CLEARED = "data_cleared"
    DEFAULTS_SEEDED = "defaults_seeded"

    # Entity lifecycle
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_DELETED = "entity_deleted"
    ENTITY_DELETE_REFUSED = "entity_delete_refused"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity or collection is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Entity kind or 'dataset' for whole-store operations"
    )
    entity_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Ties together the events of one import/export"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> list[str]:
        """
        Flat row for tabular audit storage.

        Columns: [event_id, timestamp, event_type, severity, entity_type,
        entity_id, correlation_id, description, details_json,
        error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.import_started(correlation_id)
        event = AuditEventBuilder.import_completed(counts, correlation_id)
    """

    @staticmethod
    def export_completed(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPORT_COMPLETED,
            entity_type="dataset",
            correlation_id=correlation_id,
            description=f"Exported {sum(counts.values())} records",
            details={"counts": counts},
            is_user_action=True,
        )

    @staticmethod
    def export_written(path: str, size_bytes: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPORT_WRITTEN,
            entity_type="dataset",
            description=f"Export written to {path}",
            details={"path": path, "size_bytes": size_bytes},
        )

    @staticmethod
    def import_started(
        correlation_id: UUID,
        source: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_STARTED,
            entity_type="dataset",
            correlation_id=correlation_id,
            description="Import started",
            details={"source": source or "data"},
            is_user_action=True,
        )

    @staticmethod
    def import_read_failed(
        source: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_READ_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="dataset",
            correlation_id=correlation_id,
            description=f"Could not read import file: {source}",
            error_message=error_message,
            details={"source": source},
        )

    @staticmethod
    def import_parse_failed(
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_PARSE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="dataset",
            correlation_id=correlation_id,
            description="Import file is not valid JSON",
            error_message=error_message,
        )

    @staticmethod
    def import_validation_failed(
        errors: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="dataset",
            correlation_id=correlation_id,
            description=f"Import validation failed with {len(errors)} errors",
            details={"errors": errors[:50], "error_count": len(errors)},
        )

    @staticmethod
    def import_backup_created(
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_BACKUP_CREATED,
            severity=AuditSeverity.DEBUG,
            entity_type="dataset",
            correlation_id=correlation_id,
            description="Snapshot of existing data taken before import",
            details={"counts": counts},
        )

    @staticmethod
    def import_completed(
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            entity_type="dataset",
            correlation_id=correlation_id,
            description=f"Imported {sum(counts.values())} records",
            details={"counts": counts},
        )

    @staticmethod
    def import_write_failed(
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="dataset",
            correlation_id=correlation_id,
            description="Writing imported data failed; restoring snapshot",
            error_message=error_message,
        )

    @staticmethod
    def import_rolled_back(
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_ROLLED_BACK,
            severity=AuditSeverity.WARNING,
            entity_type="dataset",
            correlation_id=correlation_id,
            description="Pre-import snapshot restored",
            details={"counts": counts},
        )

    @staticmethod
    def import_rollback_failed(
        original_error: str,
        rollback_error: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_ROLLBACK_FAILED,
            severity=AuditSeverity.CRITICAL,
            entity_type="dataset",
            correlation_id=correlation_id,
            description="Snapshot restore failed; stored data may be incomplete",
            error_message=rollback_error,
            details={"original_error": original_error},
        )

    @staticmethod
    def dangling_tag_references(
        references: list[dict[str, str]],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DANGLING_TAG_REFERENCES,
            severity=AuditSeverity.WARNING,
            entity_type="transactions",
            correlation_id=correlation_id,
            description=f"{len(references)} tag references do not match an imported tag",
            details={"references": references[:50]},
        )

    @staticmethod
    def data_cleared(counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_CLEARED,
            severity=AuditSeverity.WARNING,
            entity_type="dataset",
            description=f"All data cleared ({sum(counts.values())} records)",
            details={"counts": counts},
            is_user_action=True,
        )

    @staticmethod
    def defaults_seeded(count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULTS_SEEDED,
            entity_type="categories",
            description=f"Seeded {count} default categories",
            details={"count": count},
        )

    @staticmethod
    def entity_changed(
        event_type: AuditEventType,
        kind: str,
        entity_id: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        verb = event_type.value.replace("entity_", "").replace("_", " ")
        severity = (
            AuditSeverity.WARNING
            if event_type == AuditEventType.ENTITY_DELETE_REFUSED
            else AuditSeverity.INFO
        )
        return AuditEvent(
            event_type=event_type,
            severity=severity,
            entity_type=kind,
            entity_id=entity_id,
            description=f"{kind} {entity_id} {verb}",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
