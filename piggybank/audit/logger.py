"""
Audit Logger

DESIGN DECISION: Every import, export and destructive data operation is
logged. This provides:
1. Complete traceability of what replaced the user's data and when
2. Diagnostics for failed imports, including failed rollbacks
3. History the user can inspect

The audit logger:
- Is async so it can share the event loop with storage I/O
- Gracefully handles failures (a failing audit store never breaks an import)
- Supports correlation IDs to trace the steps of one import
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from piggybank.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from piggybank.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("piggybank.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        severity = event.severity.value
        if severity == "critical":
            self._logger.critical("audit_event", **log_dict)
        elif severity == "error":
            self._logger.error("audit_event", **log_dict)
        elif severity == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif severity == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_export_completed(
        self,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.export_completed(counts, correlation_id))

    async def log_export_written(self, path: str, size_bytes: int) -> None:
        await self.log(AuditEventBuilder.export_written(path, size_bytes))

    async def log_import_started(
        self,
        correlation_id: UUID,
        source: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.import_started(correlation_id, source))

    async def log_import_read_failed(
        self,
        source: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_read_failed(
            source=source,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_import_parse_failed(
        self,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_parse_failed(error_message, correlation_id))

    async def log_import_validation_failed(
        self,
        errors: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_validation_failed(errors, correlation_id))

    async def log_import_backup_created(
        self,
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_backup_created(counts, correlation_id))

    async def log_import_completed(
        self,
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_completed(counts, correlation_id))

    async def log_import_write_failed(
        self,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_write_failed(error_message, correlation_id))

    async def log_import_rolled_back(
        self,
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.import_rolled_back(counts, correlation_id))

    async def log_import_rollback_failed(
        self,
        original_error: str,
        rollback_error: str,
        correlation_id: UUID,
    ) -> None:
        """Log the worst case: write failed and the snapshot could not be restored."""
        await self.log(AuditEventBuilder.import_rollback_failed(
            original_error=original_error,
            rollback_error=rollback_error,
            correlation_id=correlation_id,
        ))

    async def log_dangling_tag_references(
        self,
        references: list[dict[str, str]],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.dangling_tag_references(references, correlation_id))

    async def log_data_cleared(self, counts: dict[str, int]) -> None:
        await self.log(AuditEventBuilder.data_cleared(counts))

    async def log_defaults_seeded(self, count: int) -> None:
        await self.log(AuditEventBuilder.defaults_seeded(count))

    async def log_entity_event(
        self,
        event_type: AuditEventType,
        kind: str,
        entity_id: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a create/update/delete of a single entity."""
        await self.log(AuditEventBuilder.entity_changed(
            event_type=event_type,
            kind=kind,
            entity_id=entity_id,
            details=details,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., an import).
    Pass it through all subsequent operations.
    """
    return uuid4()
