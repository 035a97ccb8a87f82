"""
Import Orchestrator

Replaces the whole data set with the contents of an export file.

Flow:
1. Validating  → parse JSON, validate the envelope (nothing touched yet)
2. Backing-up  → snapshot all five collections in memory
3. Writing     → clear + bulk-insert all five inside one transaction
4. Done        → report per-kind counts from the payload

Any failure while Writing moves to Rolled-back: the snapshot is written
back through the same transaction primitive and the ORIGINAL write error
is reported.

DESIGN DECISION: Expected failures never raise.
- Parse, validation, storage and rollback failures all come back as an
  ImportResult with a distinct outcome
- A failed rollback is its own outcome with data_loss_risk=True so the
  caller can warn the user that stored data may be incomplete
- Programming errors outside the write phase still propagate

Concurrent imports are not guarded against; callers must serialize them.
"""

import asyncio
import json
from functools import partial
from pathlib import Path
from typing import Any, Mapping, Optional, Union
from uuid import UUID

import structlog

from piggybank.audit import AuditLogger, create_correlation_id
from piggybank.config import get_settings
from piggybank.models.entities import ALL_KINDS, ENTITY_DATE_FIELDS, EntityKind
from piggybank.models.transfer import (
    ExportEnvelope,
    ImportedCounts,
    ImportOutcome,
    ImportResult,
    ImportState,
)
from piggybank.serialization import deserialize_array_dates
from piggybank.services.storage import DataStoreInterface, StorageError
from piggybank.transfer.exporter import ExportAssembler
from piggybank.validation import (
    find_dangling_tag_ids,
    format_validation_errors,
    validate_export_data,
)


logger = structlog.get_logger(__name__)

READ_FAILED_MESSAGE = "Failed to read file"
IMPORT_FAILED_MESSAGE = "Failed to import data"
SUCCESS_MESSAGE = "Data imported successfully!"


def _error_message(error: BaseException, fallback: str) -> str:
    return str(error) or fallback


class ImportOrchestrator:
    """
    Runs the validate → back up → write → (roll back) state machine
    against an injected data store.

    Usage:
        importer = ImportOrchestrator(store, audit_logger=audit)
        result = await importer.import_file(Path("piggybank-export.json"))
        if result.data_loss_risk:
            ...  # tell the user to restore from their own backup
    """

    def __init__(
        self,
        store: DataStoreInterface,
        exporter: Optional[ExportAssembler] = None,
        audit_logger: Optional[AuditLogger] = None,
        max_import_size_bytes: Optional[int] = None,
    ):
        self._store = store
        self._exporter = exporter or ExportAssembler(store)
        self._audit_logger = audit_logger
        self._max_import_size_bytes = (
            max_import_size_bytes
            if max_import_size_bytes is not None
            else get_settings().app.max_import_size_bytes
        )
        self._state: Optional[ImportState] = None

    @property
    def state(self) -> Optional[ImportState]:
        """State reached by the most recent import, None before the first."""
        return self._state

    def _enter(self, state: ImportState, correlation_id: UUID) -> None:
        self._state = state
        logger.debug(
            "import_state",
            state=state.value,
            correlation_id=str(correlation_id),
        )

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    async def import_file(self, path: Union[str, Path]) -> ImportResult:
        """
        Read an export file and import it.

        The whole file is read (off the event loop) before parsing starts.
        """
        path = Path(path)
        correlation_id = create_correlation_id()
        if self._audit_logger:
            await self._audit_logger.log_import_started(correlation_id, str(path))

        try:
            size = await asyncio.to_thread(lambda: path.stat().st_size)
            if size > self._max_import_size_bytes:
                message = (
                    f"Import file is too large ({size} bytes, "
                    f"limit {self._max_import_size_bytes} bytes)"
                )
                if self._audit_logger:
                    await self._audit_logger.log_import_read_failed(
                        str(path), message, correlation_id
                    )
                return ImportResult.failure(ImportOutcome.PARSE_ERROR, message)

            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            if self._audit_logger:
                await self._audit_logger.log_import_read_failed(
                    str(path), str(e), correlation_id
                )
            return ImportResult.failure(ImportOutcome.PARSE_ERROR, READ_FAILED_MESSAGE)

        return await self.import_json(text, correlation_id=correlation_id)

    async def import_json(
        self,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> ImportResult:
        """Parse ``text`` as JSON and import it."""
        correlation_id = await self._begin(correlation_id, "json")
        self._enter(ImportState.VALIDATING, correlation_id)

        try:
            data = json.loads(text)
        except ValueError as e:
            message = _error_message(e, "Failed to parse file")
            if self._audit_logger:
                await self._audit_logger.log_import_parse_failed(message, correlation_id)
            return ImportResult.failure(ImportOutcome.PARSE_ERROR, message)

        return await self.import_data(data, correlation_id=correlation_id)

    async def import_data(
        self,
        data: Any,
        correlation_id: Optional[UUID] = None,
    ) -> ImportResult:
        """
        Validate an already-parsed payload and replace all stored data
        with it.
        """
        correlation_id = await self._begin(correlation_id, "data")

        # Stage 1: validate
        self._enter(ImportState.VALIDATING, correlation_id)
        validation = validate_export_data(data)
        if not validation.valid:
            errors = validation.messages
            if self._audit_logger:
                await self._audit_logger.log_import_validation_failed(errors, correlation_id)
            return ImportResult.failure(
                ImportOutcome.VALIDATION_ERROR,
                "Validation failed: " + format_validation_errors(validation.errors),
                errors=errors,
            )

        await self._report_dangling_tags(data, correlation_id)

        # Stage 2: snapshot
        self._enter(ImportState.BACKING_UP, correlation_id)
        try:
            backup = await self._exporter.snapshot()
        except StorageError as e:
            message = _error_message(e, IMPORT_FAILED_MESSAGE)
            if self._audit_logger:
                await self._audit_logger.log_import_write_failed(message, correlation_id)
            return ImportResult.failure(ImportOutcome.WRITE_ERROR, message)

        if self._audit_logger:
            await self._audit_logger.log_import_backup_created(
                _counts_of(backup).model_dump(), correlation_id
            )

        # Stage 3: write
        self._enter(ImportState.WRITING, correlation_id)
        try:
            incoming = {
                kind: deserialize_array_dates(
                    data.get(kind.value) or [],
                    ENTITY_DATE_FIELDS[kind],
                )
                for kind in ALL_KINDS
            }
            await self._store.transaction(
                "rw",
                ALL_KINDS,
                partial(self._replace_all, incoming),
            )
        except Exception as e:
            return await self._roll_back(backup, e, correlation_id)

        # Stage 4: done
        self._enter(ImportState.DONE, correlation_id)
        imported = ImportedCounts(**{
            kind.value: len(data.get(kind.value) or []) for kind in ALL_KINDS
        })
        if self._audit_logger:
            await self._audit_logger.log_import_completed(
                imported.model_dump(), correlation_id
            )

        return ImportResult(
            success=True,
            message=SUCCESS_MESSAGE,
            imported=imported,
            outcome=ImportOutcome.SUCCESS,
        )

    async def clear_all_data(self) -> ImportedCounts:
        """
        Delete every record of every collection in one transaction.

        Returns:
            Counts of what was removed
        """
        counts = await self._exporter.get_data_stats()

        async def _clear() -> None:
            for kind in ALL_KINDS:
                await self._store.collection(kind).clear()

        await self._store.transaction("rw", ALL_KINDS, _clear)

        if self._audit_logger:
            await self._audit_logger.log_data_cleared(counts.model_dump())

        return counts

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _begin(self, correlation_id: Optional[UUID], source: str) -> UUID:
        """Reuse the caller's correlation id, or open a new import."""
        if correlation_id is not None:
            return correlation_id
        correlation_id = create_correlation_id()
        if self._audit_logger:
            await self._audit_logger.log_import_started(correlation_id, source)
        return correlation_id

    async def _replace_all(self, records: Mapping[EntityKind, list[dict]]) -> None:
        """Clear all five collections, then bulk-insert the new records."""
        for kind in ALL_KINDS:
            await self._store.collection(kind).clear()
        for kind in ALL_KINDS:
            await self._store.collection(kind).bulk_add(records.get(kind, []))

    async def _roll_back(
        self,
        backup: ExportEnvelope,
        error: Exception,
        correlation_id: UUID,
    ) -> ImportResult:
        """Restore the snapshot and report the original write error."""
        message = _error_message(error, IMPORT_FAILED_MESSAGE)
        if self._audit_logger:
            await self._audit_logger.log_import_write_failed(message, correlation_id)

        self._enter(ImportState.ROLLED_BACK, correlation_id)
        snapshot = {kind: backup.records(kind) for kind in ALL_KINDS}
        try:
            await self._store.transaction(
                "rw",
                ALL_KINDS,
                partial(self._replace_all, snapshot),
            )
        except Exception as restore_error:
            rollback_message = _error_message(restore_error, "Unknown error")
            logger.error(
                "import_rollback_failed",
                original_error=message,
                rollback_error=rollback_message,
                correlation_id=str(correlation_id),
            )
            if self._audit_logger:
                await self._audit_logger.log_import_rollback_failed(
                    original_error=message,
                    rollback_error=rollback_message,
                    correlation_id=correlation_id,
                )
            return ImportResult.failure(
                ImportOutcome.ROLLBACK_FAILED,
                message,
                rollback_error=rollback_message,
            )

        if self._audit_logger:
            await self._audit_logger.log_import_rolled_back(
                _counts_of(backup).model_dump(), correlation_id
            )
        return ImportResult.failure(ImportOutcome.WRITE_ERROR, message)

    async def _report_dangling_tags(
        self,
        data: Mapping[str, Any],
        correlation_id: UUID,
    ) -> None:
        tag_ids = [
            tag.get("id") for tag in data.get("tags") or []
            if isinstance(tag, Mapping)
        ]
        dangling = find_dangling_tag_ids(data.get("transactions") or [], tag_ids)
        if dangling and self._audit_logger:
            await self._audit_logger.log_dangling_tag_references(dangling, correlation_id)


def _counts_of(envelope: ExportEnvelope) -> ImportedCounts:
    return ImportedCounts(**{
        kind.value: len(envelope.records(kind)) for kind in ALL_KINDS
    })
