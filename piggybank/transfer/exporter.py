"""
Export Assembler

Reads every collection from the data store and wraps it in the
versioned export envelope.

DESIGN DECISION: Export is strictly read-only.
- No failure mode of its own: storage errors propagate to the caller
- Date fields are serialized per entity kind, nothing else is touched
- The same read path, minus serialization, produces the pre-import
  snapshot used for rollback
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from piggybank.audit import AuditLogger
from piggybank.models.entities import ALL_KINDS, ENTITY_DATE_FIELDS
from piggybank.models.transfer import CURRENT_VERSION, ExportEnvelope, ImportedCounts
from piggybank.serialization import serialize_array_dates, serialize_date
from piggybank.services.storage import DataStoreInterface


def default_export_filename(
    prefix: str = "piggybank-export",
    now: Optional[datetime] = None,
) -> str:
    """``<prefix>-YYYY-MM-DD.json`` for the current UTC day."""
    now = now or datetime.now(timezone.utc)
    return f"{prefix}-{now.strftime('%Y-%m-%d')}.json"


class ExportAssembler:
    """
    Builds export envelopes from the injected data store.

    Usage:
        exporter = ExportAssembler(store)
        envelope = await exporter.export_all()
        path = await exporter.write_export(Path("~/backups").expanduser())
    """

    def __init__(
        self,
        store: DataStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        filename_prefix: str = "piggybank-export",
        indent: Optional[int] = 2,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._filename_prefix = filename_prefix
        self._indent = indent

    async def _read_all(self) -> dict[str, list[dict]]:
        return {
            kind.value: await self._store.collection(kind).get_all()
            for kind in ALL_KINDS
        }

    async def snapshot(self) -> ExportEnvelope:
        """
        Copy of every collection with native date values.

        Used as the backup taken before a destructive import.
        """
        collections = await self._read_all()
        return ExportEnvelope(
            version=CURRENT_VERSION,
            export_date=serialize_date(datetime.now(timezone.utc)),
            **collections,
        )

    async def export_all(self) -> ExportEnvelope:
        """
        Read all five collections and serialize their date fields.

        Raises:
            StorageError: If the store cannot be read
        """
        collections = await self._read_all()
        serialized = {
            kind.value: serialize_array_dates(
                collections[kind.value],
                ENTITY_DATE_FIELDS[kind],
            )
            for kind in ALL_KINDS
        }
        envelope = ExportEnvelope(
            version=CURRENT_VERSION,
            export_date=serialize_date(datetime.now(timezone.utc)),
            **serialized,
        )

        if self._audit_logger:
            await self._audit_logger.log_export_completed(
                {kind: len(records) for kind, records in serialized.items()}
            )

        return envelope

    async def export_json(self, indent: Optional[int] = None) -> str:
        """Export as a JSON document."""
        envelope = await self.export_all()
        return json.dumps(envelope.to_dict(), indent=indent, ensure_ascii=False)

    async def write_export(
        self,
        directory: Path,
        filename: Optional[str] = None,
    ) -> Path:
        """
        Write the export to ``directory`` as UTF-8 JSON.

        Args:
            directory: Target directory, created if missing
            filename: Defaults to ``piggybank-export-YYYY-MM-DD.json``

        Returns:
            Path of the written file
        """
        text = await self.export_json(indent=self._indent)
        path = Path(directory) / (
            filename or default_export_filename(self._filename_prefix)
        )

        def _write() -> int:
            path.parent.mkdir(parents=True, exist_ok=True)
            data = text.encode("utf-8")
            path.write_bytes(data)
            return len(data)

        size = await asyncio.to_thread(_write)

        if self._audit_logger:
            await self._audit_logger.log_export_written(str(path), size)

        return path

    async def get_data_stats(self) -> ImportedCounts:
        """Number of records in each collection."""
        counts = {
            kind.value: await self._store.collection(kind).count()
            for kind in ALL_KINDS
        }
        return ImportedCounts(**counts)
