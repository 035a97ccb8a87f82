"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a persistent backend because:
1. Users can look at their own data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for personal finances)
- No native transactions: we emulate them by snapshotting the affected
  worksheets and writing the snapshot back if the work fails
- Limited query capabilities (we filter in Python)

Each collection lives in its own worksheet with a header row. Nested
fields (creditCardDetails, tagIds) are JSON-encoded, dates are ISO
strings, and rows are parsed back through the entity models so every
record read from a sheet has proper types.
"""

import json
from datetime import date
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from piggybank.config import GoogleSheetsSettings, get_settings
from piggybank.models.audit import AuditEvent, AuditEventType, AuditSeverity
from piggybank.models.entities import ALL_KINDS, ENTITY_MODELS, EntityKind
from piggybank.serialization.dates import serialize_date
from piggybank.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    DataStoreInterface,
    DuplicateError,
    ReadOnlyTransactionError,
    Record,
    StorageError,
    check_transaction_mode,
)


T = TypeVar("T")

logger = structlog.get_logger(__name__)


# Column layout per collection worksheet
COLLECTION_COLUMNS: dict[EntityKind, list[str]] = {
    EntityKind.ACCOUNTS: [
        "id", "name", "type", "balance", "currency", "color", "icon",
        "creditCardDetails", "lastReviewedAt", "createdAt", "updatedAt",
    ],
    EntityKind.CATEGORIES: [
        "id", "name", "type", "color", "icon", "isDefault",
        "createdAt", "updatedAt",
    ],
    EntityKind.TAGS: [
        "id", "name", "color", "createdAt", "updatedAt",
    ],
    EntityKind.TRANSACTIONS: [
        "id", "accountId", "categoryId", "amount", "type", "date", "vendor",
        "notes", "tagIds", "createdAt", "updatedAt",
    ],
    EntityKind.BUDGETS: [
        "id", "categoryId", "amount", "period", "startDate", "endDate",
        "createdAt", "updatedAt",
    ],
}

JSON_COLUMNS = frozenset({"creditCardDetails", "tagIds"})

# Column layout for the audit worksheet (matches AuditEvent.to_row)
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

_read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


def _cell(column: str, value: Any) -> str:
    if value is None:
        return ""
    if column in JSON_COLUMNS:
        return json.dumps(value)
    if isinstance(value, date):
        return serialize_date(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class GoogleSheetsCollection(CollectionStorageInterface):
    """One collection stored as rows of a worksheet, one record per row."""

    def __init__(self, store: "GoogleSheetsDataStore", kind: EntityKind):
        self.kind = kind
        self._store = store
        self._columns = COLLECTION_COLUMNS[kind]
        self._model = ENTITY_MODELS[kind]

    def _sheet(self) -> gspread.Worksheet:
        return self._store.worksheet(self.kind)

    def _record_to_row(self, record: Record) -> list[str]:
        """Convert a storage record to a spreadsheet row."""
        return [_cell(column, record.get(column)) for column in self._columns]

    def _row_to_record(self, row: list[str]) -> Record:
        """Convert a spreadsheet row back to a typed storage record."""
        data: dict[str, Any] = {}
        try:
            for column, value in zip(self._columns, row):
                if value == "":
                    continue
                data[column] = json.loads(value) if column in JSON_COLUMNS else value
            return self._model.model_validate(data).to_record()
        except (ValidationError, ValueError) as e:
            raise StorageError(
                f"Malformed row in {self.kind.value} (id={row[0] if row else '?'}): {e}"
            ) from e

    @_read_retry
    def _data_rows(self) -> list[list[str]]:
        # Row 1 is the header
        return [row for row in self._sheet().get_all_values()[1:] if row and row[0]]

    @_read_retry
    def _ids(self) -> list[str]:
        return self._sheet().col_values(1)[1:]

    def _row_number(self, record_id: str) -> Optional[int]:
        for row_number, existing in enumerate(self._ids(), start=2):
            if existing == record_id:
                return row_number
        return None

    async def get_all(self) -> list[Record]:
        try:
            return [self._row_to_record(row) for row in self._data_rows()]
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to read {self.kind.value}: {e}") from e

    async def get(self, record_id: str) -> Optional[Record]:
        try:
            rows = self._data_rows()
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to read {self.kind.value}: {e}") from e
        for row in rows:
            if row[0] == record_id:
                return self._row_to_record(row)
        return None

    async def put(self, record: Record) -> None:
        self._store.check_writable(self.kind)
        row = self._record_to_row(record)
        try:
            sheet = self._sheet()
            row_number = self._row_number(str(record["id"]))
            if row_number is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                sheet.update(
                    range_name=f"A{row_number}",
                    values=[row],
                    value_input_option="RAW",
                )
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to save {self.kind.value} record: {e}") from e

    async def delete(self, record_id: str) -> bool:
        self._store.check_writable(self.kind)
        try:
            row_number = self._row_number(record_id)
            if row_number is None:
                return False
            self._sheet().delete_rows(row_number)
            return True
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to delete {self.kind.value} record: {e}") from e

    async def count(self) -> int:
        return sum(1 for record_id in self._ids() if record_id)

    async def clear(self) -> None:
        self._store.check_writable(self.kind)
        try:
            sheet = self._sheet()
            sheet.clear()
            sheet.append_row(self._columns)
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to clear {self.kind.value}: {e}") from e

    async def bulk_add(self, records: Iterable[Record]) -> None:
        self._store.check_writable(self.kind)
        existing = set(self._ids())
        rows = []
        for record in records:
            record_id = str(record.get("id") or "")
            if not record_id:
                raise StorageError("Record has no id")
            if record_id in existing:
                raise DuplicateError(
                    f"Key already exists in {self.kind.value}: {record_id}"
                )
            existing.add(record_id)
            rows.append(self._record_to_row(record))

        if not rows:
            return
        try:
            self._sheet().append_rows(rows, value_input_option="RAW")
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to add {self.kind.value} records: {e}") from e


class GoogleSheetsDataStore(DataStoreInterface):
    """
    The five collections backed by worksheets of one spreadsheet.

    Transactions snapshot the raw values of every worksheet in scope and
    rewrite them if the work raises.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._sheets: dict[EntityKind, gspread.Worksheet] = {}
        self._collections = {
            kind: GoogleSheetsCollection(self, kind) for kind in ALL_KINDS
        }
        self._active: list[tuple[str, frozenset[EntityKind]]] = []

    def worksheet(self, kind: EntityKind) -> gspread.Worksheet:
        if kind not in self._sheets:
            title = self._client.settings.sheet_name(kind.value)
            self._sheets[kind] = self._client.get_worksheet(
                title, COLLECTION_COLUMNS[kind]
            )
        return self._sheets[kind]

    def collection(self, kind: EntityKind) -> GoogleSheetsCollection:
        return self._collections[EntityKind(kind)]

    def check_writable(self, kind: EntityKind) -> None:
        if not self._active:
            return
        mode, scope = self._active[-1]
        if mode == "r":
            raise ReadOnlyTransactionError(
                f"Cannot write {kind.value} inside a read-only transaction"
            )
        if kind not in scope:
            raise StorageError(
                f"Collection {kind.value} is not part of the current transaction"
            )

    def _restore(self, kind: EntityKind, values: list[list[str]]) -> None:
        sheet = self.worksheet(kind)
        sheet.clear()
        if values:
            sheet.update(range_name="A1", values=values, value_input_option="RAW")

    async def transaction(
        self,
        mode: str,
        collections: Sequence[EntityKind],
        work: Callable[[], Awaitable[T]],
    ) -> T:
        check_transaction_mode(mode)
        scope = frozenset(EntityKind(kind) for kind in collections)
        try:
            snapshot = {
                kind: self.worksheet(kind).get_all_values() for kind in scope
            }
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to start transaction: {e}") from e

        self._active.append((mode, scope))
        try:
            return await work()
        except BaseException:
            if mode == "rw":
                for kind, values in snapshot.items():
                    try:
                        self._restore(kind, values)
                    except gspread.exceptions.GSpreadException as restore_error:
                        logger.error(
                            "sheet_restore_failed",
                            collection=kind.value,
                            error=str(restore_error),
                        )
            raise
        finally:
            self._active.pop()


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name, AUDIT_COLUMNS
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _events(self) -> list[AuditEvent]:
        events = []
        for row in self._sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, ValidationError):
                logger.warning("audit_row_unreadable", event_id=row[0])
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(gspread.exceptions.APIError),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        self._sheet().append_row(event.to_row(), value_input_option="RAW")
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._events() if e.correlation_id == correlation_id]
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to get audit events: {e}") from e
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._events()
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to get audit events: {e}") from e
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
