"""
Tests for storage adapters.

The Google Sheets adapter runs against in-process fake worksheets; no
real API calls are made.
"""

from datetime import datetime, timezone
from uuid import uuid4

import gspread
import pytest

from piggybank.config import GoogleSheetsSettings
from piggybank.models import (
    Account,
    AuditEventBuilder,
    Category,
    CreditCardDetails,
    EntityKind,
    Transaction,
    new_entity_id,
)
from piggybank.services.storage import (
    DuplicateError,
    ReadOnlyTransactionError,
    StorageError,
)
from piggybank.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsDataStore,
)


STAMP = datetime(2024, 4, 2, 15, 45, 30, 250000, tzinfo=timezone.utc)


def account_record(**overrides):
    fields = {"name": "Wallet", "type": "checking", "balance": 20.0}
    fields.update(overrides)
    return Account(created_at=STAMP, updated_at=STAMP, **fields).to_record()


# =============================================================================
# FAKE GOOGLE SHEETS
# =============================================================================

class FakeWorksheet:
    """Just enough of gspread.Worksheet for the adapter."""

    def __init__(self, title):
        self.title = title
        self.rows: list[list[str]] = []
        self.fail_append_rows = False

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def col_values(self, col):
        return [row[col - 1] if len(row) >= col else "" for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(value) for value in row])

    def append_rows(self, rows, value_input_option=None):
        if self.fail_append_rows:
            raise gspread.exceptions.GSpreadException("Quota exceeded")
        self.rows.extend([str(value) for value in row] for row in rows)

    def update(self, range_name=None, values=None, value_input_option=None):
        start = int(range_name[1:]) - 1
        for offset, row in enumerate(values):
            while len(self.rows) <= start + offset:
                self.rows.append([])
            self.rows[start + offset] = list(row)

    def delete_rows(self, index):
        del self.rows[index - 1]

    def clear(self):
        self.rows = []


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient."""

    def __init__(self, settings):
        self.settings = settings
        self.sheets: dict[str, FakeWorksheet] = {}

    def get_worksheet(self, title, columns):
        if title not in self.sheets:
            sheet = FakeWorksheet(title)
            sheet.append_row(columns)
            self.sheets[title] = sheet
        return self.sheets[title]


@pytest.fixture
def sheets_client(tmp_path):
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}")
    settings = GoogleSheetsSettings(
        credentials_path=str(credentials),
        spreadsheet_id="test-spreadsheet",
    )
    return FakeSheetsClient(settings)


@pytest.fixture
def sheets_store(sheets_client):
    return GoogleSheetsDataStore(sheets_client)


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class TestInMemoryStore:
    """Tests for the in-memory adapter."""

    async def test_put_get_delete(self, store):
        """Test basic record lifecycle."""
        record = account_record()
        await store.accounts.put(record)

        assert await store.accounts.get(record["id"]) == record
        assert await store.accounts.count() == 1
        assert await store.accounts.delete(record["id"])
        assert not await store.accounts.delete(record["id"])
        assert await store.accounts.get(record["id"]) is None

    async def test_returns_copies(self, store):
        """Test mutating a returned record does not change storage."""
        record = account_record()
        await store.accounts.put(record)

        fetched = await store.accounts.get(record["id"])
        fetched["name"] = "Changed"
        record["name"] = "Also changed"

        assert (await store.accounts.get(record["id"]))["name"] == "Wallet"

    async def test_bulk_add_rejects_duplicates_atomically(self, store):
        """Test a duplicate id inserts nothing from the batch."""
        first, second = account_record(), account_record()
        await store.accounts.put(first)

        with pytest.raises(DuplicateError):
            await store.accounts.bulk_add([second, first])
        assert await store.accounts.count() == 1

        with pytest.raises(DuplicateError):
            await store.accounts.bulk_add([second, second])
        assert await store.accounts.count() == 1

    async def test_transaction_commits(self, store):
        """Test writes inside a successful transaction are kept."""
        async def work():
            await store.accounts.bulk_add([account_record(), account_record()])
            return "done"

        assert await store.transaction("rw", list(EntityKind), work) == "done"
        assert await store.accounts.count() == 2

    async def test_transaction_rolls_back(self, store):
        """Test a raising transaction keeps none of its writes."""
        kept = account_record()
        await store.accounts.put(kept)

        async def work():
            await store.accounts.clear()
            await store.tags.clear()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await store.transaction("rw", [EntityKind.ACCOUNTS, EntityKind.TAGS], work)
        assert await store.accounts.get_all() == [kept]

    async def test_read_only_transaction(self, store):
        """Test writes are refused in read mode."""
        async def work():
            await store.accounts.put(account_record())

        with pytest.raises(ReadOnlyTransactionError):
            await store.transaction("r", [EntityKind.ACCOUNTS], work)
        assert await store.accounts.count() == 0

    async def test_write_outside_scope(self, store):
        """Test collections not named by the transaction cannot be written."""
        async def work():
            await store.tags.clear()

        with pytest.raises(StorageError):
            await store.transaction("rw", [EntityKind.ACCOUNTS], work)

    async def test_unknown_mode(self, store):
        """Test the transaction mode is checked."""
        async def work():
            return None

        with pytest.raises(ValueError):
            await store.transaction("w", [EntityKind.ACCOUNTS], work)

    async def test_record_without_id(self, store):
        """Test records must carry an id."""
        with pytest.raises(StorageError):
            await store.accounts.put({"name": "nameless"})


# =============================================================================
# GOOGLE SHEETS STORE
# =============================================================================

class TestGoogleSheetsStore:
    """Tests for the Google Sheets adapter."""

    async def test_round_trip_account(self, sheets_store):
        """Test nested and optional fields survive the row encoding."""
        record = account_record(
            type="credit",
            balance=-310.75,
            credit_card_details=CreditCardDetails(
                interest_rate=19.99, statement_day=14, credit_limit=2500
            ),
            last_reviewed_at=STAMP,
        )
        await sheets_store.accounts.put(record)

        assert await sheets_store.accounts.get(record["id"]) == record

    async def test_round_trip_transaction_and_category(self, sheets_store):
        """Test lists, booleans and dates come back typed."""
        category = Category(
            name="Rent", type="expense", color="#000", is_default=True,
            created_at=STAMP, updated_at=STAMP,
        ).to_record()
        transaction = Transaction(
            account_id=new_entity_id(),
            category_id=category["id"],
            amount=950,
            type="expense",
            date=STAMP,
            vendor="Landlord",
            tag_ids=[new_entity_id(), new_entity_id()],
            created_at=STAMP,
            updated_at=STAMP,
        ).to_record()

        await sheets_store.categories.bulk_add([category])
        await sheets_store.transactions.bulk_add([transaction])

        assert await sheets_store.categories.get_all() == [category]
        assert await sheets_store.transactions.get_all() == [transaction]

    async def test_put_replaces_row(self, sheets_store):
        """Test put on an existing id updates in place."""
        record = account_record()
        await sheets_store.accounts.put(record)
        record["name"] = "Renamed"
        await sheets_store.accounts.put(record)

        assert await sheets_store.accounts.count() == 1
        assert (await sheets_store.accounts.get(record["id"]))["name"] == "Renamed"

    async def test_delete_and_clear(self, sheets_store, sheets_client):
        """Test delete removes one row and clear keeps the header."""
        first, second = account_record(), account_record()
        await sheets_store.accounts.bulk_add([first, second])

        assert await sheets_store.accounts.delete(first["id"])
        assert await sheets_store.accounts.count() == 1

        await sheets_store.accounts.clear()
        assert await sheets_store.accounts.count() == 0
        assert sheets_client.sheets["Accounts"].rows[0][0] == "id"

    async def test_bulk_add_duplicate(self, sheets_store):
        """Test duplicate ids are rejected before anything is appended."""
        record = account_record()
        await sheets_store.accounts.bulk_add([record])

        with pytest.raises(DuplicateError):
            await sheets_store.accounts.bulk_add([account_record(), record])
        assert await sheets_store.accounts.count() == 1

    async def test_malformed_row(self, sheets_store, sheets_client):
        """Test unreadable rows surface as StorageError."""
        await sheets_store.accounts.count()
        sheets_client.sheets["Accounts"].rows.append([new_entity_id(), "", "piggy"])

        with pytest.raises(StorageError):
            await sheets_store.accounts.get_all()

    async def test_failed_transaction_restores_worksheets(self, sheets_store, sheets_client):
        """Test worksheet values are rewritten when the work raises."""
        kept = account_record()
        await sheets_store.accounts.put(kept)
        await sheets_store.tags.count()
        sheets_client.sheets["Tags"].fail_append_rows = True

        async def work():
            for kind in EntityKind:
                await sheets_store.collection(kind).clear()
            await sheets_store.accounts.bulk_add([account_record()])
            await sheets_store.tags.bulk_add([{"id": new_entity_id()}])

        with pytest.raises(StorageError):
            await sheets_store.transaction("rw", list(EntityKind), work)

        assert await sheets_store.accounts.get_all() == [kept]

    async def test_read_only_transaction(self, sheets_store):
        """Test read mode rejects writes."""
        async def work():
            await sheets_store.accounts.put(account_record())

        with pytest.raises(ReadOnlyTransactionError):
            await sheets_store.transaction("r", [EntityKind.ACCOUNTS], work)


class TestGoogleSheetsAuditStorage:
    """Tests for the audit worksheet."""

    async def test_append_and_query(self, sheets_client):
        """Test events round-trip through rows."""
        storage = GoogleSheetsAuditStorage(sheets_client)
        correlation_id = uuid4()
        started = AuditEventBuilder.import_started(correlation_id, "backup.json")
        completed = AuditEventBuilder.import_completed({"accounts": 1}, correlation_id)

        await storage.append_event(started)
        await storage.append_event(completed)
        await storage.append_event(AuditEventBuilder.defaults_seeded(16))

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_id for e in events] == [started.event_id, completed.event_id]
        assert events[0].details == {"source": "backup.json"}
        assert len(await storage.get_recent_events(limit=2)) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
