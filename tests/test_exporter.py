"""Tests for the export assembler and export/import round trips."""

import json
import re
from datetime import datetime, timezone

import pytest

from piggybank.models import AuditEventType, CURRENT_VERSION, EntityKind
from piggybank.serialization import deserialize_date
from piggybank.services.records import (
    AccountService,
    BudgetService,
    CategoryService,
    TagService,
    TransactionService,
)
from piggybank.services.storage import InMemoryDataStore, StorageError
from piggybank.transfer import (
    ExportAssembler,
    ImportOrchestrator,
    default_export_filename,
)
from piggybank.validation import validate_export_data


ISO_Z = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


async def populate(store):
    """Create two linked entities of every kind through the services."""
    accounts = AccountService(store)
    categories = CategoryService(store)
    tags = TagService(store)
    transactions = TransactionService(store)
    budgets = BudgetService(store)

    for i in range(2):
        account = await accounts.create(name=f"Account {i}", type="checking", balance=100 * i)
        category = await categories.create(name=f"Category {i}", type="expense", color="#ef4444")
        tag = await tags.create(name=f"tag-{i}", color="#22c55e")
        await transactions.create(
            account_id=account.id,
            category_id=category.id,
            amount=12.5,
            type="expense",
            date=datetime(2024, 5, i + 1, 9, 30, tzinfo=timezone.utc),
            vendor=f"Vendor {i}",
            tag_ids=[tag.id],
        )
        await budgets.create(
            category_id=category.id,
            amount=300,
            period="monthly",
            start_date=datetime(2024, 5, 1, tzinfo=timezone.utc),
        )


def make_importer(store):
    return ImportOrchestrator(store, max_import_size_bytes=1024 * 1024)


class TestExportAll:
    """Tests for export_all."""

    async def test_envelope_header(self, store):
        """Test version and export timestamp."""
        envelope = await ExportAssembler(store).export_all()
        assert envelope.version == CURRENT_VERSION
        assert ISO_Z.match(envelope.export_date)

    async def test_empty_store(self, store):
        """Test an empty store exports empty arrays."""
        data = (await ExportAssembler(store).export_all()).to_dict()
        for kind in EntityKind:
            assert data[kind.value] == []

    async def test_dates_serialized(self, store):
        """Test every declared date field becomes an ISO string."""
        await populate(store)

        data = (await ExportAssembler(store).export_all()).to_dict()

        transaction = data["transactions"][0]
        assert ISO_Z.match(transaction["date"])
        assert ISO_Z.match(transaction["createdAt"])
        assert data["budgets"][0]["startDate"] == "2024-05-01T00:00:00.000Z"
        assert data["budgets"][0]["endDate"] is None
        assert ISO_Z.match(data["accounts"][0]["lastReviewedAt"])

    async def test_non_date_fields_untouched(self, store):
        """Test other fields are exported as stored."""
        await populate(store)

        data = (await ExportAssembler(store).export_all()).to_dict()

        stored = await store.transactions.get_all()
        exported = {t["id"]: t for t in data["transactions"]}
        for record in stored:
            assert exported[record["id"]]["tagIds"] == record["tagIds"]
            assert exported[record["id"]]["amount"] == record["amount"]

    async def test_export_does_not_modify_store(self, store):
        """Test stored records keep their native datetimes."""
        await populate(store)
        await ExportAssembler(store).export_all()

        stored = await store.accounts.get_all()
        assert isinstance(stored[0]["createdAt"], datetime)

    async def test_storage_errors_propagate(self, store):
        """Test export has no failure mode of its own."""
        async def broken_get_all():
            raise StorageError("offline")

        store.tags.get_all = broken_get_all
        with pytest.raises(StorageError):
            await ExportAssembler(store).export_all()

    async def test_audited(self, store, audit_logger, audit_storage):
        """Test exports are audited with per-kind counts."""
        await populate(store)
        await ExportAssembler(store, audit_logger).export_all()

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.EXPORT_COMPLETED
        assert events[0].details["counts"]["budgets"] == 2


class TestSnapshotAndStats:
    """Tests for snapshot and get_data_stats."""

    async def test_snapshot_keeps_native_dates(self, store):
        """Test the backup read path does not serialize."""
        await populate(store)
        snapshot = await ExportAssembler(store).snapshot()
        assert isinstance(snapshot.transactions[0]["date"], datetime)

    async def test_stats(self, store):
        """Test per-collection counts."""
        await populate(store)
        stats = await ExportAssembler(store).get_data_stats()
        assert stats.model_dump() == {
            "accounts": 2,
            "categories": 2,
            "tags": 2,
            "transactions": 2,
            "budgets": 2,
        }


class TestExportFiles:
    """Tests for JSON text and file output."""

    def test_default_filename(self):
        """Test the dated default name."""
        now = datetime(2024, 3, 7, 23, 59, tzinfo=timezone.utc)
        assert default_export_filename(now=now) == "piggybank-export-2024-03-07.json"
        assert default_export_filename("backup", now) == "backup-2024-03-07.json"

    async def test_export_json(self, store):
        """Test the JSON document parses back to the envelope shape."""
        await populate(store)
        data = json.loads(await ExportAssembler(store).export_json())
        assert set(data) == {
            "version", "exportDate", "accounts", "categories",
            "tags", "transactions", "budgets",
        }

    async def test_write_export(self, store, audit_logger, audit_storage, tmp_path):
        """Test the file is written with the default name."""
        await populate(store)

        path = await ExportAssembler(store, audit_logger).write_export(tmp_path / "exports")

        assert path.parent == tmp_path / "exports"
        assert re.fullmatch(r"piggybank-export-\d{4}-\d{2}-\d{2}\.json", path.name)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert len(data["accounts"]) == 2
        events = await audit_storage.get_recent_events(limit=1)
        assert events[0].event_type == AuditEventType.EXPORT_WRITTEN

    async def test_write_export_custom_name(self, store, tmp_path):
        """Test an explicit filename is used as given."""
        path = await ExportAssembler(store).write_export(tmp_path, "mine.json")
        assert path == tmp_path / "mine.json"
        assert path.exists()


class TestRoundTrip:
    """Export → validate → import scenarios."""

    async def test_export_validates_and_reimports(self, store):
        """Test an export of a populated store imports into an empty store."""
        await populate(store)
        data = (await ExportAssembler(store).export_all()).to_dict()

        assert validate_export_data(data).valid

        target = InMemoryDataStore()
        result = await make_importer(target).import_data(data)

        assert result.success
        assert result.imported.model_dump() == {
            "accounts": 2,
            "categories": 2,
            "tags": 2,
            "transactions": 2,
            "budgets": 2,
        }

    async def test_reimported_records_match(self, store):
        """Test records survive a round trip to the millisecond."""
        await populate(store)
        text = await ExportAssembler(store).export_json()

        target = InMemoryDataStore()
        await make_importer(target).import_json(text)

        for original in await store.transactions.get_all():
            restored = await target.transactions.get(original["id"])
            assert restored["date"] == deserialize_date(
                original["date"].isoformat(timespec="milliseconds")
            )
            assert restored["vendor"] == original["vendor"]
            assert restored["tagIds"] == original["tagIds"]

    async def test_idempotent(self, export_data):
        """Test import → export → import keeps the same counts."""
        store = InMemoryDataStore()
        importer = make_importer(store)
        first = await importer.import_data(export_data)

        re_export = (await ExportAssembler(store).export_all()).to_dict()
        second = await importer.import_data(re_export)

        assert second.success
        assert second.imported == first.imported
        stats = await ExportAssembler(store).get_data_stats()
        assert stats == first.imported


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
