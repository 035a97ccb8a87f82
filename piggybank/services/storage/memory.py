"""
In-Memory Storage Implementation

Dict-backed store used by tests and as the default backend when no
external storage is configured. Data lives only as long as the process.

Transactions are implemented by snapshotting the named collections
before running the work and putting the snapshot back if it raises.
"""

import copy
from typing import Awaitable, Callable, Iterable, Optional, Sequence, TypeVar
from uuid import UUID

from piggybank.models.audit import AuditEvent
from piggybank.models.entities import ALL_KINDS, EntityKind
from piggybank.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    DataStoreInterface,
    DuplicateError,
    ReadOnlyTransactionError,
    Record,
    StorageError,
    check_transaction_mode,
)


T = TypeVar("T")


class InMemoryCollection(CollectionStorageInterface):
    """One collection held as an insertion-ordered dict of id -> record."""

    def __init__(self, store: "InMemoryDataStore", kind: EntityKind):
        self.kind = kind
        self._store = store
        self._records: dict[str, Record] = {}

    async def get_all(self) -> list[Record]:
        return [copy.deepcopy(record) for record in self._records.values()]

    async def get(self, record_id: str) -> Optional[Record]:
        record = self._records.get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def put(self, record: Record) -> None:
        self._store._check_writable(self.kind)
        self._records[_record_id(record)] = copy.deepcopy(record)

    async def delete(self, record_id: str) -> bool:
        self._store._check_writable(self.kind)
        return self._records.pop(record_id, None) is not None

    async def count(self) -> int:
        return len(self._records)

    async def clear(self) -> None:
        self._store._check_writable(self.kind)
        self._records.clear()

    async def bulk_add(self, records: Iterable[Record]) -> None:
        self._store._check_writable(self.kind)
        batch: dict[str, Record] = {}
        for record in records:
            record_id = _record_id(record)
            if record_id in self._records or record_id in batch:
                raise DuplicateError(
                    f"Key already exists in {self.kind.value}: {record_id}"
                )
            batch[record_id] = copy.deepcopy(record)
        self._records.update(batch)


class InMemoryDataStore(DataStoreInterface):
    """All five collections held in process memory."""

    def __init__(self):
        self._collections = {
            kind: InMemoryCollection(self, kind) for kind in ALL_KINDS
        }
        # Stack of (mode, collections) for the transactions in progress
        self._active: list[tuple[str, frozenset[EntityKind]]] = []

    def collection(self, kind: EntityKind) -> InMemoryCollection:
        return self._collections[EntityKind(kind)]

    def _check_writable(self, kind: EntityKind) -> None:
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

    async def transaction(
        self,
        mode: str,
        collections: Sequence[EntityKind],
        work: Callable[[], Awaitable[T]],
    ) -> T:
        check_transaction_mode(mode)
        scope = frozenset(EntityKind(kind) for kind in collections)
        snapshot = {
            kind: copy.deepcopy(self._collections[kind]._records)
            for kind in scope
        }

        self._active.append((mode, scope))
        try:
            return await work()
        except BaseException:
            for kind, records in snapshot.items():
                self._collections[kind]._records = records
            raise
        finally:
            self._active.pop()


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit trail kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]


def _record_id(record: Record) -> str:
    record_id = record.get("id") if isinstance(record, dict) else None
    if not record_id:
        raise StorageError("Record has no id")
    return str(record_id)
