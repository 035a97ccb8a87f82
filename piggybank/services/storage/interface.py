"""
Abstract Storage Interface

DESIGN DECISION: The storage engine is a collaborator, not part of the
data core. The core needs only a handful of primitives:

- per collection: get_all / get / put / delete / count / clear / bulk_add
- across collections: transaction(mode, collections, work)

Keeping the interface this small lets us:
1. Run the whole import/export pipeline against an in-memory store in tests
2. Back the app with Google Sheets (or a real database) without touching
   business logic
3. Inject a store that fails on purpose to exercise rollback

Records are plain dicts keyed by camelCase field names with native
datetime values. Adapters must copy records on the way in and out so a
caller mutating a returned dict never changes stored state.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar
from uuid import UUID

from piggybank.models.audit import AuditEvent
from piggybank.models.entities import ALL_KINDS, EntityKind


T = TypeVar("T")

Record = dict[str, Any]

TRANSACTION_MODES = ("r", "rw")


class CollectionStorageInterface(ABC):
    """
    One stored collection (accounts, categories, ...).

    Records are keyed by their ``id`` field.
    """

    kind: EntityKind

    @abstractmethod
    async def get_all(self) -> list[Record]:
        """Every record in the collection, in insertion order."""
        pass

    @abstractmethod
    async def get(self, record_id: str) -> Optional[Record]:
        """The record with this id, or None."""
        pass

    @abstractmethod
    async def put(self, record: Record) -> None:
        """Insert or replace the record with ``record['id']``."""
        pass

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """
        Permanently delete a record.

        Returns:
            True if a record was removed
        """
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every record."""
        pass

    @abstractmethod
    async def bulk_add(self, records: Iterable[Record]) -> None:
        """
        Insert many new records.

        Raises:
            DuplicateError: If an id already exists or repeats within
                the batch. Nothing from the batch is inserted.
        """
        pass


class DataStoreInterface(ABC):
    """
    The five collections plus the cross-collection transaction primitive.
    """

    @abstractmethod
    def collection(self, kind: EntityKind) -> CollectionStorageInterface:
        pass

    @abstractmethod
    async def transaction(
        self,
        mode: str,
        collections: Sequence[EntityKind],
        work: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run ``work`` as one atomic unit over the named collections.

        In ``"rw"`` mode either every write made by ``work`` is kept or,
        if ``work`` raises, none is; the exception is re-raised. In
        ``"r"`` mode writes raise ReadOnlyTransactionError.

        Args:
            mode: "r" or "rw"
            collections: Collections ``work`` may touch
            work: Coroutine function, awaited exactly once

        Returns:
            Whatever ``work`` returns
        """
        pass

    @property
    def accounts(self) -> CollectionStorageInterface:
        return self.collection(EntityKind.ACCOUNTS)

    @property
    def categories(self) -> CollectionStorageInterface:
        return self.collection(EntityKind.CATEGORIES)

    @property
    def tags(self) -> CollectionStorageInterface:
        return self.collection(EntityKind.TAGS)

    @property
    def transactions(self) -> CollectionStorageInterface:
        return self.collection(EntityKind.TRANSACTIONS)

    @property
    def budgets(self) -> CollectionStorageInterface:
        return self.collection(EntityKind.BUDGETS)

    def all_collections(self) -> list[CollectionStorageInterface]:
        return [self.collection(kind) for kind in ALL_KINDS]


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one import/export, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


def check_transaction_mode(mode: str) -> None:
    if mode not in TRANSACTION_MODES:
        raise ValueError(f"Unknown transaction mode: {mode!r}")


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a record whose id already exists."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class ReadOnlyTransactionError(StorageError):
    """Write attempted inside a read-only transaction."""
    pass
