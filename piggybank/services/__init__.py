"""
Services package.

Entity services live in ``piggybank.services.records`` and are imported
from there directly; they depend on the audit logger, which in turn
depends on the storage interfaces re-exported here.
"""

from piggybank.services.storage import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    DataStoreInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryDataStore,
    ReadOnlyTransactionError,
    StorageError,
    create_data_store,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "CollectionStorageInterface",
    "ConnectionError",
    "DataStoreInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryDataStore",
    "ReadOnlyTransactionError",
    "StorageError",
    "create_data_store",
]
