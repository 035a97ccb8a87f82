"""
Storage Services Package

Provides the abstract storage interface consumed by the data core and
concrete implementations: in-memory (tests, default) and Google Sheets.
"""

from typing import Optional

from piggybank.config import Settings, get_settings
from piggybank.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    DataStoreInterface,
    DuplicateError,
    ReadOnlyTransactionError,
    StorageError,
)
from piggybank.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryCollection,
    InMemoryDataStore,
)


def create_data_store(settings: Optional[Settings] = None) -> DataStoreInterface:
    """
    Build the data store selected by ``PIGGYBANK_STORAGE_BACKEND``.

    The Google Sheets adapter is imported lazily so the in-memory backend
    works without Google credentials configured.
    """
    settings = settings or get_settings()
    if settings.storage.backend == "google_sheets":
        from piggybank.services.storage.google_sheets import (
            GoogleSheetsClient,
            GoogleSheetsDataStore,
        )
        return GoogleSheetsDataStore(GoogleSheetsClient(settings.google_sheets))
    return InMemoryDataStore()


__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CollectionStorageInterface",
    "DataStoreInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "ReadOnlyTransactionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryCollection",
    "InMemoryDataStore",
    # Factory
    "create_data_store",
]
