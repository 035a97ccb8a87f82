"""Shared fixtures."""

from typing import Any

import pytest

from piggybank.audit import AuditLogger
from piggybank.services.storage import InMemoryAuditStorage, InMemoryDataStore
from tests.factories import make_export_data


@pytest.fixture
def store() -> InMemoryDataStore:
    return InMemoryDataStore()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def export_data() -> dict[str, Any]:
    return make_export_data()
