"""
Application wiring for PiggyBank.

Builds every component around ONE data store handle. Nothing in the
package reaches for a global store; callers (a UI, a CLI, tests) hold
the AppComponents bundle and pass it around.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from piggybank.audit import AuditLogger
from piggybank.config import Settings, get_settings
from piggybank.services.records import (
    AccountService,
    BudgetService,
    CategoryService,
    TagService,
    TransactionService,
)
from piggybank.services.storage import (
    AuditStorageInterface,
    DataStoreInterface,
    InMemoryAuditStorage,
    create_data_store,
)
from piggybank.transfer import ExportAssembler, ImportOrchestrator


logger = structlog.get_logger(__name__)


@dataclass
class AppComponents:
    """Everything a front end needs, sharing one store and audit logger."""

    store: DataStoreInterface
    audit_logger: AuditLogger
    exporter: ExportAssembler
    importer: ImportOrchestrator
    accounts: AccountService
    categories: CategoryService
    tags: TagService
    transactions: TransactionService
    budgets: BudgetService


def _create_audit_storage(settings: Settings) -> AuditStorageInterface:
    if settings.storage.backend == "google_sheets":
        from piggybank.services.storage.google_sheets import (
            GoogleSheetsAuditStorage,
            GoogleSheetsClient,
        )
        return GoogleSheetsAuditStorage(GoogleSheetsClient(settings.google_sheets))
    return InMemoryAuditStorage()


def create_app_components(
    store: Optional[DataStoreInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    settings: Optional[Settings] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        store: Data store to use. Built from settings when omitted.
        audit_storage: Where audit events are persisted. Built from
                      settings when omitted.
        settings: Defaults to the cached environment settings.
    """
    settings = settings or get_settings()
    store = store or create_data_store(settings)
    if audit_storage is None:
        audit_storage = _create_audit_storage(settings)

    audit_logger = AuditLogger(audit_storage)
    exporter = ExportAssembler(
        store,
        audit_logger=audit_logger,
        filename_prefix=settings.app.export_filename_prefix,
        indent=settings.app.export_indent or None,
    )
    importer = ImportOrchestrator(
        store,
        exporter=exporter,
        audit_logger=audit_logger,
        max_import_size_bytes=settings.app.max_import_size_bytes,
    )
    accounts = AccountService(
        store,
        audit_logger,
        default_currency=settings.app.default_currency,
    )

    logger.info(
        "app_components_created",
        backend=settings.storage.backend,
        environment=settings.app.app_environment,
    )

    return AppComponents(
        store=store,
        audit_logger=audit_logger,
        exporter=exporter,
        importer=importer,
        accounts=accounts,
        categories=CategoryService(store, audit_logger),
        tags=TagService(store, audit_logger),
        transactions=TransactionService(store, audit_logger, accounts=accounts),
        budgets=BudgetService(store, audit_logger),
    )
