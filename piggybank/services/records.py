"""
Entity Services

CRUD access to each collection, returning typed models instead of raw
storage records.

Lifecycle rules:
- ids are generated at creation and never change
- created_at == updated_at at creation; every update refreshes updated_at
- deletes are permanent
- default categories can never be deleted
- transaction writes keep account balances in step
"""

from datetime import datetime
from functools import partial
from typing import Any, Generic, Iterable, Optional, TypeVar

from piggybank.audit import AuditLogger
from piggybank.models.audit import AuditEventType
from piggybank.models.entities import (
    DEFAULT_CATEGORIES,
    Account,
    Budget,
    Category,
    CategoryType,
    EntityBase,
    EntityKind,
    Tag,
    Transaction,
    TransactionType,
    new_entity_id,
    utc_now,
)
from piggybank.serialization.dates import deserialize_date
from piggybank.services.storage import CollectionStorageInterface, DataStoreInterface


T = TypeVar("T", bound=EntityBase)

# Set once at creation, never changed by callers
_IMMUTABLE_FIELDS = ("id", "created_at", "updated_at")

# Collections written together when a transaction moves money
_BALANCE_SCOPE = (EntityKind.TRANSACTIONS, EntityKind.ACCOUNTS)


class EntityService(Generic[T]):
    """Generic CRUD over one collection."""

    kind: EntityKind
    model: type[T]

    def __init__(
        self,
        store: DataStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger

    @property
    def collection(self) -> CollectionStorageInterface:
        return self._store.collection(self.kind)

    def _to_model(self, record: dict[str, Any]) -> T:
        return self.model.model_validate(record)

    async def _audit(
        self,
        event_type: AuditEventType,
        entity_id: str,
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_entity_event(
                event_type=event_type,
                kind=self.kind.value,
                entity_id=entity_id,
                details=details,
            )

    async def get_all(self) -> list[T]:
        return [self._to_model(record) for record in await self.collection.get_all()]

    async def get_by_id(self, entity_id: str) -> Optional[T]:
        record = await self.collection.get(entity_id)
        return self._to_model(record) if record is not None else None

    async def create(self, **fields: Any) -> T:
        """
        Create and store a new entity.

        Any id or timestamps passed in are ignored.
        """
        for name in _IMMUTABLE_FIELDS:
            fields.pop(name, None)
        now = utc_now()
        entity = self.model(
            id=new_entity_id(),
            created_at=now,
            updated_at=now,
            **fields,
        )
        await self.collection.put(entity.to_record())
        await self._audit(AuditEventType.ENTITY_CREATED, entity.id)
        return entity

    async def update(self, entity_id: str, **changes: Any) -> Optional[T]:
        """
        Apply ``changes`` to an existing entity.

        Returns:
            The updated entity, or None if no entity has this id
        """
        existing = await self.get_by_id(entity_id)
        if existing is None:
            return None

        for name in _IMMUTABLE_FIELDS:
            changes.pop(name, None)
        data = existing.model_dump()
        data.update(changes)
        data["updated_at"] = utc_now()
        updated = self.model(**data)

        await self.collection.put(updated.to_record())
        await self._audit(
            AuditEventType.ENTITY_UPDATED,
            entity_id,
            {"fields": sorted(changes)},
        )
        return updated

    async def delete(self, entity_id: str) -> bool:
        """Permanently delete. Returns False if nothing had this id."""
        deleted = await self.collection.delete(entity_id)
        if deleted:
            await self._audit(AuditEventType.ENTITY_DELETED, entity_id)
        return deleted


class AccountService(EntityService[Account]):
    kind = EntityKind.ACCOUNTS
    model = Account

    def __init__(
        self,
        store: DataStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        default_currency: str = "USD",
    ):
        super().__init__(store, audit_logger)
        self._default_currency = default_currency

    async def create(self, **fields: Any) -> Account:
        """New accounts start out reviewed, in the default currency."""
        fields.setdefault("currency", self._default_currency)
        fields.setdefault("last_reviewed_at", utc_now())
        return await super().create(**fields)

    async def update_balance(self, account_id: str, amount: float) -> Optional[Account]:
        """Add ``amount`` (negative to subtract) to the account balance."""
        existing = await self.get_by_id(account_id)
        if existing is None:
            return None
        return await self.update(account_id, balance=existing.balance + amount)

    async def mark_as_reviewed(self, account_id: str) -> Optional[Account]:
        return await self.update(account_id, last_reviewed_at=utc_now())


class CategoryService(EntityService[Category]):
    kind = EntityKind.CATEGORIES
    model = Category

    async def create(self, **fields: Any) -> Category:
        """User-created categories are never defaults."""
        fields["is_default"] = False
        return await super().create(**fields)

    async def get_by_type(self, category_type: CategoryType) -> list[Category]:
        wanted = CategoryType(category_type).value
        return [c for c in await self.get_all() if c.type == wanted]

    async def delete(self, entity_id: str) -> bool:
        """Delete a user category. Default categories are refused."""
        existing = await self.get_by_id(entity_id)
        if existing is None:
            return False
        if existing.is_default:
            await self._audit(
                AuditEventType.ENTITY_DELETE_REFUSED,
                entity_id,
                {"reason": "default category"},
            )
            return False
        return await super().delete(entity_id)


class TagService(EntityService[Tag]):
    kind = EntityKind.TAGS
    model = Tag

    async def get_by_ids(self, tag_ids: Iterable[str]) -> list[Tag]:
        wanted = set(tag_ids)
        return [t for t in await self.get_all() if t.id in wanted]


def _balance_effect(transaction: Transaction) -> float:
    """Signed change a transaction makes to its account balance."""
    if transaction.type == TransactionType.INCOME.value:
        return transaction.amount
    return -transaction.amount


class TransactionService(EntityService[Transaction]):
    """
    Transactions, kept in step with account balances.

    Creating a transaction applies its amount to the account balance
    (income adds, expense subtracts). Updating reverts the old effect and
    applies the new one, so moving a transaction between accounts moves
    its amount too. Deleting reverts the effect. Each of these runs in one
    storage transaction over transactions and accounts.
    """

    kind = EntityKind.TRANSACTIONS
    model = Transaction

    def __init__(
        self,
        store: DataStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        accounts: Optional[AccountService] = None,
    ):
        super().__init__(store, audit_logger)
        self._accounts = accounts or AccountService(store, audit_logger)

    async def get_all(self) -> list[Transaction]:
        """Newest first."""
        transactions = await super().get_all()
        return sorted(transactions, key=lambda t: t.date, reverse=True)

    async def get_by_account(self, account_id: str) -> list[Transaction]:
        return [t for t in await self.get_all() if t.account_id == account_id]

    async def get_by_date_range(
        self,
        start: datetime,
        end: datetime,
    ) -> list[Transaction]:
        """Transactions dated within ``[start, end]``, oldest first."""
        start, end = deserialize_date(start), deserialize_date(end)
        found = [t for t in await self.get_all() if start <= t.date <= end]
        return list(reversed(found))

    async def get_filtered(
        self,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        vendor: Optional[str] = None,
        tag_ids: Optional[Iterable[str]] = None,
    ) -> list[Transaction]:
        """
        Newest-first transactions matching every filter given.

        Date bounds are inclusive. ``vendor`` is a case-insensitive
        substring match. ``tag_ids`` matches transactions carrying any of
        the tags; an empty list does not filter.
        """
        start = deserialize_date(start_date) if start_date else None
        end = deserialize_date(end_date) if end_date else None
        wanted_type = TransactionType(transaction_type).value if transaction_type else None
        needle = vendor.lower() if vendor else None
        wanted_tags = set(tag_ids or ())

        def matches(t: Transaction) -> bool:
            if start and t.date < start:
                return False
            if end and t.date > end:
                return False
            if account_id and t.account_id != account_id:
                return False
            if category_id and t.category_id != category_id:
                return False
            if wanted_type and t.type != wanted_type:
                return False
            if needle and needle not in t.vendor.lower():
                return False
            if wanted_tags and wanted_tags.isdisjoint(t.tag_ids):
                return False
            return True

        return [t for t in await self.get_all() if matches(t)]

    async def create(self, **fields: Any) -> Transaction:
        return await self._store.transaction(
            "rw", _BALANCE_SCOPE, partial(self._create, fields)
        )

    async def update(self, entity_id: str, **changes: Any) -> Optional[Transaction]:
        return await self._store.transaction(
            "rw", _BALANCE_SCOPE, partial(self._update, entity_id, changes)
        )

    async def delete(self, entity_id: str) -> bool:
        return await self._store.transaction(
            "rw", _BALANCE_SCOPE, partial(self._delete, entity_id)
        )

    async def _create(self, fields: dict[str, Any]) -> Transaction:
        transaction = await super().create(**fields)
        await self._accounts.update_balance(
            transaction.account_id, _balance_effect(transaction)
        )
        return transaction

    async def _update(
        self,
        entity_id: str,
        changes: dict[str, Any],
    ) -> Optional[Transaction]:
        existing = await self.get_by_id(entity_id)
        if existing is None:
            return None
        await self._accounts.update_balance(
            existing.account_id, -_balance_effect(existing)
        )
        updated = await super().update(entity_id, **changes)
        await self._accounts.update_balance(
            updated.account_id, _balance_effect(updated)
        )
        return updated

    async def _delete(self, entity_id: str) -> bool:
        existing = await self.get_by_id(entity_id)
        if existing is None:
            return False
        await self._accounts.update_balance(
            existing.account_id, -_balance_effect(existing)
        )
        return await super().delete(entity_id)


class BudgetService(EntityService[Budget]):
    kind = EntityKind.BUDGETS
    model = Budget

    async def get_by_category(self, category_id: str) -> list[Budget]:
        return [b for b in await self.get_all() if b.category_id == category_id]

    async def get_active_budgets(self, on: Optional[datetime] = None) -> list[Budget]:
        """
        Budgets whose period covers ``on`` (default: now).

        Both ends are inclusive. A budget without an end date stays active
        from its start date onwards.
        """
        moment = deserialize_date(on) if on is not None else utc_now()
        return [
            b for b in await self.get_all()
            if b.start_date <= moment and (b.end_date is None or moment <= b.end_date)
        ]


async def initialize_default_categories(
    store: DataStoreInterface,
    audit_logger: Optional[AuditLogger] = None,
) -> int:
    """
    Seed the default categories into an empty categories collection.

    Returns:
        Number of categories seeded (0 if any category already exists)
    """
    if await store.categories.count() > 0:
        return 0

    now = utc_now()
    records = [
        Category(
            **seed,
            is_default=True,
            created_at=now,
            updated_at=now,
        ).to_record()
        for seed in DEFAULT_CATEGORIES
    ]
    await store.categories.bulk_add(records)

    if audit_logger:
        await audit_logger.log_defaults_seeded(len(records))
    return len(records)
