"""
Core Entity Models for PiggyBank

These models define the five entity kinds stored by the application:
accounts, categories, tags, transactions and budgets.

Attributes are snake_case in Python and camelCase on the wire and in
storage records (``accountId``, ``createdAt``...). Storage records are
plain dicts keyed by the camelCase names with native datetime values;
``to_record()`` renders a model into that shape.

DESIGN DECISION: Enum values are stored as plain strings so records read
back from any backend compare equal to records written by these models.

IMPORTANT: Field constraints here must not be stricter than the import
validator. Anything an import accepts has to read back as a model.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_entity_id() -> str:
    """Generate a fresh entity identifier (canonical UUID text form)."""
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntityKind(str, Enum):
    """
    The five stored collections.

    Declaration order is the canonical write order: referenced kinds
    come before the kinds that reference them.
    """
    ACCOUNTS = "accounts"
    CATEGORIES = "categories"
    TAGS = "tags"
    TRANSACTIONS = "transactions"
    BUDGETS = "budgets"


ALL_KINDS: tuple[EntityKind, ...] = tuple(EntityKind)


class AccountType(str, Enum):
    """Supported account types."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    DEBIT = "debit"
    INVESTMENT = "investment"


class CategoryType(str, Enum):
    """Whether a category groups money coming in or going out."""
    INCOME = "income"
    EXPENSE = "expense"


class TransactionType(str, Enum):
    """Sign of a transaction; amounts themselves are stored unsigned."""
    INCOME = "income"
    EXPENSE = "expense"


class BudgetPeriod(str, Enum):
    """Budget recurrence period."""
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    YEARLY = "yearly"


# =============================================================================
# DATE FIELDS - which record keys hold datetimes, per kind
# =============================================================================

ENTITY_DATE_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.ACCOUNTS: ("createdAt", "updatedAt", "lastReviewedAt"),
    EntityKind.CATEGORIES: ("createdAt", "updatedAt"),
    EntityKind.TAGS: ("createdAt", "updatedAt"),
    EntityKind.TRANSACTIONS: ("date", "createdAt", "updatedAt"),
    EntityKind.BUDGETS: ("startDate", "endDate", "createdAt", "updatedAt"),
}


# =============================================================================
# ENTITY MODELS
# =============================================================================

class EntityBase(BaseModel):
    """
    Fields shared by every entity.

    The identifier is generated once at creation and never changes.
    ``updated_at`` is refreshed by every mutation.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )

    id: str = Field(
        default_factory=new_entity_id,
        description="Unique entity ID (UUID text form)"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the entity was created"
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Last modification timestamp"
    )

    def to_record(self) -> dict[str, Any]:
        """Render as a storage record (camelCase keys, native datetimes)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class CreditCardDetails(BaseModel):
    """Optional detail block carried by credit accounts."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    interest_rate: Optional[float] = Field(
        default=None,
        description="APR percentage (e.g. 18.99)"
    )
    statement_day: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month the statement closes"
    )
    credit_limit: Optional[float] = Field(
        default=None,
        description="Credit limit amount"
    )


class Account(EntityBase):
    """A bank, card or investment account. Balance may be negative."""

    name: str = Field(..., min_length=1)
    type: AccountType
    balance: float = Field(default=0.0, allow_inf_nan=False)
    currency: str = Field(default="USD", min_length=1)
    color: Optional[str] = None
    icon: Optional[str] = None
    credit_card_details: Optional[CreditCardDetails] = None
    last_reviewed_at: Optional[datetime] = None


class Category(EntityBase):
    """
    A transaction category.

    Default categories are seeded on first run and are never deletable.
    """

    name: str = Field(..., min_length=1)
    type: CategoryType
    color: str = Field(..., min_length=1)
    icon: Optional[str] = None
    is_default: bool = False


class Tag(EntityBase):
    """A free-form label attached to transactions."""

    name: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)


class Transaction(EntityBase):
    """A single movement of money on an account."""

    account_id: str
    category_id: str
    amount: float = Field(..., allow_inf_nan=False)
    type: TransactionType
    date: datetime
    vendor: str = Field(..., min_length=1)
    notes: Optional[str] = None
    tag_ids: list[str] = Field(default_factory=list)


class Budget(EntityBase):
    """Spending target for one category over a recurring period."""

    category_id: str
    amount: float = Field(..., allow_inf_nan=False)
    period: BudgetPeriod
    start_date: datetime
    end_date: Optional[datetime] = None


ENTITY_MODELS: dict[EntityKind, type[EntityBase]] = {
    EntityKind.ACCOUNTS: Account,
    EntityKind.CATEGORIES: Category,
    EntityKind.TAGS: Tag,
    EntityKind.TRANSACTIONS: Transaction,
    EntityKind.BUDGETS: Budget,
}


# =============================================================================
# SEED DATA
# =============================================================================

DEFAULT_CATEGORIES: list[dict[str, Any]] = [
    # Income
    {"name": "Salary", "type": "income", "color": "#22c55e", "icon": "💰"},
    {"name": "Freelance", "type": "income", "color": "#10b981", "icon": "💼"},
    {"name": "Investments", "type": "income", "color": "#3b82f6", "icon": "📈"},
    {"name": "Other Income", "type": "income", "color": "#64748b", "icon": "💵"},
    # Expense
    {"name": "Housing", "type": "expense", "color": "#ef4444", "icon": "🏠"},
    {"name": "Food & Dining", "type": "expense", "color": "#f97316", "icon": "🍔"},
    {"name": "Transportation", "type": "expense", "color": "#eab308", "icon": "🚗"},
    {"name": "Utilities", "type": "expense", "color": "#a855f7", "icon": "💡"},
    {"name": "Entertainment", "type": "expense", "color": "#ec4899", "icon": "🎬"},
    {"name": "Shopping", "type": "expense", "color": "#f43f5e", "icon": "🛍️"},
    {"name": "Health", "type": "expense", "color": "#06b6d4", "icon": "🏥"},
    {"name": "Education", "type": "expense", "color": "#6366f1", "icon": "📚"},
    {"name": "Personal Care", "type": "expense", "color": "#f59e0b", "icon": "💄"},
    {"name": "Travel", "type": "expense", "color": "#14b8a6", "icon": "✈️"},
    {"name": "Gifts", "type": "expense", "color": "#8b5cf6", "icon": "🎁"},
    {"name": "Other Expense", "type": "expense", "color": "#94a3b8", "icon": "📦"},
]
