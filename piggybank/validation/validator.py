"""
Import Payload Validation

Validates untrusted JSON (already parsed into Python values) before any
of it is allowed near storage.

DESIGN DECISION: Validation runs in two stages, like any pipeline that
accepts outside data:

STAGE 1 - STRUCTURE:
- The payload is an object
- version is present and supported
- exportDate is a valid date
- accounts/categories/transactions are arrays; tags/budgets are arrays
  when present
If this stage fails there is nothing to iterate, so stage 2 is skipped.

STAGE 2 - ITEMS AND REFERENCES:
- Every item of every collection is checked field by field
- Foreign keys are checked against the IDs of items that passed
  (see ``piggybank.validation.references``)

IMPORTANT: Validators never raise and never stop at the first problem.
Every failing check of every item is reported, so the user can fix the
file in one pass.
"""

import math
from typing import Any, Iterable, Mapping, Optional

from piggybank.models.entities import (
    AccountType,
    BudgetPeriod,
    CategoryType,
    EntityKind,
    TransactionType,
)
from piggybank.models.transfer import (
    SUPPORTED_VERSIONS,
    FieldError,
    ValidationResult,
)
from piggybank.serialization.dates import is_valid_date
from piggybank.validation.references import (
    ReferenceIndex,
    check_reference,
    check_tag_ids,
    is_valid_uuid,
)


ACCOUNT_TYPES = frozenset(t.value for t in AccountType)
CATEGORY_TYPES = frozenset(t.value for t in CategoryType)
TRANSACTION_TYPES = frozenset(t.value for t in TransactionType)
BUDGET_PERIODS = frozenset(p.value for p in BudgetPeriod)


# =============================================================================
# FIELD CHECKS
# =============================================================================

def _is_finite_number(value: Any) -> bool:
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _not_an_object(candidate: Any, kind: str) -> Optional[list[FieldError]]:
    if isinstance(candidate, Mapping):
        return None
    return [FieldError(
        field="root",
        message=f"{kind} must be an object",
        value=candidate,
    )]


def _check_id(candidate: Mapping[str, Any]) -> list[FieldError]:
    value = candidate.get("id")
    if not is_valid_uuid(value):
        return [FieldError(field="id", message="Invalid or missing id", value=value)]
    return []


def _check_text(candidate: Mapping[str, Any], field: str) -> list[FieldError]:
    value = candidate.get(field)
    if not _is_non_empty_string(value):
        return [FieldError(
            field=field,
            message=f"Invalid or missing {field}",
            value=value,
        )]
    return []


def _check_optional_text(candidate: Mapping[str, Any], field: str) -> list[FieldError]:
    value = candidate.get(field)
    if value is not None and not isinstance(value, str):
        return [FieldError(field=field, message=f"Invalid {field}", value=value)]
    return []


def _check_choice(
    candidate: Mapping[str, Any],
    field: str,
    choices: frozenset[str],
    message: str,
) -> list[FieldError]:
    value = candidate.get(field)
    if not isinstance(value, str) or value not in choices:
        return [FieldError(field=field, message=message, value=value)]
    return []


def _check_number(
    candidate: Mapping[str, Any],
    field: str,
    message: str,
) -> list[FieldError]:
    value = candidate.get(field)
    if not _is_finite_number(value):
        return [FieldError(field=field, message=message, value=value)]
    return []


def _check_date(
    candidate: Mapping[str, Any],
    field: str,
    message: str,
    required: bool = True,
) -> list[FieldError]:
    value = candidate.get(field)
    if value is None and not required:
        return []
    if not is_valid_date(value):
        return [FieldError(field=field, message=message, value=value)]
    return []


def _check_timestamps(candidate: Mapping[str, Any]) -> list[FieldError]:
    return (
        _check_date(candidate, "createdAt", "Invalid createdAt date")
        + _check_date(candidate, "updatedAt", "Invalid updatedAt date")
    )


def _check_credit_card_details(details: Any) -> list[FieldError]:
    if not isinstance(details, Mapping):
        return [FieldError(
            field="creditCardDetails",
            message="creditCardDetails must be an object",
            value=details,
        )]

    errors = []
    for field in ("interestRate", "creditLimit"):
        if field in details and not _is_finite_number(details[field]):
            errors.append(FieldError(
                field=f"creditCardDetails.{field}",
                message=f"Invalid {field}",
                value=details[field],
            ))

    if "statementDay" in details:
        day = details["statementDay"]
        is_whole = _is_finite_number(day) and float(day).is_integer()
        if not is_whole or not 1 <= day <= 31:
            errors.append(FieldError(
                field="creditCardDetails.statementDay",
                message="Invalid statementDay (must be 1-31)",
                value=day,
            ))
    return errors


# =============================================================================
# PER-ENTITY VALIDATORS
# =============================================================================

def validate_account(account: Any) -> list[FieldError]:
    """Validate one account record."""
    not_object = _not_an_object(account, "Account")
    if not_object:
        return not_object

    errors = _check_id(account)
    errors += _check_text(account, "name")
    errors += _check_choice(account, "type", ACCOUNT_TYPES, "Invalid account type")
    errors += _check_number(account, "balance", "Invalid balance")
    errors += _check_text(account, "currency")
    errors += _check_optional_text(account, "color")
    errors += _check_optional_text(account, "icon")
    errors += _check_timestamps(account)
    errors += _check_date(
        account, "lastReviewedAt", "Invalid lastReviewedAt date", required=False
    )

    if account.get("creditCardDetails") is not None:
        errors += _check_credit_card_details(account["creditCardDetails"])

    return errors


def validate_category(category: Any) -> list[FieldError]:
    """Validate one category record."""
    not_object = _not_an_object(category, "Category")
    if not_object:
        return not_object

    errors = _check_id(category)
    errors += _check_text(category, "name")
    errors += _check_choice(category, "type", CATEGORY_TYPES, "Invalid category type")
    errors += _check_text(category, "color")
    errors += _check_optional_text(category, "icon")

    if not isinstance(category.get("isDefault"), bool):
        errors.append(FieldError(
            field="isDefault",
            message="Invalid isDefault",
            value=category.get("isDefault"),
        ))

    errors += _check_timestamps(category)
    return errors


def validate_tag(tag: Any) -> list[FieldError]:
    """Validate one tag record."""
    not_object = _not_an_object(tag, "Tag")
    if not_object:
        return not_object

    errors = _check_id(tag)
    errors += _check_text(tag, "name")
    errors += _check_text(tag, "color")
    errors += _check_timestamps(tag)
    return errors


def validate_transaction(
    transaction: Any,
    valid_account_ids: Iterable[str],
    valid_category_ids: Iterable[str],
) -> list[FieldError]:
    """
    Validate one transaction record.

    Account and category references must resolve to the given ID sets.
    Tag IDs are only checked for shape.
    """
    not_object = _not_an_object(transaction, "Transaction")
    if not_object:
        return not_object

    errors = _check_id(transaction)
    errors += check_reference(transaction, "accountId", valid_account_ids, "account")
    errors += check_reference(transaction, "categoryId", valid_category_ids, "category")
    errors += _check_number(transaction, "amount", "Invalid amount")
    errors += _check_choice(
        transaction, "type", TRANSACTION_TYPES, "Invalid transaction type"
    )
    errors += _check_date(transaction, "date", "Invalid date")
    errors += _check_text(transaction, "vendor")

    if "notes" in transaction and not isinstance(transaction["notes"], str):
        errors.append(FieldError(
            field="notes",
            message="Invalid notes",
            value=transaction["notes"],
        ))

    errors += check_tag_ids(transaction)
    errors += _check_timestamps(transaction)
    return errors


def validate_budget(
    budget: Any,
    valid_category_ids: Iterable[str],
) -> list[FieldError]:
    """Validate one budget record."""
    not_object = _not_an_object(budget, "Budget")
    if not_object:
        return not_object

    errors = _check_id(budget)
    errors += check_reference(budget, "categoryId", valid_category_ids, "category")
    errors += _check_number(budget, "amount", "Invalid amount")
    errors += _check_choice(budget, "period", BUDGET_PERIODS, "Invalid budget period")
    errors += _check_date(budget, "startDate", "Invalid startDate date")
    errors += _check_date(budget, "endDate", "Invalid endDate date", required=False)
    errors += _check_timestamps(budget)
    return errors


# =============================================================================
# ENVELOPE VALIDATION
# =============================================================================

def _validate_structure(data: Mapping[str, Any]) -> list[FieldError]:
    errors = []

    version = data.get("version")
    if not _is_non_empty_string(version):
        errors.append(FieldError(
            field="version",
            message="Invalid or missing version",
            value=version,
        ))
    elif version not in SUPPORTED_VERSIONS:
        errors.append(FieldError(
            field="version",
            message=(
                f"Unsupported version: {version}. "
                f"Supported versions: {', '.join(SUPPORTED_VERSIONS)}"
            ),
            value=version,
        ))

    export_date = data.get("exportDate")
    if not is_valid_date(export_date):
        errors.append(FieldError(
            field="exportDate",
            message="Invalid or missing exportDate",
            value=export_date,
        ))

    for kind in (EntityKind.ACCOUNTS, EntityKind.CATEGORIES, EntityKind.TRANSACTIONS):
        if not isinstance(data.get(kind.value), list):
            errors.append(FieldError(
                field=kind.value,
                message=f"{kind.value} must be an array",
                value=data.get(kind.value),
            ))

    for kind in (EntityKind.TAGS, EntityKind.BUDGETS):
        if kind.value in data and not isinstance(data[kind.value], list):
            errors.append(FieldError(
                field=kind.value,
                message=f"{kind.value} must be an array",
                value=data[kind.value],
            ))

    return errors


def _prefix_all(errors: list[FieldError], prefix: str) -> list[FieldError]:
    return [error.prefixed(prefix) for error in errors]


def _validate_items(
    data: Mapping[str, Any],
    kind: EntityKind,
    validate,
    registry: Optional[set[str]] = None,
) -> list[FieldError]:
    errors = []
    for index, item in enumerate(data.get(kind.value) or []):
        item_errors = validate(item)
        if item_errors:
            errors += _prefix_all(item_errors, f"{kind.value}[{index}]")
        elif registry is not None:
            registry.add(item["id"])
    return errors


def validate_export_data(data: Any) -> ValidationResult:
    """
    Validate a parsed export envelope.

    Returns a ValidationResult listing every problem found, with field
    paths qualified by collection and index (``transactions[0].accountId``).
    """
    if data is None:
        return ValidationResult(
            valid=False,
            errors=[FieldError(field="root", message="Data is null or undefined")],
        )
    if not isinstance(data, Mapping):
        return ValidationResult(
            valid=False,
            errors=[FieldError(
                field="root",
                message="Data must be a JSON object",
                value=type(data).__name__,
            )],
        )

    # Stage 1: structure
    errors = _validate_structure(data)
    if errors:
        return ValidationResult(valid=False, errors=errors)

    # Stage 2: items, registering IDs of valid referenced items as we go
    index = ReferenceIndex()
    errors += _validate_items(
        data, EntityKind.ACCOUNTS, validate_account, index.account_ids
    )
    errors += _validate_items(
        data, EntityKind.CATEGORIES, validate_category, index.category_ids
    )
    errors += _validate_items(data, EntityKind.TAGS, validate_tag, index.tag_ids)
    errors += _validate_items(
        data,
        EntityKind.TRANSACTIONS,
        lambda item: validate_transaction(item, index.account_ids, index.category_ids),
    )
    errors += _validate_items(
        data,
        EntityKind.BUDGETS,
        lambda item: validate_budget(item, index.category_ids),
    )

    return ValidationResult(valid=not errors, errors=errors)


def format_validation_errors(errors: Iterable[FieldError]) -> str:
    """
    Render errors as one ``field: message; field: message`` string.

    Exact duplicates are collapsed, keeping first-appearance order.
    """
    unique = dict.fromkeys(f"{error.field}: {error.message}" for error in errors)
    return "; ".join(unique)
