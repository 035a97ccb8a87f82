"""
Referential Integrity Checks

Foreign keys in an import payload are checked against the IDs present
in the same payload, never against what is currently stored: an import
replaces everything, so only the incoming batch matters.

Checked references:
- Transaction.accountId  -> Account    (shape + existence)
- Transaction.categoryId -> Category   (shape + existence)
- Budget.categoryId      -> Category   (shape + existence)
- Transaction.tagIds[i]  -> Tag        (shape only)

Tag references are soft: a transaction may point at a tag that is not in
the batch. ``find_dangling_tag_ids`` lists such references for
diagnostics but they never fail validation.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from piggybank.models.transfer import FieldError


UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_uuid(value: Any) -> bool:
    """True for a string in canonical 8-4-4-4-12 hex UUID form."""
    return isinstance(value, str) and UUID_PATTERN.fullmatch(value) is not None


@dataclass
class ReferenceIndex:
    """
    IDs observed in one import batch.

    Only items that passed their own validation are registered, so a
    reference to a broken account is reported as a missing account.
    """
    account_ids: set[str] = field(default_factory=set)
    category_ids: set[str] = field(default_factory=set)
    tag_ids: set[str] = field(default_factory=set)


def check_reference(
    candidate: Mapping[str, Any],
    field_name: str,
    known_ids: Iterable[str],
    label: str,
) -> list[FieldError]:
    """
    Dual check of one foreign key: well-formed first, then present.

    The two failures carry distinct messages so a caller can tell a
    malformed ID from a dangling one.
    """
    value = candidate.get(field_name)
    if not is_valid_uuid(value):
        return [FieldError(
            field=field_name,
            message=f"Invalid or missing {field_name}",
            value=value,
        )]
    if value not in known_ids:
        return [FieldError(
            field=field_name,
            message=f"Referenced {label} does not exist",
            value=value,
        )]
    return []


def check_tag_ids(candidate: Mapping[str, Any]) -> list[FieldError]:
    """``tagIds`` must be a list whose every element looks like an ID."""
    tag_ids = candidate.get("tagIds")
    if not isinstance(tag_ids, list):
        return [FieldError(
            field="tagIds",
            message="tagIds must be an array",
            value=tag_ids,
        )]
    return [
        FieldError(field=f"tagIds[{index}]", message="Invalid tag ID", value=tag_id)
        for index, tag_id in enumerate(tag_ids)
        if not is_valid_uuid(tag_id)
    ]


def find_dangling_tag_ids(
    transactions: Iterable[Mapping[str, Any]],
    tag_ids: Iterable[str],
) -> list[dict[str, str]]:
    """
    Tag references that do not resolve to a tag in the batch.

    Returns ``{"transactionId", "tagId"}`` pairs in payload order.
    """
    known = set(tag_ids)
    dangling = []
    for transaction in transactions:
        references = transaction.get("tagIds")
        if not isinstance(references, list):
            continue
        for tag_id in references:
            if is_valid_uuid(tag_id) and tag_id not in known:
                dangling.append({
                    "transactionId": str(transaction.get("id")),
                    "tagId": tag_id,
                })
    return dangling
