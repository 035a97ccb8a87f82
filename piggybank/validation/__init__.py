"""Import payload validation package."""

from piggybank.validation.references import (
    ReferenceIndex,
    check_reference,
    check_tag_ids,
    find_dangling_tag_ids,
    is_valid_uuid,
)
from piggybank.validation.validator import (
    format_validation_errors,
    validate_account,
    validate_budget,
    validate_category,
    validate_export_data,
    validate_tag,
    validate_transaction,
)

__all__ = [
    "ReferenceIndex",
    "check_reference",
    "check_tag_ids",
    "find_dangling_tag_ids",
    "format_validation_errors",
    "is_valid_uuid",
    "validate_account",
    "validate_budget",
    "validate_category",
    "validate_export_data",
    "validate_tag",
    "validate_transaction",
]
