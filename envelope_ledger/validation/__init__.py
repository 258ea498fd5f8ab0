"""Request validation package."""

from envelope_ledger.validation.validator import (
    parse_amount,
    require_non_negative,
    require_positive,
    validate_card_spend,
    validate_payment_components,
    validate_splits,
    validate_transfer,
)

__all__ = [
    "parse_amount",
    "require_non_negative",
    "require_positive",
    "validate_card_spend",
    "validate_payment_components",
    "validate_splits",
    "validate_transfer",
]
