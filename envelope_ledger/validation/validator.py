"""
Request Validation

DESIGN DECISION: Every ledger request is validated before any row is
locked or read for mutation. Validation only looks at the request
itself; checks that need ledger state (balances, plan status) belong to
the engines.

IMPORTANT: Validation NEVER silently fixes issues. An amount that is
zero, negative or inconsistent is rejected, never clamped.
"""

from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

from envelope_ledger.ledger.errors import (
    EmptySplitsError,
    InvalidAmountError,
    OverPaymentError,
    SameEnvelopeError,
    SplitMismatchError,
)
from envelope_ledger.models.ledger import SplitRequest
from envelope_ledger.models.money import CENT, ZERO, MoneyInput, sum_money, to_money


def parse_amount(value: MoneyInput, field: str = "amount") -> Decimal:
    """
    Convert caller input to a cent-precision amount.

    Raises:
        InvalidAmountError: If the value is not a number
    """
    try:
        return to_money(value)
    except ValueError as e:
        raise InvalidAmountError(f"{field}: {e}")


def require_positive(value: MoneyInput, field: str = "amount") -> Decimal:
    """
    Parse an amount that must be strictly greater than zero.

    Raises:
        InvalidAmountError: If the amount is zero or negative
    """
    amount = parse_amount(value, field)
    if amount <= ZERO:
        raise InvalidAmountError(f"{field} must be greater than zero, got {amount}")
    return amount


def require_non_negative(value: MoneyInput, field: str = "amount") -> Decimal:
    """Parse an amount that may be zero but not negative."""
    amount = parse_amount(value, field)
    if amount < ZERO:
        raise InvalidAmountError(f"{field} cannot be negative, got {amount}")
    return amount


def validate_transfer(
    from_envelope_id: UUID,
    to_envelope_id: UUID,
    amount: MoneyInput,
) -> Decimal:
    """
    Check a transfer request.

    Returns the parsed amount.
    """
    if from_envelope_id == to_envelope_id:
        raise SameEnvelopeError(from_envelope_id)
    return require_positive(amount)


def validate_splits(
    splits: Sequence[SplitRequest],
    transaction_amount: Decimal,
) -> Decimal:
    """
    Check that a full split set adds up to the transaction amount.

    Splits must sum to the transaction amount within one cent.
    Returns the split total.
    """
    if not splits:
        raise EmptySplitsError()
    total = sum_money(split.amount for split in splits)
    if abs(total - transaction_amount) > CENT:
        raise SplitMismatchError(expected=transaction_amount, actual=total)
    return total


def validate_card_spend(
    amount: MoneyInput,
    covered_amount: MoneyInput,
) -> tuple[Decimal, Decimal]:
    """
    Check a card spend: 0 <= covered_amount <= amount.

    Returns (amount, covered_amount).
    """
    spend = require_positive(amount)
    covered = require_non_negative(covered_amount, "covered_amount")
    if covered > spend:
        raise InvalidAmountError(
            f"covered_amount {covered} exceeds the spend of {spend}"
        )
    return spend, covered


def validate_payment_components(
    total: Decimal,
    to_holding: Optional[MoneyInput],
    to_debt: Optional[MoneyInput],
    to_interest: Optional[MoneyInput],
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Check caller-supplied payment components.

    Missing components count as zero. The components may fall short of
    the total (the engine sends the shortfall to debt) but may not exceed
    it by more than one cent.
    """
    holding = require_non_negative(to_holding or ZERO, "amount_to_holding")
    debt = require_non_negative(to_debt or ZERO, "amount_to_debt")
    interest = require_non_negative(to_interest or ZERO, "amount_to_interest")

    requested = holding + debt + interest
    if requested - total > CENT:
        raise OverPaymentError(total=total, requested=requested)
    return holding, debt, interest
