"""
Money Type for the Envelope Ledger

Every amount in the ledger is a Decimal quantized to whole cents.
Floats never enter the ledger: values are converted through str() first,
so 0.1 becomes Decimal("0.10") rather than 0.1000000000000000055...

DESIGN DECISION: Rounding is ROUND_HALF_UP, the rule a bank statement uses.
Comparisons between computed totals (split sums, payment components) use
a one-cent tolerance via within_tolerance().
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Union

from pydantic import BeforeValidator, PlainSerializer


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyInput = Union[Decimal, int, float, str]


def to_money(value: MoneyInput) -> Decimal:
    """
    Convert a value to a cent-precision Decimal.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Amount out of range: {value!r}")


def within_tolerance(
    left: Decimal,
    right: Decimal,
    tolerance: Decimal = CENT,
) -> bool:
    """True if two amounts differ by at most `tolerance` (one cent by default)."""
    return abs(left - right) <= tolerance


def sum_money(values) -> Decimal:
    """Sum amounts, starting from a cent-precision zero."""
    total = ZERO
    for value in values:
        total += to_money(value)
    return to_money(total)


# Pydantic field type: accepts Decimal/int/float/str, stores a quantized
# Decimal, serializes as a string so JSON never sees a float.
Money = Annotated[
    Decimal,
    BeforeValidator(to_money),
    PlainSerializer(lambda v: str(v), return_type=str, when_used="json"),
]
