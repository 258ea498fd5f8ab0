"""
Billing-Cycle Date Math

A billing cycle is keyed by the month its payment is DUE, as "YYYY-MM".
Its statement closes in the month before. With a statement close day of
15, spending on 10 January belongs to cycle "2026-01" and spending on
20 January to cycle "2026-02".

Configured days past the end of a month clamp to that month's last day,
so a close day of 31 closes on 28/29 February and 30 April.

Everything here is pure: no storage, no clock except where a date is
passed in.
"""

import calendar
from datetime import date
from decimal import Decimal
from typing import Optional

from envelope_ledger.ledger.errors import LedgerValidationError
from envelope_ledger.models.credit_card import (
    CreditCardCycleHolding,
    CycleComputedValues,
    PaymentSplit,
)
from envelope_ledger.models.money import ZERO, to_money


def _clamped(year: int, month: int, day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def _shift(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def format_cycle_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def parse_cycle_key(cycle_key: str) -> tuple[int, int]:
    """
    Split "YYYY-MM" into (year, month).

    Raises:
        LedgerValidationError: If the key is malformed
    """
    try:
        year_text, month_text = cycle_key.split("-")
        year, month = int(year_text), int(month_text)
    except (AttributeError, ValueError):
        raise LedgerValidationError(f"Invalid billing cycle key: {cycle_key!r}")
    if len(year_text) != 4 or not 1 <= month <= 12:
        raise LedgerValidationError(f"Invalid billing cycle key: {cycle_key!r}")
    return year, month


def current_cycle_key(reference_date: date, statement_close_day: int) -> str:
    """
    Cycle a date belongs to.

    After the statement close day the spend lands in next month's cycle;
    on or before it, in this month's.
    """
    year, month = reference_date.year, reference_date.month
    if reference_date.day > statement_close_day:
        year, month = _shift(year, month, 1)
    return format_cycle_key(year, month)


def previous_cycle_key(cycle_key: str) -> str:
    return format_cycle_key(*_shift(*parse_cycle_key(cycle_key), -1))


def next_cycle_key(cycle_key: str) -> str:
    return format_cycle_key(*_shift(*parse_cycle_key(cycle_key), 1))


def cycle_dates(
    cycle_key: str,
    statement_close_day: int,
    payment_due_day: int,
) -> tuple[date, date]:
    """
    (statement close date, payment due date) of a cycle.

    The close date falls in the month before the cycle month, the due
    date in the cycle month. Both clamp to the month's last day.
    """
    year, month = parse_cycle_key(cycle_key)
    close_year, close_month = _shift(year, month, -1)
    return (
        _clamped(close_year, close_month, statement_close_day),
        _clamped(year, month, payment_due_day),
    )


def compute_cycle_values(cycle: CreditCardCycleHolding, today: date) -> CycleComputedValues:
    """Display values for a cycle as of `today`."""
    uncovered = max(ZERO, cycle.spending_amount - cycle.covered_amount)
    if cycle.spending_amount > ZERO:
        coverage = min(Decimal(100), cycle.covered_amount * 100 / cycle.spending_amount)
    else:
        coverage = Decimal(100)

    days_until_due = (cycle.payment_due_date - today).days
    return CycleComputedValues(
        uncovered_amount=uncovered,
        coverage_percent=to_money(coverage),
        days_until_close=(cycle.statement_close_date - today).days,
        days_until_due=days_until_due,
        is_overdue=days_until_due < 0,
    )


def suggest_payment_split(
    payment_amount: Decimal,
    holding_balance: Decimal,
    interest_due: Decimal,
    minimum_principal: Optional[Decimal] = None,
) -> PaymentSplit:
    """
    Split a card payment: interest, then the minimum payment's principal,
    then holding, then whatever is left to debt.
    """
    remaining = payment_amount

    to_interest = min(max(ZERO, interest_due), remaining)
    remaining -= to_interest

    to_debt = min(max(ZERO, minimum_principal or ZERO), remaining)
    remaining -= to_debt

    to_holding = min(max(ZERO, holding_balance), remaining)
    remaining -= to_holding

    to_debt += remaining

    if to_holding > ZERO and to_debt > ZERO:
        explanation = f"${to_holding} covers your recent spending, ${to_debt} pays down your debt"
    elif to_holding > ZERO:
        explanation = f"${to_holding} covers your recent spending"
    elif to_debt > ZERO:
        explanation = f"${to_debt} goes toward paying down your debt"
    else:
        explanation = "Payment amount is zero"
    if to_interest > ZERO:
        explanation = f"${to_interest} covers interest, " + explanation

    return PaymentSplit(
        to_holding=to_holding,
        to_debt=to_debt,
        to_interest=to_interest,
        explanation=explanation,
    )
