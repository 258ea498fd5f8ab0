"""
Debt Payoff Projection

Month-by-month amortisation of a balance under a fixed payment.

DESIGN DECISION: A payment that never clears the balance is not an
error. compute_payoff() returns a projection with
months_to_payoff == NEVER_PAYS_OFF_MONTHS, no payoff date and
converges=False, and the caller decides what to show. The simulation is
capped at MAX_PROJECTION_MONTHS (50 years); hitting the cap also yields
the never-pays-off result.

All arithmetic is Decimal. Interest accrues at full precision and totals
are rounded to the cent at the end.
"""

from datetime import date
from decimal import ROUND_CEILING, Decimal
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from envelope_ledger.config import LedgerSettings, get_settings
from envelope_ledger.models.debt import DebtItem, PaymentComparison, PayoffProjection
from envelope_ledger.models.ledger import Account
from envelope_ledger.models.money import CENT, ZERO, MoneyInput, to_money


MAX_PROJECTION_MONTHS = 600
NEVER_PAYS_OFF_MONTHS = 9999


def monthly_interest(balance: Decimal, apr_percent: Decimal) -> Decimal:
    """One month of interest on `balance`, unrounded."""
    if balance <= ZERO or apr_percent <= ZERO:
        return Decimal(0)
    return balance * apr_percent / 100 / 12


def _never_pays_off(balance: Decimal, apr: Decimal, payment: Decimal) -> PayoffProjection:
    return PayoffProjection(
        starting_balance=balance,
        apr=apr,
        monthly_payment=payment,
        months_to_payoff=NEVER_PAYS_OFF_MONTHS,
        payoff_date=None,
        converges=False,
    )


def compute_payoff(
    balance: MoneyInput,
    apr_percent: MoneyInput,
    monthly_payment: MoneyInput,
    start_date: Optional[date] = None,
) -> PayoffProjection:
    """
    Project how long `monthly_payment` takes to clear `balance`.

    Each month: interest = balance * apr/100/12, then
    balance = balance + interest - payment, until the balance reaches zero.

    Args:
        balance: Amount owed (positive)
        apr_percent: Annual rate as a percentage, e.g. 19.99
        monthly_payment: Fixed payment per month
        start_date: Month zero; defaults to today

    Returns:
        The projection. months_to_payoff == NEVER_PAYS_OFF_MONTHS when the
        payment is zero, never exceeds the interest, or the cap is reached.
    """
    start_date = start_date or date.today()
    starting_balance = to_money(balance)
    apr = to_money(apr_percent)
    payment = to_money(monthly_payment)

    if starting_balance <= ZERO:
        return PayoffProjection(
            starting_balance=starting_balance,
            apr=apr,
            monthly_payment=payment,
            months_to_payoff=0,
            payoff_date=start_date,
        )

    if payment <= ZERO:
        return _never_pays_off(starting_balance, apr, payment)

    remaining = Decimal(starting_balance)
    total_interest = Decimal(0)
    months = 0
    while remaining > ZERO and months < MAX_PROJECTION_MONTHS:
        interest = monthly_interest(remaining, apr)
        if interest >= payment:
            return _never_pays_off(starting_balance, apr, payment)
        total_interest += interest
        remaining = remaining + interest - payment
        months += 1

    if remaining > ZERO:
        return _never_pays_off(starting_balance, apr, payment)

    total_interest = to_money(total_interest)
    return PayoffProjection(
        starting_balance=starting_balance,
        apr=apr,
        monthly_payment=payment,
        months_to_payoff=months,
        payoff_date=start_date + relativedelta(months=months),
        total_interest=total_interest,
        total_payments=starting_balance + total_interest,
    )


def minimum_payment(
    balance: MoneyInput,
    apr_percent: MoneyInput = 0,
    percentage: MoneyInput = 2,
    floor: MoneyInput = 25,
) -> Decimal:
    """
    Typical card minimum: `percentage` of the balance, at least a month's
    interest plus one dollar, at least `floor`, never more than the balance.
    """
    balance = to_money(balance)
    if balance <= ZERO:
        return ZERO

    amount = balance * Decimal(str(percentage)) / 100
    interest = monthly_interest(balance, to_money(apr_percent))
    if interest > ZERO:
        amount = max(amount, interest + 1)
    amount = max(amount, to_money(floor))
    return to_money(min(amount, balance))


def account_minimum_payment(
    account: Account,
    settings: Optional[LedgerSettings] = None,
) -> Decimal:
    """
    Minimum payment due on a card account.

    An explicit amount wins, then an explicit percentage; otherwise the
    configured default rule applies. Always capped at the amount owed.
    """
    balance = account.outstanding
    if balance <= ZERO:
        return ZERO
    if account.minimum_payment_amount is not None:
        return min(account.minimum_payment_amount, balance)
    if account.minimum_payment_percentage is not None:
        return to_money(min(balance * account.minimum_payment_percentage / 100, balance))

    settings = settings or get_settings().ledger
    return minimum_payment(
        balance,
        apr_percent=account.apr or ZERO,
        percentage=settings.minimum_payment_percentage,
        floor=settings.minimum_payment_floor,
    )


def payment_for_payoff_in_months(
    balance: MoneyInput,
    apr_percent: MoneyInput,
    months: int,
) -> Decimal:
    """
    Fixed monthly payment that clears `balance` in `months` months.

    Annuity formula P = r * PV / (1 - (1 + r)^-n), rounded up to the cent.
    """
    balance = to_money(balance)
    if balance <= ZERO or months <= 0:
        return ZERO

    apr = to_money(apr_percent)
    if apr <= ZERO:
        return (balance / months).quantize(CENT, rounding=ROUND_CEILING)

    rate = apr / 100 / 12
    payment = rate * balance / (1 - (1 + rate) ** -months)
    return payment.quantize(CENT, rounding=ROUND_CEILING)


def compare_payments(
    balance: MoneyInput,
    apr_percent: MoneyInput,
    current_payment: MoneyInput,
    alternative_payment: MoneyInput,
    start_date: Optional[date] = None,
) -> PaymentComparison:
    """Months and interest saved by paying `alternative_payment` instead."""
    current = compute_payoff(balance, apr_percent, current_payment, start_date)
    alternative = compute_payoff(balance, apr_percent, alternative_payment, start_date)

    if not (current.converges and alternative.converges):
        return PaymentComparison(current=current, alternative=alternative)
    return PaymentComparison(
        current=current,
        alternative=alternative,
        months_saved=current.months_to_payoff - alternative.months_to_payoff,
        interest_saved=current.total_interest - alternative.total_interest,
    )


def snowball_order(debts: Iterable[DebtItem]) -> list[DebtItem]:
    """Debts still owing, smallest balance first."""
    return sorted(
        (debt for debt in debts if debt.current_balance > ZERO),
        key=lambda debt: (debt.current_balance, debt.display_order, debt.name),
    )


def snowball_payments(debts: Iterable[DebtItem], monthly_budget: MoneyInput) -> dict:
    """
    Split a monthly budget across debts, snowball style.

    Every debt gets its minimum payment (capped at its balance); whatever
    is left goes to the smallest balance first.

    Returns {debt_item_id: payment}.
    """
    ordered = snowball_order(debts)
    remaining = to_money(monthly_budget)
    payments = {}

    for debt in ordered:
        minimum = min(debt.minimum_payment or ZERO, debt.current_balance)
        payments[debt.id] = minimum
        remaining -= minimum

    for debt in ordered:
        if remaining <= ZERO:
            break
        headroom = debt.current_balance - payments[debt.id]
        if headroom > ZERO:
            extra = min(remaining, headroom)
            payments[debt.id] += extra
            remaining -= extra

    return payments
