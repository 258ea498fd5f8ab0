"""
Tests for payoff projections and minimum payments.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from dateutil.relativedelta import relativedelta

from envelope_ledger.ledger.payoff import (
    NEVER_PAYS_OFF_MONTHS,
    compare_payments,
    compute_payoff,
    minimum_payment,
    payment_for_payoff_in_months,
    snowball_order,
    snowball_payments,
)
from envelope_ledger.models import DebtItem


START = date(2026, 1, 1)


def debt(name, balance, minimum=None):
    return DebtItem(
        owner_id=uuid4(),
        envelope_id=uuid4(),
        name=name,
        starting_balance=balance,
        current_balance=balance,
        minimum_payment=minimum,
    )


class TestComputePayoff:
    """Tests for the amortisation simulation."""

    def test_converges_with_interest(self):
        """Test that $100/month clears $1,200 at 19.99%."""
        projection = compute_payoff(1200, "19.99", 100, start_date=START)
        assert projection.converges
        assert 12 < projection.months_to_payoff < NEVER_PAYS_OFF_MONTHS
        assert projection.total_interest > Decimal("0")
        assert projection.total_payments == Decimal("1200.00") + projection.total_interest
        assert projection.payoff_date == START + relativedelta(months=projection.months_to_payoff)

    def test_payment_below_interest_never_pays_off(self):
        """Test that $5/month never clears $1,200 at 19.99%."""
        projection = compute_payoff(1200, "19.99", 5, start_date=START)
        assert projection.months_to_payoff == NEVER_PAYS_OFF_MONTHS
        assert projection.payoff_date is None
        assert projection.converges is False

    def test_payment_equal_to_interest_never_pays_off(self):
        """Test that paying exactly the interest is not progress."""
        projection = compute_payoff(1200, 12, 12, start_date=START)
        assert projection.months_to_payoff == NEVER_PAYS_OFF_MONTHS

    def test_zero_payment_never_pays_off(self):
        """Test that no payment means no payoff."""
        assert compute_payoff(100, 0, 0).converges is False

    def test_cap_reached_never_pays_off(self):
        """Test that a payoff beyond fifty years counts as never."""
        projection = compute_payoff(1000000, 1, 1000, start_date=START)
        assert projection.months_to_payoff == NEVER_PAYS_OFF_MONTHS

    def test_zero_balance_is_paid_today(self):
        """Test that nothing owed means nothing to project."""
        projection = compute_payoff(0, "19.99", 100, start_date=START)
        assert projection.months_to_payoff == 0
        assert projection.total_interest == Decimal("0.00")
        assert projection.payoff_date == START

    def test_interest_free_balance(self):
        """Test that 0% APR divides evenly."""
        projection = compute_payoff(1200, 0, 100, start_date=START)
        assert projection.months_to_payoff == 12
        assert projection.total_interest == Decimal("0.00")
        assert projection.total_payments == Decimal("1200.00")
        assert projection.payoff_date == date(2027, 1, 1)


class TestMinimumPayment:
    """Tests for the card minimum payment rule."""

    def test_floor_applies_to_small_balances(self):
        """Test that the floor beats 2% of a small balance."""
        assert minimum_payment(200, "19.99") == Decimal("25.00")

    def test_percentage_applies_to_large_balances(self):
        """Test that 2% of a large balance beats the floor."""
        assert minimum_payment(5000, 0) == Decimal("100.00")

    def test_interest_plus_one_dollar(self):
        """Test that the minimum always covers a month's interest."""
        # 2% of 5000 is 100; interest at 30% is 125
        assert minimum_payment(5000, 30) == Decimal("126.00")

    def test_capped_at_balance(self):
        """Test that the minimum never exceeds what is owed."""
        assert minimum_payment(10) == Decimal("10.00")
        assert minimum_payment(0) == Decimal("0.00")


class TestPaymentPlanning:
    """Tests for payment targets and comparisons."""

    def test_payment_for_interest_free_payoff(self):
        """Test the no-interest case."""
        assert payment_for_payoff_in_months(1200, 0, 12) == Decimal("100.00")

    def test_payment_for_payoff_meets_target(self):
        """Test that the computed payment clears the balance in time."""
        payment = payment_for_payoff_in_months(1200, "19.99", 12)
        projection = compute_payoff(1200, "19.99", payment, start_date=START)
        assert projection.months_to_payoff <= 12

    def test_compare_payments(self):
        """Test that paying more saves months and interest."""
        comparison = compare_payments(1200, "19.99", 100, 200, start_date=START)
        assert comparison.months_saved > 0
        assert comparison.interest_saved > Decimal("0")

    def test_compare_with_non_converging_payment(self):
        """Test that savings are unknown when one side never pays off."""
        comparison = compare_payments(1200, "19.99", 5, 100, start_date=START)
        assert comparison.months_saved is None
        assert comparison.interest_saved is None


class TestSnowball:
    """Tests for smallest-balance-first ordering."""

    def test_order_skips_paid_off(self):
        """Test ordering and filtering."""
        ordered = snowball_order([debt("Car", 300), debt("Store", 100), debt("Done", 0)])
        assert [item.name for item in ordered] == ["Store", "Car"]

    def test_budget_goes_to_smallest_after_minimums(self):
        """Test that extra money clears the smallest debt first."""
        store = debt("Store", 100, minimum=25)
        car = debt("Car", 300, minimum=50)
        payments = snowball_payments([car, store], 200)
        assert payments[store.id] == Decimal("100.00")
        assert payments[car.id] == Decimal("100.00")
