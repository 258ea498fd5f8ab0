"""
Tests for billing-cycle date math.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from envelope_ledger.ledger.billing_cycles import (
    compute_cycle_values,
    current_cycle_key,
    cycle_dates,
    next_cycle_key,
    parse_cycle_key,
    previous_cycle_key,
    suggest_payment_split,
)
from envelope_ledger.ledger.errors import LedgerValidationError
from envelope_ledger.models import CreditCardCycleHolding


class TestCycleKeys:
    """Tests for deriving and stepping cycle keys."""

    def test_on_close_day_stays_in_month(self):
        """Test that the close day itself belongs to this month's cycle."""
        assert current_cycle_key(date(2026, 1, 15), 15) == "2026-01"

    def test_after_close_day_moves_to_next_month(self):
        """Test that spending after the close day rolls forward."""
        assert current_cycle_key(date(2026, 1, 16), 15) == "2026-02"

    def test_december_rolls_into_next_year(self):
        """Test the year boundary."""
        assert current_cycle_key(date(2026, 12, 20), 15) == "2027-01"

    def test_previous_and_next(self):
        """Test stepping across year boundaries."""
        assert previous_cycle_key("2026-01") == "2025-12"
        assert next_cycle_key("2026-12") == "2027-01"

    @pytest.mark.parametrize("key", ["2026-13", "2026-1x", "26-01", "202601", ""])
    def test_malformed_keys_rejected(self, key):
        """Test that only YYYY-MM keys parse."""
        with pytest.raises(LedgerValidationError):
            parse_cycle_key(key)


class TestCycleDates:
    """Tests for statement close and payment due dates."""

    def test_close_clamps_to_january_end(self):
        """Test that a cycle due in February closes on 31 January."""
        assert cycle_dates("2026-02", 31, 15) == (date(2026, 1, 31), date(2026, 2, 15))

    def test_close_clamps_to_february_end(self):
        """Test that close day 31 closes on 28 February in a common year."""
        assert cycle_dates("2026-03", 31, 15) == (date(2026, 2, 28), date(2026, 3, 15))

    def test_leap_year_and_due_clamp(self):
        """Test leap-year February and a due day past month end."""
        assert cycle_dates("2024-03", 30, 31) == (date(2024, 2, 29), date(2024, 3, 31))
        assert cycle_dates("2026-04", 15, 31) == (date(2026, 3, 15), date(2026, 4, 30))


class TestCycleValues:
    """Tests for derived display values."""

    def _cycle(self, spending, covered):
        return CreditCardCycleHolding(
            owner_id=uuid4(),
            account_id=uuid4(),
            billing_cycle="2026-02",
            statement_close_date=date(2026, 1, 15),
            payment_due_date=date(2026, 2, 10),
            spending_amount=spending,
            covered_amount=covered,
        )

    def test_partial_coverage(self):
        """Test coverage and countdowns before the due date."""
        values = compute_cycle_values(self._cycle("200.00", "150.00"), date(2026, 2, 1))
        assert values.uncovered_amount == Decimal("50.00")
        assert values.coverage_percent == Decimal("75.00")
        assert values.days_until_close == -17
        assert values.days_until_due == 9
        assert values.is_overdue is False

    def test_overdue_after_due_date(self):
        """Test the overdue flag."""
        values = compute_cycle_values(self._cycle("200.00", "0"), date(2026, 2, 11))
        assert values.is_overdue is True
        assert values.coverage_percent == Decimal("0.00")

    def test_no_spending_is_fully_covered(self):
        """Test that an empty cycle counts as covered."""
        values = compute_cycle_values(self._cycle("0", "0"), date(2026, 2, 1))
        assert values.coverage_percent == Decimal("100.00")


class TestSuggestPaymentSplit:
    """Tests for the auto-split suggestion."""

    def test_interest_then_minimum_then_holding_then_debt(self):
        """Test the full waterfall."""
        split = suggest_payment_split(
            Decimal("500.00"), Decimal("150.00"), Decimal("10.00"), Decimal("25.00")
        )
        assert split.to_interest == Decimal("10.00")
        assert split.to_holding == Decimal("150.00")
        assert split.to_debt == Decimal("340.00")
        assert split.total == Decimal("500.00")
        assert "covers interest" in split.explanation

    def test_small_payment_stops_at_interest(self):
        """Test that a payment smaller than interest is all interest."""
        split = suggest_payment_split(Decimal("5.00"), Decimal("150.00"), Decimal("10.00"))
        assert split.to_interest == Decimal("5.00")
        assert split.to_holding == Decimal("0.00")
        assert split.to_debt == Decimal("0.00")

    def test_all_holding(self):
        """Test a payment that only releases holding money."""
        split = suggest_payment_split(Decimal("100.00"), Decimal("150.00"), Decimal("0"))
        assert split.to_holding == Decimal("100.00")
        assert split.explanation == "$100.00 covers your recent spending"
