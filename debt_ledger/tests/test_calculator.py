"""
Unit Tests for the Debt Impact Calculator

Tests cover:
1. Every rule in the debt impact table
2. Sign flags agree with the change
3. Unknown input maps to zero impact instead of raising
4. Initial paid/remaining split
"""

import pytest
from datetime import datetime, timezone

from debt_ledger.calculator import (
    calculate_debt_impact,
    calculate_initial_amounts,
    effective_remaining_amount,
)
from debt_ledger.models import PaymentMethod, Transaction, TransactionType


class TestDebtImpactTable:
    """Tests for the documented impact of each transaction kind."""

    @pytest.mark.parametrize("method", ["cash", "bank_transfer", "pos_card"])
    def test_fully_paid_sale_has_no_impact(self, method):
        impact = calculate_debt_impact("sale", method, 5000)
        assert impact.change == 0
        assert not impact.is_increase
        assert not impact.is_decrease

    def test_credit_sale_increases_debt_by_amount(self):
        impact = calculate_debt_impact(TransactionType.SALE, PaymentMethod.CREDIT, 5000)
        assert impact.change == 5000
        assert impact.is_increase

    def test_mixed_sale_increases_debt_by_remaining(self):
        impact = calculate_debt_impact("sale", "mixed", 20000, remaining_amount=12000)
        assert impact.change == 12000
        assert impact.is_increase

    def test_mixed_sale_without_remaining_has_no_impact(self):
        assert calculate_debt_impact("sale", "mixed", 20000).change == 0

    def test_credit_transaction_increases_debt(self):
        impact = calculate_debt_impact("credit", None, 7000)
        assert impact.change == 7000

    def test_applied_payment_decreases_debt(self):
        impact = calculate_debt_impact("payment", "cash", 3000, True)
        assert impact.change == -3000
        assert impact.is_decrease
        assert not impact.is_increase

    def test_applied_payment_is_capped_by_known_debt(self):
        impact = calculate_debt_impact("payment", "cash", 15000, True, current_debt=10000)
        assert impact.change == -10000

    @pytest.mark.parametrize("applied", [False, None])
    def test_unapplied_payment_has_no_impact(self, applied):
        assert calculate_debt_impact("payment", "cash", 3000, applied).change == 0

    def test_refund_decreases_debt(self):
        impact = calculate_debt_impact("refund", "cash", 2500)
        assert impact.change == -2500
        assert impact.is_decrease


class TestTotality:
    """The calculator never raises, whatever it is given."""

    @pytest.mark.parametrize("tx_type,method,amount", [
        ("loan", "cash", 100),
        ("sale", "barter", 100),
        (None, None, None),
        ("refund", "cash", "not-a-number"),
        (42, [], 100),
    ])
    def test_unknown_input_maps_to_zero_or_defined_value(self, tx_type, method, amount):
        impact = calculate_debt_impact(tx_type, method, amount)
        assert impact.change == 0
        assert impact.is_increase is False
        assert impact.is_decrease is False


class TestInitialAmounts:
    """Tests for the paid/remaining split at creation time."""

    def test_credit_sale_starts_unpaid(self):
        assert calculate_initial_amounts("sale", "credit", 5000) == (0, 5000)

    def test_mixed_sale_uses_paid_amount(self):
        assert calculate_initial_amounts("sale", "mixed", 20000, 8000) == (8000, 12000)

    def test_mixed_sale_overpaid_clips_remaining(self):
        assert calculate_initial_amounts("sale", "mixed", 20000, 25000) == (25000, 0)

    def test_cash_sale_and_payment_are_fully_paid(self):
        assert calculate_initial_amounts("sale", "cash", 5000) == (5000, 0)
        assert calculate_initial_amounts("payment", "cash", 5000) == (5000, 0)

    def test_credit_transaction_starts_unpaid(self):
        assert calculate_initial_amounts("credit", "credit", 9000) == (0, 9000)

    def test_effective_remaining_derived_when_missing(self):
        tx = Transaction(
            id="tx-1",
            customer_id="cust-1",
            type=TransactionType.SALE,
            amount=20000,
            payment_method=PaymentMethod.MIXED,
            paid_amount=5000,
            date=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )
        assert effective_remaining_amount(tx) == 15000


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
