"""
Unit Tests for the Link Integrity Checker

Tests cover:
1. Orphaned links (missing target, other customer's target)
2. Missing links (sale paid down by an unlinked payment)
3. Clean journals report nothing
4. Customer-scoped checks and read-only behaviour
5. Derived payment allocation per sale
"""

import pytest
from datetime import datetime, timedelta, timezone

from hypothesis import given, settings as hypothesis_settings, strategies as st

from debt_ledger.config import LedgerSettings
from debt_ledger.integrity import LinkIntegrityChecker, allocate_payments, analyze_links
from debt_ledger.models import PaymentMethod, SettlementStatus, SuggestedLink, Transaction, TransactionType
from debt_ledger.reconciliation import replay
from debt_ledger.storage import InMemoryStorage

START = datetime(2024, 4, 2, 10, 0, tzinfo=timezone.utc)


def make_tx(tx_id, type, amount, minutes=0, customer_id="cust-1", **fields):
    return Transaction(
        id=tx_id,
        customer_id=customer_id,
        type=type,
        amount=amount,
        date=START + timedelta(minutes=minutes),
        **fields,
    )


def mixed_sale(tx_id="tx-sale", minutes=0, customer_id="cust-1"):
    return make_tx(tx_id, TransactionType.SALE, 20000, minutes, customer_id,
                   payment_method=PaymentMethod.MIXED, paid_amount=8000, remaining_amount=12000)


def debt_payment(tx_id="tx-pay", minutes=30, customer_id="cust-1", linked=None, amount=12000):
    return make_tx(tx_id, TransactionType.PAYMENT, amount, minutes, customer_id,
                   applied_to_debt=True, linked_transaction_id=linked)


def by_id(statuses):
    return {s.transaction_id: s for s in statuses}


class TestOrphanedLinks:
    """Tests for links that point nowhere valid."""

    def test_link_to_nonexistent_transaction_is_orphaned(self):
        report = analyze_links([debt_payment(linked="tx-missing")])

        assert report.orphaned_links == 1
        assert report.orphaned_transaction_ids == ["tx-pay"]
        assert report.linked_transactions == 1
        assert any("do not exist" in r or "does not exist" in r for r in report.recommendations)

    def test_link_to_other_customers_transaction_is_orphaned(self):
        report = analyze_links([
            mixed_sale(customer_id="cust-2"),
            debt_payment(linked="tx-sale"),
        ])

        assert report.orphaned_links == 1

    def test_customer_scoped_check_sees_cross_customer_link_as_orphaned(self):
        storage = InMemoryStorage()
        storage.add_customer("cust-1", "Adaeze Okafor")
        storage.add_customer("cust-2", "Tunde Bakare")
        storage.append_transaction(mixed_sale(customer_id="cust-2"))
        storage.append_transaction(debt_payment(linked="tx-sale"))

        report = LinkIntegrityChecker(storage).check("cust-1")

        assert report.total_transactions == 1
        assert report.orphaned_links == 1


class TestMissingLinks:
    """Tests for sales paid down without a recorded link."""

    def test_unlinked_settling_payment_is_missing_link(self):
        report = analyze_links([mixed_sale(), debt_payment()])

        assert report.missing_links == 1
        assert report.unlinked_sale_ids == ["tx-sale"]
        assert any("backfilling" in r for r in report.recommendations)

    def test_payment_before_sale_does_not_count(self):
        report = analyze_links([debt_payment(minutes=0), mixed_sale(minutes=30)])

        assert report.missing_links == 0

    def test_fully_paid_sale_never_missing(self):
        cash_sale = make_tx("tx-sale", TransactionType.SALE, 5000, payment_method=PaymentMethod.CASH)
        report = analyze_links([cash_sale, debt_payment()])

        assert report.missing_links == 0

    def test_unapplied_payment_does_not_count(self):
        top_up = make_tx("tx-pay", TransactionType.PAYMENT, 12000, 30, applied_to_debt=False)
        report = analyze_links([mixed_sale(), top_up])

        assert report.missing_links == 0

    def test_sale_linking_to_its_payment_counts_as_linked(self):
        sale = make_tx("tx-sale", TransactionType.SALE, 5000,
                       payment_method=PaymentMethod.CREDIT, linked_transaction_id="tx-pay")
        report = analyze_links([sale, debt_payment()])

        assert report.missing_links == 0
        assert report.orphaned_links == 0

    def test_stored_remainder_on_cash_sale_is_ignored(self):
        cash_sale = make_tx("tx-sale", TransactionType.SALE, 5000,
                            payment_method=PaymentMethod.CASH, remaining_amount=5000)
        report = analyze_links([cash_sale, debt_payment(tx_id="tx-pay")])

        assert report.missing_links == 0

    def test_credit_sale_stored_as_settled_is_still_checked(self):
        credit_sale = make_tx("tx-sale", TransactionType.SALE, 5000,
                              payment_method=PaymentMethod.CREDIT, remaining_amount=0)
        report = analyze_links([credit_sale, debt_payment()])

        assert report.missing_links == 1

    def test_suggested_link_names_settling_payment(self):
        report = analyze_links([mixed_sale(), debt_payment()])

        assert report.suggested_links == [SuggestedLink(payment_id="tx-pay", sale_id="tx-sale", amount=12000)]
        assert any("tx-pay -> tx-sale" in r for r in report.recommendations)


class TestCleanJournal:
    """A properly linked journal reports nothing."""

    def test_linked_mixed_sale_and_payment(self):
        report = analyze_links([mixed_sale(), debt_payment(linked="tx-sale")])

        assert report.total_transactions == 2
        assert report.linked_transactions == 1
        assert report.orphaned_links == 0
        assert report.missing_links == 0
        assert report.recommendations == []

    def test_checker_does_not_mutate_storage(self):
        storage = InMemoryStorage()
        storage.add_customer("cust-1", "Adaeze Okafor")
        storage.append_transaction(mixed_sale())
        storage.append_transaction(debt_payment(linked="tx-gone"))
        before = (storage.load_transactions("cust-1"), storage.load_balance("cust-1"))

        LinkIntegrityChecker(storage).check()

        assert (storage.load_transactions("cust-1"), storage.load_balance("cust-1")) == before

    def test_empty_journal(self):
        report = analyze_links([])

        assert report.total_transactions == 0
        assert report.recommendations == []


class TestPaymentAllocation:
    """Tests for the derived per-sale payment status."""

    def credit_sale(self, tx_id, amount, minutes, **fields):
        return make_tx(tx_id, TransactionType.SALE, amount, minutes, payment_method=PaymentMethod.CREDIT, **fields)

    def test_oldest_debt_is_settled_first(self):
        statuses = by_id(allocate_payments([
            self.credit_sale("tx-old", 5000, 0),
            self.credit_sale("tx-new", 3000, 10),
            debt_payment(amount=6000, minutes=20),
        ]))

        assert statuses["tx-old"].status == SettlementStatus.PAID
        assert statuses["tx-old"].allocations[0].payment_id == "tx-pay"
        assert statuses["tx-new"].status == SettlementStatus.PARTIAL
        assert statuses["tx-new"].remaining_amount == 2000
        assert statuses["tx-new"].last_payment_date == START + timedelta(minutes=20)

    def test_linked_debt_is_settled_first(self):
        statuses = by_id(allocate_payments([
            self.credit_sale("tx-old", 5000, 0),
            self.credit_sale("tx-new", 3000, 10),
            debt_payment(amount=6000, minutes=20, linked="tx-new"),
        ]))

        assert statuses["tx-new"].remaining_amount == 0
        assert statuses["tx-old"].remaining_amount == 2000

    def test_overpayment_credit_settles_later_sale(self):
        statuses = by_id(allocate_payments([
            debt_payment(amount=8000, minutes=0),
            self.credit_sale("tx-sale", 5000, 10),
        ]))

        assert statuses["tx-sale"].status == SettlementStatus.PAID
        assert statuses["tx-sale"].allocations[0].from_credit is True
        assert statuses["tx-sale"].allocations[0].payment_id is None

    def test_mixed_sale_reports_paid_share(self):
        status = allocate_payments([mixed_sale()])[0]

        assert status.paid_at_sale == 8000
        assert status.remaining_amount == 12000
        assert status.percentage_paid == 40.0
        assert status.status == SettlementStatus.PARTIAL

    @given(rows=st.lists(st.tuples(
        st.sampled_from(["credit_sale", "mixed_sale", "cash_sale", "credit", "payment"]),
        st.integers(min_value=0, max_value=100_000),
        st.integers(min_value=0, max_value=50),
    ), max_size=25))
    @hypothesis_settings(max_examples=100, deadline=None)
    def test_remaining_amounts_add_up_to_replayed_debt(self, rows):
        kinds = {
            "credit_sale": dict(type=TransactionType.SALE, payment_method=PaymentMethod.CREDIT),
            "mixed_sale": dict(type=TransactionType.SALE, payment_method=PaymentMethod.MIXED),
            "cash_sale": dict(type=TransactionType.SALE, payment_method=PaymentMethod.CASH),
            "credit": dict(type=TransactionType.CREDIT),
            "payment": dict(type=TransactionType.PAYMENT, applied_to_debt=True),
        }
        journal = []
        for i, (kind, amount, minutes) in enumerate(rows):
            fields = dict(kinds[kind])
            tx_type = fields.pop("type")
            if kind == "mixed_sale":
                fields.update(paid_amount=amount // 3, remaining_amount=amount - amount // 3)
            journal.append(make_tx(f"tx-{i:03d}", tx_type, amount, minutes, **fields))

        statuses = allocate_payments(journal)
        debt, _ = replay(journal, LedgerSettings())

        assert all(s.remaining_amount >= 0 for s in statuses)
        assert sum(s.remaining_amount for s in statuses) == debt

    def test_checker_reports_customer_status(self):
        storage = InMemoryStorage()
        storage.add_customer("cust-1", "Adaeze Okafor")
        storage.append_transaction(mixed_sale())
        storage.append_transaction(debt_payment(linked="tx-sale"))

        statuses = LinkIntegrityChecker(storage).payment_status("cust-1")

        assert len(statuses) == 1
        assert statuses[0].status == SettlementStatus.PAID
        assert statuses[0].percentage_paid == 100.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
