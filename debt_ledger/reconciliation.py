"""
Balance reconciliation.

Stored balances are a cache of the journal. A customer's balances are
correct exactly when they equal the result of replaying that customer's
whole journal, oldest first, through the same rules as the live write
path. The engine recomputes, compares with no tolerance, and overwrites
drifted values.
"""

import logging
from typing import Iterable, Optional

from .config import LedgerSettings, get_settings
from .credit import apply_transaction
from .locks import CustomerLockRegistry
from .models import BalanceCorrection, BalanceResolution, BalanceState, ReconciliationReport, Transaction

logger = logging.getLogger(__name__)


def journal_key(transaction: Transaction) -> tuple:
    return transaction.date, transaction.id


def journal_order(transactions: Iterable[Transaction]) -> list[Transaction]:
    return sorted(transactions, key=journal_key)


def is_backdated(transaction: Transaction, journal: Iterable[Transaction]) -> bool:
    """True when the transaction sorts before the newest event already in the journal."""
    keys = [journal_key(tx) for tx in journal]
    return bool(keys) and journal_key(transaction) < max(keys)


def replay(transactions: Iterable[Transaction], settings: Optional[LedgerSettings] = None) -> tuple[int, int]:
    """Canonical (outstanding, credit) for a journal, starting from zero."""
    settings = settings or get_settings()
    debt, credit = 0, 0
    for tx in journal_order(transactions):
        resolution = apply_transaction(debt, credit, tx, settings)
        debt, credit = resolution.outstanding_balance, resolution.credit_balance
    return debt, credit


def resolve_in_journal(
    stored: BalanceState,
    journal: Iterable[Transaction],
    transaction: Transaction,
    settings: Optional[LedgerSettings] = None,
) -> BalanceResolution:
    """
    Resolve a transaction at its sorted position in the journal.

    Balances come from replaying the whole journal with the transaction
    inserted; impact and audit entries are the transaction's own at that
    position. Later events keep the audit entries they were recorded with.
    """
    settings = settings or get_settings()
    debt, credit = 0, 0
    placed = None
    for tx in journal_order([*journal, transaction]):
        resolution = apply_transaction(debt, credit, tx, settings)
        if tx.id == transaction.id:
            placed = resolution
        debt, credit = resolution.outstanding_balance, resolution.credit_balance

    return BalanceResolution(
        previous_outstanding=stored.outstanding_balance,
        previous_credit=stored.credit_balance,
        outstanding_balance=debt,
        credit_balance=credit,
        impact=placed.impact,
        audit_entries=placed.audit_entries,
    )


class ReconciliationEngine:
    def __init__(
        self,
        storage,
        locks: Optional[CustomerLockRegistry] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self.storage = storage
        self.locks = locks or CustomerLockRegistry()
        self.settings = settings or get_settings()

    def compute_balances(self, customer_id: str) -> tuple[int, int]:
        return replay(self.storage.load_transactions(customer_id), self.settings)

    def reconcile_customer(self, customer_id: str) -> ReconciliationReport:
        report = ReconciliationReport()
        self._reconcile_into(customer_id, report)
        return report

    def reconcile_all(self, customer_ids: Optional[Iterable[str]] = None) -> ReconciliationReport:
        report = ReconciliationReport()
        ids = list(customer_ids) if customer_ids is not None else self.storage.list_customer_ids()
        for customer_id in ids:
            self._reconcile_into(customer_id, report)

        logger.info(
            f"Reconciliation checked {report.customers_checked} customers: "
            f"{len(report.corrections)} corrected, {len(report.skipped_customers)} skipped"
        )
        return report

    def _reconcile_into(self, customer_id: str, report: ReconciliationReport) -> None:
        with self.locks.try_hold(customer_id) as acquired:
            if not acquired:
                logger.warning(f"Skipping reconciliation for {customer_id}: customer is busy")
                report.skipped_customers.append(customer_id)
                return

            stored = self.storage.load_balance(customer_id)
            debt, credit = self.compute_balances(customer_id)
            report.customers_checked += 1

            if stored.outstanding_balance == debt and stored.credit_balance == credit:
                return

            current = self.storage.load_balance(customer_id)
            if current.version != stored.version:
                logger.warning(f"Skipping correction for {customer_id}: balance changed during replay")
                report.skipped_customers.append(customer_id)
                return

            self.storage.save_balance(customer_id, debt, credit)

        customer = self.storage.get_customer(customer_id) or {}
        correction = BalanceCorrection(
            customer_id=customer_id,
            name=customer.get("name"),
            previous_outstanding=stored.outstanding_balance,
            correct_outstanding=debt,
            previous_credit=stored.credit_balance,
            correct_credit=credit,
        )
        report.corrections.append(correction)
        logger.info(
            f"Corrected {customer_id}: outstanding {stored.outstanding_balance} -> {debt}, "
            f"credit {stored.credit_balance} -> {credit}"
        )
