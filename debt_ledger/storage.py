import threading
from datetime import datetime, timezone
from typing import Optional

from .models import BalanceState, CreditAuditEntry, PaymentMethod, Transaction, TransactionType


class StorageError(Exception):
    pass


class InMemoryStorage:
    """
    Reference implementation of the journal, balance and audit boundary.

    Transactions and audit entries are append-only. Every save_balance
    bumps the stored version so callers can detect concurrent writes.
    """

    def __init__(self, seed: bool = False):
        self.customers: dict[str, dict] = {}
        self.transactions: dict[str, Transaction] = {}
        self.journal: dict[str, list[str]] = {}
        self.balances: dict[str, BalanceState] = {}
        self.audit_entries: dict[str, list[CreditAuditEntry]] = {}
        self._write_lock = threading.Lock()
        if seed:
            self._seed_data()

    def _seed_data(self):
        self.add_customer("cust-adaeze", "Adaeze Okafor")
        self.add_customer("cust-tunde", "Tunde Bakare")
        opened = datetime(2024, 1, 8, 9, 30, tzinfo=timezone.utc)
        sale = Transaction(
            id="tx-seed-sale", customer_id="cust-tunde", type=TransactionType.SALE,
            amount=2000000, payment_method=PaymentMethod.MIXED,
            paid_amount=800000, remaining_amount=1200000, date=opened,
            description="Opening stock purchase",
        )
        self.append_transaction(sale)
        self.save_balance("cust-tunde", 1200000, 0)

    # Customers

    def add_customer(self, customer_id: str, name: str) -> dict:
        with self._write_lock:
            if customer_id in self.customers:
                raise StorageError(f"Customer {customer_id} already exists")
            customer = {
                "id": customer_id,
                "name": name,
                "created_at": datetime.now(timezone.utc),
            }
            self.customers[customer_id] = customer
            self.journal[customer_id] = []
            self.balances[customer_id] = BalanceState(customer_id=customer_id)
            self.audit_entries[customer_id] = []
            return customer

    def get_customer(self, customer_id: str) -> Optional[dict]:
        return self.customers.get(customer_id)

    def list_customer_ids(self) -> list[str]:
        return list(self.customers.keys())

    # Journal

    def append_transaction(self, transaction: Transaction) -> Transaction:
        with self._write_lock:
            if transaction.id in self.transactions:
                raise StorageError(f"Transaction {transaction.id} already exists")
            self.transactions[transaction.id] = transaction
            self.journal.setdefault(transaction.customer_id, []).append(transaction.id)
            return transaction

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self.transactions.get(transaction_id)

    def load_transactions(self, customer_id: str) -> list[Transaction]:
        return [self.transactions[tx_id] for tx_id in self.journal.get(customer_id, [])]

    def all_transactions(self) -> list[Transaction]:
        return list(self.transactions.values())

    # Balances

    def load_balance(self, customer_id: str) -> BalanceState:
        balance = self.balances.get(customer_id)
        if balance is None:
            return BalanceState(customer_id=customer_id)
        return balance.model_copy()

    def save_balance(self, customer_id: str, outstanding_balance: int, credit_balance: int) -> BalanceState:
        with self._write_lock:
            current = self.balances.get(customer_id)
            version = current.version + 1 if current else 1
            balance = BalanceState(
                customer_id=customer_id,
                outstanding_balance=outstanding_balance,
                credit_balance=credit_balance,
                version=version,
            )
            self.balances[customer_id] = balance
            return balance.model_copy()

    # Audit trail

    def append_audit_entry(self, entry: CreditAuditEntry) -> CreditAuditEntry:
        with self._write_lock:
            self.audit_entries.setdefault(entry.customer_id, []).append(entry)
            return entry

    def list_audit_entries(self, customer_id: str) -> list[CreditAuditEntry]:
        return list(self.audit_entries.get(customer_id, []))
