"""
Customer Debt and Credit Ledger

This module provides:
- Debt impact rules for sales, payments, credits and refunds
- Credit application: over-payments become credit, credit pays down new sales
- Append-only credit audit trail
- Reconciliation of stored balances by replaying the transaction journal
- Integrity checks for links between sales and the payments that settle them
- Derived per-sale payment status, oldest debts settled first
"""

from .calculator import calculate_debt_impact, calculate_initial_amounts
from .credit import apply_transaction
from .integrity import LinkIntegrityChecker, allocate_payments, analyze_links
from .models import (
    AuditEntryType,
    BalanceState,
    CreditAuditEntry,
    PaymentMethod,
    Transaction,
    TransactionType,
)
from .reconciliation import ReconciliationEngine, replay
from .service import LedgerService

__all__ = [
    "AuditEntryType",
    "BalanceState",
    "CreditAuditEntry",
    "PaymentMethod",
    "Transaction",
    "TransactionType",
    "LedgerService",
    "ReconciliationEngine",
    "LinkIntegrityChecker",
    "allocate_payments",
    "analyze_links",
    "apply_transaction",
    "calculate_debt_impact",
    "calculate_initial_amounts",
    "replay",
]
