"""
Credit application: resolve one transaction against a customer's balances.

The calculator only classifies an event; this module clips it against the
real (outstanding, credit) pair, converting over-payments into credit and
spending stored credit on new sales. Both balances stay non-negative.
"""

import logging
from typing import Optional

from .calculator import transaction_debt_impact
from .config import LedgerSettings, get_settings
from .models import (
    AuditEntryType,
    BalanceResolution,
    PendingAuditEntry,
    RefundOvershootPolicy,
    Transaction,
    TransactionType,
)

logger = logging.getLogger(__name__)


def settle_payment(amount: int, outstanding_balance: int) -> tuple[int, int]:
    """Split a payment into (debt cleared, credit created)."""
    reduction = min(amount, outstanding_balance)
    return reduction, amount - reduction


def offset_with_credit(debt_increase: int, credit_balance: int) -> tuple[int, int]:
    """Split a debt increase into (credit consumed, net debt added)."""
    offset = min(credit_balance, debt_increase)
    return offset, debt_increase - offset


def apply_transaction(
    outstanding_balance: int,
    credit_balance: int,
    transaction: Transaction,
    settings: Optional[LedgerSettings] = None,
) -> BalanceResolution:
    settings = settings or get_settings()
    outstanding = max(outstanding_balance, 0)
    credit = max(credit_balance, 0)
    impact = transaction_debt_impact(transaction)
    entries: list[PendingAuditEntry] = []

    def audit(entry_type: AuditEntryType, amount: int, **metadata) -> None:
        entries.append(PendingAuditEntry(
            type=entry_type,
            amount=amount,
            source_transaction_id=transaction.id,
            metadata=metadata,
        ))

    if transaction.type == TransactionType.PAYMENT:
        if transaction.applied_to_debt:
            reduction, overpayment = settle_payment(transaction.amount, outstanding)
            outstanding -= reduction
            if overpayment > 0:
                credit += overpayment
                audit(
                    AuditEntryType.OVER_PAYMENT, overpayment,
                    reason="Excess payment converted to credit",
                    debt_cleared=reduction,
                )
        elif settings.treat_unapplied_payment_as_credit and transaction.amount > 0:
            credit += transaction.amount
            audit(AuditEntryType.CREDIT_NOTE, transaction.amount, reason="Unapplied payment held as credit")

    elif transaction.type == TransactionType.SALE and impact.is_increase:
        offset, net_increase = offset_with_credit(impact.change, credit)
        credit -= offset
        outstanding += net_increase
        if offset > 0:
            audit(
                AuditEntryType.CREDIT_APPLIED_TO_SALE, offset,
                reason="Credit used for purchase",
                sale_exposure=impact.change,
            )

    elif transaction.type == TransactionType.REFUND:
        reduction, excess = settle_payment(transaction.amount, outstanding)
        outstanding -= reduction
        if excess > 0:
            if settings.refund_overshoot_policy == RefundOvershootPolicy.CREDIT:
                credit += excess
                audit(AuditEntryType.OVER_PAYMENT, excess, reason="Refund exceeding debt converted to credit")
            else:
                audit(AuditEntryType.CORRECTION, excess, reason="Refund exceeding debt clipped at zero")

    else:
        outstanding = max(outstanding + impact.change, 0)

    logger.debug(
        f"Resolved {transaction.type.value} {transaction.id}: "
        f"outstanding {outstanding_balance} -> {outstanding}, credit {credit_balance} -> {credit}"
    )

    return BalanceResolution(
        previous_outstanding=outstanding_balance,
        previous_credit=credit_balance,
        outstanding_balance=outstanding,
        credit_balance=credit,
        impact=impact,
        audit_entries=entries,
    )
