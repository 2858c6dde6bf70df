import logging
from typing import Iterable, Optional

from .calculator import effective_remaining_amount
from .models import (
    LinkIntegrityReport,
    PaymentAllocation,
    SalePaymentStatus,
    SettlementStatus,
    SuggestedLink,
    Transaction,
    TransactionType,
)
from .reconciliation import journal_order

logger = logging.getLogger(__name__)

DEBT_CREATING_TYPES = (TransactionType.SALE, TransactionType.CREDIT)


def _is_debt_reducing_payment(tx: Transaction) -> bool:
    return tx.type == TransactionType.PAYMENT and bool(tx.applied_to_debt) and tx.amount > 0


def _settle(status: SalePaymentStatus, allocation: PaymentAllocation) -> None:
    status.allocations.append(allocation)
    status.remaining_amount -= allocation.amount
    status.last_payment_date = allocation.date


def _finish(status: SalePaymentStatus) -> SalePaymentStatus:
    if status.remaining_amount == 0:
        status.status = SettlementStatus.PAID
    elif status.remaining_amount < status.total_amount:
        status.status = SettlementStatus.PARTIAL
    else:
        status.status = SettlementStatus.UNPAID
    if status.total_amount:
        settled = status.total_amount - status.remaining_amount
        status.percentage_paid = round(settled / status.total_amount * 100, 2)
    else:
        status.percentage_paid = 100.0
    return status


def allocate_payments(transactions: Iterable[Transaction]) -> list[SalePaymentStatus]:
    """
    Derive how far each sale and credit transaction has been paid down.

    Walks each customer's journal oldest first. An applied payment settles
    the debt it is linked to (in either direction) first, then the oldest
    open debts. Whatever a payment leaves over is held as credit and spent
    on the next sales, the same way balance resolution spends it. Refunds
    and unapplied payments are not attributed to individual sales.

    Read-only: stored transactions are never changed.
    """
    journal = journal_order(transactions)
    links = {tx.id: tx.linked_transaction_id for tx in journal}
    statuses: dict[str, SalePaymentStatus] = {}
    open_debts: dict[str, list[str]] = {}
    credit_pool: dict[str, int] = {}

    for tx in journal:
        customer = tx.customer_id
        if tx.type in DEBT_CREATING_TYPES:
            remaining = effective_remaining_amount(tx)
            status = SalePaymentStatus(
                transaction_id=tx.id,
                customer_id=customer,
                type=tx.type,
                date=tx.date,
                total_amount=tx.amount,
                paid_at_sale=tx.amount - remaining,
                initial_remaining=remaining,
                remaining_amount=remaining,
            )
            statuses[tx.id] = status

            credit = credit_pool.get(customer, 0)
            if tx.type == TransactionType.SALE and remaining > 0 and credit > 0:
                used = min(credit, remaining)
                credit_pool[customer] = credit - used
                _settle(status, PaymentAllocation(amount=used, date=tx.date, from_credit=True))
            if status.remaining_amount > 0:
                open_debts.setdefault(customer, []).append(tx.id)

        elif _is_debt_reducing_payment(tx):
            queue = open_debts.get(customer, [])
            preferred = {
                debt_id for debt_id in queue
                if debt_id == tx.linked_transaction_id or links.get(debt_id) == tx.id
            }
            left = tx.amount
            for debt_id in sorted(queue, key=lambda debt_id: debt_id not in preferred):
                if left <= 0:
                    break
                status = statuses[debt_id]
                share = min(left, status.remaining_amount)
                _settle(status, PaymentAllocation(payment_id=tx.id, amount=share, date=tx.date))
                left -= share
            open_debts[customer] = [debt_id for debt_id in queue if statuses[debt_id].remaining_amount > 0]
            credit_pool[customer] = credit_pool.get(customer, 0) + left

    return [_finish(status) for status in statuses.values()]


def analyze_links(transactions: Iterable[Transaction]) -> LinkIntegrityReport:
    """
    Check the links between sales and the payments that settle them.

    Orphaned: a link to an id that is not in the journal, or that belongs
    to another customer. Missing: a sale with an unpaid remainder that was
    followed by an unlinked debt-reducing payment while nothing links it to
    a payment. For each missing link, the payment allocation names the
    unlinked payments that would settle the sale. Read-only.
    """
    journal = list(transactions)
    by_id = {tx.id: tx for tx in journal}

    orphaned: list[str] = []
    linked_sale_ids: set[str] = set()
    linked_count = 0

    for tx in journal:
        if tx.linked_transaction_id is None:
            continue
        linked_count += 1
        target = by_id.get(tx.linked_transaction_id)
        if target is None or target.customer_id != tx.customer_id:
            orphaned.append(tx.id)
            continue
        if tx.type == TransactionType.SALE:
            linked_sale_ids.add(tx.id)
        if target.type == TransactionType.SALE:
            linked_sale_ids.add(target.id)

    unlinked_payments = [
        tx for tx in journal
        if _is_debt_reducing_payment(tx) and tx.linked_transaction_id is None
    ]

    unlinked_sales: list[str] = []
    for tx in journal:
        if tx.type != TransactionType.SALE or tx.id in linked_sale_ids:
            continue
        if effective_remaining_amount(tx) <= 0:
            continue
        paid_after = any(
            p.customer_id == tx.customer_id and (p.date, p.id) >= (tx.date, tx.id)
            for p in unlinked_payments
        )
        if paid_after:
            unlinked_sales.append(tx.id)

    suggestions: list[SuggestedLink] = []
    if unlinked_sales:
        unlinked_payment_ids = {p.id for p in unlinked_payments}
        for status in allocate_payments(journal):
            if status.transaction_id not in unlinked_sales:
                continue
            suggestions.extend(
                SuggestedLink(payment_id=a.payment_id, sale_id=status.transaction_id, amount=a.amount)
                for a in status.allocations
                if a.payment_id in unlinked_payment_ids
            )

    recommendations = []
    if orphaned:
        logger.warning(f"Found {len(orphaned)} orphaned transaction links")
        recommendations.append(
            f"{len(orphaned)} transactions link to a transaction that does not exist for the same "
            f"customer; clear or repair their linked_transaction_id"
        )
    if unlinked_sales:
        message = (
            f"{len(unlinked_sales)} sales with an unpaid balance were paid down without a recorded "
            f"link; consider backfilling linked_transaction_id on the settling payments"
        )
        if suggestions:
            pairs = ", ".join(f"{s.payment_id} -> {s.sale_id}" for s in suggestions)
            message += f" ({pairs})"
        recommendations.append(message)

    return LinkIntegrityReport(
        total_transactions=len(journal),
        linked_transactions=linked_count,
        orphaned_links=len(orphaned),
        missing_links=len(unlinked_sales),
        orphaned_transaction_ids=orphaned,
        unlinked_sale_ids=unlinked_sales,
        suggested_links=suggestions,
        recommendations=recommendations,
    )


class LinkIntegrityChecker:
    def __init__(self, storage):
        self.storage = storage

    def check(self, customer_id: Optional[str] = None) -> LinkIntegrityReport:
        if customer_id is None:
            return analyze_links(self.storage.all_transactions())
        return analyze_links(self.storage.load_transactions(customer_id))

    def payment_status(self, customer_id: str) -> list[SalePaymentStatus]:
        return allocate_payments(self.storage.load_transactions(customer_id))
