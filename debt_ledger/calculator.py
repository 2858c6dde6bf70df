"""
Debt impact rules.

Pure functions: no state, no I/O, and no exceptions for unknown input.
Anything the rules do not recognise has zero impact on the balance.
"""

from typing import Optional, Union

from .models import DebtImpact, PaymentMethod, Transaction, TransactionType

NO_IMPACT = DebtImpact(change=0, is_increase=False, is_decrease=False)


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        return None


def _as_amount(value) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def _impact(change: int) -> DebtImpact:
    return DebtImpact(change=change, is_increase=change > 0, is_decrease=change < 0)


def calculate_debt_impact(
    type: Union[TransactionType, str],
    payment_method: Union[PaymentMethod, str, None],
    amount: int,
    applied_to_debt: Optional[bool] = None,
    *,
    remaining_amount: Optional[int] = None,
    current_debt: Optional[int] = None,
) -> DebtImpact:
    """
    Signed change to the outstanding balance caused by one transaction.

    - sale paid in full (cash, transfer, card): 0
    - sale on credit: +amount
    - sale with mixed payment: +remaining_amount
    - credit (debt recognition): +amount
    - payment applied to debt: -amount, or -min(amount, current_debt) when the debt is known
    - payment not applied to debt: 0
    - refund: -amount
    """
    tx_type = _coerce(TransactionType, type)
    method = _coerce(PaymentMethod, payment_method) if payment_method is not None else PaymentMethod.CASH
    value = _as_amount(amount)

    if tx_type == TransactionType.SALE:
        if method == PaymentMethod.CREDIT:
            return _impact(value)
        if method == PaymentMethod.MIXED:
            return _impact(_as_amount(remaining_amount))
        return NO_IMPACT

    if tx_type == TransactionType.CREDIT:
        return _impact(value)

    if tx_type == TransactionType.PAYMENT:
        if not applied_to_debt:
            return NO_IMPACT
        if current_debt is not None:
            value = min(value, _as_amount(current_debt))
        return _impact(-value)

    if tx_type == TransactionType.REFUND:
        return _impact(-value)

    return NO_IMPACT


def calculate_initial_amounts(
    type: Union[TransactionType, str],
    payment_method: Union[PaymentMethod, str, None],
    amount: int,
    paid_amount: Optional[int] = None,
) -> tuple[int, int]:
    """Split a new transaction into the (paid, remaining) amounts it starts with."""
    tx_type = _coerce(TransactionType, type)
    method = _coerce(PaymentMethod, payment_method) if payment_method is not None else PaymentMethod.CASH
    total = _as_amount(amount)

    if tx_type == TransactionType.CREDIT:
        return 0, total

    if tx_type == TransactionType.SALE:
        if method == PaymentMethod.CREDIT:
            return 0, total
        if method == PaymentMethod.MIXED and paid_amount is not None:
            paid = _as_amount(paid_amount)
            return paid, max(total - paid, 0)

    return total, 0


def effective_remaining_amount(transaction: Transaction) -> int:
    """
    Unpaid portion of a transaction at creation time.

    Only a mixed sale carries its own remainder; every other kind is derived
    from its type and payment method, so a stored remaining_amount can never
    disagree with the debt impact rules.
    """
    if (
        transaction.type == TransactionType.SALE
        and transaction.payment_method == PaymentMethod.MIXED
        and transaction.remaining_amount is not None
    ):
        return transaction.remaining_amount
    _, remaining = calculate_initial_amounts(
        transaction.type,
        transaction.payment_method,
        transaction.amount,
        transaction.paid_amount,
    )
    return remaining


def transaction_debt_impact(transaction: Transaction, current_debt: Optional[int] = None) -> DebtImpact:
    return calculate_debt_impact(
        transaction.type,
        transaction.payment_method,
        transaction.amount,
        transaction.applied_to_debt,
        remaining_amount=effective_remaining_amount(transaction),
        current_debt=current_debt,
    )
