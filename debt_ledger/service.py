import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from .audit import AuditRecordError, AuditTrailRecorder
from .calculator import calculate_initial_amounts
from .config import LedgerSettings, get_settings
from .credit import apply_transaction
from .integrity import LinkIntegrityChecker
from .locks import CustomerLockRegistry
from .models import (
    AuditSummary,
    CreateTransactionRequest,
    CreditAuditEntry,
    CustomerBalance,
    LinkIntegrityReport,
    PaymentMethod,
    ReconciliationReport,
    SalePaymentStatus,
    Transaction,
    TransactionResult,
    TransactionType,
)
from .reconciliation import ReconciliationEngine, is_backdated, resolve_in_journal
from .storage import InMemoryStorage, StorageError

logger = logging.getLogger(__name__)


class LedgerServiceError(Exception):
    pass


class InvalidTransactionError(LedgerServiceError):
    pass


class CustomerNotFoundError(LedgerServiceError):
    pass


class CustomerAlreadyExistsError(LedgerServiceError):
    pass


class DuplicateTransactionError(LedgerServiceError):
    pass


class LedgerService:
    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        settings: Optional[LedgerSettings] = None,
        locks: Optional[CustomerLockRegistry] = None,
    ):
        self.storage = storage or InMemoryStorage()
        self.settings = settings or get_settings()
        self.locks = locks or CustomerLockRegistry()
        self.audit = AuditTrailRecorder(self.storage)
        self.reconciler = ReconciliationEngine(self.storage, self.locks, self.settings)
        self.link_checker = LinkIntegrityChecker(self.storage)
        self.audit_gaps: list[dict] = []

    def register_customer(self, customer_id: str, name: str) -> CustomerBalance:
        if self.storage.get_customer(customer_id):
            raise CustomerAlreadyExistsError(f"Customer {customer_id} already exists")
        self.storage.add_customer(customer_id, name)
        return self.get_balance(customer_id)

    def record_transaction(self, customer_id: str, request: CreateTransactionRequest) -> TransactionResult:
        customer = self._get_customer(customer_id)
        self._validate(request)

        paid, remaining = request.paid_amount, request.remaining_amount
        if remaining is None:
            derived_paid, remaining = calculate_initial_amounts(
                request.type, request.payment_method, request.amount, paid
            )
            paid = derived_paid if paid is None else paid
        elif paid is None:
            paid = request.amount - remaining

        transaction = Transaction(
            id=request.id or f"tx-{uuid4()}",
            customer_id=customer_id,
            type=request.type,
            amount=request.amount,
            payment_method=request.payment_method,
            paid_amount=paid,
            remaining_amount=remaining,
            applied_to_debt=request.applied_to_debt,
            linked_transaction_id=request.linked_transaction_id,
            description=request.description,
            date=self._event_time(request.date),
        )

        with self.locks.hold(customer_id):
            if self.storage.get_transaction(transaction.id):
                raise DuplicateTransactionError(f"Transaction {transaction.id} already exists")

            balance = self.storage.load_balance(customer_id)
            journal = self.storage.load_transactions(customer_id)
            if is_backdated(transaction, journal):
                logger.info(f"Transaction {transaction.id} sorts before the journal head; replaying {customer_id}")
                resolution = resolve_in_journal(balance, journal, transaction, self.settings)
            else:
                resolution = apply_transaction(
                    balance.outstanding_balance, balance.credit_balance, transaction, self.settings
                )

            try:
                self.storage.append_transaction(transaction)
            except StorageError as e:
                # Ids are global; another customer's write can claim the id after the check above.
                raise DuplicateTransactionError(f"Transaction {transaction.id} already exists") from e
            self.storage.save_balance(customer_id, resolution.outstanding_balance, resolution.credit_balance)

            audit_recorded = True
            try:
                entries = self.audit.record_pending(customer_id, resolution.audit_entries)
            except AuditRecordError as e:
                # Balance write is authoritative; reconciliation does not read the audit trail.
                logger.warning(f"Audit gap for transaction {transaction.id}: {e}")
                entries = e.recorded
                audit_recorded = False
                self.audit_gaps.append({
                    "customer_id": customer_id,
                    "transaction_id": transaction.id,
                    "recorded": [entry.id for entry in e.recorded],
                    "missing": [item.type.value for item in e.failed],
                    "error": str(e),
                    "at": datetime.now(timezone.utc),
                })

        logger.info(
            f"Recorded {transaction.type.value} {transaction.id} for {customer_id}: "
            f"debt change {resolution.debt_change}, credit change {resolution.credit_change}"
        )

        return TransactionResult(
            transaction=transaction,
            balance=CustomerBalance(
                customer_id=customer_id,
                name=customer["name"],
                outstanding_balance=resolution.outstanding_balance,
                credit_balance=resolution.credit_balance,
                currency=self.settings.currency,
            ),
            impact=resolution.impact,
            audit_entries=entries,
            audit_recorded=audit_recorded,
            message=self._describe(resolution.debt_change, resolution.credit_change),
        )

    def get_balance(self, customer_id: str) -> CustomerBalance:
        customer = self._get_customer(customer_id)
        balance = self.storage.load_balance(customer_id)
        return CustomerBalance(
            customer_id=customer_id,
            name=customer["name"],
            outstanding_balance=balance.outstanding_balance,
            credit_balance=balance.credit_balance,
            currency=self.settings.currency,
        )

    def get_audit_history(self, customer_id: str, limit: Optional[int] = None) -> list[CreditAuditEntry]:
        self._get_customer(customer_id)
        return self.audit.history(customer_id, limit)

    def get_audit_summary(self, customer_id: str) -> AuditSummary:
        self._get_customer(customer_id)
        return self.audit.summary(customer_id)

    def reconcile_customer(self, customer_id: str) -> ReconciliationReport:
        self._get_customer(customer_id)
        return self.reconciler.reconcile_customer(customer_id)

    def reconcile_all(self) -> ReconciliationReport:
        return self.reconciler.reconcile_all()

    def check_links(self, customer_id: Optional[str] = None) -> LinkIntegrityReport:
        if customer_id is not None:
            self._get_customer(customer_id)
        return self.link_checker.check(customer_id)

    def get_payment_status(self, customer_id: str) -> list[SalePaymentStatus]:
        self._get_customer(customer_id)
        return self.link_checker.payment_status(customer_id)

    def _get_customer(self, customer_id: str) -> dict:
        customer = self.storage.get_customer(customer_id)
        if not customer:
            raise CustomerNotFoundError(f"Customer {customer_id} not found")
        return customer

    def _validate(self, request: CreateTransactionRequest) -> None:
        if request.amount < 0:
            raise InvalidTransactionError("Amount cannot be negative")
        for field in ("paid_amount", "remaining_amount"):
            value = getattr(request, field)
            if value is not None and not 0 <= value <= request.amount:
                raise InvalidTransactionError(f"{field} must be between 0 and the transaction amount")
        if request.type == TransactionType.SALE:
            self._validate_sale_split(request)
        if request.linked_transaction_id is not None and request.linked_transaction_id == request.id:
            raise InvalidTransactionError("A transaction cannot link to itself")

    @staticmethod
    def _validate_sale_split(request: CreateTransactionRequest) -> None:
        paid, remaining = request.paid_amount, request.remaining_amount
        if request.payment_method == PaymentMethod.MIXED:
            if paid is not None and remaining is not None and paid + remaining != request.amount:
                raise InvalidTransactionError("Mixed payment amounts must add up to the total amount")
        elif request.payment_method == PaymentMethod.CREDIT:
            if remaining not in (None, request.amount) or paid not in (None, 0):
                raise InvalidTransactionError("A credit sale leaves the whole amount unpaid")
        elif remaining not in (None, 0) or paid not in (None, request.amount):
            raise InvalidTransactionError(
                f"A {request.payment_method.value} sale is paid in full and cannot carry a remaining amount"
            )

    @staticmethod
    def _event_time(value: Optional[datetime]) -> datetime:
        if value is None:
            return datetime.now(timezone.utc)
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @staticmethod
    def _describe(debt_change: int, credit_change: int) -> str:
        if debt_change > 0:
            return "Debt increased"
        if debt_change < 0 and credit_change > 0:
            return "Debt cleared and excess converted to credit"
        if debt_change < 0:
            return "Debt reduced"
        if credit_change > 0:
            return "Credit added"
        if credit_change < 0:
            return "Credit applied"
        return "No balance change"
