from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class TransactionType(str, Enum):
    SALE = "sale"
    PAYMENT = "payment"
    CREDIT = "credit"
    REFUND = "refund"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    POS_CARD = "pos_card"
    CREDIT = "credit"
    MIXED = "mixed"


class AuditEntryType(str, Enum):
    OVER_PAYMENT = "over_payment"
    CREDIT_APPLIED_TO_SALE = "credit_applied_to_sale"
    CORRECTION = "correction"
    CREDIT_NOTE = "credit_note"


class SettlementStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class RefundOvershootPolicy(str, Enum):
    CREDIT = "credit"
    CLIP = "clip"


class Transaction(BaseModel):
    id: str
    customer_id: str
    type: TransactionType
    amount: int = Field(..., ge=0, description="Amount in the smallest currency unit")
    payment_method: PaymentMethod = PaymentMethod.CASH
    paid_amount: Optional[int] = Field(default=None, ge=0)
    remaining_amount: Optional[int] = Field(default=None, ge=0)
    applied_to_debt: Optional[bool] = None
    linked_transaction_id: Optional[str] = None
    description: Optional[str] = None
    date: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)


class BalanceState(BaseModel):
    customer_id: str
    outstanding_balance: int = Field(default=0, ge=0)
    credit_balance: int = Field(default=0, ge=0)
    version: int = 0

    model_config = ConfigDict(from_attributes=True)


class CreditAuditEntry(BaseModel):
    id: str
    customer_id: str
    type: AuditEntryType
    amount: int = Field(..., ge=0)
    source_transaction_id: Optional[str] = None
    created_at: datetime
    metadata: dict = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True, frozen=True)


class DebtImpact(BaseModel):
    change: int
    is_increase: bool
    is_decrease: bool


class PendingAuditEntry(BaseModel):
    """An audit entry produced by balance resolution, not yet persisted."""

    type: AuditEntryType
    amount: int
    source_transaction_id: Optional[str] = None
    metadata: dict = Field(default_factory=dict)


class BalanceResolution(BaseModel):
    previous_outstanding: int
    previous_credit: int
    outstanding_balance: int
    credit_balance: int
    impact: DebtImpact
    audit_entries: list[PendingAuditEntry] = Field(default_factory=list)

    @property
    def debt_change(self) -> int:
        return self.outstanding_balance - self.previous_outstanding

    @property
    def credit_change(self) -> int:
        return self.credit_balance - self.previous_credit


class BalanceCorrection(BaseModel):
    customer_id: str
    name: Optional[str] = None
    previous_outstanding: int
    correct_outstanding: int
    previous_credit: int
    correct_credit: int


class ReconciliationReport(BaseModel):
    corrections: list[BalanceCorrection] = Field(default_factory=list)
    skipped_customers: list[str] = Field(default_factory=list)
    customers_checked: int = 0

    @property
    def is_consistent(self) -> bool:
        return not self.corrections and not self.skipped_customers


class SuggestedLink(BaseModel):
    payment_id: str
    sale_id: str
    amount: int


class LinkIntegrityReport(BaseModel):
    total_transactions: int
    linked_transactions: int
    orphaned_links: int
    missing_links: int
    orphaned_transaction_ids: list[str] = Field(default_factory=list)
    unlinked_sale_ids: list[str] = Field(default_factory=list)
    suggested_links: list[SuggestedLink] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class PaymentAllocation(BaseModel):
    """A share of a debt-creating transaction settled by one payment or by stored credit."""

    payment_id: Optional[str] = None
    amount: int
    date: datetime
    from_credit: bool = False


class SalePaymentStatus(BaseModel):
    transaction_id: str
    customer_id: str
    type: TransactionType
    date: datetime
    total_amount: int
    paid_at_sale: int
    initial_remaining: int
    remaining_amount: int
    status: SettlementStatus = SettlementStatus.UNPAID
    percentage_paid: float = 0.0
    allocations: list[PaymentAllocation] = Field(default_factory=list)
    last_payment_date: Optional[datetime] = None


class AuditTypeTotals(BaseModel):
    count: int = 0
    amount: int = 0


class AuditSummary(BaseModel):
    customer_id: str
    total_entries: int
    total_amount: int
    by_type: dict[str, AuditTypeTotals] = Field(default_factory=dict)
    earliest: Optional[datetime] = None
    latest: Optional[datetime] = None
    credit_earned: int = 0
    credit_used: int = 0


class RegisterCustomerRequest(BaseModel):
    customer_id: str
    name: str

    model_config = ConfigDict(json_schema_extra={
        "example": {"customer_id": "cust-001", "name": "Adaeze Okafor"}
    })


class CustomerBalance(BaseModel):
    customer_id: str
    name: Optional[str] = None
    outstanding_balance: int
    credit_balance: int
    currency: str = "NGN"


class CreateTransactionRequest(BaseModel):
    id: Optional[str] = Field(default=None, description="Client-supplied id; generated when omitted")
    type: TransactionType
    amount: int
    payment_method: PaymentMethod = PaymentMethod.CASH
    paid_amount: Optional[int] = None
    remaining_amount: Optional[int] = None
    applied_to_debt: Optional[bool] = None
    linked_transaction_id: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "type": "sale",
            "amount": 2000000,
            "payment_method": "mixed",
            "paid_amount": 800000,
            "remaining_amount": 1200000,
        }
    })


class TransactionResult(BaseModel):
    transaction: Transaction
    balance: CustomerBalance
    impact: DebtImpact
    audit_entries: list[CreditAuditEntry] = Field(default_factory=list)
    audit_recorded: bool = True
    message: str
