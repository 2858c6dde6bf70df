import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .models import (
    AuditSummary, CreateTransactionRequest, CreditAuditEntry, CustomerBalance,
    LinkIntegrityReport, ReconciliationReport, RegisterCustomerRequest, SalePaymentStatus, TransactionResult,
)
from .service import (
    LedgerService, LedgerServiceError, CustomerNotFoundError,
    CustomerAlreadyExistsError, DuplicateTransactionError,
)
from .storage import InMemoryStorage

settings = get_settings()
logging.basicConfig(level=settings.log_level)

app = FastAPI(
    title="Customer Debt Ledger API",
    description="Debt and credit balances for small merchants, with reconciliation and link integrity checks",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ledger_service = LedgerService(storage=InMemoryStorage(seed=True), settings=settings)


def _not_found(customer_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Customer {customer_id} not found")


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "debt-ledger"}


@app.post("/customers", response_model=CustomerBalance, status_code=status.HTTP_201_CREATED, tags=["Customers"])
def register_customer(request: RegisterCustomerRequest) -> CustomerBalance:
    try:
        return ledger_service.register_customer(request.customer_id, request.name)
    except CustomerAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@app.get("/customers/{customer_id}/balance", response_model=CustomerBalance, tags=["Customers"])
def get_balance(customer_id: str) -> CustomerBalance:
    try:
        return ledger_service.get_balance(customer_id)
    except CustomerNotFoundError:
        raise _not_found(customer_id)


@app.post(
    "/customers/{customer_id}/transactions",
    response_model=TransactionResult,
    status_code=status.HTTP_201_CREATED,
    tags=["Transactions"],
)
def record_transaction(customer_id: str, request: CreateTransactionRequest) -> TransactionResult:
    try:
        return ledger_service.record_transaction(customer_id, request)
    except CustomerNotFoundError:
        raise _not_found(customer_id)
    except DuplicateTransactionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except LedgerServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.get("/customers/{customer_id}/audit", response_model=list[CreditAuditEntry], tags=["Audit"])
def get_audit_history(customer_id: str, limit: Optional[int] = None) -> list[CreditAuditEntry]:
    try:
        return ledger_service.get_audit_history(customer_id, limit)
    except CustomerNotFoundError:
        raise _not_found(customer_id)


@app.get("/customers/{customer_id}/audit/summary", response_model=AuditSummary, tags=["Audit"])
def get_audit_summary(customer_id: str) -> AuditSummary:
    try:
        return ledger_service.get_audit_summary(customer_id)
    except CustomerNotFoundError:
        raise _not_found(customer_id)


@app.get("/customers/{customer_id}/sales/status", response_model=list[SalePaymentStatus], tags=["Diagnostics"])
def get_payment_status(customer_id: str) -> list[SalePaymentStatus]:
    try:
        return ledger_service.get_payment_status(customer_id)
    except CustomerNotFoundError:
        raise _not_found(customer_id)


@app.post("/customers/{customer_id}/reconcile", response_model=ReconciliationReport, tags=["Diagnostics"])
def reconcile_customer(customer_id: str) -> ReconciliationReport:
    try:
        return ledger_service.reconcile_customer(customer_id)
    except CustomerNotFoundError:
        raise _not_found(customer_id)


@app.post("/reconcile", response_model=ReconciliationReport, tags=["Diagnostics"])
def reconcile_all() -> ReconciliationReport:
    return ledger_service.reconcile_all()


@app.get("/integrity/links", response_model=LinkIntegrityReport, tags=["Diagnostics"])
def check_links(customer_id: Optional[str] = None) -> LinkIntegrityReport:
    try:
        return ledger_service.check_links(customer_id)
    except CustomerNotFoundError:
        raise _not_found(customer_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
