import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from .models import AuditEntryType, AuditSummary, AuditTypeTotals, CreditAuditEntry, PendingAuditEntry

logger = logging.getLogger(__name__)

CREDIT_EARNING_TYPES = (AuditEntryType.OVER_PAYMENT, AuditEntryType.CREDIT_NOTE)
CREDIT_SPENDING_TYPES = (AuditEntryType.CREDIT_APPLIED_TO_SALE,)


class AuditRecordError(Exception):
    """Raised when the trail could not store every entry it was given.

    ``recorded`` holds the entries that were stored before the failure and
    ``failed`` the pending entries that were not.
    """

    def __init__(self, message: str, recorded=None, failed=None):
        super().__init__(message)
        self.recorded: list[CreditAuditEntry] = list(recorded or [])
        self.failed: list[PendingAuditEntry] = list(failed or [])


class AuditTrailRecorder:
    """Appends immutable credit audit entries; never edits or removes them."""

    def __init__(self, storage):
        self.storage = storage

    def record(
        self,
        customer_id: str,
        type: AuditEntryType,
        amount: int,
        metadata: Optional[dict] = None,
        source_transaction_id: Optional[str] = None,
    ) -> str:
        entry = self._build(customer_id, PendingAuditEntry(
            type=type,
            amount=amount,
            source_transaction_id=source_transaction_id,
            metadata=metadata or {},
        ))
        return self._append(entry).id

    def record_pending(self, customer_id: str, pending: list[PendingAuditEntry]) -> list[CreditAuditEntry]:
        now = datetime.now(timezone.utc)
        recorded: list[CreditAuditEntry] = []
        for index, item in enumerate(pending):
            try:
                recorded.append(self._append(self._build(customer_id, item, now)))
            except AuditRecordError as e:
                raise AuditRecordError(str(e), recorded=recorded, failed=pending[index:]) from e
        return recorded

    def _build(
        self, customer_id: str, item: PendingAuditEntry, created_at: Optional[datetime] = None
    ) -> CreditAuditEntry:
        return CreditAuditEntry(
            id=f"audit-{uuid4()}",
            customer_id=customer_id,
            type=item.type,
            amount=item.amount,
            source_transaction_id=item.source_transaction_id,
            created_at=created_at or datetime.now(timezone.utc),
            metadata=item.metadata,
        )

    def _append(self, entry: CreditAuditEntry) -> CreditAuditEntry:
        try:
            self.storage.append_audit_entry(entry)
        except Exception as e:
            raise AuditRecordError(
                f"Failed to record {entry.type.value} audit entry for {entry.customer_id}: {e}"
            ) from e
        logger.debug(f"Recorded {entry.type.value} of {entry.amount} for {entry.customer_id}")
        return entry

    def history(self, customer_id: str, limit: Optional[int] = None) -> list[CreditAuditEntry]:
        entries = sorted(
            self.storage.list_audit_entries(customer_id),
            key=lambda e: e.created_at,
            reverse=True,
        )
        return entries[:limit] if limit is not None else entries

    def summary(self, customer_id: str) -> AuditSummary:
        entries = self.storage.list_audit_entries(customer_id)
        if not entries:
            return AuditSummary(customer_id=customer_id, total_entries=0, total_amount=0)

        by_type: dict[str, AuditTypeTotals] = {}
        for entry in entries:
            totals = by_type.setdefault(entry.type.value, AuditTypeTotals())
            totals.count += 1
            totals.amount += entry.amount

        dates = sorted(e.created_at for e in entries)
        return AuditSummary(
            customer_id=customer_id,
            total_entries=len(entries),
            total_amount=sum(e.amount for e in entries),
            by_type=by_type,
            earliest=dates[0],
            latest=dates[-1],
            credit_earned=sum(e.amount for e in entries if e.type in CREDIT_EARNING_TYPES),
            credit_used=sum(e.amount for e in entries if e.type in CREDIT_SPENDING_TYPES),
        )
