"""In-memory loan store with relationship tracking."""

import copy
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal

from welfare_loans.exceptions import (
    ConcurrentUpdateError,
    EntityNotFoundError,
    LoanNotFoundError,
    ReferentialIntegrityError,
)
from welfare_loans.models import (
    AuditLogEntry,
    Loan,
    LoanRepaymentPayment,
    LoanStatus,
    Payment,
    PaymentType,
    ReconciliationRecord,
    ReconciliationStatus,
    ScheduleEntry,
    ScheduleStatus,
)

OPEN_RECONCILIATION_STATUSES = frozenset(
    {ReconciliationStatus.DISCREPANCY, ReconciliationStatus.PENDING}
)


@dataclass
class InMemoryLoanStore:
    """In-memory store for loans, schedules, payments and audit records."""

    # Primary entities
    loans: dict[str, Loan] = field(default_factory=dict)
    schedule_entries: dict[str, ScheduleEntry] = field(default_factory=dict)

    # Append-only
    payments: list[Payment] = field(default_factory=list)
    reconciliation_records: list[ReconciliationRecord] = field(default_factory=list)
    audit_entries: list[AuditLogEntry] = field(default_factory=list)

    # Relationship indexes
    _loan_entries: dict[str, list[str]] = field(default_factory=dict)
    _loan_payments: dict[str, list[int]] = field(default_factory=dict)

    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def add_loan(self, loan: Loan) -> None:
        """Add a loan to the store."""
        with self._lock:
            self.loans[loan.loan_id] = copy.copy(loan)
            self._loan_entries.setdefault(loan.loan_id, [])
            self._loan_payments.setdefault(loan.loan_id, [])

    def get_loan(self, loan_id: str) -> Loan:
        """Get a copy of a loan."""
        with self._lock:
            if loan_id not in self.loans:
                raise LoanNotFoundError(f"Loan {loan_id} not found")
            return copy.copy(self.loans[loan_id])

    def list_loans(self, statuses: Iterable[LoanStatus] | None = None) -> list[Loan]:
        """List loans, optionally filtered by status."""
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                copy.copy(loan)
                for loan in self.loans.values()
                if wanted is None or loan.status in wanted
            ]

    def _check_version(self, loan: Loan) -> None:
        stored = self.loans.get(loan.loan_id)
        if stored is None:
            raise LoanNotFoundError(f"Loan {loan.loan_id} not found")
        if stored.version != loan.version:
            raise ConcurrentUpdateError(
                f"Loan {loan.loan_id} changed since it was read "
                f"(version {loan.version}, stored {stored.version})"
            )

    def update_loan(self, loan: Loan) -> None:
        """Write back a loan read earlier, bumping its version."""
        with self._lock:
            self._check_version(loan)
            loan.version += 1
            loan.updated_at = datetime.now()
            self.loans[loan.loan_id] = copy.copy(loan)

    def save_allocation(self, loan: Loan, entries: list[ScheduleEntry]) -> None:
        """Write back a repaid loan and its installments together."""
        with self._lock:
            self._check_version(loan)
            for entry in entries:
                if entry.entry_id not in self.schedule_entries:
                    raise EntityNotFoundError(f"Schedule entry {entry.entry_id} not found")
            loan.version += 1
            loan.updated_at = datetime.now()
            self.loans[loan.loan_id] = copy.copy(loan)
            for entry in entries:
                self.schedule_entries[entry.entry_id] = copy.copy(entry)

    def add_schedule_entries(self, entries: list[ScheduleEntry]) -> None:
        """Add a loan's installments."""
        with self._lock:
            for entry in entries:
                if entry.loan_id not in self.loans:
                    raise ReferentialIntegrityError(f"Loan {entry.loan_id} not found")
            for entry in entries:
                self.schedule_entries[entry.entry_id] = copy.copy(entry)
                self._loan_entries[entry.loan_id].append(entry.entry_id)

    def get_schedule(self, loan_id: str) -> list[ScheduleEntry]:
        """Get all installments for a loan, in installment order."""
        with self._lock:
            entries = [
                copy.copy(self.schedule_entries[eid])
                for eid in self._loan_entries.get(loan_id, [])
            ]
        return sorted(entries, key=lambda e: e.installment_number)

    def next_pending_entry(self, loan_id: str) -> ScheduleEntry | None:
        """Get the oldest PENDING installment of a loan."""
        pending = [e for e in self.get_schedule(loan_id) if e.status == ScheduleStatus.PENDING]
        if not pending:
            return None
        return min(pending, key=lambda e: (e.due_date, e.installment_number))

    def update_schedule_entry(self, entry: ScheduleEntry) -> None:
        """Write back an installment."""
        with self._lock:
            if entry.entry_id not in self.schedule_entries:
                raise EntityNotFoundError(f"Schedule entry {entry.entry_id} not found")
            self.schedule_entries[entry.entry_id] = copy.copy(entry)

    def add_payment(self, payment: Payment) -> None:
        """Record a payment."""
        if payment.created_at is None:
            payment = replace(payment, created_at=datetime.now())
        with self._lock:
            idx = len(self.payments)
            if isinstance(payment, LoanRepaymentPayment):
                if payment.loan_id not in self.loans:
                    raise ReferentialIntegrityError(f"Loan {payment.loan_id} not found")
                self._loan_payments[payment.loan_id].append(idx)
            self.payments.append(payment)

    def list_payments(
        self,
        loan_id: str | None = None,
        payment_types: Iterable[PaymentType] | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Payment]:
        """List payments filtered by loan, type and inclusive date range."""
        types = set(payment_types) if payment_types is not None else None
        with self._lock:
            if loan_id is not None:
                candidates = [self.payments[i] for i in self._loan_payments.get(loan_id, [])]
            else:
                candidates = list(self.payments)
        return [
            p
            for p in candidates
            if (types is None or p.payment_type in types)
            and (start_date is None or p.payment_date >= start_date)
            and (end_date is None or p.payment_date <= end_date)
        ]

    def sum_payments(self, payment_types: Iterable[PaymentType]) -> Decimal:
        """Sum the amounts of payments of the given types."""
        return sum(
            (p.amount for p in self.list_payments(payment_types=payment_types)),
            Decimal("0.00"),
        )

    def add_reconciliation_record(self, record: ReconciliationRecord) -> None:
        """Append a reconciliation record."""
        with self._lock:
            self.reconciliation_records.append(record)

    def list_reconciliation_records(
        self, entity_id: str | None = None
    ) -> list[ReconciliationRecord]:
        """List reconciliation records, optionally for one loan."""
        with self._lock:
            return [
                r
                for r in self.reconciliation_records
                if entity_id is None or r.entity_id == entity_id
            ]

    def count_open_reconciliation_records(self) -> int:
        """Count records still in DISCREPANCY or PENDING."""
        with self._lock:
            return sum(
                1 for r in self.reconciliation_records if r.status in OPEN_RECONCILIATION_STATUSES
            )

    def add_audit_entry(self, entry: AuditLogEntry) -> None:
        """Append an audit-log entry."""
        with self._lock:
            self.audit_entries.append(entry)

    def list_audit_entries(self, entity_id: str | None = None) -> list[AuditLogEntry]:
        """List audit-log entries, optionally for one entity."""
        with self._lock:
            return [e for e in self.audit_entries if entity_id is None or e.entity_id == entity_id]

    def count_loan_numbers(self, prefix: str) -> int:
        """Count loans whose number starts with ``prefix``."""
        with self._lock:
            return sum(1 for loan in self.loans.values() if loan.loan_number.startswith(prefix))

    def count_receipts(self, prefix: str) -> int:
        """Count payments whose receipt number starts with ``prefix``."""
        with self._lock:
            return sum(1 for p in self.payments if p.receipt_number.startswith(prefix))

    def summary(self) -> dict[str, int]:
        """Return summary counts of all entities."""
        with self._lock:
            return {
                "loans": len(self.loans),
                "schedule_entries": len(self.schedule_entries),
                "payments": len(self.payments),
                "reconciliation_records": len(self.reconciliation_records),
                "audit_entries": len(self.audit_entries),
            }
