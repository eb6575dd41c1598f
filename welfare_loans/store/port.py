"""Persistence port consumed by the ledger components."""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Protocol

from welfare_loans.models import (
    AuditLogEntry,
    Loan,
    LoanStatus,
    Payment,
    PaymentType,
    ReconciliationRecord,
    ScheduleEntry,
)


class LoanRepository(Protocol):
    """Storage operations the ledger needs.

    Implementations hand out copies: mutating a returned ``Loan`` or
    ``ScheduleEntry`` has no effect until it is written back. ``update_loan``
    is optimistic: it fails with ``ConcurrentUpdateError`` when the stored
    version differs from ``loan.version`` and bumps the version otherwise.
    ``save_allocation`` does the same for a loan together with the
    installments a repayment touched, writing all of them or none.
    """

    def add_loan(self, loan: Loan) -> None: ...

    def get_loan(self, loan_id: str) -> Loan: ...

    def list_loans(self, statuses: Iterable[LoanStatus] | None = None) -> list[Loan]: ...

    def update_loan(self, loan: Loan) -> None: ...

    def add_schedule_entries(self, entries: list[ScheduleEntry]) -> None: ...

    def get_schedule(self, loan_id: str) -> list[ScheduleEntry]: ...

    def next_pending_entry(self, loan_id: str) -> ScheduleEntry | None: ...

    def update_schedule_entry(self, entry: ScheduleEntry) -> None: ...

    def save_allocation(self, loan: Loan, entries: list[ScheduleEntry]) -> None: ...

    def add_payment(self, payment: Payment) -> None: ...

    def list_payments(
        self,
        loan_id: str | None = None,
        payment_types: Iterable[PaymentType] | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Payment]: ...

    def sum_payments(self, payment_types: Iterable[PaymentType]) -> Decimal: ...

    def add_reconciliation_record(self, record: ReconciliationRecord) -> None: ...

    def list_reconciliation_records(
        self, entity_id: str | None = None
    ) -> list[ReconciliationRecord]: ...

    def count_open_reconciliation_records(self) -> int: ...

    def add_audit_entry(self, entry: AuditLogEntry) -> None: ...

    def list_audit_entries(self, entity_id: str | None = None) -> list[AuditLogEntry]: ...

    def count_loan_numbers(self, prefix: str) -> int: ...

    def count_receipts(self, prefix: str) -> int: ...
