"""PostgreSQL loan store backed by psycopg 3."""

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from welfare_loans.exceptions import (
    ConcurrentUpdateError,
    DuplicateRecordError,
    EntityNotFoundError,
    LoanNotFoundError,
    ReferentialIntegrityError,
    StoreError,
)
from welfare_loans.models import (
    AuditAction,
    AuditLogEntry,
    GenericPayment,
    Loan,
    LoanRepaymentPayment,
    LoanStatus,
    Payment,
    PaymentType,
    ReconciliationRecord,
    ReconciliationStatus,
    ReconciliationType,
    ScheduleEntry,
    ScheduleStatus,
)

logger = logging.getLogger(__name__)

DDL = """
CREATE TABLE IF NOT EXISTS loans (
    loan_id TEXT PRIMARY KEY,
    loan_number TEXT NOT NULL UNIQUE,
    member_id TEXT NOT NULL,
    principal NUMERIC(15, 2) NOT NULL,
    term_months INTEGER NOT NULL,
    total_interest NUMERIC(15, 2) NOT NULL,
    total_amount NUMERIC(15, 2) NOT NULL,
    monthly_payment NUMERIC(15, 4) NOT NULL,
    status TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL,
    amount_disbursed NUMERIC(15, 2) NOT NULL DEFAULT 0,
    disbursement_date DATE,
    principal_repaid NUMERIC(15, 2) NOT NULL DEFAULT 0,
    interest_repaid NUMERIC(15, 2) NOT NULL DEFAULT 0,
    total_repaid NUMERIC(15, 2) NOT NULL DEFAULT 0,
    outstanding_principal NUMERIC(15, 2) NOT NULL DEFAULT 0,
    outstanding_interest NUMERIC(15, 2) NOT NULL DEFAULT 0,
    outstanding_balance NUMERIC(15, 2) NOT NULL DEFAULT 0,
    is_fully_reconciled BOOLEAN NOT NULL DEFAULT FALSE,
    last_reconciled_at TIMESTAMP,
    updated_at TIMESTAMP,
    version INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS payment_schedule (
    entry_id TEXT PRIMARY KEY,
    loan_id TEXT NOT NULL REFERENCES loans(loan_id),
    installment_number INTEGER NOT NULL,
    due_date DATE NOT NULL,
    principal_amount NUMERIC(15, 2) NOT NULL,
    interest_amount NUMERIC(15, 2) NOT NULL,
    total_amount NUMERIC(15, 2) NOT NULL,
    status TEXT NOT NULL,
    paid_amount NUMERIC(15, 2),
    paid_principal NUMERIC(15, 2),
    paid_interest NUMERIC(15, 2),
    paid_date DATE,
    is_reconciled BOOLEAN NOT NULL DEFAULT FALSE,
    reconciled_at TIMESTAMP,
    UNIQUE (loan_id, installment_number)
);

CREATE TABLE IF NOT EXISTS payments (
    payment_id TEXT PRIMARY KEY,
    member_id TEXT NOT NULL,
    loan_id TEXT REFERENCES loans(loan_id),
    payment_type TEXT NOT NULL,
    amount NUMERIC(15, 2) NOT NULL,
    principal_amount NUMERIC(15, 2),
    interest_amount NUMERIC(15, 2),
    payment_date DATE NOT NULL,
    receipt_number TEXT NOT NULL UNIQUE,
    created_at TIMESTAMP NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS reconciliation_records (
    record_id TEXT PRIMARY KEY,
    reconciliation_type TEXT NOT NULL,
    reference_number TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    expected_amount NUMERIC(15, 2) NOT NULL,
    actual_amount NUMERIC(15, 2) NOT NULL,
    difference NUMERIC(15, 2) NOT NULL,
    status TEXT NOT NULL,
    notes TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS audit_logs (
    entry_id TEXT PRIMARY KEY,
    actor_id TEXT NOT NULL,
    action TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    new_values JSONB NOT NULL,
    created_at TIMESTAMP NOT NULL
);
"""

LOAN_COLUMNS = (
    "loan_id", "loan_number", "member_id", "principal", "term_months",
    "total_interest", "total_amount", "monthly_payment", "status", "created_at",
    "amount_disbursed", "disbursement_date", "principal_repaid", "interest_repaid",
    "total_repaid", "outstanding_principal", "outstanding_interest",
    "outstanding_balance", "is_fully_reconciled", "last_reconciled_at",
    "updated_at", "version",
)

# Columns rewritten by update_loan (identity and pricing never change)
LOAN_MUTABLE_COLUMNS = (
    "status", "amount_disbursed", "disbursement_date", "principal_repaid",
    "interest_repaid", "total_repaid", "outstanding_principal",
    "outstanding_interest", "outstanding_balance", "is_fully_reconciled",
    "last_reconciled_at",
)

SCHEDULE_COLUMNS = (
    "entry_id", "loan_id", "installment_number", "due_date", "principal_amount",
    "interest_amount", "total_amount", "status", "paid_amount", "paid_principal",
    "paid_interest", "paid_date", "is_reconciled", "reconciled_at",
)

SCHEDULE_MUTABLE_COLUMNS = (
    "status", "paid_amount", "paid_principal", "paid_interest", "paid_date",
    "is_reconciled", "reconciled_at",
)


def _params(obj: Any, columns: Iterable[str]) -> dict[str, Any]:
    """Extract column values, flattening enums to their values."""
    result = {}
    for col in columns:
        value = getattr(obj, col)
        if isinstance(value, Enum):
            value = value.value
        result[col] = value
    return result


def _loan_update(loan: Loan) -> tuple[str, dict[str, Any]]:
    """Versioned UPDATE for a loan's mutable columns."""
    assignments = ", ".join(f"{c} = %({c})s" for c in LOAN_MUTABLE_COLUMNS)
    params = _params(loan, LOAN_MUTABLE_COLUMNS)
    params.update(loan_id=loan.loan_id, version=loan.version, updated_at=datetime.now())
    sql = (
        f"UPDATE loans SET {assignments}, updated_at = %(updated_at)s, "  # noqa: S608
        "version = version + 1 WHERE loan_id = %(loan_id)s AND version = %(version)s"
    )
    return sql, params


def _entry_update(entry: ScheduleEntry) -> tuple[str, dict[str, Any]]:
    assignments = ", ".join(f"{c} = %({c})s" for c in SCHEDULE_MUTABLE_COLUMNS)
    params = _params(entry, SCHEDULE_MUTABLE_COLUMNS)
    params["entry_id"] = entry.entry_id
    sql = f"UPDATE payment_schedule SET {assignments} WHERE entry_id = %(entry_id)s"  # noqa: S608
    return sql, params


def _row_to_loan(row: dict[str, Any]) -> Loan:
    data = {col: row[col] for col in LOAN_COLUMNS}
    data["status"] = LoanStatus(row["status"])
    return Loan(**data)


def _row_to_entry(row: dict[str, Any]) -> ScheduleEntry:
    data = {col: row[col] for col in SCHEDULE_COLUMNS}
    data["status"] = ScheduleStatus(row["status"])
    return ScheduleEntry(**data)


def _row_to_payment(row: dict[str, Any]) -> Payment:
    payment_type = PaymentType(row["payment_type"])
    if payment_type == PaymentType.LOAN_REPAYMENT:
        return LoanRepaymentPayment(
            payment_id=row["payment_id"],
            member_id=row["member_id"],
            loan_id=row["loan_id"],
            amount=row["amount"],
            principal_amount=row["principal_amount"],
            interest_amount=row["interest_amount"],
            payment_date=row["payment_date"],
            receipt_number=row["receipt_number"],
            created_at=row["created_at"],
        )
    return GenericPayment(
        payment_id=row["payment_id"],
        member_id=row["member_id"],
        amount=row["amount"],
        payment_type=payment_type,
        payment_date=row["payment_date"],
        receipt_number=row["receipt_number"],
        created_at=row["created_at"],
    )


def _row_to_record(row: dict[str, Any]) -> ReconciliationRecord:
    return ReconciliationRecord(
        record_id=row["record_id"],
        reconciliation_type=ReconciliationType(row["reconciliation_type"]),
        reference_number=row["reference_number"],
        entity_id=row["entity_id"],
        expected_amount=row["expected_amount"],
        actual_amount=row["actual_amount"],
        difference=row["difference"],
        status=ReconciliationStatus(row["status"]),
        notes=row["notes"],
        created_at=row["created_at"],
    )


def _row_to_audit(row: dict[str, Any]) -> AuditLogEntry:
    return AuditLogEntry(
        entry_id=row["entry_id"],
        actor_id=row["actor_id"],
        action=AuditAction(row["action"]),
        entity_type=row["entity_type"],
        entity_id=row["entity_id"],
        new_values=row["new_values"],
        created_at=row["created_at"],
    )


class PostgresLoanStore:
    """Loan store persisting to PostgreSQL.

    One connection is opened per store and every write commits before
    returning. psycopg serializes statements issued on a shared connection,
    so the store can be used from the batch reconciliation worker pool.
    """

    def __init__(self, connection_string: str, autocreate: bool = False) -> None:
        """Initialize the store.

        Parameters
        ----------
        connection_string : str
            PostgreSQL connection string.
        autocreate : bool
            Create the tables if they do not exist.
        """
        self.connection_string = connection_string
        self.conn = psycopg.connect(connection_string, row_factory=dict_row)
        if autocreate:
            self.create_tables()

    def create_tables(self) -> None:
        """Create the ledger tables."""
        with self.conn.cursor() as cur:
            cur.execute(DDL)
        self.conn.commit()
        logger.info("Ledger tables ready")

    def close(self) -> None:
        """Close the connection."""
        self.conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[psycopg.Cursor]:
        """Cursor whose statements commit together or roll back together.

        A failed statement leaves the connection usable for the next call;
        database errors are raised as ledger errors.
        """
        try:
            with self.conn.cursor() as cur:
                yield cur
            self.conn.commit()
        except psycopg.Error as exc:
            self.conn.rollback()
            if isinstance(exc, psycopg.errors.ForeignKeyViolation):
                raise ReferentialIntegrityError(str(exc)) from exc
            if isinstance(exc, psycopg.errors.UniqueViolation):
                raise DuplicateRecordError(str(exc)) from exc
            raise StoreError(str(exc)) from exc
        except Exception:
            self.conn.rollback()
            raise

    def _fetchall(self, sql: str, params: Any = None) -> list[dict[str, Any]]:
        with self._transaction() as cur:
            cur.execute(sql, params)
            return cur.fetchall()

    def _fetchone(self, sql: str, params: Any = None) -> dict[str, Any] | None:
        with self._transaction() as cur:
            cur.execute(sql, params)
            return cur.fetchone()

    def _write(self, sql: str, params: Any = None) -> int:
        with self._transaction() as cur:
            cur.execute(sql, params)
            return cur.rowcount

    # Loans
    def add_loan(self, loan: Loan) -> None:
        """Insert a loan."""
        cols = ", ".join(LOAN_COLUMNS)
        placeholders = ", ".join(f"%({c})s" for c in LOAN_COLUMNS)
        self._write(
            f"INSERT INTO loans ({cols}) VALUES ({placeholders})",  # noqa: S608
            _params(loan, LOAN_COLUMNS),
        )

    def get_loan(self, loan_id: str) -> Loan:
        """Fetch a loan by id."""
        row = self._fetchone("SELECT * FROM loans WHERE loan_id = %s", (loan_id,))
        if row is None:
            raise LoanNotFoundError(f"Loan {loan_id} not found")
        return _row_to_loan(row)

    def list_loans(self, statuses: Iterable[LoanStatus] | None = None) -> list[Loan]:
        """List loans, optionally filtered by status."""
        if statuses is None:
            rows = self._fetchall("SELECT * FROM loans ORDER BY created_at")
        else:
            rows = self._fetchall(
                "SELECT * FROM loans WHERE status = ANY(%s) ORDER BY created_at",
                ([s.value for s in statuses],),
            )
        return [_row_to_loan(r) for r in rows]

    def update_loan(self, loan: Loan) -> None:
        """Write back a loan if nobody else updated it since it was read."""
        sql, params = _loan_update(loan)
        if self._write(sql, params) == 0:
            self._raise_lost_race(loan)
        loan.version += 1
        loan.updated_at = params["updated_at"]

    def _raise_lost_race(self, loan: Loan) -> None:
        # Distinguish a missing loan from a lost race
        current = self.get_loan(loan.loan_id)
        raise ConcurrentUpdateError(
            f"Loan {loan.loan_id} changed since it was read "
            f"(version {loan.version}, stored {current.version})"
        )

    def save_allocation(self, loan: Loan, entries: list[ScheduleEntry]) -> None:
        """Write back a repaid loan and its installments in one transaction."""
        loan_sql, loan_params = _loan_update(loan)
        lost_race = False
        with self._transaction() as cur:
            cur.execute(loan_sql, loan_params)
            if cur.rowcount == 0:
                lost_race = True
            else:
                for entry in entries:
                    cur.execute(*_entry_update(entry))
                    if cur.rowcount == 0:
                        raise EntityNotFoundError(f"Schedule entry {entry.entry_id} not found")
        if lost_race:
            self._raise_lost_race(loan)
        loan.version += 1
        loan.updated_at = loan_params["updated_at"]

    # Schedule
    def add_schedule_entries(self, entries: list[ScheduleEntry]) -> None:
        """Insert a loan's installments in one transaction."""
        cols = ", ".join(SCHEDULE_COLUMNS)
        placeholders = ", ".join(f"%({c})s" for c in SCHEDULE_COLUMNS)
        with self._transaction() as cur:
            cur.executemany(
                f"INSERT INTO payment_schedule ({cols}) VALUES ({placeholders})",  # noqa: S608
                [_params(e, SCHEDULE_COLUMNS) for e in entries],
            )

    def get_schedule(self, loan_id: str) -> list[ScheduleEntry]:
        """All installments of a loan, in installment order."""
        rows = self._fetchall(
            "SELECT * FROM payment_schedule WHERE loan_id = %s ORDER BY installment_number",
            (loan_id,),
        )
        return [_row_to_entry(r) for r in rows]

    def next_pending_entry(self, loan_id: str) -> ScheduleEntry | None:
        """Oldest PENDING installment of a loan."""
        row = self._fetchone(
            "SELECT * FROM payment_schedule WHERE loan_id = %s AND status = %s "
            "ORDER BY due_date, installment_number LIMIT 1",
            (loan_id, ScheduleStatus.PENDING.value),
        )
        return _row_to_entry(row) if row else None

    def update_schedule_entry(self, entry: ScheduleEntry) -> None:
        """Write back an installment's payment fields."""
        if self._write(*_entry_update(entry)) == 0:
            raise EntityNotFoundError(f"Schedule entry {entry.entry_id} not found")

    # Payments
    def add_payment(self, payment: Payment) -> None:
        """Insert a payment."""
        is_repayment = isinstance(payment, LoanRepaymentPayment)
        self._write(
            "INSERT INTO payments (payment_id, member_id, loan_id, payment_type, amount, "
            "principal_amount, interest_amount, payment_date, receipt_number, created_at) "
            "VALUES (%(payment_id)s, %(member_id)s, %(loan_id)s, %(payment_type)s, %(amount)s, "
            "%(principal_amount)s, %(interest_amount)s, %(payment_date)s, %(receipt_number)s, "
            "%(created_at)s)",
            {
                "payment_id": payment.payment_id,
                "member_id": payment.member_id,
                "loan_id": payment.loan_id if is_repayment else None,
                "payment_type": payment.payment_type.value,
                "amount": payment.amount,
                "principal_amount": payment.principal_amount if is_repayment else None,
                "interest_amount": payment.interest_amount if is_repayment else None,
                "payment_date": payment.payment_date,
                "receipt_number": payment.receipt_number,
                "created_at": payment.created_at or datetime.now(),
            },
        )

    def list_payments(
        self,
        loan_id: str | None = None,
        payment_types: Iterable[PaymentType] | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Payment]:
        """List payments filtered by loan, type and inclusive date range."""
        clauses = []
        params: list[Any] = []
        if loan_id is not None:
            clauses.append("loan_id = %s")
            params.append(loan_id)
        if payment_types is not None:
            clauses.append("payment_type = ANY(%s)")
            params.append([t.value for t in payment_types])
        if start_date is not None:
            clauses.append("payment_date >= %s")
            params.append(start_date)
        if end_date is not None:
            clauses.append("payment_date <= %s")
            params.append(end_date)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetchall(
            f"SELECT * FROM payments{where} ORDER BY payment_date, created_at",  # noqa: S608
            params,
        )
        return [_row_to_payment(r) for r in rows]

    def sum_payments(self, payment_types: Iterable[PaymentType]) -> Decimal:
        """Sum the amounts of payments of the given types."""
        row = self._fetchone(
            "SELECT COALESCE(SUM(amount), 0) AS total FROM payments WHERE payment_type = ANY(%s)",
            ([t.value for t in payment_types],),
        )
        return Decimal(row["total"])

    # Reconciliation and audit
    def add_reconciliation_record(self, record: ReconciliationRecord) -> None:
        """Append a reconciliation record."""
        self._write(
            "INSERT INTO reconciliation_records (record_id, reconciliation_type, "
            "reference_number, entity_id, expected_amount, actual_amount, difference, "
            "status, notes, created_at) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)",
            (
                record.record_id,
                record.reconciliation_type.value,
                record.reference_number,
                record.entity_id,
                record.expected_amount,
                record.actual_amount,
                record.difference,
                record.status.value,
                record.notes,
                record.created_at,
            ),
        )

    def list_reconciliation_records(
        self, entity_id: str | None = None
    ) -> list[ReconciliationRecord]:
        """List reconciliation records, optionally for one loan."""
        if entity_id is None:
            rows = self._fetchall("SELECT * FROM reconciliation_records ORDER BY created_at")
        else:
            rows = self._fetchall(
                "SELECT * FROM reconciliation_records WHERE entity_id = %s ORDER BY created_at",
                (entity_id,),
            )
        return [_row_to_record(r) for r in rows]

    def count_open_reconciliation_records(self) -> int:
        """Count records still in DISCREPANCY or PENDING."""
        row = self._fetchone(
            "SELECT COUNT(*) AS n FROM reconciliation_records WHERE status = ANY(%s)",
            ([ReconciliationStatus.DISCREPANCY.value, ReconciliationStatus.PENDING.value],),
        )
        return int(row["n"])

    def add_audit_entry(self, entry: AuditLogEntry) -> None:
        """Append an audit-log entry."""
        self._write(
            "INSERT INTO audit_logs (entry_id, actor_id, action, entity_type, entity_id, "
            "new_values, created_at) VALUES (%s, %s, %s, %s, %s, %s, %s)",
            (
                entry.entry_id,
                entry.actor_id,
                entry.action.value,
                entry.entity_type,
                entry.entity_id,
                Jsonb(entry.new_values),
                entry.created_at,
            ),
        )

    def list_audit_entries(self, entity_id: str | None = None) -> list[AuditLogEntry]:
        """List audit-log entries, optionally for one entity."""
        if entity_id is None:
            rows = self._fetchall("SELECT * FROM audit_logs ORDER BY created_at")
        else:
            rows = self._fetchall(
                "SELECT * FROM audit_logs WHERE entity_id = %s ORDER BY created_at",
                (entity_id,),
            )
        return [_row_to_audit(r) for r in rows]

    # Numbering
    def count_loan_numbers(self, prefix: str) -> int:
        """Count loans whose number starts with ``prefix``."""
        row = self._fetchone(
            "SELECT COUNT(*) AS n FROM loans WHERE loan_number LIKE %s", (f"{prefix}%",)
        )
        return int(row["n"])

    def count_receipts(self, prefix: str) -> int:
        """Count payments whose receipt number starts with ``prefix``."""
        row = self._fetchone(
            "SELECT COUNT(*) AS n FROM payments WHERE receipt_number LIKE %s", (f"{prefix}%",)
        )
        return int(row["n"])
