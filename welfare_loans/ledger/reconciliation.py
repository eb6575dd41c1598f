"""Reconciliation of expected against actual loan repayments."""

import logging
import time
import uuid
from collections import deque
from collections.abc import Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from welfare_loans.config import ReconciliationConfig
from welfare_loans.currency import SETTLEMENT_TOLERANCE, ZERO, format_currency, round_currency
from welfare_loans.exceptions import ReconciliationComputeError, WelfareLoanError
from welfare_loans.ledger.events import EventSink, emit
from welfare_loans.ledger.interest import calculate_interest
from welfare_loans.models import (
    AuditAction,
    AuditLogEntry,
    Loan,
    LoanRepaymentPayment,
    LoanStatus,
    PaymentType,
    ReconciliationRecord,
    ReconciliationResult,
    ReconciliationStatus,
    ReconciliationType,
)
from welfare_loans.sinks.serialization import serialize_value
from welfare_loans.store.port import LoanRepository

logger = logging.getLogger(__name__)

RECONCILABLE_STATUSES = (LoanStatus.ACTIVE, LoanStatus.COMPLETED)
POLL_INTERVAL_SECONDS = 0.05


@dataclass
class BatchReconciliation:
    """Outcome of a reconciliation run over all loans."""

    results: list[ReconciliationResult] = field(default_factory=list)
    records: list[ReconciliationRecord] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)  # loan_id -> reason

    @property
    def reconciled_count(self) -> int:
        return sum(1 for r in self.results if r.status == ReconciliationStatus.RECONCILED)

    @property
    def discrepancy_count(self) -> int:
        return sum(1 for r in self.results if r.status == ReconciliationStatus.DISCREPANCY)


def classify_difference(difference: Decimal) -> ReconciliationStatus:
    """RECONCILED when within a pesewa of zero, DISCREPANCY otherwise."""
    if abs(difference) < SETTLEMENT_TOLERANCE:
        return ReconciliationStatus.RECONCILED
    return ReconciliationStatus.DISCREPANCY


class ReconciliationEngine:
    """Compare each loan's contract totals with the repayments received.

    Expected totals are re-priced from the loan's principal and term rather
    than read from its schedule, so a corrupted schedule is caught too.
    """

    def __init__(
        self,
        store: LoanRepository,
        config: ReconciliationConfig | None = None,
        events: EventSink | None = None,
    ) -> None:
        self.store = store
        self.config = config or ReconciliationConfig()
        self.events = events

    def reconcile_loan(self, loan_id: str) -> ReconciliationResult:
        """Reconcile a single loan.

        Raises
        ------
        LoanNotFoundError
            Unknown loan.
        InvalidTermError, InvalidPrincipalError
            The stored loan cannot be re-priced.
        """
        return self._compare(self.store.get_loan(loan_id))

    def _compare(self, loan: Loan) -> ReconciliationResult:
        quote = calculate_interest(loan.principal, loan.term_months)
        expected_principal = round_currency(loan.principal)
        expected_interest = round_currency(quote.total_interest)
        expected_total = expected_principal + expected_interest

        payments = self.store.list_payments(
            loan_id=loan.loan_id, payment_types=[PaymentType.LOAN_REPAYMENT]
        )
        repayments = [p for p in payments if isinstance(p, LoanRepaymentPayment)]
        actual_principal = sum((p.principal_amount for p in repayments), ZERO)
        actual_interest = sum((p.interest_amount for p in repayments), ZERO)
        actual_total = actual_principal + actual_interest

        difference = expected_total - actual_total

        return ReconciliationResult(
            loan_id=loan.loan_id,
            expected_principal=expected_principal,
            expected_interest=expected_interest,
            expected_total=expected_total,
            actual_principal=actual_principal,
            actual_interest=actual_interest,
            actual_total=actual_total,
            difference=difference,
            status=classify_difference(difference),
        )

    def _compute(self, loan: Loan) -> ReconciliationResult:
        try:
            return self._compare(loan)
        except Exception as exc:
            raise ReconciliationComputeError(loan.loan_id, str(exc)) from exc

    def _timed_compute(self, loan: Loan, started: dict[str, float]) -> ReconciliationResult:
        started[loan.loan_id] = time.monotonic()
        return self._compute(loan)

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="reconcile"
        )

    def _run_computations(self, loans: list[Loan]) -> Iterator[tuple[Loan, Future | None]]:
        """Compute loans on the worker pool, yielding each as it finishes.

        Only as many loans as there are idle workers are handed out, and each
        loan's timeout runs from the moment a worker picks it up. A timed-out
        loan is yielded with ``None``; its worker is abandoned and the rest of
        the batch moves to a fresh pool.
        """
        timeout = self.config.per_loan_timeout_seconds
        poll = min(timeout, POLL_INTERVAL_SECONDS)
        pending = deque(loans)
        in_flight: dict[Future, Loan] = {}
        started: dict[str, float] = {}
        executors = [self._new_executor()]
        try:
            while pending or in_flight:
                while pending and len(in_flight) < self.config.max_workers:
                    loan = pending.popleft()
                    future = executors[-1].submit(self._timed_compute, loan, started)
                    in_flight[future] = loan

                done, _ = wait(in_flight, timeout=poll, return_when=FIRST_COMPLETED)
                for future in done:
                    yield in_flight.pop(future), future

                now = time.monotonic()
                expired = [
                    future
                    for future, loan in in_flight.items()
                    if not future.done()
                    and loan.loan_id in started
                    and now - started[loan.loan_id] >= timeout
                ]
                for future in expired:
                    yield in_flight.pop(future), None
                if expired:
                    # Workers stuck on expired loans never come back
                    executors[-1].shutdown(wait=False)
                    executors.append(self._new_executor())
        finally:
            for executor in executors:
                executor.shutdown(wait=False, cancel_futures=True)

    def reconcile_all_loans(self, actor_id: str | None = None) -> BatchReconciliation:
        """Reconcile every ACTIVE and COMPLETED loan.

        A loan that fails or exceeds the per-loan timeout is logged and listed
        in ``failures``; the rest of the batch still runs. Every reconciled
        loan gets its reconciliation flag, timestamp and an audit entry;
        discrepancies also get a reconciliation record.

        Parameters
        ----------
        actor_id : str | None
            Who ran the batch (default: the configured actor).

        Returns
        -------
        BatchReconciliation
            Results and created records in loan order, and failures.
        """
        actor_id = actor_id or self.config.actor_id
        timeout = self.config.per_loan_timeout_seconds
        loans = self.store.list_loans(RECONCILABLE_STATUSES)
        order = {loan.loan_id: index for index, loan in enumerate(loans)}
        batch = BatchReconciliation()

        logger.info("Reconciling %d loans (workers=%d)", len(loans), self.config.max_workers)

        for loan, future in self._run_computations(loans):
            if future is None:
                reason = f"timed out after {timeout}s"
                logger.error("Error reconciling loan %s: %s", loan.loan_number, reason)
                batch.failures[loan.loan_id] = reason
                continue
            try:
                result = future.result()
            except ReconciliationComputeError as exc:
                logger.exception("Error reconciling loan %s", loan.loan_number)
                batch.failures[loan.loan_id] = str(exc)
                continue

            try:
                record = self._record_outcome(loan, result, actor_id)
            except WelfareLoanError as exc:
                logger.exception("Error saving reconciliation of loan %s", loan.loan_number)
                batch.failures[loan.loan_id] = str(exc)
                continue

            batch.results.append(result)
            if record is not None:
                batch.records.append(record)

        batch.results.sort(key=lambda r: order[r.loan_id])
        batch.records.sort(key=lambda r: order[r.entity_id])

        logger.info(
            "Reconciliation complete: reconciled=%d, discrepancies=%d, failed=%d",
            batch.reconciled_count,
            batch.discrepancy_count,
            len(batch.failures),
        )
        return batch

    def _record_outcome(
        self,
        loan: Loan,
        result: ReconciliationResult,
        actor_id: str,
    ) -> ReconciliationRecord | None:
        now = datetime.now()
        record = None

        if result.status == ReconciliationStatus.DISCREPANCY:
            record = ReconciliationRecord(
                record_id=str(uuid.uuid4()),
                reconciliation_type=ReconciliationType.LOAN_PAYMENT,
                reference_number=loan.loan_number,
                entity_id=loan.loan_id,
                expected_amount=result.expected_total,
                actual_amount=result.actual_total,
                difference=result.difference,
                status=ReconciliationStatus.DISCREPANCY,
                notes=(
                    "Loan payment discrepancy detected. "
                    f"Expected: {format_currency(result.expected_total)}, "
                    f"Actual: {format_currency(result.actual_total)}"
                ),
                created_at=now,
            )
            self.store.add_reconciliation_record(record)
            logger.warning(
                "Discrepancy on loan %s: expected=%s actual=%s difference=%s",
                loan.loan_number,
                result.expected_total,
                result.actual_total,
                result.difference,
            )
            emit(
                self.events,
                "reconciliation.discrepancy",
                loan.loan_id,
                {
                    "loan_number": loan.loan_number,
                    "expected_amount": result.expected_total,
                    "actual_amount": result.actual_total,
                    "difference": result.difference,
                },
                source=__name__,
            )

        # Fresh read: a repayment may have landed while computing
        current = self.store.get_loan(loan.loan_id)
        current.is_fully_reconciled = result.status == ReconciliationStatus.RECONCILED
        current.last_reconciled_at = now
        self.store.update_loan(current)

        self.record_audit_trail(
            actor_id,
            "Loan",
            loan.loan_id,
            {
                "status": result.status,
                "expected_total": result.expected_total,
                "actual_total": result.actual_total,
                "difference": result.difference,
                "is_fully_reconciled": current.is_fully_reconciled,
            },
        )
        emit(
            self.events,
            "loan.reconciled",
            loan.loan_id,
            {"status": result.status, "difference": result.difference},
            source=__name__,
        )
        return record

    def record_audit_trail(
        self,
        actor_id: str,
        entity_type: str,
        entity_id: str,
        details: dict[str, Any],
    ) -> AuditLogEntry:
        """Append a RECONCILE entry to the audit log."""
        entry = AuditLogEntry(
            entry_id=str(uuid.uuid4()),
            actor_id=actor_id,
            action=AuditAction.RECONCILE,
            entity_type=entity_type,
            entity_id=entity_id,
            new_values=serialize_value(details),
            created_at=datetime.now(),
        )
        self.store.add_audit_entry(entry)
        return entry
