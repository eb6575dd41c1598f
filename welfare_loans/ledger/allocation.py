"""Allocation of loan repayments to principal and interest."""

import logging
import threading
import weakref
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal

from welfare_loans.currency import SETTLEMENT_TOLERANCE, ZERO, round_currency, to_decimal
from welfare_loans.exceptions import InvalidPaymentError, NoPendingScheduleError
from welfare_loans.ledger.events import EventSink, emit
from welfare_loans.models import Loan, LoanStatus, ScheduleEntry, ScheduleStatus
from welfare_loans.store.port import LoanRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allocation:
    """How one repayment was split."""

    principal_amount: Decimal
    interest_amount: Decimal
    remaining_balance: Decimal
    entry_id: str
    entry_status: ScheduleStatus
    loan_status: LoanStatus


def validate_payment_amount(amount: Decimal | int | float | str) -> Decimal:
    """Round a payment to pesewas, rejecting non-positive amounts."""
    try:
        value = to_decimal(amount)
    except ValueError as exc:
        raise InvalidPaymentError(str(exc)) from exc
    if not value.is_finite() or round_currency(value) <= 0:
        raise InvalidPaymentError(f"Payment amount must be positive, got {amount!r}")
    return round_currency(value)


def split_payment(amount: Decimal, entry: ScheduleEntry) -> tuple[Decimal, Decimal]:
    """Split a payment against one installment.

    Principal is covered first, then interest; anything beyond the
    installment's total reduces principal.
    """
    principal = min(amount, entry.principal_amount)
    interest = min(amount - principal, entry.interest_amount)

    scheduled_total = entry.principal_amount + entry.interest_amount
    if amount > scheduled_total:
        principal += amount - scheduled_total

    return principal, interest


def remaining_due(entry: ScheduleEntry) -> ScheduleEntry:
    """The part of an installment not yet paid, as an installment."""
    principal = max(ZERO, entry.principal_amount - (entry.paid_principal or ZERO))
    interest = max(ZERO, entry.interest_amount - (entry.paid_interest or ZERO))
    return replace(
        entry,
        principal_amount=principal,
        interest_amount=interest,
        total_amount=principal + interest,
    )


def apply_repayment(loan: Loan, principal: Decimal, interest: Decimal, amount: Decimal) -> None:
    """Add a repayment to a loan's running totals and recompute balances."""
    loan.principal_repaid += principal
    loan.interest_repaid += interest
    loan.total_repaid += amount

    loan.outstanding_principal = max(ZERO, loan.principal - loan.principal_repaid)
    loan.outstanding_interest = max(ZERO, loan.total_interest - loan.interest_repaid)
    loan.outstanding_balance = loan.outstanding_principal + loan.outstanding_interest

    if loan.outstanding_balance <= SETTLEMENT_TOLERANCE:
        loan.status = LoanStatus.COMPLETED


def loan_arrears(entries: list[ScheduleEntry]) -> Decimal:
    """Total shortfall of partially paid installments."""
    return sum((e.shortfall for e in entries), ZERO)


class PaymentAllocator:
    """Apply repayments to loans, oldest pending installment first.

    Once every installment has been billed, repayments go to the oldest
    partially paid installment until the arrears are cleared. Allocations on
    the same loan are serialized in-process; the store's version check
    rejects writes that raced with another process.
    """

    def __init__(self, store: LoanRepository, events: EventSink | None = None) -> None:
        self.store = store
        self.events = events
        # Entries vanish once no allocation holds the lock
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    def _loan_lock(self, loan_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(loan_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[loan_id] = lock
            return lock

    def _target_entry(self, loan: Loan) -> ScheduleEntry:
        entry = self.store.next_pending_entry(loan.loan_id)
        if entry is not None:
            return entry
        if loan.outstanding_balance > SETTLEMENT_TOLERANCE:
            in_arrears = [
                e
                for e in self.store.get_schedule(loan.loan_id)
                if e.status == ScheduleStatus.PARTIAL
            ]
            if in_arrears:
                return in_arrears[0]
        raise NoPendingScheduleError(f"No pending payment schedule for loan {loan.loan_id}")

    def allocate_payment(
        self,
        loan_id: str,
        payment_amount: Decimal | int | float | str,
        payment_date: date | None = None,
    ) -> Allocation:
        """Allocate a repayment to a loan.

        Parameters
        ----------
        loan_id : str
            Loan being repaid.
        payment_amount : Decimal | int | float | str
            Amount received; rounded to pesewas.
        payment_date : date | None
            Date the money was received (default: today).

        Returns
        -------
        Allocation
            Principal and interest portions and the loan's remaining balance.

        Raises
        ------
        InvalidPaymentError
            Amount is not positive.
        LoanNotFoundError
            Unknown loan.
        NoPendingScheduleError
            Loan is completed, or has neither a pending nor an underpaid
            installment.
        ConcurrentUpdateError
            Loan was changed by someone else while allocating.
        """
        amount = validate_payment_amount(payment_amount)
        payment_date = payment_date or date.today()

        with self._loan_lock(loan_id):
            loan = self.store.get_loan(loan_id)
            if loan.status == LoanStatus.COMPLETED:
                raise NoPendingScheduleError(f"Loan {loan_id} is already completed")

            entry = self._target_entry(loan)

            payoff = amount >= loan.outstanding_balance
            if payoff:
                interest = loan.outstanding_interest
                principal = amount - interest
            else:
                principal, interest = split_payment(amount, remaining_due(entry))

            apply_repayment(loan, principal, interest, amount)

            now = datetime.now()
            entry.paid_amount = (entry.paid_amount or ZERO) + amount
            entry.paid_principal = (entry.paid_principal or ZERO) + principal
            entry.paid_interest = (entry.paid_interest or ZERO) + interest
            entry.status = (
                ScheduleStatus.PAID
                if payoff or entry.paid_amount >= entry.total_amount
                else ScheduleStatus.PARTIAL
            )
            entry.paid_date = payment_date
            entry.is_reconciled = True
            entry.reconciled_at = now

            touched = [entry]
            if payoff:
                touched += self._settle_remaining_entries(loan_id, entry, payment_date, now)
            self.store.save_allocation(loan, touched)

        logger.info(
            "Allocated %s to loan %s installment %d: principal=%s interest=%s remaining=%s",
            amount,
            loan_id,
            entry.installment_number,
            principal,
            interest,
            loan.outstanding_balance,
        )

        allocation = Allocation(
            principal_amount=principal,
            interest_amount=interest,
            remaining_balance=loan.outstanding_balance,
            entry_id=entry.entry_id,
            entry_status=entry.status,
            loan_status=loan.status,
        )
        emit(
            self.events,
            "loan.payment_allocated",
            loan_id,
            {
                "amount": amount,
                "installment_number": entry.installment_number,
                "principal_amount": principal,
                "interest_amount": interest,
                "remaining_balance": loan.outstanding_balance,
                "payment_date": payment_date,
            },
            source=__name__,
        )
        if loan.status == LoanStatus.COMPLETED:
            emit(
                self.events,
                "loan.completed",
                loan_id,
                {"total_repaid": loan.total_repaid, "completed_on": payment_date},
                source=__name__,
            )
        return allocation

    def _settle_remaining_entries(
        self, loan_id: str, paid: ScheduleEntry, payment_date: date, now: datetime
    ) -> list[ScheduleEntry]:
        """Close what a payoff leaves open.

        Unbilled installments become PAID with nothing applied; underpaid
        ones become PAID and keep what was applied to them.
        """
        settled = []
        for entry in self.store.get_schedule(loan_id):
            if entry.entry_id == paid.entry_id or entry.status == ScheduleStatus.PAID:
                continue
            if entry.status == ScheduleStatus.PENDING:
                entry.paid_amount = ZERO
                entry.paid_principal = ZERO
                entry.paid_interest = ZERO
                entry.paid_date = payment_date
            entry.status = ScheduleStatus.PAID
            entry.is_reconciled = True
            entry.reconciled_at = now
            settled.append(entry)
        return settled
