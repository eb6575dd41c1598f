"""Loan lifecycle: application, approval, disbursement and activation."""

import logging
import threading
import uuid
from datetime import date, datetime, time
from decimal import Decimal

from welfare_loans.currency import round_currency, to_decimal
from welfare_loans.exceptions import InvalidLoanStateError, InvalidPrincipalError
from welfare_loans.ledger.events import EventSink, emit
from welfare_loans.ledger.interest import calculate_interest
from welfare_loans.ledger.numbering import next_loan_number
from welfare_loans.ledger.schedule import build_schedule_entries, generate_schedule
from welfare_loans.models import Loan, LoanStatus
from welfare_loans.store.port import LoanRepository

logger = logging.getLogger(__name__)


class LoanService:
    """Move loans through PENDING -> APPROVED -> DISBURSED -> ACTIVE.

    A PENDING loan may instead be REJECTED. The schedule is generated at
    disbursement, with installments falling due monthly from the
    disbursement date.
    """

    def __init__(self, store: LoanRepository, events: EventSink | None = None) -> None:
        self.store = store
        self.events = events
        self._numbering_lock = threading.Lock()

    def apply(
        self,
        member_id: str,
        principal: Decimal | int | float | str,
        term_months: int,
        application_date: date | None = None,
    ) -> Loan:
        """Create a PENDING loan priced at the flat rate for its term.

        Raises
        ------
        InvalidTermError
            Unsupported term.
        InvalidPrincipalError
            Principal is not positive once rounded to pesewas.
        """
        quote = calculate_interest(principal, term_months)
        amount = round_currency(to_decimal(principal))
        if amount <= 0:
            raise InvalidPrincipalError(f"Principal must be at least one pesewa, got {principal!r}")

        application_date = application_date or date.today()
        total_interest = round_currency(quote.total_interest)

        with self._numbering_lock:
            loan = Loan(
                loan_id=str(uuid.uuid4()),
                loan_number=next_loan_number(self.store, application_date),
                member_id=member_id,
                principal=amount,
                term_months=term_months,
                total_interest=total_interest,
                total_amount=amount + total_interest,
                monthly_payment=round_currency(quote.monthly_payment),
                status=LoanStatus.PENDING,
                created_at=datetime.combine(application_date, time()),
            )
            self.store.add_loan(loan)

        logger.info(
            "Loan %s applied for by %s: principal=%s term=%d",
            loan.loan_number,
            member_id,
            amount,
            term_months,
        )
        return loan

    def _transition(self, loan_id: str, expected: LoanStatus, target: LoanStatus) -> Loan:
        loan = self.store.get_loan(loan_id)
        if loan.status != expected:
            raise InvalidLoanStateError(
                f"Loan {loan_id} cannot move from {loan.status.value} to {target.value}"
            )
        loan.status = target
        return loan

    def approve(self, loan_id: str) -> Loan:
        loan = self._transition(loan_id, LoanStatus.PENDING, LoanStatus.APPROVED)
        self.store.update_loan(loan)
        logger.info("Loan %s approved", loan.loan_number)
        return loan

    def reject(self, loan_id: str) -> Loan:
        loan = self._transition(loan_id, LoanStatus.PENDING, LoanStatus.REJECTED)
        self.store.update_loan(loan)
        logger.info("Loan %s rejected", loan.loan_number)
        return loan

    def disburse(self, loan_id: str, disbursement_date: date | None = None) -> Loan:
        """Pay out an approved loan and persist its repayment schedule.

        The full principal is disbursed and becomes outstanding together with
        the total interest.
        """
        disbursement_date = disbursement_date or date.today()
        loan = self._transition(loan_id, LoanStatus.APPROVED, LoanStatus.DISBURSED)

        installments = generate_schedule(loan.principal, loan.term_months, disbursement_date)
        entries = build_schedule_entries(loan.loan_id, installments)

        loan.amount_disbursed = loan.principal
        loan.disbursement_date = disbursement_date
        loan.outstanding_principal = loan.principal
        loan.outstanding_interest = loan.total_interest
        loan.outstanding_balance = loan.principal + loan.total_interest

        self.store.update_loan(loan)
        self.store.add_schedule_entries(entries)

        logger.info(
            "Loan %s disbursed on %s: %d installments, first due %s",
            loan.loan_number,
            disbursement_date,
            len(entries),
            entries[0].due_date,
        )
        emit(
            self.events,
            "loan.disbursed",
            loan.loan_id,
            {
                "loan_number": loan.loan_number,
                "member_id": loan.member_id,
                "amount_disbursed": loan.amount_disbursed,
                "term_months": loan.term_months,
                "disbursement_date": disbursement_date,
            },
            source=__name__,
        )
        return loan

    def activate(self, loan_id: str) -> Loan:
        loan = self._transition(loan_id, LoanStatus.DISBURSED, LoanStatus.ACTIVE)
        self.store.update_loan(loan)
        logger.info("Loan %s active", loan.loan_number)
        return loan
