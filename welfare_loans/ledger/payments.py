"""Recording of received payments."""

import logging
import threading
import uuid
from datetime import date, datetime
from decimal import Decimal

from welfare_loans.exceptions import InvalidPaymentError
from welfare_loans.ledger.allocation import PaymentAllocator, validate_payment_amount
from welfare_loans.ledger.numbering import next_receipt_number
from welfare_loans.models import GenericPayment, LoanRepaymentPayment, PaymentType
from welfare_loans.store.port import LoanRepository

logger = logging.getLogger(__name__)


class PaymentRecorder:
    """Store payments under sequential receipt numbers.

    Loan repayments go through the allocator first, so the stored payment
    carries the principal and interest split that was applied to the loan.
    """

    def __init__(self, store: LoanRepository, allocator: PaymentAllocator | None = None) -> None:
        self.store = store
        self.allocator = allocator or PaymentAllocator(store)
        self._receipt_lock = threading.Lock()

    def record_repayment(
        self,
        loan_id: str,
        amount: Decimal | int | float | str,
        payment_date: date | None = None,
    ) -> LoanRepaymentPayment:
        """Allocate a repayment to its loan and store it.

        Raises
        ------
        InvalidPaymentError, LoanNotFoundError, NoPendingScheduleError
            Propagated from the allocator; nothing is stored.
        """
        payment_date = payment_date or date.today()
        loan = self.store.get_loan(loan_id)
        allocation = self.allocator.allocate_payment(loan_id, amount, payment_date)

        with self._receipt_lock:
            payment = LoanRepaymentPayment(
                payment_id=str(uuid.uuid4()),
                member_id=loan.member_id,
                loan_id=loan_id,
                amount=allocation.principal_amount + allocation.interest_amount,
                principal_amount=allocation.principal_amount,
                interest_amount=allocation.interest_amount,
                payment_date=payment_date,
                receipt_number=next_receipt_number(self.store, payment_date),
                created_at=datetime.now(),
            )
            self.store.add_payment(payment)

        logger.info(
            "Repayment %s of %s recorded for loan %s",
            payment.receipt_number,
            payment.amount,
            loan.loan_number,
        )
        return payment

    def record_contribution(
        self,
        member_id: str,
        amount: Decimal | int | float | str,
        payment_type: PaymentType,
        payment_date: date | None = None,
    ) -> GenericPayment:
        """Store a contribution, levy, fee or other non-loan payment.

        Raises
        ------
        InvalidPaymentError
            Amount is not positive, or ``payment_type`` is LOAN_REPAYMENT.
        """
        if payment_type == PaymentType.LOAN_REPAYMENT:
            raise InvalidPaymentError("Loan repayments must be recorded with record_repayment")
        value = validate_payment_amount(amount)
        payment_date = payment_date or date.today()

        with self._receipt_lock:
            payment = GenericPayment(
                payment_id=str(uuid.uuid4()),
                member_id=member_id,
                amount=value,
                payment_type=payment_type,
                payment_date=payment_date,
                receipt_number=next_receipt_number(self.store, payment_date),
                created_at=datetime.now(),
            )
            self.store.add_payment(payment)

        logger.debug(
            "%s %s of %s from %s", payment_type.value, payment.receipt_number, value, member_id
        )
        return payment
