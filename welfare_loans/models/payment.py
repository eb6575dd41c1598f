"""Payment models.

A payment is either a loan repayment, which always carries its principal and
interest split, or a generic payment (contributions, levies, fees) with no
allocation at all.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from welfare_loans.models.enums import PaymentType


@dataclass(frozen=True)
class LoanRepaymentPayment:
    """Repayment received against a loan."""

    payment_id: str
    member_id: str
    loan_id: str
    amount: Decimal
    principal_amount: Decimal
    interest_amount: Decimal
    payment_date: date
    receipt_number: str
    created_at: datetime | None = None

    @property
    def payment_type(self) -> PaymentType:
        return PaymentType.LOAN_REPAYMENT


@dataclass(frozen=True)
class GenericPayment:
    """Any payment that is not a loan repayment."""

    payment_id: str
    member_id: str
    amount: Decimal
    payment_type: PaymentType
    payment_date: date
    receipt_number: str
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.payment_type == PaymentType.LOAN_REPAYMENT:
            raise ValueError("Loan repayments must be recorded as LoanRepaymentPayment")


Payment = LoanRepaymentPayment | GenericPayment
