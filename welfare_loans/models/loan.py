"""Loan and repayment schedule models."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from welfare_loans.models.enums import LoanStatus, LoanTerm, ScheduleStatus

ZERO = Decimal("0.00")


@dataclass
class Loan:
    """A member's loan contract with its running repayment totals."""

    loan_id: str
    loan_number: str
    member_id: str
    principal: Decimal
    term_months: int
    total_interest: Decimal
    total_amount: Decimal
    monthly_payment: Decimal
    status: LoanStatus
    created_at: datetime
    amount_disbursed: Decimal = ZERO
    disbursement_date: date | None = None

    # Running totals, maintained by the payment allocator
    principal_repaid: Decimal = ZERO
    interest_repaid: Decimal = ZERO
    total_repaid: Decimal = ZERO
    outstanding_principal: Decimal = ZERO
    outstanding_interest: Decimal = ZERO
    outstanding_balance: Decimal = ZERO

    is_fully_reconciled: bool = False
    last_reconciled_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0  # Bumped by the store on every update

    @property
    def interest_rate(self) -> Decimal:
        """Flat rate for the loan's term."""
        return LoanTerm(self.term_months).rate


@dataclass
class ScheduleEntry:
    """One installment due on a loan."""

    entry_id: str
    loan_id: str
    installment_number: int  # 1, 2, 3, ...
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    status: ScheduleStatus = ScheduleStatus.PENDING
    paid_amount: Decimal | None = None
    paid_principal: Decimal | None = None
    paid_interest: Decimal | None = None
    paid_date: date | None = None
    is_reconciled: bool = False
    reconciled_at: datetime | None = None

    @property
    def shortfall(self) -> Decimal:
        """Unpaid remainder of a partially paid installment (arrears)."""
        if self.status != ScheduleStatus.PARTIAL:
            return ZERO
        return max(ZERO, self.total_amount - (self.paid_amount or ZERO))
