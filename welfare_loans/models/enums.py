"""Enumeration types for the welfare loan ledger."""

from decimal import Decimal
from enum import Enum, IntEnum


class LoanTerm(IntEnum):
    """Supported loan terms in months."""

    THREE_MONTHS = 3
    SIX_MONTHS = 6
    TWELVE_MONTHS = 12

    @property
    def rate(self) -> Decimal:
        """Flat interest rate charged over the whole term."""
        return _TERM_RATES[self]

    @property
    def rate_label(self) -> str:
        """Rate as a percentage label, e.g. ``"3%"``."""
        return f"{int(self.rate * 100)}%"


_TERM_RATES = {
    LoanTerm.THREE_MONTHS: Decimal("0.01"),
    LoanTerm.SIX_MONTHS: Decimal("0.03"),
    LoanTerm.TWELVE_MONTHS: Decimal("0.05"),
}


class LoanStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DISBURSED = "DISBURSED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class ScheduleStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class PaymentType(str, Enum):
    MEMBERSHIP_FEE = "MEMBERSHIP_FEE"
    MONTHLY_CONTRIBUTION = "MONTHLY_CONTRIBUTION"
    SPECIAL_LEVY = "SPECIAL_LEVY"
    WELFARE_CONTRIBUTION = "WELFARE_CONTRIBUTION"
    LOAN_REPAYMENT = "LOAN_REPAYMENT"
    OTHER = "OTHER"


CONTRIBUTION_TYPES = frozenset(
    {
        PaymentType.MEMBERSHIP_FEE,
        PaymentType.MONTHLY_CONTRIBUTION,
        PaymentType.SPECIAL_LEVY,
        PaymentType.WELFARE_CONTRIBUTION,
    }
)


class ReconciliationStatus(str, Enum):
    RECONCILED = "RECONCILED"
    DISCREPANCY = "DISCREPANCY"
    PENDING = "PENDING"


class ReconciliationType(str, Enum):
    LOAN_PAYMENT = "LOAN_PAYMENT"


class FundHealth(str, Enum):
    """Overall reconciliation health of the fund."""

    GOOD = "GOOD"
    ISSUES = "ISSUES"
    CRITICAL = "CRITICAL"


class AuditAction(str, Enum):
    RECONCILE = "RECONCILE"
