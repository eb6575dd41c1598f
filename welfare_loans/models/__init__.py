"""Domain models for the welfare loan ledger."""

from welfare_loans.models.base import Event
from welfare_loans.models.enums import (
    CONTRIBUTION_TYPES,
    AuditAction,
    FundHealth,
    LoanStatus,
    LoanTerm,
    PaymentType,
    ReconciliationStatus,
    ReconciliationType,
    ScheduleStatus,
)
from welfare_loans.models.loan import Loan, ScheduleEntry
from welfare_loans.models.payment import GenericPayment, LoanRepaymentPayment, Payment
from welfare_loans.models.reconciliation import (
    AccountingSummary,
    AuditLogEntry,
    InterestReport,
    InterestReportLine,
    ReconciliationRecord,
    ReconciliationResult,
    TermBucket,
)

__all__ = [
    "AccountingSummary",
    "AuditAction",
    "AuditLogEntry",
    "CONTRIBUTION_TYPES",
    "Event",
    "FundHealth",
    "GenericPayment",
    "InterestReport",
    "InterestReportLine",
    "Loan",
    "LoanRepaymentPayment",
    "LoanStatus",
    "LoanTerm",
    "Payment",
    "PaymentType",
    "ReconciliationRecord",
    "ReconciliationResult",
    "ReconciliationStatus",
    "ReconciliationType",
    "ScheduleEntry",
    "ScheduleStatus",
    "TermBucket",
]
