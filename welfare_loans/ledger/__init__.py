"""Loan ledger: pricing, schedules, allocation, reconciliation and reporting."""

from welfare_loans.ledger.allocation import (
    Allocation,
    PaymentAllocator,
    apply_repayment,
    loan_arrears,
    split_payment,
    validate_payment_amount,
)
from welfare_loans.ledger.events import EventSink, emit
from welfare_loans.ledger.interest import (
    SUPPORTED_TERMS,
    InterestQuote,
    calculate_interest,
    loan_term,
)
from welfare_loans.ledger.numbering import (
    format_sequence,
    loan_number_prefix,
    next_loan_number,
    next_receipt_number,
    receipt_prefix,
)
from welfare_loans.ledger.origination import LoanService
from welfare_loans.ledger.payments import PaymentRecorder
from welfare_loans.ledger.reconciliation import (
    BatchReconciliation,
    ReconciliationEngine,
    classify_difference,
)
from welfare_loans.ledger.reports import generate_interest_report
from welfare_loans.ledger.schedule import (
    Installment,
    add_months,
    build_schedule_entries,
    generate_schedule,
)
from welfare_loans.ledger.summary import AccountingSummaryAggregator, fund_health

__all__ = [
    "AccountingSummaryAggregator",
    "Allocation",
    "BatchReconciliation",
    "EventSink",
    "Installment",
    "InterestQuote",
    "LoanService",
    "PaymentAllocator",
    "PaymentRecorder",
    "ReconciliationEngine",
    "SUPPORTED_TERMS",
    "add_months",
    "apply_repayment",
    "build_schedule_entries",
    "calculate_interest",
    "classify_difference",
    "emit",
    "format_sequence",
    "fund_health",
    "generate_interest_report",
    "generate_schedule",
    "loan_arrears",
    "loan_number_prefix",
    "loan_term",
    "next_loan_number",
    "next_receipt_number",
    "receipt_prefix",
    "split_payment",
    "validate_payment_amount",
]
