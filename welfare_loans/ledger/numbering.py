"""Loan and receipt number sequences.

Loan numbers restart every year (``LOAN20240001``), receipt numbers every
month (``RCP2024030001``). The next number is one past the count of numbers
already issued under the current prefix.
"""

from datetime import date

from welfare_loans.store.port import LoanRepository

LOAN_PREFIX = "LOAN"
RECEIPT_PREFIX = "RCP"
SEQUENCE_WIDTH = 4


def loan_number_prefix(on: date) -> str:
    return f"{LOAN_PREFIX}{on.year}"


def receipt_prefix(on: date) -> str:
    return f"{RECEIPT_PREFIX}{on.year}{on.month:02d}"


def format_sequence(prefix: str, sequence: int) -> str:
    """Append a zero-padded sequence number to ``prefix``."""
    if sequence < 1:
        raise ValueError(f"Sequence must start at 1, got {sequence}")
    return f"{prefix}{sequence:0{SEQUENCE_WIDTH}d}"


def next_loan_number(store: LoanRepository, on: date) -> str:
    prefix = loan_number_prefix(on)
    return format_sequence(prefix, store.count_loan_numbers(prefix) + 1)


def next_receipt_number(store: LoanRepository, on: date) -> str:
    prefix = receipt_prefix(on)
    return format_sequence(prefix, store.count_receipts(prefix) + 1)
