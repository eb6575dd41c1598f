"""Persistence adapters for the loan ledger."""

from welfare_loans.store.memory import InMemoryLoanStore
from welfare_loans.store.port import LoanRepository

__all__ = ["InMemoryLoanStore", "LoanRepository"]
