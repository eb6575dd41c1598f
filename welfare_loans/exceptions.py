"""Custom exception hierarchy for welfare-loans."""


class WelfareLoanError(Exception):
    """Base exception for all welfare-loans errors."""


class LoanValidationError(WelfareLoanError, ValueError):
    """Raised when an input to a ledger operation is out of range."""


class InvalidTermError(LoanValidationError):
    """Raised when a loan term is not one of the supported terms."""


class InvalidPrincipalError(LoanValidationError):
    """Raised when a loan principal is not a positive amount."""


class InvalidPaymentError(LoanValidationError):
    """Raised when a payment amount or type is not acceptable."""


class EntityNotFoundError(WelfareLoanError):
    """Raised when a referenced entity does not exist."""


class LoanNotFoundError(EntityNotFoundError):
    """Raised when a loan id is unknown to the store."""


class ReferentialIntegrityError(EntityNotFoundError):
    """Raised when a foreign key reference is violated."""


class InvalidLoanStateError(WelfareLoanError):
    """Raised when a loan is in an invalid state for the operation."""


class NoPendingScheduleError(InvalidLoanStateError):
    """Raised when a repayment targets a loan with no pending installment."""


class ConcurrentUpdateError(WelfareLoanError):
    """Raised when a loan was modified since it was read."""


class ReconciliationComputeError(WelfareLoanError):
    """Raised when reconciliation of a single loan cannot be computed."""

    def __init__(self, loan_id: str, message: str) -> None:
        super().__init__(f"Loan {loan_id}: {message}")
        self.loan_id = loan_id


class ConfigurationError(WelfareLoanError):
    """Raised when configuration is invalid or missing."""


class SinkError(WelfareLoanError):
    """Raised when a sink operation fails."""


class StoreError(WelfareLoanError):
    """Raised when the database rejects or fails a store operation."""


class DuplicateRecordError(StoreError):
    """Raised when a write collides with an existing unique value."""
