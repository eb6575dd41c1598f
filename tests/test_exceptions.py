"""Tests for custom exception hierarchy."""

import pytest

from welfare_loans.exceptions import (
    ConcurrentUpdateError,
    ConfigurationError,
    DuplicateRecordError,
    EntityNotFoundError,
    InvalidLoanStateError,
    InvalidPaymentError,
    InvalidPrincipalError,
    InvalidTermError,
    LoanNotFoundError,
    LoanValidationError,
    NoPendingScheduleError,
    ReconciliationComputeError,
    ReferentialIntegrityError,
    SinkError,
    StoreError,
    WelfareLoanError,
)


class TestExceptionHierarchy:
    """Test exception inheritance chain."""

    def test_base_is_exception(self) -> None:
        assert isinstance(WelfareLoanError("test"), Exception)

    @pytest.mark.parametrize(
        "exc_type",
        [
            EntityNotFoundError,
            InvalidLoanStateError,
            ConcurrentUpdateError,
            ConfigurationError,
            SinkError,
            StoreError,
            LoanValidationError,
        ],
    )
    def test_is_welfare_loan_error(self, exc_type: type[Exception]) -> None:
        assert isinstance(exc_type("test"), WelfareLoanError)

    @pytest.mark.parametrize(
        "exc_type", [InvalidTermError, InvalidPrincipalError, InvalidPaymentError]
    )
    def test_validation_errors_are_value_errors(self, exc_type: type[Exception]) -> None:
        err = exc_type("test")
        assert isinstance(err, LoanValidationError)
        assert isinstance(err, ValueError)

    def test_not_found_errors(self) -> None:
        assert isinstance(LoanNotFoundError("test"), EntityNotFoundError)
        assert isinstance(ReferentialIntegrityError("test"), EntityNotFoundError)

    def test_duplicate_record_is_store_error(self) -> None:
        assert isinstance(DuplicateRecordError("test"), StoreError)

    def test_no_pending_schedule_is_state_error(self) -> None:
        assert isinstance(NoPendingScheduleError("test"), InvalidLoanStateError)

    def test_exception_message(self) -> None:
        err = LoanNotFoundError("Loan loan-001 not found")
        assert str(err) == "Loan loan-001 not found"


class TestReconciliationComputeError:
    """Tests for ReconciliationComputeError."""

    def test_carries_loan_id(self) -> None:
        err = ReconciliationComputeError("loan-001", "schedule missing")

        assert err.loan_id == "loan-001"
        assert str(err) == "Loan loan-001: schedule missing"
        assert isinstance(err, WelfareLoanError)
