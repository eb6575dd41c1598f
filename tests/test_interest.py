"""Tests for flat-rate interest pricing."""

from decimal import Decimal

import pytest

from welfare_loans.exceptions import InvalidPrincipalError, InvalidTermError
from welfare_loans.ledger.interest import SUPPORTED_TERMS, calculate_interest, loan_term
from welfare_loans.models import LoanTerm


class TestLoanTerm:
    """Tests for term resolution."""

    def test_supported_terms(self) -> None:
        assert SUPPORTED_TERMS == (3, 6, 12)

    def test_resolves_supported_term(self) -> None:
        assert loan_term(6) is LoanTerm.SIX_MONTHS

    @pytest.mark.parametrize("term", [0, 1, 4, 9, 24, -3])
    def test_rejects_unsupported_term(self, term: int) -> None:
        with pytest.raises(InvalidTermError, match="Only 3, 6, 12 months"):
            loan_term(term)

    def test_rates_and_labels(self) -> None:
        assert LoanTerm.THREE_MONTHS.rate == Decimal("0.01")
        assert LoanTerm.SIX_MONTHS.rate == Decimal("0.03")
        assert LoanTerm.TWELVE_MONTHS.rate == Decimal("0.05")
        assert [t.rate_label for t in LoanTerm] == ["1%", "3%", "5%"]


class TestCalculateInterest:
    """Tests for calculate_interest."""

    def test_six_month_loan(self) -> None:
        """5000 over 6 months costs 3%."""
        quote = calculate_interest(Decimal("5000"), 6)

        assert quote.interest_rate == Decimal("0.03")
        assert quote.total_interest == Decimal("150")
        assert quote.total_amount == Decimal("5150")
        assert quote.monthly_payment.quantize(Decimal("0.01")) == Decimal("858.33")

    def test_three_month_loan(self) -> None:
        quote = calculate_interest(Decimal("1000"), 3)

        assert quote.interest_rate == Decimal("0.01")
        assert quote.total_interest == Decimal("10")
        assert quote.total_amount == Decimal("1010")

    def test_twelve_month_loan(self) -> None:
        quote = calculate_interest(Decimal("2000"), 12)

        assert quote.interest_rate == Decimal("0.05")
        assert quote.total_interest == Decimal("100")
        assert quote.total_amount == Decimal("2100")
        assert quote.monthly_payment == Decimal("175")

    def test_values_are_not_rounded(self) -> None:
        quote = calculate_interest(Decimal("1234.57"), 6)

        assert quote.total_interest == Decimal("37.0371")
        assert quote.total_amount == quote.total_interest + Decimal("1234.57")

    def test_float_principal_has_no_binary_artefacts(self) -> None:
        quote = calculate_interest(0.1, 3)
        assert quote.total_interest == Decimal("0.001")

    def test_string_and_int_principal(self) -> None:
        assert calculate_interest("5000", 6) == calculate_interest(5000, 6)

    @pytest.mark.parametrize("principal", [0, -1, Decimal("-0.01"), "NaN", "Infinity"])
    def test_rejects_non_positive_principal(self, principal: object) -> None:
        with pytest.raises(InvalidPrincipalError):
            calculate_interest(principal, 6)  # type: ignore[arg-type]

    def test_rejects_non_numeric_principal(self) -> None:
        with pytest.raises(InvalidPrincipalError):
            calculate_interest("five thousand", 6)

    def test_invalid_term_checked_before_principal(self) -> None:
        with pytest.raises(InvalidTermError):
            calculate_interest(-5, 4)

    def test_validation_errors_are_value_errors(self) -> None:
        with pytest.raises(ValueError):
            calculate_interest(1000, 5)
