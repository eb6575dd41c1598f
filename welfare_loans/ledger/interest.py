"""Flat-rate interest pricing for member loans."""

from dataclasses import dataclass
from decimal import Decimal

from welfare_loans.currency import to_decimal
from welfare_loans.exceptions import InvalidPrincipalError, InvalidTermError
from welfare_loans.models.enums import LoanTerm

SUPPORTED_TERMS = tuple(int(term) for term in LoanTerm)


@dataclass(frozen=True)
class InterestQuote:
    """Price of a loan over its whole term.

    Values are exact; rounding to pesewas happens when a schedule is built
    or a loan is stored.
    """

    interest_rate: Decimal
    total_interest: Decimal
    total_amount: Decimal
    monthly_payment: Decimal


def loan_term(term_months: int) -> LoanTerm:
    """Resolve a month count to a supported term.

    Raises
    ------
    InvalidTermError
        If the term is not 3, 6 or 12 months.
    """
    try:
        return LoanTerm(term_months)
    except ValueError:
        raise InvalidTermError(
            f"Invalid loan term {term_months!r}. "
            f"Only {', '.join(map(str, SUPPORTED_TERMS))} months are allowed."
        ) from None


def calculate_interest(principal: Decimal | int | float | str, term_months: int) -> InterestQuote:
    """Price a loan at the flat rate for its term.

    Interest is charged once on the original principal (1% for 3 months,
    3% for 6, 5% for 12) and repaid in level monthly payments.

    Parameters
    ----------
    principal : Decimal | int | float | str
        Amount borrowed. Must be positive.
    term_months : int
        Loan term, one of 3, 6 or 12.

    Returns
    -------
    InterestQuote
        Rate, total interest, total repayable and level monthly payment.

    Raises
    ------
    InvalidTermError
        Unsupported term.
    InvalidPrincipalError
        Principal is not a positive finite amount.
    """
    term = loan_term(term_months)

    try:
        amount = to_decimal(principal)
    except ValueError as exc:
        raise InvalidPrincipalError(str(exc)) from exc
    if not amount.is_finite() or amount <= 0:
        raise InvalidPrincipalError(f"Principal must be positive, got {principal!r}")

    total_interest = amount * term.rate
    total_amount = amount + total_interest

    return InterestQuote(
        interest_rate=term.rate,
        total_interest=total_interest,
        total_amount=total_amount,
        monthly_payment=total_amount / int(term),
    )
