"""Repayment schedule generation."""

import calendar
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_DOWN, Decimal

from welfare_loans.currency import CENT, round_currency
from welfare_loans.ledger.interest import calculate_interest
from welfare_loans.models import ScheduleEntry, ScheduleStatus


@dataclass(frozen=True)
class Installment:
    """One computed installment, before it is persisted."""

    installment_number: int
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal
    total_amount: Decimal


def add_months(start: date, months: int) -> date:
    """Advance a date by calendar months, clamping to the month's last day.

    ``add_months(date(2024, 1, 31), 1)`` is 29 February 2024.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def generate_schedule(
    principal: Decimal | int | float | str,
    term_months: int,
    start_date: date,
) -> list[Installment]:
    """Build the flat-rate repayment schedule of a loan.

    Each installment repays ``principal / term`` and ``total_interest / term``
    truncated to pesewas. The last installment absorbs the residue, which is
    never negative, so the principal column sums exactly to the principal and
    the interest column to the total interest rounded to pesewas.
    Installment ``i`` falls due ``i`` calendar months after ``start_date``.

    Raises
    ------
    InvalidTermError, InvalidPrincipalError
        Propagated from ``calculate_interest``.
    """
    quote = calculate_interest(principal, term_months)
    total_principal = round_currency(principal)
    total_interest = round_currency(quote.total_interest)

    monthly_principal = (total_principal / term_months).quantize(CENT, rounding=ROUND_DOWN)
    monthly_interest = (total_interest / term_months).quantize(CENT, rounding=ROUND_DOWN)

    installments = []
    for i in range(1, term_months + 1):
        if i < term_months:
            principal_amount = monthly_principal
            interest_amount = monthly_interest
        else:
            principal_amount = total_principal - monthly_principal * (term_months - 1)
            interest_amount = total_interest - monthly_interest * (term_months - 1)

        installments.append(
            Installment(
                installment_number=i,
                due_date=add_months(start_date, i),
                principal_amount=principal_amount,
                interest_amount=interest_amount,
                total_amount=principal_amount + interest_amount,
            )
        )

    return installments


def build_schedule_entries(loan_id: str, installments: list[Installment]) -> list[ScheduleEntry]:
    """Turn computed installments into PENDING schedule rows for a loan."""
    return [
        ScheduleEntry(
            entry_id=str(uuid.uuid4()),
            loan_id=loan_id,
            installment_number=inst.installment_number,
            due_date=inst.due_date,
            principal_amount=inst.principal_amount,
            interest_amount=inst.interest_amount,
            total_amount=inst.total_amount,
            status=ScheduleStatus.PENDING,
        )
        for inst in installments
    ]
