"""Interest income reporting."""

from datetime import date

from welfare_loans.currency import ZERO
from welfare_loans.models import (
    InterestReport,
    InterestReportLine,
    Loan,
    LoanRepaymentPayment,
    LoanTerm,
    PaymentType,
    TermBucket,
)
from welfare_loans.store.port import LoanRepository


def generate_interest_report(
    store: LoanRepository,
    start_date: date,
    end_date: date,
) -> InterestReport:
    """Summarize principal and interest collected between two dates.

    Every loan repayment dated within ``start_date``..``end_date`` (inclusive)
    is counted once in its loan's term bucket and listed as a report line.
    """
    if end_date < start_date:
        raise ValueError(f"Report period ends ({end_date}) before it starts ({start_date})")

    by_term = {
        int(term): TermBucket(term_months=int(term), rate=term.rate_label) for term in LoanTerm
    }
    report = InterestReport(
        start_date=start_date,
        end_date=end_date,
        total_principal_collected=ZERO,
        total_interest_collected=ZERO,
        by_term=by_term,
    )

    loans: dict[str, Loan] = {}
    payments = store.list_payments(
        payment_types=[PaymentType.LOAN_REPAYMENT],
        start_date=start_date,
        end_date=end_date,
    )
    for payment in sorted(payments, key=lambda p: p.payment_date):
        if not isinstance(payment, LoanRepaymentPayment):
            continue
        if payment.loan_id not in loans:
            loans[payment.loan_id] = store.get_loan(payment.loan_id)
        loan = loans[payment.loan_id]

        report.total_principal_collected += payment.principal_amount
        report.total_interest_collected += payment.interest_amount

        bucket = by_term.get(loan.term_months)
        if bucket is not None:
            bucket.count += 1
            bucket.total_interest += payment.interest_amount

        report.lines.append(
            InterestReportLine(
                payment_id=payment.payment_id,
                member_id=payment.member_id,
                loan_number=loan.loan_number,
                payment_date=payment.payment_date,
                principal_amount=payment.principal_amount,
                interest_amount=payment.interest_amount,
                total_amount=payment.amount,
                term_months=loan.term_months,
                interest_rate=loan.interest_rate if bucket is not None else None,
            )
        )

    return report
