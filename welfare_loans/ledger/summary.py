"""Fund availability snapshot."""

import logging

from welfare_loans.currency import ZERO
from welfare_loans.models import (
    CONTRIBUTION_TYPES,
    AccountingSummary,
    FundHealth,
    LoanStatus,
)
from welfare_loans.store.port import LoanRepository

logger = logging.getLogger(__name__)

OUTSTANDING_STATUSES = (LoanStatus.ACTIVE, LoanStatus.DISBURSED)
DISBURSED_STATUSES = (LoanStatus.DISBURSED, LoanStatus.ACTIVE, LoanStatus.COMPLETED)

# Open reconciliation records tolerated before the fund is flagged CRITICAL
MAX_OPEN_ISSUES = 5


def fund_health(open_issues: int) -> FundHealth:
    """Classify the number of open reconciliation records."""
    if open_issues == 0:
        return FundHealth.GOOD
    if open_issues <= MAX_OPEN_ISSUES:
        return FundHealth.ISSUES
    return FundHealth.CRITICAL


class AccountingSummaryAggregator:
    """Roll up loan running totals and contributions into a fund snapshot.

    Totals are read as stored; nothing is recomputed from payments or
    schedules. Use ``ReconciliationEngine`` to verify them.
    """

    def __init__(self, store: LoanRepository) -> None:
        self.store = store

    def generate_summary(self) -> AccountingSummary:
        """Summarize outstanding loans, collections and available funds."""
        outstanding = self.store.list_loans(OUTSTANDING_STATUSES)

        principal_outstanding = sum((loan.outstanding_principal for loan in outstanding), ZERO)
        interest_outstanding = sum((loan.outstanding_interest for loan in outstanding), ZERO)
        principal_received = sum((loan.principal_repaid for loan in outstanding), ZERO)
        interest_received = sum((loan.interest_repaid for loan in outstanding), ZERO)

        contributions = self.store.sum_payments(CONTRIBUTION_TYPES)
        disbursed = sum(
            (loan.amount_disbursed for loan in self.store.list_loans(DISBURSED_STATUSES)),
            ZERO,
        )
        available = contributions + principal_received + interest_received - disbursed

        open_issues = self.store.count_open_reconciliation_records()
        health = fund_health(open_issues)

        logger.info(
            "Fund summary: loans=%d available=%s open_issues=%d status=%s",
            len(outstanding),
            available,
            open_issues,
            health.value,
        )

        return AccountingSummary(
            total_loans_outstanding=len(outstanding),
            total_principal_outstanding=principal_outstanding,
            total_interest_outstanding=interest_outstanding,
            total_principal_received=principal_received,
            total_interest_received=interest_received,
            total_contributions=contributions,
            total_disbursed=disbursed,
            available_funds=available,
            open_reconciliation_issues=open_issues,
            reconciliation_status=health,
        )
