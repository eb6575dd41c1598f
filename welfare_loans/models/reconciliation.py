"""Reconciliation, audit and reporting models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from welfare_loans.models.enums import (
    AuditAction,
    FundHealth,
    ReconciliationStatus,
    ReconciliationType,
)


@dataclass(frozen=True)
class ReconciliationRecord:
    """Append-only audit artefact for a loan whose payments do not add up."""

    record_id: str
    reconciliation_type: ReconciliationType
    reference_number: str  # Loan number
    entity_id: str  # Loan ID
    expected_amount: Decimal
    actual_amount: Decimal
    difference: Decimal
    status: ReconciliationStatus
    notes: str
    created_at: datetime


@dataclass(frozen=True)
class AuditLogEntry:
    """Who did what to which entity."""

    entry_id: str
    actor_id: str
    action: AuditAction
    entity_type: str
    entity_id: str
    new_values: dict[str, Any]
    created_at: datetime


@dataclass
class ReconciliationResult:
    """Expected versus actual repayment totals for one loan."""

    loan_id: str
    expected_principal: Decimal
    expected_interest: Decimal
    expected_total: Decimal
    actual_principal: Decimal
    actual_interest: Decimal
    actual_total: Decimal
    difference: Decimal  # expected_total - actual_total
    status: ReconciliationStatus


@dataclass
class AccountingSummary:
    """Fund availability snapshot."""

    total_loans_outstanding: int
    total_principal_outstanding: Decimal
    total_interest_outstanding: Decimal
    total_principal_received: Decimal
    total_interest_received: Decimal
    total_contributions: Decimal
    total_disbursed: Decimal
    available_funds: Decimal
    open_reconciliation_issues: int
    reconciliation_status: FundHealth


@dataclass
class TermBucket:
    """Interest collected from loans of one term."""

    term_months: int
    rate: str
    count: int = 0
    total_interest: Decimal = Decimal("0.00")


@dataclass
class InterestReportLine:
    payment_id: str
    member_id: str
    loan_number: str | None
    payment_date: date
    principal_amount: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    term_months: int | None
    interest_rate: Decimal | None


@dataclass
class InterestReport:
    """Principal and interest collected over a date range."""

    start_date: date
    end_date: date
    total_principal_collected: Decimal
    total_interest_collected: Decimal
    by_term: dict[int, TermBucket] = field(default_factory=dict)
    lines: list[InterestReportLine] = field(default_factory=list)
