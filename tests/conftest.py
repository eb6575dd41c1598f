"""Pytest configuration and fixtures."""

import logging
from collections.abc import Callable, Iterator
from datetime import date
from decimal import Decimal

import pytest

from welfare_loans.ledger.allocation import PaymentAllocator
from welfare_loans.ledger.origination import LoanService
from welfare_loans.ledger.payments import PaymentRecorder
from welfare_loans.models import Event, Loan
from welfare_loans.store.memory import InMemoryLoanStore


class RecordingSink:
    """Event sink keeping published events in memory."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def publish(self, event: Event) -> None:
        self.events.append(event)

    def close(self) -> None:
        pass

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    """Put the root logger back after a test that calls setup_logging."""
    root = logging.getLogger()
    level, handlers = root.level, root.handlers[:]
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def sample_member_id() -> str:
    """Sample member ID."""
    return "MBR000001"


@pytest.fixture
def disbursement_date() -> date:
    """Disbursement date used by loan fixtures."""
    return date(2024, 1, 15)


@pytest.fixture
def store() -> InMemoryLoanStore:
    """Empty in-memory ledger."""
    return InMemoryLoanStore()


@pytest.fixture
def events() -> RecordingSink:
    """Sink collecting ledger events."""
    return RecordingSink()


@pytest.fixture
def service(store: InMemoryLoanStore, events: RecordingSink) -> LoanService:
    return LoanService(store, events=events)


@pytest.fixture
def allocator(store: InMemoryLoanStore, events: RecordingSink) -> PaymentAllocator:
    return PaymentAllocator(store, events=events)


@pytest.fixture
def recorder(store: InMemoryLoanStore, allocator: PaymentAllocator) -> PaymentRecorder:
    return PaymentRecorder(store, allocator)


@pytest.fixture
def make_active_loan(
    service: LoanService,
    sample_member_id: str,
    disbursement_date: date,
) -> Callable[..., Loan]:
    """Factory taking a loan through application, approval, disbursement and activation."""

    def _make(
        principal: Decimal | str = "5000",
        term_months: int = 6,
        member_id: str = sample_member_id,
        disbursed_on: date = disbursement_date,
    ) -> Loan:
        loan = service.apply(member_id, Decimal(principal), term_months, disbursed_on)
        service.approve(loan.loan_id)
        service.disburse(loan.loan_id, disbursed_on)
        return service.activate(loan.loan_id)

    return _make


@pytest.fixture
def active_loan(make_active_loan: Callable[..., Loan]) -> Loan:
    """ACTIVE loan of 5000 over 6 months disbursed on 15 January 2024."""
    return make_active_loan()
