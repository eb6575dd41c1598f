"""Repayment scenario: a synthetic welfare fund with realistic repayment behaviour."""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from faker import Faker

from welfare_loans.ledger.allocation import PaymentAllocator
from welfare_loans.ledger.events import EventSink
from welfare_loans.ledger.interest import SUPPORTED_TERMS
from welfare_loans.ledger.numbering import next_receipt_number
from welfare_loans.ledger.origination import LoanService
from welfare_loans.ledger.payments import PaymentRecorder
from welfare_loans.ledger.schedule import add_months
from welfare_loans.models import (
    LoanRepaymentPayment,
    LoanStatus,
    PaymentType,
)
from welfare_loans.store.memory import InMemoryLoanStore
from welfare_loans.store.port import LoanRepository

logger = logging.getLogger(__name__)

ON_TIME = "on_time"
PARTIAL = "partial"
PAYOFF = "payoff"
TAMPERED = "tampered"

MEMBERSHIP_FEE = Decimal("100.00")
MONTHLY_CONTRIBUTION = Decimal("50.00")


class RepaymentScenario:
    """Generate members, contributions and loans with repayment history.

    This scenario creates:
    - Members paying a membership fee and monthly contributions
    - Loan applications, some rejected, the rest disbursed and activated
    - Repayments up to ``as_of`` following one behaviour per loan:
        - On time: every due installment paid in full on its due date
        - Partial: one installment short-paid, the rest on time
        - Payoff: a few installments, then the whole balance at once
        - Tampered: on time, but one repayment posted twice in the ledger
    """

    def __init__(
        self,
        num_members: int = 50,
        loan_rate: float = 0.6,
        rejection_rate: float = 0.1,
        partial_rate: float = 0.15,
        payoff_rate: float = 0.1,
        tampered_rate: float = 0.05,
        as_of: date | None = None,
        seed: int | None = None,
        *,
        store: LoanRepository | None = None,
        events: EventSink | None = None,
    ) -> None:
        """Initialize repayment scenario.

        Parameters
        ----------
        num_members : int
            Number of fund members.
        loan_rate : float
            Share of members applying for a loan (0.0 to 1.0).
        rejection_rate : float
            Share of applications rejected.
        partial_rate, payoff_rate, tampered_rate : float
            Share of disbursed loans following each behaviour; the rest pay
            on time.
        as_of : date | None
            Last day of generated history (default: today).
        seed : int | None
            Random seed for reproducibility.
        store : LoanRepository | None
            Store to fill (default: a new in-memory store).
        events : EventSink | None
            Sink receiving ledger events while the history is built.
        """
        if partial_rate + payoff_rate + tampered_rate > 1:
            raise ValueError("Behaviour rates must not add up to more than 1")

        self.num_members = num_members
        self.loan_rate = loan_rate
        self.rejection_rate = rejection_rate
        self.partial_rate = partial_rate
        self.payoff_rate = payoff_rate
        self.tampered_rate = tampered_rate
        self.as_of = as_of or date.today()
        self.seed = seed

        self.fake = Faker()
        self._rng = random.Random(seed)
        if seed is not None:
            self.fake.seed_instance(seed)

        self.store = store if store is not None else InMemoryLoanStore()
        self.loans = LoanService(self.store, events=events)
        self.payments = PaymentRecorder(self.store, PaymentAllocator(self.store, events=events))

        self.members: list[str] = []
        self.behaviours: dict[str, str] = {}  # loan_id -> behaviour

    def generate(self) -> LoanRepository:
        """Build the whole fund history.

        Returns
        -------
        LoanRepository
            Store containing all generated data.
        """
        logger.info(
            "Starting repayment scenario: %d members, %.0f%% borrowing, as of %s",
            self.num_members,
            self.loan_rate * 100,
            self.as_of,
        )

        for _ in range(self.num_members):
            member_id = f"MBR{self.fake.unique.random_number(digits=6, fix_len=True)}"
            self.members.append(member_id)
            self._generate_contributions(member_id)

        borrowers = self._rng.sample(self.members, int(len(self.members) * self.loan_rate))
        for member_id in borrowers:
            self._generate_loan(member_id)

        logger.info(
            "Generated %d members, %d loans, %d payments",
            len(self.members),
            len(self.store.list_loans()),
            len(self.store.list_payments()),
        )
        return self.store

    def _generate_contributions(self, member_id: str) -> None:
        joined = self.fake.date_between(
            start_date=self.as_of - timedelta(days=730),
            end_date=self.as_of - timedelta(days=30),
        )
        self.payments.record_contribution(
            member_id, MEMBERSHIP_FEE, PaymentType.MEMBERSHIP_FEE, joined
        )

        month = 1
        while (due := add_months(joined, month)) <= self.as_of:
            # Members skip roughly one month in ten
            if self._rng.random() >= 0.1:
                self.payments.record_contribution(
                    member_id, MONTHLY_CONTRIBUTION, PaymentType.MONTHLY_CONTRIBUTION, due
                )
            month += 1

    def _pick_behaviour(self) -> str:
        roll = self._rng.random()
        if roll < self.partial_rate:
            return PARTIAL
        if roll < self.partial_rate + self.payoff_rate:
            return PAYOFF
        if roll < self.partial_rate + self.payoff_rate + self.tampered_rate:
            return TAMPERED
        return ON_TIME

    def _generate_loan(self, member_id: str) -> None:
        applied_on = self.fake.date_between(
            start_date=self.as_of - timedelta(days=540),
            end_date=self.as_of - timedelta(days=35),
        )
        principal = Decimal(self._rng.randrange(500, 20001, 50))
        term = self._rng.choice(SUPPORTED_TERMS)

        loan = self.loans.apply(member_id, principal, term, applied_on)
        if self._rng.random() < self.rejection_rate:
            self.loans.reject(loan.loan_id)
            return

        self.loans.approve(loan.loan_id)
        disbursed_on = applied_on + timedelta(days=self._rng.randint(1, 7))
        self.loans.disburse(loan.loan_id, disbursed_on)
        self.loans.activate(loan.loan_id)

        behaviour = self._pick_behaviour()
        self.behaviours[loan.loan_id] = behaviour
        self._repay(loan.loan_id, behaviour)

    def _repay(self, loan_id: str, behaviour: str) -> None:
        schedule = self.store.get_schedule(loan_id)
        due = [e for e in schedule if e.due_date <= self.as_of]
        short_installment = self._rng.randrange(len(due)) if due and behaviour == PARTIAL else None
        payoff_after = self._rng.randint(0, max(0, len(due) - 1)) if behaviour == PAYOFF else None

        for index, entry in enumerate(due):
            if self.store.get_loan(loan_id).status == LoanStatus.COMPLETED:
                break

            if index == payoff_after:
                balance = self.store.get_loan(loan_id).outstanding_balance
                self.payments.record_repayment(loan_id, balance, entry.due_date)
                break

            pending = self.store.next_pending_entry(loan_id)
            if pending is None:
                break
            amount = pending.total_amount
            if index == short_installment:
                amount = (amount * Decimal("0.6")).quantize(Decimal("0.01"))
            payment = self.payments.record_repayment(loan_id, amount, entry.due_date)

            if behaviour == TAMPERED and index == 0:
                self._post_twice(payment)

    def _post_twice(self, payment: LoanRepaymentPayment) -> None:
        """Store a copy of a repayment without allocating it."""
        duplicate = replace(
            payment,
            payment_id=str(uuid.uuid4()),
            receipt_number=next_receipt_number(self.store, payment.payment_date),
        )
        self.store.add_payment(duplicate)
        logger.debug("Posted receipt %s twice for loan %s", payment.receipt_number, payment.loan_id)

    def export(self, sinks: list[Any]) -> None:
        """Export generated data to sinks.

        Parameters
        ----------
        sinks : list[Any]
            Sinks with a ``write_batch(entity_type, records)`` method.
        """
        loans = self.store.list_loans()
        schedule = [entry for loan in loans for entry in self.store.get_schedule(loan.loan_id)]
        for sink in sinks:
            sink.write_batch("loans", loans)
            sink.write_batch("payment_schedule", schedule)
            sink.write_batch("payments", self.store.list_payments())
            sink.write_batch("reconciliation_records", self.store.list_reconciliation_records())

        logger.info("Exported repayment scenario to %d sinks", len(sinks))

    def get_summary(self) -> dict[str, Any]:
        """Get loan status and repayment behaviour counts.

        Returns
        -------
        dict[str, Any]
            Scenario summary statistics.
        """
        status_counts: dict[str, int] = {}
        for loan in self.store.list_loans():
            status_counts[loan.status.value] = status_counts.get(loan.status.value, 0) + 1

        behaviour_counts: dict[str, int] = {}
        for behaviour in self.behaviours.values():
            behaviour_counts[behaviour] = behaviour_counts.get(behaviour, 0) + 1

        return {
            "members": len(self.members),
            "loans": sum(status_counts.values()),
            "loan_status_distribution": status_counts,
            "behaviour_distribution": behaviour_counts,
            "payments": len(self.store.list_payments()),
        }
