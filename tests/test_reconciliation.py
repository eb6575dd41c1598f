"""Tests for loan reconciliation."""

import time
import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest

from welfare_loans.config import ReconciliationConfig
from welfare_loans.exceptions import (
    InvalidTermError,
    LoanNotFoundError,
    ReconciliationComputeError,
    StoreError,
)
from welfare_loans.ledger.origination import LoanService
from welfare_loans.ledger.payments import PaymentRecorder
from welfare_loans.ledger.reconciliation import ReconciliationEngine, classify_difference
from welfare_loans.models import (
    AuditAction,
    AuditLogEntry,
    Loan,
    LoanRepaymentPayment,
    LoanStatus,
    PaymentType,
    ReconciliationStatus,
    ReconciliationType,
)
from welfare_loans.store.memory import InMemoryLoanStore


class SlowStore(InMemoryLoanStore):
    """Store whose payment lookup hangs for one loan."""

    slow_loan_id: str | None = None

    def list_payments(self, loan_id=None, payment_types=None, start_date=None, end_date=None):
        if loan_id is not None and loan_id == self.slow_loan_id:
            time.sleep(1.0)
        return super().list_payments(loan_id, payment_types, start_date, end_date)


class FlakyAuditStore(InMemoryLoanStore):
    """Store whose audit log rejects writes for one loan."""

    failing_entity_id: str | None = None

    def add_audit_entry(self, entry: AuditLogEntry) -> None:
        if entry.entity_id == self.failing_entity_id:
            raise StoreError("could not serialize access")
        super().add_audit_entry(entry)


def _corrupt_loan(store: InMemoryLoanStore) -> Loan:
    """ACTIVE loan with a term the calculator does not support."""
    loan = Loan(
        loan_id=str(uuid.uuid4()),
        loan_number="LOAN20249999",
        member_id="MBR999999",
        principal=Decimal("1000.00"),
        term_months=4,
        total_interest=Decimal("20.00"),
        total_amount=Decimal("1020.00"),
        monthly_payment=Decimal("255.00"),
        status=LoanStatus.ACTIVE,
        created_at=datetime(2024, 1, 1),
    )
    store.add_loan(loan)
    return loan


class TestClassifyDifference:
    """Tests for the one-pesewa tolerance."""

    def test_zero_is_reconciled(self) -> None:
        assert classify_difference(Decimal("0")) == ReconciliationStatus.RECONCILED

    def test_below_one_pesewa_is_reconciled(self) -> None:
        assert classify_difference(Decimal("0.009")) == ReconciliationStatus.RECONCILED
        assert classify_difference(Decimal("-0.009")) == ReconciliationStatus.RECONCILED

    def test_one_pesewa_is_discrepancy(self) -> None:
        assert classify_difference(Decimal("0.01")) == ReconciliationStatus.DISCREPANCY

    def test_overpayment_is_discrepancy(self) -> None:
        assert classify_difference(Decimal("-858.33")) == ReconciliationStatus.DISCREPANCY


class TestReconcileLoan:
    """Tests for single-loan reconciliation."""

    def test_fully_repaid_loan_reconciles(
        self, store: InMemoryLoanStore, recorder: PaymentRecorder, active_loan: Loan
    ) -> None:
        recorder.record_repayment(active_loan.loan_id, "5150", date(2024, 3, 1))

        result = ReconciliationEngine(store).reconcile_loan(active_loan.loan_id)

        assert result.loan_id == active_loan.loan_id
        assert result.expected_principal == Decimal("5000.00")
        assert result.expected_interest == Decimal("150.00")
        assert result.expected_total == Decimal("5150.00")
        assert result.actual_principal == Decimal("5000.00")
        assert result.actual_interest == Decimal("150.00")
        assert result.actual_total == Decimal("5150.00")
        assert result.difference == Decimal("0")
        assert result.status == ReconciliationStatus.RECONCILED

    def test_installments_paid_in_full_reconcile(
        self, store: InMemoryLoanStore, recorder: PaymentRecorder, active_loan: Loan
    ) -> None:
        for entry in store.get_schedule(active_loan.loan_id):
            recorder.record_repayment(active_loan.loan_id, entry.total_amount, entry.due_date)

        result = ReconciliationEngine(store).reconcile_loan(active_loan.loan_id)

        assert result.status == ReconciliationStatus.RECONCILED

    def test_mid_term_loan_shows_discrepancy(
        self, store: InMemoryLoanStore, recorder: PaymentRecorder, active_loan: Loan
    ) -> None:
        """Expected totals cover the whole contract, not what is due so far."""
        recorder.record_repayment(active_loan.loan_id, "858.33", date(2024, 2, 15))

        result = ReconciliationEngine(store).reconcile_loan(active_loan.loan_id)

        assert result.actual_total == Decimal("858.33")
        assert result.difference == Decimal("4291.67")
        assert result.status == ReconciliationStatus.DISCREPANCY

    def test_ignores_contributions(
        self, store: InMemoryLoanStore, recorder: PaymentRecorder, active_loan: Loan
    ) -> None:
        recorder.record_repayment(active_loan.loan_id, "5150", date(2024, 3, 1))
        recorder.record_contribution(
            active_loan.member_id, "50", PaymentType.MONTHLY_CONTRIBUTION, date(2024, 3, 1)
        )

        result = ReconciliationEngine(store).reconcile_loan(active_loan.loan_id)

        assert result.status == ReconciliationStatus.RECONCILED

    def test_single_loan_does_not_write(
        self, store: InMemoryLoanStore, active_loan: Loan
    ) -> None:
        ReconciliationEngine(store).reconcile_loan(active_loan.loan_id)

        assert store.list_reconciliation_records() == []
        assert store.list_audit_entries() == []
        assert store.get_loan(active_loan.loan_id).last_reconciled_at is None

    def test_unknown_loan(self, store: InMemoryLoanStore) -> None:
        with pytest.raises(LoanNotFoundError):
            ReconciliationEngine(store).reconcile_loan("loan-missing")

    def test_corrupt_loan_propagates(self, store: InMemoryLoanStore) -> None:
        loan = _corrupt_loan(store)

        with pytest.raises(InvalidTermError):
            ReconciliationEngine(store).reconcile_loan(loan.loan_id)


class TestReconcileAllLoans:
    """Tests for the batch reconciliation job."""

    @pytest.fixture
    def fund(
        self,
        service: LoanService,
        recorder: PaymentRecorder,
        make_active_loan,
    ) -> dict[str, Loan]:
        """One repaid, one mid-term and one pending loan."""
        repaid = make_active_loan("5000", 6, member_id="MBR000001")
        recorder.record_repayment(repaid.loan_id, "5150", date(2024, 3, 1))

        mid_term = make_active_loan("1000", 3, member_id="MBR000002")
        recorder.record_repayment(mid_term.loan_id, "336.66", date(2024, 2, 15))

        pending = service.apply("MBR000003", Decimal("2000"), 12, date(2024, 1, 20))
        return {"repaid": repaid, "mid_term": mid_term, "pending": pending}

    def test_reconciles_active_and_completed_loans(
        self, store: InMemoryLoanStore, fund: dict[str, Loan]
    ) -> None:
        batch = ReconciliationEngine(store).reconcile_all_loans()

        reconciled = {r.loan_id for r in batch.results}
        assert reconciled == {fund["repaid"].loan_id, fund["mid_term"].loan_id}
        assert batch.reconciled_count == 1
        assert batch.discrepancy_count == 1
        assert batch.failures == {}

    def test_discrepancy_creates_record(
        self, store: InMemoryLoanStore, fund: dict[str, Loan]
    ) -> None:
        batch = ReconciliationEngine(store).reconcile_all_loans()

        [record] = batch.records
        assert store.list_reconciliation_records() == [record]
        assert record.entity_id == fund["mid_term"].loan_id
        assert record.reference_number == fund["mid_term"].loan_number
        assert record.reconciliation_type == ReconciliationType.LOAN_PAYMENT
        assert record.status == ReconciliationStatus.DISCREPANCY
        assert record.expected_amount == Decimal("1010.00")
        assert record.actual_amount == Decimal("336.66")
        assert record.difference == Decimal("673.34")
        assert "Expected: ₵1,010.00" in record.notes
        assert "Actual: ₵336.66" in record.notes

    def test_updates_loan_flags(self, store: InMemoryLoanStore, fund: dict[str, Loan]) -> None:
        ReconciliationEngine(store).reconcile_all_loans()

        repaid = store.get_loan(fund["repaid"].loan_id)
        mid_term = store.get_loan(fund["mid_term"].loan_id)
        pending = store.get_loan(fund["pending"].loan_id)

        assert repaid.is_fully_reconciled is True
        assert repaid.last_reconciled_at is not None
        assert mid_term.is_fully_reconciled is False
        assert mid_term.last_reconciled_at is not None
        assert pending.last_reconciled_at is None

    def test_writes_audit_trail(self, store: InMemoryLoanStore, fund: dict[str, Loan]) -> None:
        ReconciliationEngine(store).reconcile_all_loans(actor_id="treasurer-01")

        entries = store.list_audit_entries()
        assert len(entries) == 2
        assert {e.entity_id for e in entries} == {
            fund["repaid"].loan_id,
            fund["mid_term"].loan_id,
        }
        assert all(e.actor_id == "treasurer-01" for e in entries)
        assert all(e.action == AuditAction.RECONCILE for e in entries)
        assert all(e.entity_type == "Loan" for e in entries)

        [mid_term_entry] = store.list_audit_entries(fund["mid_term"].loan_id)
        assert mid_term_entry.new_values["status"] == "DISCREPANCY"
        assert mid_term_entry.new_values["difference"] == "673.34"

    def test_default_actor_from_config(
        self, store: InMemoryLoanStore, fund: dict[str, Loan]
    ) -> None:
        config = ReconciliationConfig(actor_id="nightly-job")
        ReconciliationEngine(store, config).reconcile_all_loans()

        assert {e.actor_id for e in store.list_audit_entries()} == {"nightly-job"}

    def test_rerun_appends_new_records(
        self, store: InMemoryLoanStore, fund: dict[str, Loan]
    ) -> None:
        engine = ReconciliationEngine(store)
        engine.reconcile_all_loans()
        engine.reconcile_all_loans()

        assert len(store.list_reconciliation_records()) == 2
        assert store.count_open_reconciliation_records() == 2

    def test_publishes_events(
        self, store: InMemoryLoanStore, events, fund: dict[str, Loan]
    ) -> None:
        ReconciliationEngine(store, events=events).reconcile_all_loans()

        assert len(events.of_type("loan.reconciled")) == 2
        [discrepancy] = events.of_type("reconciliation.discrepancy")
        assert discrepancy.subject == fund["mid_term"].loan_id
        assert discrepancy.data["difference"] == Decimal("673.34")

    def test_tampered_ledger_detected(
        self, store: InMemoryLoanStore, recorder: PaymentRecorder, make_active_loan
    ) -> None:
        """A repayment posted twice makes the loan look overpaid."""
        loan = make_active_loan("1000", 3)
        payment = recorder.record_repayment(loan.loan_id, "1010", date(2024, 2, 15))
        store.add_payment(
            LoanRepaymentPayment(
                payment_id=str(uuid.uuid4()),
                member_id=payment.member_id,
                loan_id=loan.loan_id,
                amount=Decimal("100.00"),
                principal_amount=Decimal("100.00"),
                interest_amount=Decimal("0.00"),
                payment_date=date(2024, 2, 16),
                receipt_number="RCP2024029999",
            )
        )

        batch = ReconciliationEngine(store).reconcile_all_loans()

        [result] = batch.results
        assert result.status == ReconciliationStatus.DISCREPANCY
        assert result.difference == Decimal("-100.00")

    def test_continues_past_corrupt_loan(
        self, store: InMemoryLoanStore, fund: dict[str, Loan]
    ) -> None:
        corrupt = _corrupt_loan(store)

        batch = ReconciliationEngine(store).reconcile_all_loans()

        assert len(batch.results) == 2
        assert list(batch.failures) == [corrupt.loan_id]
        assert batch.failures[corrupt.loan_id].startswith(f"Loan {corrupt.loan_id}:")
        assert store.get_loan(corrupt.loan_id).last_reconciled_at is None

    def test_continues_past_store_failure(self) -> None:
        store = FlakyAuditStore()
        service = LoanService(store)
        loans = []
        for n in range(1, 4):
            loan = service.apply(f"MBR00000{n}", Decimal("1000"), 3, date(2024, 1, 15))
            service.approve(loan.loan_id)
            service.disburse(loan.loan_id, date(2024, 1, 15))
            loans.append(service.activate(loan.loan_id))
        store.failing_entity_id = loans[1].loan_id

        batch = ReconciliationEngine(store).reconcile_all_loans()

        assert list(batch.failures) == [loans[1].loan_id]
        assert "could not serialize access" in batch.failures[loans[1].loan_id]
        assert [r.loan_id for r in batch.results] == [loans[0].loan_id, loans[2].loan_id]

    def test_failure_is_logged(
        self, store: InMemoryLoanStore, fund: dict[str, Loan], caplog: pytest.LogCaptureFixture
    ) -> None:
        _corrupt_loan(store)

        with caplog.at_level("ERROR", logger="welfare_loans.ledger.reconciliation"):
            ReconciliationEngine(store).reconcile_all_loans()

        assert "Error reconciling loan LOAN20249999" in caplog.text

    @staticmethod
    def _slow_fund(store: SlowStore, count: int) -> list[Loan]:
        service = LoanService(store)
        recorder = PaymentRecorder(store)
        loans = []
        for n in range(1, count + 1):
            loan = service.apply(f"MBR{n:06d}", Decimal("1000"), 3, date(2024, 1, 15))
            service.approve(loan.loan_id)
            service.disburse(loan.loan_id, date(2024, 1, 15))
            service.activate(loan.loan_id)
            recorder.record_repayment(loan.loan_id, "1010", date(2024, 2, 15))
            loans.append(loan)
        return loans

    def test_slow_loan_times_out(self) -> None:
        store = SlowStore()
        loans = self._slow_fund(store, 2)
        store.slow_loan_id = loans[0].loan_id

        config = ReconciliationConfig(per_loan_timeout_seconds=0.1, max_workers=2)
        batch = ReconciliationEngine(store, config).reconcile_all_loans()

        assert "timed out" in batch.failures[loans[0].loan_id]
        assert [r.loan_id for r in batch.results] == [loans[1].loan_id]
        assert batch.results[0].status == ReconciliationStatus.RECONCILED

    def test_hung_loan_does_not_starve_queued_loans(self) -> None:
        store = SlowStore()
        loans = self._slow_fund(store, 4)
        store.slow_loan_id = loans[0].loan_id

        config = ReconciliationConfig(per_loan_timeout_seconds=0.1, max_workers=1)
        batch = ReconciliationEngine(store, config).reconcile_all_loans()

        assert list(batch.failures) == [loans[0].loan_id]
        assert [r.loan_id for r in batch.results] == [loan.loan_id for loan in loans[1:]]
        assert batch.reconciled_count == 3
        assert store.get_loan(loans[3].loan_id).is_fully_reconciled

    def test_results_follow_loan_order(self, store: InMemoryLoanStore, make_active_loan) -> None:
        loans = [make_active_loan("1000", 3, member_id=f"MBR00000{n}") for n in range(1, 6)]

        config = ReconciliationConfig(max_workers=3)
        batch = ReconciliationEngine(store, config).reconcile_all_loans()

        assert [r.loan_id for r in batch.results] == [loan.loan_id for loan in loans]
        assert [r.entity_id for r in batch.records] == [loan.loan_id for loan in loans]


class TestRecordAuditTrail:
    """Tests for record_audit_trail."""

    def test_appends_serialized_entry(self, store: InMemoryLoanStore) -> None:
        engine = ReconciliationEngine(store)

        entry = engine.record_audit_trail(
            "treasurer-01",
            "Loan",
            "loan-test-001",
            {"difference": Decimal("12.50"), "checked_on": date(2024, 3, 1)},
        )

        assert store.list_audit_entries("loan-test-001") == [entry]
        assert entry.action == AuditAction.RECONCILE
        assert entry.new_values == {"difference": "12.50", "checked_on": "2024-03-01"}


class TestReconciliationComputeError:
    """Tests for the per-loan batch error."""

    def test_message_names_loan(self) -> None:
        err = ReconciliationComputeError("loan-test-001", "bad term")

        assert str(err) == "Loan loan-test-001: bad term"
        assert err.loan_id == "loan-test-001"
