"""
PayrollService: period lifecycle and batch runs.

Covers computation of draft entries, idempotent reruns, per-employee
failure isolation, cancellation, the run lock and entry approval.
"""

import threading
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from cafe_config.schema import (
    BracketTable,
    DeductionBasis,
    DeductionBracket,
    DeductionType,
    LockingSettings,
)
from cafe_kernel.domain.dtos import ManualDeductions
from cafe_kernel.exceptions import (
    AuthorizationError,
    OpenPeriodExistsError,
    PayrollRunInProgressError,
    PeriodNotOpenError,
    PeriodOverlapError,
    StaleStateError,
    ValidationError,
)
from cafe_modules.payroll.models import EmployeeOutcome, EntryStatus, PeriodStatus, RunStatus
from cafe_modules.payroll.orm import PayrollRunModel
from cafe_modules.payroll.service import PayrollService, payroll_lock_key
from tests.conftest import TEST_ACTOR_ID

JANUARY = (date(2025, 1, 1), date(2025, 1, 31))


@pytest.fixture
def period(payroll_service, branch, manager_ctx):
    return payroll_service.open_period(branch.id, *JANUARY, manager_ctx)


@pytest.fixture
def worked(work_shift, alice, bob):
    """Alice: 9h with a 30-minute lunch on Tuesday.  Bob: 8h on Wednesday."""
    work_shift(alice, datetime(2025, 1, 7, 9, 0), 540, unpaid_break=(240, 30))
    work_shift(bob, datetime(2025, 1, 8, 9, 0), 480)


@pytest.fixture
def service_with(session, clock, event_sink, lock_registry):
    def _service(config):
        return PayrollService(session, config, clock, event_sink, lock_registry)

    return _service


def gapped_sss_config(config):
    """Period-gross basis and an SSS table with nothing between 500 and 1000."""
    gapped = BracketTable(
        DeductionType.SSS,
        date(2024, 1, 1),
        (
            DeductionBracket(DeductionType.SSS, Decimal("0.00"), Decimal("500.00"),
                             fixed_contribution=Decimal("10.00")),
            DeductionBracket(DeductionType.SSS, Decimal("1000.00"), None,
                             fixed_contribution=Decimal("50.00")),
        ),
    )
    tables = tuple(t for t in config.bracket_tables if t.deduction_type is not DeductionType.SSS)
    return replace(
        config,
        bracket_tables=tables + (gapped,),
        deductions=replace(config.deductions, basis=DeductionBasis.PERIOD_GROSS),
    )


class TestPeriods:
    def test_open_period(self, period, payroll_service, branch):
        assert period.status is PeriodStatus.OPEN
        assert period.days == 31
        assert payroll_service.open_period_for(branch.id) == period

    def test_second_open_period_rejected(self, period, payroll_service, branch, manager_ctx):
        with pytest.raises(OpenPeriodExistsError):
            payroll_service.open_period(branch.id, date(2025, 2, 1), date(2025, 2, 28), manager_ctx)

    def test_overlap_rejected_even_when_closed(self, period, payroll_service, branch, manager_ctx):
        payroll_service.close_period(period.id, manager_ctx)
        with pytest.raises(PeriodOverlapError) as exc_info:
            payroll_service.open_period(branch.id, date(2025, 1, 31), date(2025, 2, 14), manager_ctx)
        assert exc_info.value.existing_id == period.id

    def test_next_period_after_close(self, period, payroll_service, branch, manager_ctx):
        closed = payroll_service.close_period(period.id, manager_ctx)
        assert closed.status is PeriodStatus.CLOSED
        assert payroll_service.open_period_for(branch.id) is None

        february = payroll_service.open_period(branch.id, date(2025, 2, 1), date(2025, 2, 28), manager_ctx)
        assert payroll_service.open_period_for(branch.id).id == february.id

    def test_end_before_start(self, payroll_service, branch, manager_ctx):
        with pytest.raises(ValidationError):
            payroll_service.open_period(branch.id, date(2025, 1, 31), date(2025, 1, 1), manager_ctx)

    def test_employee_cannot_open(self, payroll_service, branch, alice, ctx_for):
        with pytest.raises(AuthorizationError):
            payroll_service.open_period(branch.id, *JANUARY, ctx_for(alice))

    def test_mark_paid_requires_approved_entries(self, period, worked, payroll_service, manager_ctx):
        payroll_service.run_payroll(period.id, manager_ctx)
        payroll_service.close_period(period.id, manager_ctx)
        with pytest.raises(ValidationError, match="draft"):
            payroll_service.mark_period_paid(period.id, manager_ctx)

        for entry in payroll_service.list_entries(period.id):
            payroll_service.approve_entry(entry.id, manager_ctx)
        paid = payroll_service.mark_period_paid(period.id, manager_ctx)

        assert paid.status is PeriodStatus.PAID
        assert {e.status for e in payroll_service.list_entries(period.id)} == {EntryStatus.PAID}

    def test_mark_paid_needs_closed_period(self, period, payroll_service, manager_ctx):
        with pytest.raises(StaleStateError):
            payroll_service.mark_period_paid(period.id, manager_ctx)


class TestRunPayroll:
    def test_computes_draft_entries(self, period, worked, payroll_service, manager_ctx, alice, bob):
        result = payroll_service.run_payroll(period.id, manager_ctx)

        assert result.status is RunStatus.COMPLETED
        assert (result.computed, result.skipped, result.failed) == (2, 0, 0)

        entry = payroll_service.get_payroll_entry(alice.id, period.id)
        assert entry.status is EntryStatus.DRAFT
        assert entry.hourly_rate == Decimal("100.00")
        assert entry.buckets.regular_minutes == 480
        assert entry.buckets.overtime_minutes == 30
        assert entry.gross_pay == Decimal("862.50")
        assert entry.total_deductions == Decimal("438.63")
        assert entry.net_pay == Decimal("423.87")
        assert payroll_service.get_payroll_entry(bob.id, period.id).net_pay == Decimal("362.00")

    def test_employees_without_hours_are_left_out(self, period, worked, payroll_service, manager_ctx, carol, manager):
        result = payroll_service.run_payroll(period.id, manager_ctx)
        assert result.outcome_for(carol.id) is None
        assert result.outcome_for(manager.id) is None
        assert len(payroll_service.list_entries(period.id)) == 2

    def test_rerun_is_idempotent(self, period, worked, payroll_service, manager_ctx, clock):
        payroll_service.run_payroll(period.id, manager_ctx)
        first = payroll_service.list_entries(period.id)
        clock.advance(60)
        payroll_service.run_payroll(period.id, manager_ctx)
        second = payroll_service.list_entries(period.id)

        assert first == second

    def test_changed_inputs_move_computed_at(self, period, worked, work_shift, payroll_service, manager_ctx, clock, alice, bob):
        payroll_service.run_payroll(period.id, manager_ctx)
        alice_before = payroll_service.get_payroll_entry(alice.id, period.id)
        bob_before = payroll_service.get_payroll_entry(bob.id, period.id)

        clock.advance(3600)
        work_shift(alice, datetime(2025, 1, 9, 9, 0), 240)
        payroll_service.run_payroll(period.id, manager_ctx)

        assert payroll_service.get_payroll_entry(alice.id, period.id).computed_at > alice_before.computed_at
        assert payroll_service.get_payroll_entry(bob.id, period.id) == bob_before

    def test_rerun_picks_up_new_shifts(self, period, worked, work_shift, payroll_service, manager_ctx, alice):
        payroll_service.run_payroll(period.id, manager_ctx)
        work_shift(alice, datetime(2025, 1, 9, 9, 0), 240)
        payroll_service.run_payroll(period.id, manager_ctx)
        assert payroll_service.get_payroll_entry(alice.id, period.id).buckets.regular_minutes == 720

    def test_hourly_rate_is_snapshotted(
        self, period, worked, payroll_service, employee_service, session, manager_ctx, alice,
    ):
        payroll_service.run_payroll(period.id, manager_ctx)
        employee_service.set_hourly_rate(alice.id, "200.00", TEST_ACTOR_ID)
        session.commit()
        payroll_service.run_payroll(period.id, manager_ctx)

        entry = payroll_service.get_payroll_entry(alice.id, period.id)
        assert entry.hourly_rate == Decimal("100.00")
        assert entry.gross_pay == Decimal("862.50")

    def test_approved_entries_are_skipped(self, period, worked, payroll_service, manager_ctx, alice):
        payroll_service.run_payroll(period.id, manager_ctx)
        entry = payroll_service.get_payroll_entry(alice.id, period.id)
        payroll_service.approve_entry(entry.id, manager_ctx)

        result = payroll_service.run_payroll(period.id, manager_ctx)
        assert result.status is RunStatus.COMPLETED
        assert result.outcome_for(alice.id).outcome is EmployeeOutcome.SKIPPED
        assert result.computed == 1
        assert payroll_service.list_entries(period.id, EntryStatus.APPROVED)[0].id == entry.id

    def test_closed_period_cannot_run(self, period, payroll_service, manager_ctx):
        payroll_service.close_period(period.id, manager_ctx)
        with pytest.raises(PeriodNotOpenError):
            payroll_service.run_payroll(period.id, manager_ctx)

    def test_employee_cannot_run(self, period, payroll_service, alice, ctx_for):
        with pytest.raises(AuthorizationError):
            payroll_service.run_payroll(period.id, ctx_for(alice))

    def test_events_published_after_commit(self, period, worked, payroll_service, manager_ctx, event_sink):
        payroll_service.run_payroll(period.id, manager_ctx)
        computed = event_sink.of_kind("payroll_entry_computed")
        assert len(computed) == 2
        assert {e.period_id for e in computed} == {period.id}

    def test_run_is_recorded(self, period, worked, payroll_service, manager_ctx, session):
        result = payroll_service.run_payroll(period.id, manager_ctx)
        run = session.execute(select(PayrollRunModel).where(PayrollRunModel.id == result.run_id)).scalar_one()
        assert run.status == "completed"
        assert (run.total_employees, run.computed_count, run.failed_count) == (2, 2, 0)
        assert run.correlation_id == manager_ctx.correlation_id

    def test_run_logs(self, period, worked, payroll_service, manager_ctx, captured_logs):
        payroll_service.run_payroll(period.id, manager_ctx)
        messages = [r["message"] for r in captured_logs()]
        assert messages.count("payroll_entry_computed") == 2
        assert messages.index("payroll_run_started") < messages.index("payroll_run_completed")


class TestFailureIsolation:
    def test_bracket_gap_fails_only_that_employee(
        self, period, work_shift, service_with, config, manager_ctx, alice, carol, captured_logs,
    ):
        work_shift(alice, datetime(2025, 1, 7, 9, 0), 540, unpaid_break=(240, 30))
        work_shift(carol, datetime(2025, 1, 8, 9, 0), 240)
        service = service_with(gapped_sss_config(config))

        result = service.run_payroll(period.id, manager_ctx)

        assert result.status is RunStatus.PARTIALLY_COMPLETED
        failure = result.outcome_for(alice.id)
        assert failure.outcome is EmployeeOutcome.FAILED
        assert failure.error_code == "BRACKET_GAP"
        assert service.get_payroll_entry(alice.id, period.id) is None

        computed = service.get_payroll_entry(carol.id, period.id)
        assert computed.gross_pay == Decimal("400.00")
        assert computed.deductions.sss == Decimal("10.00")

        logged = next(r for r in captured_logs() if r["message"] == "payroll_employee_failed")
        assert logged["employee_id"] == str(alice.id)
        assert logged["period_id"] == str(period.id)
        assert logged["deduction_type"] == "sss"
        assert logged["salary"] == "862.50"

    def test_negative_net_pay(self, period, work_shift, make_employee, payroll_service, manager_ctx, alice):
        indebted = make_employee(
            "Dan", manual_deductions=ManualDeductions(cash_advance=Decimal("5000")),
        )
        work_shift(indebted, datetime(2025, 1, 7, 9, 0), 480)
        work_shift(alice, datetime(2025, 1, 7, 9, 0), 480)

        result = payroll_service.run_payroll(period.id, manager_ctx)

        assert result.status is RunStatus.PARTIALLY_COMPLETED
        assert result.outcome_for(indebted.id).error_code == "NEGATIVE_NET_PAY"
        assert result.outcome_for(alice.id).outcome is EmployeeOutcome.COMPUTED

    def test_all_failed(self, period, work_shift, service_with, config, manager_ctx, alice):
        work_shift(alice, datetime(2025, 1, 7, 9, 0), 540, unpaid_break=(240, 30))
        result = service_with(gapped_sss_config(config)).run_payroll(period.id, manager_ctx)
        assert result.status is RunStatus.FAILED
        assert [f.employee_id for f in result.failures] == [alice.id]

    def test_failed_rerun_keeps_existing_draft(
        self, period, work_shift, payroll_service, service_with, config, manager_ctx, alice,
    ):
        work_shift(alice, datetime(2025, 1, 7, 9, 0), 540, unpaid_break=(240, 30))
        payroll_service.run_payroll(period.id, manager_ctx)
        before = payroll_service.get_payroll_entry(alice.id, period.id)

        result = service_with(gapped_sss_config(config)).run_payroll(period.id, manager_ctx)
        after = payroll_service.get_payroll_entry(alice.id, period.id)
        assert after.net_pay == before.net_pay
        assert after.deductions == before.deductions
        assert after.stale
        assert result.outcome_for(alice.id).entry_id == before.id
        assert result.stale_drafts == 1

    def test_stale_draft_cannot_be_approved_until_recomputed(
        self, period, work_shift, payroll_service, service_with, config, manager_ctx, alice, session,
    ):
        work_shift(alice, datetime(2025, 1, 7, 9, 0), 540, unpaid_break=(240, 30))
        payroll_service.run_payroll(period.id, manager_ctx)
        entry = payroll_service.get_payroll_entry(alice.id, period.id)

        failed = service_with(gapped_sss_config(config)).run_payroll(period.id, manager_ctx)
        run = session.execute(select(PayrollRunModel).where(PayrollRunModel.id == failed.run_id)).scalar_one()
        assert "marked stale" in run.error_summary
        with pytest.raises(ValidationError, match="stale"):
            payroll_service.approve_entry(entry.id, manager_ctx)

        payroll_service.run_payroll(period.id, manager_ctx)
        assert not payroll_service.get_payroll_entry(alice.id, period.id).stale
        assert payroll_service.approve_entry(entry.id, manager_ctx).status is EntryStatus.APPROVED


class TestRunControl:
    def test_cancelled_before_first_employee(self, period, worked, payroll_service, manager_ctx):
        cancel = threading.Event()
        cancel.set()

        result = payroll_service.run_payroll(period.id, manager_ctx, cancel_event=cancel)

        assert result.status is RunStatus.CANCELLED
        assert result.outcomes == ()
        assert payroll_service.list_entries(period.id) == []

    def test_lock_timeout(self, period, worked, service_with, config, lock_registry, manager_ctx, branch):
        service = service_with(replace(config, locking=LockingSettings(0.1)))
        key = payroll_lock_key(branch.id, period.id)
        assert lock_registry.acquire(key, timeout=1)
        try:
            with pytest.raises(PayrollRunInProgressError) as exc_info:
                service.run_payroll(period.id, manager_ctx)
        finally:
            lock_registry.release(key)

        assert exc_info.value.timeout_seconds == 0.1
        assert service.list_entries(period.id) == []
        assert not lock_registry.is_locked(key)

    def test_lock_released_after_run(self, period, worked, payroll_service, lock_registry, manager_ctx, branch):
        payroll_service.run_payroll(period.id, manager_ctx)
        assert not lock_registry.is_locked(payroll_lock_key(branch.id, period.id))


class TestEntries:
    def test_mark_entry_paid_requires_approval(self, period, worked, payroll_service, manager_ctx, alice):
        payroll_service.run_payroll(period.id, manager_ctx)
        entry = payroll_service.get_payroll_entry(alice.id, period.id)
        with pytest.raises(StaleStateError):
            payroll_service.mark_entry_paid(entry.id, manager_ctx)

        payroll_service.approve_entry(entry.id, manager_ctx)
        paid = payroll_service.mark_entry_paid(entry.id, manager_ctx)
        assert paid.status is EntryStatus.PAID
        assert paid.approved_by_id == manager_ctx.actor_id

    def test_list_entries_by_status(self, period, worked, payroll_service, manager_ctx):
        payroll_service.run_payroll(period.id, manager_ctx)
        drafts = payroll_service.list_entries(period.id, EntryStatus.DRAFT)
        assert len(drafts) == 2
        assert drafts == sorted(drafts, key=lambda e: str(e.employee_id))
        assert payroll_service.list_entries(period.id, EntryStatus.PAID) == []
