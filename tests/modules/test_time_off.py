"""
Time-off requests: validation, approval with overlap detection, balances.
"""

from datetime import date

import pytest

from cafe_kernel.exceptions import (
    AuthorizationError,
    InsufficientNoticeError,
    StaleStateError,
    TimeOffOverlapError,
    ValidationError,
)
from cafe_modules.scheduling.models import TimeOffStatus, TimeOffType


@pytest.fixture
def request_off(lifecycle, ctx_for):
    """File a time-off request as the employee themselves."""

    def _request(employee, start, end, time_off_type=TimeOffType.VACATION, reason="Family trip"):
        return lifecycle.request_time_off(employee.id, (start, end), time_off_type, reason, ctx_for(employee))

    return _request


class TestRequest:
    def test_pending_request(self, request_off, alice, event_sink):
        request = request_off(alice, date(2025, 2, 3), date(2025, 2, 5))
        assert request.status is TimeOffStatus.PENDING
        assert request.days == 3
        assert event_sink.of_kind("time_off_requested")[0].request_id == request.id

    def test_end_before_start(self, request_off, alice):
        with pytest.raises(ValidationError, match="before start"):
            request_off(alice, date(2025, 2, 5), date(2025, 2, 3))

    def test_single_day(self, request_off, alice):
        assert request_off(alice, date(2025, 2, 3), date(2025, 2, 3)).days == 1

    def test_notice_rule(self, request_off, alice):
        with pytest.raises(InsufficientNoticeError) as exc_info:
            request_off(alice, date(2025, 1, 8), date(2025, 1, 9))
        assert exc_info.value.earliest_allowed == date(2025, 1, 9)

    def test_unknown_type(self, request_off, alice):
        with pytest.raises(ValidationError, match="time-off type"):
            request_off(alice, date(2025, 2, 3), date(2025, 2, 3), time_off_type="sabbatical")

    def test_colleague_cannot_file_for_someone(self, lifecycle, alice, bob, ctx_for):
        with pytest.raises(AuthorizationError):
            lifecycle.request_time_off(
                alice.id, (date(2025, 2, 3), date(2025, 2, 3)), "sick", "Flu", ctx_for(bob),
            )

    def test_manager_files_on_behalf(self, lifecycle, alice, manager_ctx):
        request = lifecycle.request_time_off(
            alice.id, (date(2025, 2, 3), date(2025, 2, 4)), TimeOffType.SICK, "Surgery", manager_ctx,
        )
        assert request.employee_id == alice.id
        assert request.time_off_type is TimeOffType.SICK


class TestApproval:
    def test_approve(self, lifecycle, request_off, alice, manager_ctx, event_sink):
        request = request_off(alice, date(2025, 2, 3), date(2025, 2, 5))
        approved = lifecycle.approve_time_off(request.id, manager_ctx)

        assert approved.status is TimeOffStatus.APPROVED
        assert approved.resolved_by_id == manager_ctx.actor_id
        resolved = event_sink.of_kind("time_off_resolved")[0]
        assert resolved.status == "approved"

    def test_overlapping_approval_rejected(self, lifecycle, request_off, alice, manager_ctx):
        first = request_off(alice, date(2025, 2, 3), date(2025, 2, 5))
        second = request_off(alice, date(2025, 2, 5), date(2025, 2, 7))
        lifecycle.approve_time_off(first.id, manager_ctx)

        with pytest.raises(TimeOffOverlapError) as exc_info:
            lifecycle.approve_time_off(second.id, manager_ctx)
        assert exc_info.value.conflicting_request_id == first.id
        assert isinstance(exc_info.value, ValidationError)
        assert lifecycle.time_off.get_time_off(second.id).status is TimeOffStatus.PENDING

    def test_adjacent_ranges_do_not_overlap(self, lifecycle, request_off, alice, manager_ctx):
        first = request_off(alice, date(2025, 2, 3), date(2025, 2, 5))
        second = request_off(alice, date(2025, 2, 6), date(2025, 2, 7))
        lifecycle.approve_time_off(first.id, manager_ctx)
        assert lifecycle.approve_time_off(second.id, manager_ctx).status is TimeOffStatus.APPROVED

    def test_other_employees_do_not_conflict(self, lifecycle, request_off, alice, bob, manager_ctx):
        mine = request_off(alice, date(2025, 2, 3), date(2025, 2, 5))
        theirs = request_off(bob, date(2025, 2, 3), date(2025, 2, 5))
        lifecycle.approve_time_off(mine.id, manager_ctx)
        assert lifecycle.approve_time_off(theirs.id, manager_ctx).status is TimeOffStatus.APPROVED

    def test_rejected_request_does_not_block(self, lifecycle, request_off, alice, manager_ctx):
        first = request_off(alice, date(2025, 2, 3), date(2025, 2, 5))
        second = request_off(alice, date(2025, 2, 4), date(2025, 2, 4))
        lifecycle.time_off.reject_time_off(first.id, manager_ctx)
        assert lifecycle.approve_time_off(second.id, manager_ctx).status is TimeOffStatus.APPROVED

    def test_employee_cannot_approve(self, lifecycle, request_off, alice, ctx_for):
        request = request_off(alice, date(2025, 2, 3), date(2025, 2, 5))
        with pytest.raises(AuthorizationError):
            lifecycle.approve_time_off(request.id, ctx_for(alice))

    def test_resolved_request_is_final(self, lifecycle, request_off, alice, manager_ctx):
        request = request_off(alice, date(2025, 2, 3), date(2025, 2, 5))
        lifecycle.time_off.reject_time_off(request.id, manager_ctx)
        with pytest.raises(StaleStateError):
            lifecycle.approve_time_off(request.id, manager_ctx)


class TestBalance:
    def _balance(self, lifecycle, employee, year, time_off_type):
        balances = lifecycle.time_off.time_off_balance(employee.id, year)
        return next(b for b in balances if b.time_off_type is time_off_type)

    def test_allowances_from_configuration(self, lifecycle, alice):
        balances = lifecycle.time_off.time_off_balance(alice.id, 2025)
        assert {b.time_off_type.value: b.allowance_days for b in balances} == {
            "vacation": 15, "sick": 10, "personal": 5,
        }

    def test_used_and_pending(self, lifecycle, request_off, alice, manager_ctx):
        approved = request_off(alice, date(2025, 2, 3), date(2025, 2, 5))
        lifecycle.approve_time_off(approved.id, manager_ctx)
        request_off(alice, date(2025, 3, 3), date(2025, 3, 4))

        vacation = self._balance(lifecycle, alice, 2025, TimeOffType.VACATION)
        assert vacation.used_days == 3
        assert vacation.pending_days == 2
        assert vacation.remaining_days == 12

    def test_request_spanning_new_year_is_split(self, lifecycle, request_off, alice, manager_ctx):
        request = request_off(alice, date(2025, 12, 29), date(2026, 1, 3))
        lifecycle.approve_time_off(request.id, manager_ctx)

        assert self._balance(lifecycle, alice, 2025, TimeOffType.VACATION).used_days == 3
        assert self._balance(lifecycle, alice, 2026, TimeOffType.VACATION).used_days == 3

    def test_rejected_days_are_not_counted(self, lifecycle, request_off, alice, manager_ctx):
        request = request_off(alice, date(2025, 2, 3), date(2025, 2, 5), TimeOffType.PERSONAL)
        lifecycle.time_off.reject_time_off(request.id, manager_ctx)

        personal = self._balance(lifecycle, alice, 2025, TimeOffType.PERSONAL)
        assert (personal.used_days, personal.pending_days, personal.remaining_days) == (0, 0, 5)


def test_requests_for_employee_filters_by_status(lifecycle, request_off, alice, manager_ctx):
    first = request_off(alice, date(2025, 2, 3), date(2025, 2, 3))
    second = request_off(alice, date(2025, 2, 10), date(2025, 2, 10))
    lifecycle.approve_time_off(second.id, manager_ctx)

    assert [r.id for r in lifecycle.time_off.requests_for_employee(alice.id)] == [first.id, second.id]
    approved = lifecycle.time_off.requests_for_employee(alice.id, TimeOffStatus.APPROVED)
    assert [r.id for r in approved] == [second.id]
