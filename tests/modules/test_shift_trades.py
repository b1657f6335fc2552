"""
Shift trades through ShiftLifecycle: offer, claim, reject, withdraw.
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from cafe_kernel.exceptions import (
    ActiveRequestExistsError,
    AuthorizationError,
    ConflictError,
    InactiveEmployeeError,
    InsufficientNoticeError,
    InvalidTransitionError,
    SelfClaimError,
    StaleStateError,
    TradeNotFoundError,
    ValidationError,
)
from cafe_modules.scheduling.models import ShiftStatus, TradeStatus, Urgency
from tests.conftest import TEST_ACTOR_ID


@pytest.fixture
def shift(schedule_shift, alice):
    return schedule_shift(alice)


@pytest.fixture
def trade(lifecycle, shift, alice, ctx_for):
    return lifecycle.offer_trade(shift.id, ctx_for(alice), "Family event")


class TestOfferTrade:
    def test_offer_creates_pending_trade(self, trade, shift, alice, event_sink):
        assert trade.status is TradeStatus.PENDING
        assert trade.shift_id == shift.id
        assert trade.from_employee_id == alice.id
        assert trade.to_employee_id is None
        assert trade.urgency is Urgency.NORMAL
        assert [e.kind for e in event_sink.events] == ["trade_offered"]

    def test_only_owner_may_offer(self, lifecycle, shift, bob, ctx_for):
        with pytest.raises(AuthorizationError):
            lifecycle.offer_trade(shift.id, ctx_for(bob), "Not mine")

    def test_reason_required(self, lifecycle, shift, alice, ctx_for):
        with pytest.raises(ValidationError, match="reason"):
            lifecycle.offer_trade(shift.id, ctx_for(alice), "   ")

    def test_notice_rule(self, lifecycle, schedule_shift, alice, ctx_for):
        soon = schedule_shift(alice, datetime(2025, 1, 8, 9, 0))
        with pytest.raises(InsufficientNoticeError) as exc_info:
            lifecycle.offer_trade(soon.id, ctx_for(alice), "Sick kid")
        assert exc_info.value.min_notice_days == 3

    def test_exactly_three_days_is_enough(self, lifecycle, schedule_shift, alice, ctx_for):
        edge = schedule_shift(alice, datetime(2025, 1, 9, 6, 0))
        assert lifecycle.offer_trade(edge.id, ctx_for(alice), "Exam").status is TradeStatus.PENDING

    def test_second_active_request_rejected(self, lifecycle, trade, shift, alice, ctx_for):
        with pytest.raises(ActiveRequestExistsError):
            lifecycle.offer_trade(shift.id, ctx_for(alice), "Again")
        with pytest.raises(ActiveRequestExistsError):
            lifecycle.request_drop(shift.id, ctx_for(alice), "Or drop it")

    def test_target_must_work_in_branch(self, lifecycle, shift, alice, make_employee, other_branch, ctx_for):
        outsider = make_employee("Olga", branch_id=other_branch.id)
        with pytest.raises(InactiveEmployeeError):
            lifecycle.offer_trade(shift.id, ctx_for(alice), "Swap", to_employee_id=outsider.id)


class TestClaimTrade:
    def test_claim_reassigns_shift(self, lifecycle, ledger, trade, shift, bob, ctx_for, event_sink):
        claimed = lifecycle.claim_trade(trade.id, bob.id, ctx_for(bob))

        assert claimed.id == shift.id
        assert claimed.employee_id == bob.id
        assert ledger.get_shift(shift.id).employee_id == bob.id
        settled = lifecycle.trades.get_trade(trade.id)
        assert settled.status is TradeStatus.APPROVED
        assert settled.to_employee_id == bob.id
        assert event_sink.of_kind("trade_claimed")[0].to_employee_id == bob.id

    def test_self_claim_rejected(self, lifecycle, trade, alice, ctx_for):
        with pytest.raises(SelfClaimError):
            lifecycle.claim_trade(trade.id, alice.id, ctx_for(alice))

    def test_second_claim_conflicts(self, lifecycle, ledger, trade, shift, bob, carol, ctx_for):
        lifecycle.claim_trade(trade.id, bob.id, ctx_for(bob))

        with pytest.raises(ConflictError) as exc_info:
            lifecycle.claim_trade(trade.id, carol.id, ctx_for(carol))
        assert isinstance(exc_info.value, StaleStateError)
        assert exc_info.value.actual_status == "approved"
        assert ledger.get_shift(shift.id).employee_id == bob.id

    def test_inactive_claimant_rejected(self, lifecycle, session, employee_service, trade, bob, ctx_for):
        employee_service.deactivate_employee(bob.id, TEST_ACTOR_ID)
        session.commit()
        with pytest.raises(InactiveEmployeeError):
            lifecycle.claim_trade(trade.id, bob.id, ctx_for(bob))

    def test_targeted_trade_only_for_target(self, lifecycle, shift, alice, bob, carol, ctx_for):
        targeted = lifecycle.offer_trade(shift.id, ctx_for(alice), "Swap", to_employee_id=bob.id)
        with pytest.raises(AuthorizationError):
            lifecycle.claim_trade(targeted.id, carol.id, ctx_for(carol))
        assert lifecycle.claim_trade(targeted.id, bob.id, ctx_for(bob)).employee_id == bob.id

    def test_cannot_claim_for_someone_else(self, lifecycle, trade, bob, carol, ctx_for):
        with pytest.raises(AuthorizationError):
            lifecycle.claim_trade(trade.id, carol.id, ctx_for(bob))

    def test_manager_may_claim_on_behalf(self, lifecycle, trade, bob, manager_ctx):
        assert lifecycle.claim_trade(trade.id, bob.id, manager_ctx).employee_id == bob.id

    def test_unknown_trade(self, lifecycle, bob, ctx_for):
        with pytest.raises(TradeNotFoundError):
            lifecycle.claim_trade(uuid4(), bob.id, ctx_for(bob))

    def test_failed_claim_leaves_no_partial_state(self, lifecycle, ledger, trade, shift, alice, ctx_for):
        with pytest.raises(SelfClaimError):
            lifecycle.claim_trade(trade.id, alice.id, ctx_for(alice))
        assert lifecycle.trades.get_trade(trade.id).status is TradeStatus.PENDING
        assert ledger.get_shift(shift.id).employee_id == alice.id


class TestCloseTrade:
    def test_manager_rejects(self, lifecycle, ledger, trade, shift, alice, manager_ctx):
        rejected = lifecycle.trades.reject_trade(trade.id, manager_ctx)
        assert rejected.status is TradeStatus.REJECTED
        assert ledger.get_shift(shift.id).employee_id == alice.id

    def test_employee_cannot_reject(self, lifecycle, trade, bob, ctx_for):
        with pytest.raises(AuthorizationError):
            lifecycle.trades.reject_trade(trade.id, ctx_for(bob))

    def test_owner_withdraws_and_can_offer_again(self, lifecycle, trade, shift, alice, ctx_for):
        assert lifecycle.trades.withdraw_trade(trade.id, ctx_for(alice)).status is TradeStatus.WITHDRAWN
        again = lifecycle.offer_trade(shift.id, ctx_for(alice), "Second try")
        assert again.status is TradeStatus.PENDING

    def test_withdrawn_trade_cannot_be_claimed(self, lifecycle, trade, alice, bob, ctx_for):
        lifecycle.trades.withdraw_trade(trade.id, ctx_for(alice))
        with pytest.raises(StaleStateError):
            lifecycle.claim_trade(trade.id, bob.id, ctx_for(bob))


class TestOpenTrades:
    def test_lists_claimable_trades(self, lifecycle, schedule_shift, alice, bob, carol, ctx_for, branch):
        first = schedule_shift(alice)
        second = schedule_shift(alice, datetime(2025, 1, 14, 9, 0))
        open_offer = lifecycle.offer_trade(first.id, ctx_for(alice), "Any")
        for_bob = lifecycle.offer_trade(second.id, ctx_for(alice), "Bob", to_employee_id=bob.id)

        assert [t.id for t in lifecycle.trades.open_trades(branch.id)] == [open_offer.id, for_bob.id]
        assert [t.id for t in lifecycle.trades.open_trades(branch.id, carol.id)] == [open_offer.id]
        assert lifecycle.trades.open_trades(branch.id, alice.id) == []

    def test_claimed_trade_leaves_the_list(self, lifecycle, trade, bob, ctx_for, branch):
        lifecycle.claim_trade(trade.id, bob.id, ctx_for(bob))
        assert lifecycle.trades.open_trades(branch.id) == []


def test_trade_logs_carry_request_context(lifecycle, trade, bob, ctx_for, captured_logs):
    ctx = ctx_for(bob)
    lifecycle.claim_trade(trade.id, bob.id, ctx)

    record = next(r for r in captured_logs() if r["message"] == "trade_claimed")
    assert record["correlation_id"] == ctx.correlation_id
    assert record["employee_id"] == str(bob.id)
    assert record["trade_id"] == str(trade.id)


def test_shift_after_start_cannot_be_offered(lifecycle, ledger, session, alice, ctx_for, clock):
    start = clock.now() + timedelta(days=5)
    shift = ledger.schedule_shift(alice.id, start, start + timedelta(hours=4), TEST_ACTOR_ID)
    ledger.clock_in(shift.id, alice.id, at=start)
    ledger.clock_out(shift.id, alice.id, at=start + timedelta(hours=4))
    session.commit()
    with pytest.raises(ValidationError):
        lifecycle.offer_trade(shift.id, ctx_for(alice), "Too late")


class TestClaimOnceWorkBegins:
    def test_claim_after_owner_clocked_in(self, lifecycle, ledger, session, trade, shift, alice, bob, ctx_for):
        ledger.clock_in(shift.id, alice.id, at=shift.scheduled_start)
        session.commit()

        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle.claim_trade(trade.id, bob.id, ctx_for(bob))
        assert exc_info.value.current_state == "clocked_in"
        assert lifecycle.trades.get_trade(trade.id).status is TradeStatus.PENDING

        ledger.clock_out(shift.id, alice.id, at=shift.scheduled_end)
        session.commit()
        worked = ledger.get_shift(shift.id)
        assert worked.status is ShiftStatus.COMPLETED
        assert worked.employee_id == alice.id

    def test_claim_after_scheduled_start(self, lifecycle, ledger, trade, shift, alice, bob, ctx_for, clock):
        clock.set_time(shift.scheduled_start + timedelta(minutes=1))
        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle.claim_trade(trade.id, bob.id, ctx_for(bob))
        assert exc_info.value.current_state == "started"
        assert ledger.get_shift(shift.id).employee_id == alice.id


def test_cancelling_the_shift_withdraws_its_trade(lifecycle, ledger, session, trade, shift, bob, ctx_for, branch):
    ledger.cancel_shift(shift.id, TEST_ACTOR_ID)
    session.commit()

    closed = lifecycle.trades.get_trade(trade.id)
    assert closed.status is TradeStatus.WITHDRAWN
    assert closed.resolved_by_id == TEST_ACTOR_ID
    assert lifecycle.trades.open_trades(branch.id) == []
    with pytest.raises(InvalidTransitionError):
        lifecycle.claim_trade(trade.id, bob.id, ctx_for(bob))
