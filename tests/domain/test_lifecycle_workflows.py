"""
Workflow definitions for shift trades, drops, time off and payroll.

The state machines are value objects; these tests pin their shape so a
service can rely on ``sources_for`` / ``target_of`` when it builds its
conditional UPDATE.
"""

import pytest

from cafe_kernel.domain.workflow import Transition, Workflow
from cafe_kernel.exceptions import InvalidTransitionError
from cafe_modules.payroll.workflows import PAYROLL_ENTRY_WORKFLOW, PAYROLL_PERIOD_WORKFLOW
from cafe_modules.scheduling.workflows import (
    SHIFT_DROP_WORKFLOW,
    SHIFT_TRADE_WORKFLOW,
    TIME_OFF_WORKFLOW,
)

ALL_WORKFLOWS = (
    SHIFT_TRADE_WORKFLOW,
    SHIFT_DROP_WORKFLOW,
    TIME_OFF_WORKFLOW,
    PAYROLL_PERIOD_WORKFLOW,
    PAYROLL_ENTRY_WORKFLOW,
)


class TestWorkflowShape:
    @pytest.mark.parametrize("workflow", ALL_WORKFLOWS, ids=lambda w: w.name)
    def test_initial_state_is_declared(self, workflow):
        assert workflow.initial_state in workflow.states

    @pytest.mark.parametrize("workflow", ALL_WORKFLOWS, ids=lambda w: w.name)
    def test_terminal_states_have_no_exits(self, workflow):
        for transition in workflow.transitions:
            assert transition.from_state not in workflow.terminal_states

    @pytest.mark.parametrize("workflow", ALL_WORKFLOWS, ids=lambda w: w.name)
    def test_no_transition_reenters_the_initial_state(self, workflow):
        assert all(t.to_state != workflow.initial_state for t in workflow.transitions)


class TestTradeWorkflow:
    def test_claim_only_from_pending(self):
        assert SHIFT_TRADE_WORKFLOW.sources_for("claim") == ("pending",)
        assert SHIFT_TRADE_WORKFLOW.target_of("claim") == "approved"

    def test_outcomes_are_terminal(self):
        for state in ("approved", "rejected", "withdrawn"):
            assert SHIFT_TRADE_WORKFLOW.is_terminal(state)

    def test_reject_is_manager_only(self):
        assert SHIFT_TRADE_WORKFLOW.transition_for("pending", "reject").manager_only


class TestDropWorkflow:
    def test_happy_path(self):
        assert SHIFT_DROP_WORKFLOW.require("pending", "approve").to_state == "approved"
        assert SHIFT_DROP_WORKFLOW.require("approved", "pick_up").to_state == "picked_up"

    def test_pickup_requires_approval(self):
        assert SHIFT_DROP_WORKFLOW.sources_for("pick_up") == ("approved",)
        with pytest.raises(InvalidTransitionError):
            SHIFT_DROP_WORKFLOW.require("pending", "pick_up")

    def test_cancel_from_pending_or_approved(self):
        assert set(SHIFT_DROP_WORKFLOW.sources_for("cancel")) == {"pending", "approved"}

    def test_rejected_drop_cannot_be_picked_up(self):
        assert SHIFT_DROP_WORKFLOW.transition_for("rejected", "pick_up") is None


class TestTimeOffWorkflow:
    def test_pending_resolves_once(self):
        assert TIME_OFF_WORKFLOW.sources_for("approve") == ("pending",)
        assert TIME_OFF_WORKFLOW.sources_for("reject") == ("pending",)
        assert TIME_OFF_WORKFLOW.is_terminal("approved")

    def test_approve_carries_overlap_guard(self):
        transition = TIME_OFF_WORKFLOW.require("pending", "approve")
        assert transition.guard is not None
        assert transition.guard.name == "no_approved_overlap"


class TestPayrollWorkflows:
    def test_period_lifecycle(self):
        assert PAYROLL_PERIOD_WORKFLOW.target_of("close") == "closed"
        assert PAYROLL_PERIOD_WORKFLOW.sources_for("mark_paid") == ("closed",)

    def test_entry_lifecycle(self):
        assert PAYROLL_ENTRY_WORKFLOW.target_of("approve") == "approved"
        assert PAYROLL_ENTRY_WORKFLOW.sources_for("mark_paid") == ("approved",)


class TestWorkflowValidation:
    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="broken",
                description="",
                initial_state="nowhere",
                states=("a",),
                transitions=(),
            )

    def test_exit_from_terminal_state_rejected(self):
        with pytest.raises(ValueError, match="terminal"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", action="reopen"),),
                terminal_states=("b",),
            )

    def test_action_with_two_targets_rejected(self):
        with pytest.raises(ValueError, match="more than one target"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a", "b", "c"),
                transitions=(
                    Transition("a", "b", action="go"),
                    Transition("b", "c", action="go"),
                ),
            )

    def test_unknown_action_has_no_target(self):
        with pytest.raises(ValueError, match="unknown action"):
            SHIFT_TRADE_WORKFLOW.target_of("teleport")
