"""Shift lifecycle workflows.

State machines for shift trades, shift drops and time-off requests.
"""

from cafe_kernel.domain.workflow import Guard, Transition, Workflow
from cafe_kernel.logging_config import get_logger

logger = get_logger("modules.scheduling.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

CLAIMANT_NOT_OWNER = Guard(
    name="claimant_not_owner",
    description="The claiming employee is not the employee giving up the shift",
)

CLAIMANT_ELIGIBLE = Guard(
    name="claimant_eligible",
    description="Claimant is active in the shift's branch and matches a targeted trade",
)

SHIFT_STILL_OWNED = Guard(
    name="shift_still_owned",
    description="The shift is still scheduled and assigned to the requester",
)

NO_APPROVED_OVERLAP = Guard(
    name="no_approved_overlap",
    description="No other approved time off of the employee overlaps the range",
)

logger.info(
    "scheduling_workflow_guards_defined",
    extra={
        "guards": [
            CLAIMANT_NOT_OWNER.name,
            CLAIMANT_ELIGIBLE.name,
            SHIFT_STILL_OWNED.name,
            NO_APPROVED_OVERLAP.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Shift trade
# -----------------------------------------------------------------------------

SHIFT_TRADE_WORKFLOW = Workflow(
    name="shift_trade",
    description="Employee offers a shift; first eligible claimant takes it",
    initial_state="pending",
    states=("pending", "approved", "rejected", "withdrawn"),
    transitions=(
        Transition("pending", "approved", action="claim", guard=CLAIMANT_ELIGIBLE),
        Transition("pending", "rejected", action="reject", manager_only=True),
        Transition("pending", "withdrawn", action="withdraw"),
    ),
    terminal_states=("approved", "rejected", "withdrawn"),
)


# -----------------------------------------------------------------------------
# Shift drop
# -----------------------------------------------------------------------------

SHIFT_DROP_WORKFLOW = Workflow(
    name="shift_drop",
    description="Employee asks to drop a shift; manager approves; another employee picks it up",
    initial_state="pending",
    states=("pending", "approved", "rejected", "picked_up", "cancelled"),
    transitions=(
        Transition("pending", "approved", action="approve", manager_only=True),
        Transition("pending", "rejected", action="reject", manager_only=True),
        Transition("approved", "picked_up", action="pick_up", guard=CLAIMANT_NOT_OWNER),
        Transition("approved", "picked_up", action="assign", guard=SHIFT_STILL_OWNED, manager_only=True),
        Transition("pending", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel"),
    ),
    terminal_states=("rejected", "picked_up", "cancelled"),
)


# -----------------------------------------------------------------------------
# Time off
# -----------------------------------------------------------------------------

TIME_OFF_WORKFLOW = Workflow(
    name="time_off",
    description="Employee requests days off; manager approves or rejects",
    initial_state="pending",
    states=("pending", "approved", "rejected"),
    transitions=(
        Transition("pending", "approved", action="approve", guard=NO_APPROVED_OVERLAP, manager_only=True),
        Transition("pending", "rejected", action="reject", manager_only=True),
    ),
    terminal_states=("approved", "rejected"),
)

logger.info(
    "scheduling_workflows_registered",
    extra={
        "workflows": [
            SHIFT_TRADE_WORKFLOW.name,
            SHIFT_DROP_WORKFLOW.name,
            TIME_OFF_WORKFLOW.name,
        ],
    },
)
