"""Payroll workflows.

State machines for pay periods and payroll entries.
"""

from cafe_kernel.domain.workflow import Guard, Transition, Workflow
from cafe_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.workflows")


ALL_ENTRIES_APPROVED = Guard(
    name="all_entries_approved",
    description="Every payroll entry of the period is approved or paid",
)

PAYROLL_PERIOD_WORKFLOW = Workflow(
    name="payroll_period",
    description="Pay period: computed while open, frozen when closed, settled when paid",
    initial_state="open",
    states=("open", "closed", "paid"),
    transitions=(
        Transition("open", "closed", action="close", manager_only=True),
        Transition("closed", "paid", action="mark_paid", guard=ALL_ENTRIES_APPROVED, manager_only=True),
    ),
    terminal_states=("paid",),
)

PAYROLL_ENTRY_WORKFLOW = Workflow(
    name="payroll_entry",
    description="Draft entries are recomputed freely; approved entries are frozen",
    initial_state="draft",
    states=("draft", "approved", "paid"),
    transitions=(
        Transition("draft", "approved", action="approve", manager_only=True),
        Transition("approved", "paid", action="mark_paid", manager_only=True),
    ),
    terminal_states=("paid",),
)

logger.info(
    "payroll_workflows_registered",
    extra={"workflows": [PAYROLL_PERIOD_WORKFLOW.name, PAYROLL_ENTRY_WORKFLOW.name]},
)
