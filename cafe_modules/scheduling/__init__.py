"""
Scheduling Module.

Shift timekeeping (ledger), break policies, and the shift-lifecycle
workflows: trades, drops and time off.
"""

from cafe_modules.scheduling.breaks import BreakPolicyResolver
from cafe_modules.scheduling.drops import ShiftDropService
from cafe_modules.scheduling.ledger import TimeLedgerService
from cafe_modules.scheduling.lifecycle import ShiftLifecycle
from cafe_modules.scheduling.models import (
    BreakInfo,
    BreakType,
    DropDecision,
    DropStatus,
    ShiftDropInfo,
    ShiftInfo,
    ShiftStatus,
    ShiftTradeInfo,
    TimeEntryInfo,
    TimeEntryType,
    TimeOffBalance,
    TimeOffInfo,
    TimeOffStatus,
    TimeOffType,
    TradeStatus,
    Urgency,
)
from cafe_modules.scheduling.time_off import TimeOffService
from cafe_modules.scheduling.trades import ShiftTradeService
from cafe_modules.scheduling.workflows import (
    SHIFT_DROP_WORKFLOW,
    SHIFT_TRADE_WORKFLOW,
    TIME_OFF_WORKFLOW,
)

__all__ = [
    "BreakPolicyResolver",
    "TimeLedgerService",
    "ShiftTradeService",
    "ShiftDropService",
    "TimeOffService",
    "ShiftLifecycle",
    "BreakInfo",
    "BreakType",
    "DropDecision",
    "DropStatus",
    "ShiftDropInfo",
    "ShiftInfo",
    "ShiftStatus",
    "ShiftTradeInfo",
    "TimeEntryInfo",
    "TimeEntryType",
    "TimeOffBalance",
    "TimeOffInfo",
    "TimeOffStatus",
    "TimeOffType",
    "TradeStatus",
    "Urgency",
    "SHIFT_TRADE_WORKFLOW",
    "SHIFT_DROP_WORKFLOW",
    "TIME_OFF_WORKFLOW",
]
