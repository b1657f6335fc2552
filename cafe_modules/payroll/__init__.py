"""
Payroll Module.

Hours aggregation, statutory deduction lookup, gross-to-net computation,
pay periods and batch payroll runs.
"""

from cafe_modules.payroll.calculator import compute_pay_components, compute_payroll, lookup_factor
from cafe_modules.payroll.deductions import DeductionBracketResolver
from cafe_modules.payroll.hours import HoursAggregator
from cafe_modules.payroll.models import (
    DayBreakdown,
    DeductionBreakdown,
    EmployeeOutcome,
    EmployeeRunOutcome,
    EntryStatus,
    HourBuckets,
    HoursBreakdown,
    PayComponents,
    PayrollComputation,
    PayrollEntryInfo,
    PayrollPeriodInfo,
    PayrollRunResult,
    PeriodStatus,
    RunStatus,
)
from cafe_modules.payroll.service import PayrollService, payroll_lock_key
from cafe_modules.payroll.workflows import PAYROLL_ENTRY_WORKFLOW, PAYROLL_PERIOD_WORKFLOW

__all__ = [
    "HoursAggregator",
    "DeductionBracketResolver",
    "PayrollService",
    "compute_payroll",
    "compute_pay_components",
    "lookup_factor",
    "payroll_lock_key",
    "DayBreakdown",
    "DeductionBreakdown",
    "EmployeeOutcome",
    "EmployeeRunOutcome",
    "EntryStatus",
    "HourBuckets",
    "HoursBreakdown",
    "PayComponents",
    "PayrollComputation",
    "PayrollEntryInfo",
    "PayrollPeriodInfo",
    "PayrollRunResult",
    "PeriodStatus",
    "RunStatus",
    "PAYROLL_PERIOD_WORKFLOW",
    "PAYROLL_ENTRY_WORKFLOW",
]
