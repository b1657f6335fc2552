"""
Payroll Domain Models (``cafe_modules.payroll.models``).

Responsibility
--------------
Frozen dataclass value objects representing the nouns of payroll:
hour buckets, per-day hour detail, pay components, deduction breakdowns,
pay periods, payroll entries and run results.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Produced by
``HoursAggregator`` / ``calculator`` and ``PayrollService``, returned to
callers.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Hour buckets are whole minutes; hours are derived on demand through
  ``minutes_to_hours`` (HALF_UP, two places).
* ``regular + overtime + holiday + rest_day == elapsed - unpaid_break``.
  Night differential overlaps the other buckets and is excluded.

Audit relevance
---------------
* A ``PayrollEntryInfo`` carries the hourly rate snapshot, every bucket and
  every deduction line, so a payslip can be re-derived from it alone.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from cafe_config.schema import HolidayType
from cafe_kernel.db.types import ZERO, minutes_to_hours


class PeriodStatus(str, Enum):
    """Payroll period lifecycle states."""

    OPEN = "open"
    CLOSED = "closed"
    PAID = "paid"


class EntryStatus(str, Enum):
    """Payroll entry lifecycle states."""

    DRAFT = "draft"
    APPROVED = "approved"
    PAID = "paid"


class RunStatus(str, Enum):
    """Outcome of one ``run_payroll`` invocation."""

    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class EmployeeOutcome(str, Enum):
    """Per-employee result within a run."""

    COMPUTED = "computed"
    SKIPPED = "skipped"
    FAILED = "failed"


# =============================================================================
# Hours
# =============================================================================


@dataclass(frozen=True)
class HourBuckets:
    """Minute counts for one day, one shift or a whole period."""

    elapsed_minutes: int = 0
    unpaid_break_minutes: int = 0
    regular_minutes: int = 0
    overtime_minutes: int = 0
    holiday_minutes: int = 0
    rest_day_minutes: int = 0
    night_diff_minutes: int = 0

    def __add__(self, other: HourBuckets) -> HourBuckets:
        return HourBuckets(
            **{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)}
        )

    @property
    def worked_minutes(self) -> int:
        """Paid working time: elapsed clock time less unpaid breaks."""
        return self.elapsed_minutes - self.unpaid_break_minutes

    @property
    def classified_minutes(self) -> int:
        return (
            self.regular_minutes
            + self.overtime_minutes
            + self.holiday_minutes
            + self.rest_day_minutes
        )

    @property
    def regular_hours(self) -> Decimal:
        return minutes_to_hours(self.regular_minutes)

    @property
    def overtime_hours(self) -> Decimal:
        return minutes_to_hours(self.overtime_minutes)

    @property
    def holiday_hours(self) -> Decimal:
        return minutes_to_hours(self.holiday_minutes)

    @property
    def rest_day_hours(self) -> Decimal:
        return minutes_to_hours(self.rest_day_minutes)

    @property
    def night_diff_hours(self) -> Decimal:
        return minutes_to_hours(self.night_diff_minutes)

    @property
    def worked_hours(self) -> Decimal:
        return minutes_to_hours(self.worked_minutes)


@dataclass(frozen=True)
class DayBreakdown:
    """Buckets of one calendar day, with what made the day special."""

    work_date: date
    buckets: HourBuckets
    holiday_type: HolidayType | None = None
    is_rest_day: bool = False

    @property
    def straight_minutes(self) -> int:
        """Non-overtime minutes, whichever bucket they landed in."""
        return (
            self.buckets.regular_minutes
            + self.buckets.holiday_minutes
            + self.buckets.rest_day_minutes
        )


@dataclass(frozen=True)
class HoursBreakdown:
    """Aggregated hours of one employee over one period."""

    employee_id: UUID
    start_date: date
    end_date: date
    totals: HourBuckets
    days: tuple[DayBreakdown, ...] = ()
    shift_count: int = 0

    @property
    def has_hours(self) -> bool:
        return self.totals.worked_minutes > 0


# =============================================================================
# Pay
# =============================================================================


@dataclass(frozen=True)
class PayComponents:
    """Gross pay lines, each rounded HALF_UP to centavos."""

    basic: Decimal = ZERO
    overtime: Decimal = ZERO
    holiday: Decimal = ZERO
    rest_day: Decimal = ZERO
    night_diff: Decimal = ZERO

    @property
    def gross(self) -> Decimal:
        return self.basic + self.overtime + self.holiday + self.rest_day + self.night_diff


@dataclass(frozen=True)
class DeductionBreakdown:
    """Statutory contributions plus recurring manual deductions."""

    sss: Decimal = ZERO
    philhealth: Decimal = ZERO
    pagibig: Decimal = ZERO
    withholding_tax: Decimal = ZERO
    sss_loan: Decimal = ZERO
    pagibig_loan: Decimal = ZERO
    cash_advance: Decimal = ZERO
    other: Decimal = ZERO

    @property
    def statutory_total(self) -> Decimal:
        return self.sss + self.philhealth + self.pagibig + self.withholding_tax

    @property
    def manual_total(self) -> Decimal:
        return self.sss_loan + self.pagibig_loan + self.cash_advance + self.other

    @property
    def total(self) -> Decimal:
        return self.statutory_total + self.manual_total


@dataclass(frozen=True)
class PayrollComputation:
    """Result of computing one employee's pay for one period (not persisted)."""

    employee_id: UUID
    period_id: UUID
    hourly_rate: Decimal
    hours: HoursBreakdown
    pay: PayComponents
    deductions: DeductionBreakdown
    lookup_salary: Decimal

    @property
    def gross_pay(self) -> Decimal:
        return self.pay.gross

    @property
    def total_deductions(self) -> Decimal:
        return self.deductions.total

    @property
    def net_pay(self) -> Decimal:
        return self.gross_pay - self.total_deductions


# =============================================================================
# Persistent records
# =============================================================================


@dataclass(frozen=True)
class PayrollPeriodInfo:
    id: UUID
    branch_id: UUID
    start_date: date
    end_date: date
    status: PeriodStatus
    closed_at: datetime | None = None
    paid_at: datetime | None = None

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1


@dataclass(frozen=True)
class PayrollEntryInfo:
    id: UUID
    employee_id: UUID
    period_id: UUID
    status: EntryStatus
    hourly_rate: Decimal
    buckets: HourBuckets
    pay: PayComponents
    deductions: DeductionBreakdown
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    computed_at: datetime | None = None
    stale: bool = False
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None


@dataclass(frozen=True)
class EmployeeRunOutcome:
    """
    What happened to one employee during a run.

    On a failure, ``entry_id`` names the earlier draft that was kept and
    flagged stale, if there was one.
    """

    employee_id: UUID
    outcome: EmployeeOutcome
    entry_id: UUID | None = None
    net_pay: Decimal | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def left_stale_draft(self) -> bool:
        return self.outcome is EmployeeOutcome.FAILED and self.entry_id is not None


@dataclass(frozen=True)
class PayrollRunResult:
    """Immutable summary of one ``run_payroll`` invocation."""

    run_id: UUID
    period_id: UUID
    branch_id: UUID
    status: RunStatus
    outcomes: tuple[EmployeeRunOutcome, ...] = field(default_factory=tuple)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def _count(self, outcome: EmployeeOutcome) -> int:
        return sum(1 for o in self.outcomes if o.outcome is outcome)

    @property
    def computed(self) -> int:
        return self._count(EmployeeOutcome.COMPUTED)

    @property
    def skipped(self) -> int:
        return self._count(EmployeeOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(EmployeeOutcome.FAILED)

    @property
    def failures(self) -> tuple[EmployeeRunOutcome, ...]:
        return tuple(o for o in self.outcomes if o.outcome is EmployeeOutcome.FAILED)

    @property
    def stale_drafts(self) -> int:
        return sum(1 for o in self.outcomes if o.left_stale_draft)

    def outcome_for(self, employee_id: UUID) -> EmployeeRunOutcome | None:
        for o in self.outcomes:
            if o.employee_id == employee_id:
                return o
        return None
