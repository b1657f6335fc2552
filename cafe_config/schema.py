"""
Configuration schema (``cafe_config.schema``).

Responsibility
--------------
Frozen dataclasses describing every configurable input of the core:
deduction bracket tables, break policies, the holiday calendar, pay
multipliers, rest-day assignment, notice rules and time-off allowances.

Architecture position
---------------------
**Config layer** -- pure types, no I/O.  Produced by ``cafe_config.loader``
and consumed read-only by the scheduling and payroll modules.  A loaded
``CafeConfiguration`` is immutable, so it cannot change during a payroll
computation pass.

Invariants enforced
-------------------
* All monetary values, rates and multipliers are ``Decimal``.
* A ``DeductionBracket`` carries exactly one of ``rate`` /
  ``fixed_contribution`` (checked by the validator at load time).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from enum import Enum
from uuid import UUID


class DeductionType(str, Enum):
    """Statutory deduction kinds."""

    SSS = "sss"
    PHILHEALTH = "philhealth"
    PAGIBIG = "pagibig"
    TAX = "tax"


class HolidayType(str, Enum):
    """Philippine holiday classes; each has its own pay multipliers."""

    REGULAR = "regular"
    SPECIAL_NON_WORKING = "special_non_working"
    SPECIAL_WORKING = "special_working"


class DeductionBasis(str, Enum):
    """Salary figure looked up in the bracket tables.

    PERIOD_GROSS uses the period's gross pay as is.  MONTHLY_EQUIVALENT
    scales short periods up to a month for the lookup and prorates the
    contribution back to the period.
    """

    PERIOD_GROSS = "period_gross"
    MONTHLY_EQUIVALENT = "monthly_equivalent"


# =============================================================================
# Breaks
# =============================================================================


@dataclass(frozen=True)
class BreakSpec:
    """One break a policy prescribes."""

    break_type: str
    duration_minutes: int
    paid: bool
    required: bool


@dataclass(frozen=True)
class BreakPolicy:
    """Breaks applicable to shifts of at least ``min_shift_minutes``."""

    name: str
    min_shift_minutes: int
    breaks: tuple[BreakSpec, ...] = ()


# =============================================================================
# Deductions
# =============================================================================


@dataclass(frozen=True)
class DeductionBracket:
    """
    One salary range of a statutory deduction table.

    ``max_salary=None`` means unbounded above.  The contribution is
    ``salary * rate`` for rate brackets and ``fixed_contribution`` for fixed
    brackets, never both.
    """

    deduction_type: DeductionType
    min_salary: Decimal
    max_salary: Decimal | None
    rate: Decimal | None = None
    fixed_contribution: Decimal | None = None
    description: str = ""

    def covers(self, salary: Decimal) -> bool:
        if salary < self.min_salary:
            return False
        return self.max_salary is None or salary <= self.max_salary

    def contribution(self, salary: Decimal) -> Decimal:
        """Unrounded contribution for ``salary``."""
        if self.fixed_contribution is not None:
            return self.fixed_contribution
        return salary * self.rate


@dataclass(frozen=True)
class BracketTable:
    """Ordered brackets of one deduction type, in force from ``effective_from``."""

    deduction_type: DeductionType
    effective_from: date
    brackets: tuple[DeductionBracket, ...]
    source: str = ""


# =============================================================================
# Calendar and pay
# =============================================================================


@dataclass(frozen=True)
class Holiday:
    holiday_date: date
    name: str
    holiday_type: HolidayType


@dataclass(frozen=True)
class HolidayMultiplier:
    """Multiplier for working a holiday, and for working it on a rest day."""

    worked: Decimal
    rest_day: Decimal


@dataclass(frozen=True)
class PayMultipliers:
    overtime: Decimal = Decimal("1.25")
    rest_day: Decimal = Decimal("1.30")
    night_diff_rate: Decimal = Decimal("0.10")
    holidays: Mapping[HolidayType, HolidayMultiplier] = field(default_factory=dict)

    def holiday(self, holiday_type: HolidayType, on_rest_day: bool) -> Decimal:
        multiplier = self.holidays[holiday_type]
        return multiplier.rest_day if on_rest_day else multiplier.worked


@dataclass(frozen=True)
class WorkdayRules:
    """How worked minutes of one calendar day are classified."""

    regular_minutes_per_day: int = 480
    night_start: time = time(22, 0)
    night_end: time = time(6, 0)


@dataclass(frozen=True)
class DeductionSettings:
    basis: DeductionBasis = DeductionBasis.MONTHLY_EQUIVALENT
    monthly_basis_days: int = 30
    full_month_min_days: int = 28
    enabled: frozenset[DeductionType] = frozenset(DeductionType)
    branch_overrides: Mapping[str, frozenset[DeductionType]] = field(default_factory=dict)

    def enabled_for(self, branch_id: UUID | str) -> frozenset[DeductionType]:
        return self.branch_overrides.get(str(branch_id), self.enabled)


@dataclass(frozen=True)
class RestDaySettings:
    """Rest-day weekday (Monday=0 .. Sunday=6) by branch, with a default."""

    default_weekday: int = 6
    by_branch: Mapping[str, int] = field(default_factory=dict)

    def rest_day_for(self, branch_id: UUID | str, employee_override: int | None = None) -> int:
        if employee_override is not None:
            return employee_override
        return self.by_branch.get(str(branch_id), self.default_weekday)


@dataclass(frozen=True)
class SchedulingRules:
    min_notice_days: int = 3
    max_shift_minutes: int = 24 * 60
    escalation_hours: int = 24


@dataclass(frozen=True)
class LockingSettings:
    payroll_lock_timeout_seconds: float = 30.0


# =============================================================================
# Root
# =============================================================================


@dataclass(frozen=True)
class CafeConfiguration:
    """
    The complete, validated configuration set.

    ``checksum`` is the SHA-256 over the source YAML documents, for identity
    and change detection.
    """

    version: str
    timezone: str
    currency: str
    workday: WorkdayRules
    multipliers: PayMultipliers
    deductions: DeductionSettings
    rest_days: RestDaySettings
    scheduling: SchedulingRules
    locking: LockingSettings
    time_off_allowances: Mapping[str, int]
    break_policies: tuple[BreakPolicy, ...]
    bracket_tables: tuple[BracketTable, ...]
    holidays: tuple[Holiday, ...]
    checksum: str = ""

    def holiday_calendar(self) -> dict[date, Holiday]:
        return {h.holiday_date: h for h in self.holidays}

    def tables_for(self, deduction_type: DeductionType) -> tuple[BracketTable, ...]:
        return tuple(
            sorted(
                (t for t in self.bracket_tables if t.deduction_type == deduction_type),
                key=lambda t: t.effective_from,
            )
        )
