"""
Configuration validator (``cafe_config.validator``).

Responsibility
--------------
Validates a parsed ``CafeConfiguration`` at load time so that structural
mistakes surface when the configuration is loaded, not in the middle of a
payroll run.

Invariants enforced
-------------------
* Bracket tables: non-empty; ordered by ``min_salary`` ascending;
  contiguous at centavo granularity (each ``min_salary`` equals the
  previous ``max_salary`` + 0.01); only the last bracket unbounded; each
  bracket has exactly one of ``rate`` / ``fixed_contribution``; one table per
  (type, effective_from).  Violations raise ``BracketTableError``.
* Every enabled deduction type has at least one table.
* Break policies: non-negative minimum lengths, positive durations.
* Holidays: one entry per date.
* Multipliers: positive; every holiday type has a multiplier.
* Rest days: weekday numbers 0-6.

Failure modes
-------------
* ``BracketTableError`` raised immediately from ``validate_bracket_table``.
* Other problems are collected in ``ConfigValidationResult.errors``; the
  loader raises ``ConfigurationError`` when any are present.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from cafe_config.schema import (
    BracketTable,
    CafeConfiguration,
    HolidayType,
)
from cafe_kernel.exceptions import BracketTableError

CENTAVO = Decimal("0.01")


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty.  Warnings do not
    block loading but should be reviewed.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_bracket_table(table: BracketTable) -> None:
    """Raise ``BracketTableError`` unless ``table`` is ordered and gapless."""
    dtype = table.deduction_type.value
    brackets = table.brackets
    if not brackets:
        raise BracketTableError(dtype, f"table effective {table.effective_from} is empty")

    for index, bracket in enumerate(brackets):
        label = f"bracket {index} ({bracket.min_salary}-{bracket.max_salary})"
        if bracket.deduction_type != table.deduction_type:
            raise BracketTableError(dtype, f"{label} has type {bracket.deduction_type.value}")
        if (bracket.rate is None) == (bracket.fixed_contribution is None):
            raise BracketTableError(dtype, f"{label} must set exactly one of rate or fixed_contribution")
        if bracket.rate is not None and not Decimal("0") <= bracket.rate <= Decimal("1"):
            raise BracketTableError(dtype, f"{label} rate {bracket.rate} outside 0..1")
        if bracket.fixed_contribution is not None and bracket.fixed_contribution < 0:
            raise BracketTableError(dtype, f"{label} has negative fixed contribution")
        if bracket.min_salary < 0:
            raise BracketTableError(dtype, f"{label} has negative minimum")
        if bracket.max_salary is not None and bracket.max_salary < bracket.min_salary:
            raise BracketTableError(dtype, f"{label} has max below min")
        if bracket.max_salary is None and index != len(brackets) - 1:
            raise BracketTableError(dtype, f"{label} is unbounded but not last")

        if index > 0:
            previous = brackets[index - 1]
            if bracket.min_salary <= previous.min_salary:
                raise BracketTableError(dtype, f"{label} is out of order")
            expected = previous.max_salary + CENTAVO
            if bracket.min_salary < expected:
                raise BracketTableError(dtype, f"{label} overlaps previous bracket (expected min {expected})")
            if bracket.min_salary > expected:
                raise BracketTableError(dtype, f"{label} leaves a gap after {previous.max_salary}")


def validate_configuration(config: CafeConfiguration) -> ConfigValidationResult:
    """
    Validate a parsed configuration.

    Bracket tables are checked first and raise on the first defect; the
    remaining checks accumulate into the returned result.
    """
    result = ConfigValidationResult()

    seen_tables: set[tuple[str, object]] = set()
    for table in config.bracket_tables:
        key = (table.deduction_type.value, table.effective_from)
        if key in seen_tables:
            raise BracketTableError(
                table.deduction_type.value,
                f"duplicate table effective {table.effective_from}",
            )
        seen_tables.add(key)
        validate_bracket_table(table)

    for dtype in config.deductions.enabled | frozenset().union(*config.deductions.branch_overrides.values()):
        if not config.tables_for(dtype):
            result.add_error(f"Deduction '{dtype.value}' is enabled but has no bracket table")

    if not config.break_policies:
        result.add_warning("No break policies configured; no breaks will be suggested")
    for policy in config.break_policies:
        if policy.min_shift_minutes < 0:
            result.add_error(f"Break policy '{policy.name}' has negative min_shift_minutes")
        for spec in policy.breaks:
            if spec.duration_minutes <= 0:
                result.add_error(
                    f"Break policy '{policy.name}': {spec.break_type} duration must be positive"
                )

    seen_dates: set[object] = set()
    for holiday in config.holidays:
        if holiday.holiday_date in seen_dates:
            result.add_error(f"Holiday date {holiday.holiday_date} listed twice")
        seen_dates.add(holiday.holiday_date)

    multipliers = config.multipliers
    for name, value in (
        ("overtime", multipliers.overtime),
        ("rest_day", multipliers.rest_day),
    ):
        if value <= 0:
            result.add_error(f"Multiplier '{name}' must be positive")
    if multipliers.night_diff_rate < 0:
        result.add_error("Night differential rate must be non-negative")
    for holiday_type in HolidayType:
        multiplier = multipliers.holidays.get(holiday_type)
        if multiplier is None:
            result.add_error(f"No multiplier for holiday type '{holiday_type.value}'")
        elif multiplier.worked <= 0 or multiplier.rest_day <= 0:
            result.add_error(f"Holiday multiplier '{holiday_type.value}' must be positive")

    weekdays = [config.rest_days.default_weekday, *config.rest_days.by_branch.values()]
    if any(not 0 <= w <= 6 for w in weekdays):
        result.add_error("Rest-day weekdays must be between 0 (Monday) and 6 (Sunday)")

    if config.workday.regular_minutes_per_day <= 0:
        result.add_error("regular_minutes_per_day must be positive")
    if config.scheduling.min_notice_days < 0:
        result.add_error("min_notice_days must be non-negative")
    if config.deductions.monthly_basis_days <= 0:
        result.add_error("monthly_basis_days must be positive")
    for kind, days in config.time_off_allowances.items():
        if days < 0:
            result.add_error(f"Time-off allowance for '{kind}' must be non-negative")

    return result
