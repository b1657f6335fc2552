"""
Payroll Calculator (``cafe_modules.payroll.calculator``).

Responsibility
--------------
Pure gross-to-net computation for one employee and one period: hours
buckets to pay components, gross to statutory deductions, plus the
employee's recurring manual deductions.

Architecture position
---------------------
**Modules layer** -- pure functions.  No session, no clock, no database
access.  Called by ``PayrollService`` (which owns persistence, locking and
batch isolation) or directly from tests.

Invariants enforced
-------------------
* All numeric inputs and outputs use ``Decimal`` -- NEVER ``float``.
* Each pay component and each deduction is rounded HALF_UP to centavos
  exactly once; gross and totals are sums of rounded lines.
* ``net == gross - total_deductions``; a negative net raises, it is never
  clamped to zero.
* Same inputs, same result.

Pay rules
---------
Per day, with ``day multiplier`` = holiday multiplier (rest-day variant on
the rest day) on holidays, the rest-day multiplier on rest days, else 1::

    basic      = regular h  x rate
    holiday    = holiday h  x rate x holiday multiplier
    rest_day   = rest-day h x rate x rest-day multiplier
    overtime   = OT h       x rate x day multiplier x overtime multiplier
    night_diff = night h    x rate x day multiplier x night rate

Hours are exact minutes / 60; rounding happens on the peso amounts.

Failure modes
-------------
* ``BracketGapError`` / ``AmbiguousBracketError`` from the resolver.
* ``NegativeNetPayError`` when deductions exceed gross.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from cafe_config.schema import (
    CafeConfiguration,
    DeductionBasis,
    DeductionSettings,
    DeductionType,
    PayMultipliers,
)
from cafe_kernel.db.types import MINUTES_PER_HOUR, ZERO, round_money
from cafe_kernel.domain.dtos import EmployeeInfo
from cafe_kernel.exceptions import NegativeNetPayError
from cafe_kernel.logging_config import get_logger
from cafe_modules.payroll.deductions import DeductionBracketResolver
from cafe_modules.payroll.hours import HoursAggregator
from cafe_modules.payroll.models import (
    DayBreakdown,
    DeductionBreakdown,
    HoursBreakdown,
    PayComponents,
    PayrollComputation,
    PayrollPeriodInfo,
)
from cafe_modules.scheduling.models import ShiftInfo

logger = get_logger("modules.payroll.calculator")

ONE = Decimal("1")


def day_multiplier(day: DayBreakdown, multipliers: PayMultipliers) -> Decimal:
    """Premium factor of a calendar day.  Holidays take precedence over rest days."""
    if day.holiday_type is not None:
        return multipliers.holiday(day.holiday_type, day.is_rest_day)
    if day.is_rest_day:
        return multipliers.rest_day
    return ONE


def compute_pay_components(
    hours: HoursBreakdown,
    hourly_rate: Decimal,
    multipliers: PayMultipliers,
) -> PayComponents:
    """
    Gross pay lines from the per-day breakdown.

    Preconditions:
        - ``hourly_rate`` is a non-negative ``Decimal``.
    Postconditions:
        - Every line is rounded HALF_UP to centavos.
    """
    basic = holiday = rest_day = overtime = night = ZERO
    for day in hours.days:
        b = day.buckets
        factor = day_multiplier(day, multipliers)
        basic += Decimal(b.regular_minutes) * hourly_rate
        holiday += Decimal(b.holiday_minutes) * hourly_rate * factor
        rest_day += Decimal(b.rest_day_minutes) * hourly_rate * multipliers.rest_day
        overtime += Decimal(b.overtime_minutes) * hourly_rate * factor * multipliers.overtime
        night += Decimal(b.night_diff_minutes) * hourly_rate * factor * multipliers.night_diff_rate

    return PayComponents(
        basic=round_money(basic / MINUTES_PER_HOUR),
        overtime=round_money(overtime / MINUTES_PER_HOUR),
        holiday=round_money(holiday / MINUTES_PER_HOUR),
        rest_day=round_money(rest_day / MINUTES_PER_HOUR),
        night_diff=round_money(night / MINUTES_PER_HOUR),
    )


def lookup_factor(period_days: int, settings: DeductionSettings) -> Decimal:
    """
    Multiplier turning period gross into the salary looked up in the tables.

    ``1`` for the period-gross basis and for periods of at least
    ``full_month_min_days``; otherwise ``monthly_basis_days / period_days``.
    """
    if settings.basis is DeductionBasis.PERIOD_GROSS:
        return ONE
    if period_days >= settings.full_month_min_days:
        return ONE
    return Decimal(settings.monthly_basis_days) / Decimal(period_days)


def compute_statutory_deductions(
    gross_pay: Decimal,
    period: PayrollPeriodInfo,
    resolver: DeductionBracketResolver,
    settings: DeductionSettings,
) -> tuple[dict[DeductionType, Decimal], Decimal]:
    """
    Contribution per enabled deduction type, and the salary that was looked up.

    With a scaled lookup the monthly contribution is prorated back to the
    period (``x period_days / monthly_basis_days``) before rounding.
    """
    enabled = settings.enabled_for(period.branch_id)
    factor = lookup_factor(period.days, settings)
    lookup_salary = round_money(gross_pay * factor)

    amounts: dict[DeductionType, Decimal] = {}
    for deduction_type in DeductionType:
        if deduction_type not in enabled:
            amounts[deduction_type] = ZERO
            continue
        monthly = resolver.contribution(deduction_type, lookup_salary, period.end_date)
        if factor == ONE:
            amounts[deduction_type] = monthly
        else:
            amounts[deduction_type] = round_money(
                monthly * Decimal(period.days) / Decimal(settings.monthly_basis_days)
            )
    return amounts, lookup_salary


def compute_payroll(
    employee: EmployeeInfo,
    period: PayrollPeriodInfo,
    shifts: Iterable[ShiftInfo],
    config: CafeConfiguration,
    hourly_rate: Decimal | None = None,
    aggregator: HoursAggregator | None = None,
    resolver: DeductionBracketResolver | None = None,
) -> PayrollComputation:
    """
    Compute one employee's pay for one period.

    ``hourly_rate`` overrides the employee's current rate (the snapshot of an
    existing draft entry).

    Raises:
        BracketGapError / AmbiguousBracketError: bracket lookup failed.
        NegativeNetPayError: deductions exceed gross pay.
    """
    aggregator = aggregator or HoursAggregator(config)
    resolver = resolver or DeductionBracketResolver(config)
    rate = employee.hourly_rate if hourly_rate is None else hourly_rate
    rest_weekday = config.rest_days.rest_day_for(period.branch_id, employee.rest_day)

    hours = aggregator.aggregate(
        employee.id, shifts, period.start_date, period.end_date, rest_weekday,
    )
    pay = compute_pay_components(hours, rate, config.multipliers)
    statutory, lookup_salary = compute_statutory_deductions(
        pay.gross, period, resolver, config.deductions,
    )
    manual = employee.manual_deductions
    deductions = DeductionBreakdown(
        sss=statutory[DeductionType.SSS],
        philhealth=statutory[DeductionType.PHILHEALTH],
        pagibig=statutory[DeductionType.PAGIBIG],
        withholding_tax=statutory[DeductionType.TAX],
        sss_loan=round_money(manual.sss_loan),
        pagibig_loan=round_money(manual.pagibig_loan),
        cash_advance=round_money(manual.cash_advance),
        other=round_money(manual.other),
    )
    computation = PayrollComputation(
        employee_id=employee.id,
        period_id=period.id,
        hourly_rate=rate,
        hours=hours,
        pay=pay,
        deductions=deductions,
        lookup_salary=lookup_salary,
    )

    if computation.net_pay < ZERO:
        logger.warning(
            "payroll_negative_net_pay",
            extra={
                "employee_id": str(employee.id),
                "period_id": str(period.id),
                "gross_pay": str(computation.gross_pay),
                "total_deductions": str(computation.total_deductions),
            },
        )
        raise NegativeNetPayError(
            employee.id, period.id, computation.gross_pay, computation.total_deductions,
        )

    logger.debug(
        "payroll_computed",
        extra={
            "employee_id": str(employee.id),
            "period_id": str(period.id),
            "gross_pay": str(computation.gross_pay),
            "net_pay": str(computation.net_pay),
        },
    )
    return computation

