"""
Hours aggregation (``cafe_modules.payroll.hours``).

Responsibility
--------------
Turn an employee's completed shifts (with breaks) into payable-minute
buckets for a pay period: regular, overtime, holiday, rest day and night
differential, both per calendar day and in total.

Architecture position
---------------------
**Modules layer** -- pure computation.  No session, no clock, no I/O.  The
payroll service fetches shifts through ``TimeLedgerService`` and hands them
in; configuration (workday rules, holiday calendar) is injected.

Algorithm
---------
1. Shifts qualify when ``completed`` with both actual times and an actual
   start date inside the period.  Times are truncated to the whole minute.
2. Unpaid breaks (actual times when both are recorded, else scheduled) are
   clipped to the worked interval and merged, so no minute is subtracted
   twice.  What remains is the paid working time.
3. Paid time is split at midnight.  Within each calendar day, minutes are
   taken chronologically: the first ``regular_minutes_per_day`` are
   straight time, the rest overtime.  Straight time on a holiday goes to
   the holiday bucket, else on the rest day to the rest-day bucket, else
   to regular.  A holiday that falls on the rest day is a holiday.
4. Night-differential minutes are the paid minutes inside the night
   window, counted on top of the other buckets.

Invariants enforced
-------------------
* ``regular + overtime + holiday + rest_day == elapsed - unpaid_break`` for
  every day and for the total.
* The result depends only on the shifts and configuration (deterministic).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from uuid import UUID

from cafe_config.schema import CafeConfiguration, Holiday, WorkdayRules
from cafe_kernel.logging_config import get_logger
from cafe_modules.payroll.models import DayBreakdown, HourBuckets, HoursBreakdown
from cafe_modules.scheduling.models import ShiftInfo, ShiftStatus

logger = get_logger("modules.payroll.hours")

Interval = tuple[datetime, datetime]


# =============================================================================
# Interval helpers
# =============================================================================


def floor_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort and merge overlapping or touching intervals."""
    merged: list[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def subtract_intervals(base: Interval, holes: list[Interval]) -> list[Interval]:
    """``base`` minus merged, clipped ``holes``."""
    pieces: list[Interval] = []
    cursor, end = base
    for hole_start, hole_end in holes:
        if hole_start > cursor:
            pieces.append((cursor, hole_start))
        cursor = max(cursor, hole_end)
    if cursor < end:
        pieces.append((cursor, end))
    return pieces


def split_by_day(interval: Interval) -> list[Interval]:
    """Cut an interval at every midnight it crosses."""
    start, end = interval
    pieces: list[Interval] = []
    while start < end:
        midnight = datetime.combine(start.date() + timedelta(days=1), time.min)
        piece_end = min(end, midnight)
        pieces.append((start, piece_end))
        start = piece_end
    return pieces


def overlap_minutes(a: Interval, b: Interval) -> int:
    start = max(a[0], b[0])
    end = min(a[1], b[1])
    return minutes_between(start, end) if start < end else 0


def night_windows(day: date, rules: WorkdayRules) -> list[Interval]:
    """Night-differential windows that fall on ``day``."""
    day_start = datetime.combine(day, time.min)
    next_day = day_start + timedelta(days=1)
    night_start = datetime.combine(day, rules.night_start)
    night_end = datetime.combine(day, rules.night_end)
    if rules.night_start > rules.night_end:
        return [(day_start, night_end), (night_start, next_day)]
    if rules.night_start < rules.night_end:
        return [(night_start, night_end)]
    return []


# =============================================================================
# Aggregator
# =============================================================================


@dataclass
class _DayTally:
    elapsed: int = 0
    unpaid_break: int = 0
    straight: int = 0
    overtime: int = 0
    night: int = 0


class HoursAggregator:
    """Classify worked minutes into pay buckets."""

    def __init__(self, config: CafeConfiguration):
        self._rules = config.workday
        self._holidays: dict[date, Holiday] = config.holiday_calendar()

    @staticmethod
    def is_eligible(shift: ShiftInfo, start_date: date, end_date: date) -> bool:
        return (
            shift.status is ShiftStatus.COMPLETED
            and shift.actual_start is not None
            and shift.actual_end is not None
            and start_date <= shift.actual_start.date() <= end_date
        )

    def aggregate(
        self,
        employee_id: UUID,
        shifts: Iterable[ShiftInfo],
        start_date: date,
        end_date: date,
        rest_weekday: int | None,
    ) -> HoursBreakdown:
        """Buckets of ``employee_id`` over ``start_date..end_date`` (inclusive)."""
        eligible = sorted(
            (s for s in shifts if self.is_eligible(s, start_date, end_date)),
            key=lambda s: (s.actual_start, str(s.id)),
        )
        days = self._classify(eligible, rest_weekday)
        totals = HourBuckets()
        for day in days:
            totals = totals + day.buckets

        logger.debug(
            "hours_aggregated",
            extra={
                "employee_id": str(employee_id),
                "shift_count": len(eligible),
                "worked_minutes": totals.worked_minutes,
                "overtime_minutes": totals.overtime_minutes,
            },
        )
        return HoursBreakdown(
            employee_id=employee_id,
            start_date=start_date,
            end_date=end_date,
            totals=totals,
            days=tuple(days),
            shift_count=len(eligible),
        )

    def shift_buckets(self, shift: ShiftInfo, rest_weekday: int | None = None) -> HourBuckets:
        """Buckets of a single completed shift, as if it were the only one of its days."""
        if shift.actual_start is None or shift.actual_end is None:
            return HourBuckets()
        totals = HourBuckets()
        for day in self._classify([shift], rest_weekday):
            totals = totals + day.buckets
        return totals

    # -------------------------------------------------------------------------

    def _classify(self, shifts: list[ShiftInfo], rest_weekday: int | None) -> list[DayBreakdown]:
        paid: list[Interval] = []
        unpaid: list[Interval] = []
        for shift in shifts:
            start = floor_minute(shift.actual_start)
            end = floor_minute(shift.actual_end)
            if end <= start:
                continue
            breaks = merge_intervals(self._unpaid_breaks(shift, start, end))
            unpaid.extend(breaks)
            paid.extend(subtract_intervals((start, end), breaks))

        tallies: dict[date, _DayTally] = {}
        for interval in sorted(unpaid):
            for piece_start, piece_end in split_by_day(interval):
                tally = tallies.setdefault(piece_start.date(), _DayTally())
                minutes = minutes_between(piece_start, piece_end)
                tally.elapsed += minutes
                tally.unpaid_break += minutes

        limit = self._rules.regular_minutes_per_day
        for interval in sorted(paid):
            for piece in split_by_day(interval):
                day = piece[0].date()
                tally = tallies.setdefault(day, _DayTally())
                minutes = minutes_between(*piece)
                straight = min(minutes, max(limit - tally.straight, 0))
                tally.elapsed += minutes
                tally.straight += straight
                tally.overtime += minutes - straight
                tally.night += sum(overlap_minutes(piece, w) for w in night_windows(day, self._rules))

        return [self._day_breakdown(day, tallies[day], rest_weekday) for day in sorted(tallies)]

    def _unpaid_breaks(self, shift: ShiftInfo, start: datetime, end: datetime) -> list[Interval]:
        intervals: list[Interval] = []
        for brk in shift.breaks:
            if brk.paid:
                continue
            interval = brk.effective_interval
            if interval is None:
                continue
            b_start = max(floor_minute(interval[0]), start)
            b_end = min(floor_minute(interval[1]), end)
            if b_start < b_end:
                intervals.append((b_start, b_end))
        return intervals

    def _day_breakdown(self, day: date, tally: _DayTally, rest_weekday: int | None) -> DayBreakdown:
        holiday = self._holidays.get(day)
        is_rest_day = rest_weekday is not None and day.weekday() == rest_weekday
        regular = holiday_minutes = rest_day_minutes = 0
        if holiday is not None:
            holiday_minutes = tally.straight
        elif is_rest_day:
            rest_day_minutes = tally.straight
        else:
            regular = tally.straight
        return DayBreakdown(
            work_date=day,
            buckets=HourBuckets(
                elapsed_minutes=tally.elapsed,
                unpaid_break_minutes=tally.unpaid_break,
                regular_minutes=regular,
                overtime_minutes=tally.overtime,
                holiday_minutes=holiday_minutes,
                rest_day_minutes=rest_day_minutes,
                night_diff_minutes=tally.night,
            ),
            holiday_type=holiday.holiday_type if holiday is not None else None,
            is_rest_day=is_rest_day,
        )
